"""
Core configuration module for environment variables and settings management.

Design choices:
- Uses python-dotenv to load environment variables from a .env file when present.
- Avoids pydantic BaseSettings (pydantic-settings); Settings is a plain pydantic v2 BaseModel filled from os.environ.
- Provides a single get_settings() accessor with LRU caching to avoid repeated parsing.
- Search and LLM credentials are optional; services degrade to curated/canned content without them.
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings(BaseModel):
    environment: str = "dev"

    # HTTP surface
    api_prefix: str = "/api"
    cors_origins: List[str] = ["*"]
    port: int = 5000

    # Search collector ("auto" picks google when credentials exist, else the curated mock list)
    search_provider: str = "auto"
    google_search_api_key: Optional[str] = None
    google_search_engine_id: Optional[str] = None
    search_max_results: int = 8
    search_top_n: int = 5
    search_timeout: int = 10
    search_query_suffixes: List[str] = ["tutorial", "course curriculum"]

    # Content fetcher
    fetch_timeout: int = 10
    fetch_max_chars: int = 2000
    fetch_max_sentences: int = 20
    rotate_user_agent: bool = False

    # LLM providers (request apiKey wins over these server-side keys)
    llm_provider: str = "gemini"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    groq_api_key: Optional[str] = None
    groq_model: str = "llama-3.1-8b-instant"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    llm_timeout: int = 30
    llm_call_interval_ms: int = 600
    max_modules: int = 5
    prompt_context_chars: int = 6000

    # Persistence
    database_url: str = "sqlite:///./learnx.db"
    enable_persistence: bool = True

    log_level: str = "INFO"

    @property
    def google_search_configured(self) -> bool:
        return bool(self.google_search_api_key and self.google_search_engine_id)

    def api_key_for(self, provider: str) -> Optional[str]:
        """Server-side key for an LLM provider, if one is configured."""
        return {
            "gemini": self.gemini_api_key,
            "groq": self.groq_api_key,
            "openai": self.openai_api_key,
        }.get(provider)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load environment variables (from .env if present) and build a Settings object.

    This function is cached so app startup and repeated imports are efficient.
    """
    load_dotenv()  # no-op if .env not present
    return Settings(
        environment=os.getenv("ENVIRONMENT", "dev"),
        api_prefix=os.getenv("API_PREFIX", "/api"),
        cors_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
        port=int(os.getenv("PORT", "5000")),
        search_provider=os.getenv("SEARCH_PROVIDER", "auto").lower(),
        google_search_api_key=os.getenv("GOOGLE_SEARCH_API_KEY"),
        google_search_engine_id=os.getenv("GOOGLE_SEARCH_ENGINE_ID"),
        search_max_results=int(os.getenv("SEARCH_MAX_RESULTS", "8")),
        search_top_n=int(os.getenv("SEARCH_TOP_N", "5")),
        search_timeout=int(os.getenv("SEARCH_TIMEOUT", "10")),
        search_query_suffixes=[
            s.strip() for s in os.getenv("SEARCH_QUERY_SUFFIXES", "tutorial,course curriculum").split(",") if s.strip()
        ],
        fetch_timeout=int(os.getenv("FETCH_TIMEOUT", "10")),
        fetch_max_chars=int(os.getenv("FETCH_MAX_CHARS", "2000")),
        fetch_max_sentences=int(os.getenv("FETCH_MAX_SENTENCES", "20")),
        rotate_user_agent=_env_bool("ROTATE_USER_AGENT", "false"),
        llm_provider=os.getenv("LLM_PROVIDER", "gemini").lower(),
        gemini_api_key=os.getenv("GEMINI_API_KEY"),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        groq_api_key=os.getenv("GROQ_API_KEY"),
        groq_model=os.getenv("GROQ_MODEL", "llama-3.1-8b-instant"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        llm_timeout=int(os.getenv("LLM_TIMEOUT", "30")),
        llm_call_interval_ms=int(os.getenv("LLM_CALL_INTERVAL_MS", "600")),
        max_modules=int(os.getenv("MAX_MODULES", "5")),
        prompt_context_chars=int(os.getenv("PROMPT_CONTEXT_CHARS", "6000")),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./learnx.db"),
        enable_persistence=_env_bool("ENABLE_PERSISTENCE", "true"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
