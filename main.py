"""
Application entry point for the LearnX backend.

Design choices:
- Mounts the API router using a configurable prefix from core.config Settings.
- Malformed request bodies are answered with 400 {"msg": ...} like every other user error.
"""
import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.v1.routes import TOPIC_REQUIRED, router as api_router
from core.config import get_settings
from core.logging_config import configure_logging
from database import init_db

_settings = get_settings()

# Configure structured logging
configure_logging(_settings.log_level)

app = FastAPI(title="LearnX - Backend", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials="*" not in _settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [{"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()]
    topic_error = any("topic" in e["loc"] for e in errors)
    return JSONResponse(
        status_code=400,
        content={"msg": TOPIC_REQUIRED if topic_error else "Invalid request body", "errors": errors},
    )


@app.get("/")
async def root():
    return {"message": "LearnX Backend API"}


app.include_router(api_router, prefix=_settings.api_prefix)


@app.on_event("startup")
async def startup_event():
    logger = logging.getLogger("startup")
    if not _settings.enable_persistence:
        logger.info("Persistence disabled; courses will not be stored")
        return
    try:
        init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=_settings.port)
