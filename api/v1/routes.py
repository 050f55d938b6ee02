"""
LearnX API routes.

Design choices:
- The router does not hardcode a prefix; main.py mounts it using settings.api_prefix ("/api").
- Response bodies follow the shape the React client consumes (camelCase, no envelope).
- User errors are 400 {"msg": ...}; upstream failures degrade inside the services and still return 200.
"""
from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from core.config import Settings, get_settings
from core.logging_config import set_request_id
from repository import CourseStore, get_course_repository
from schemas.api import AIProcessRequest, AIProcessResponse, ScrapeRequest, ScrapeResponse
from schemas.course import StoredCourse
from services.content_fetcher import ContentFetcher, get_content_fetcher
from services.learning_service import process_resources, scrape_topic
from services.llm_providers import LLMFactory, get_llm_factory
from services.search_collector import SearchCollector, get_search_collector

router = APIRouter(tags=["learnx"])  # mounted under /api by main.py
logger = logging.getLogger("api")

TOPIC_REQUIRED = "Please provide a topic"


def _bad_request(msg: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"msg": msg})


@router.get("")
async def api_root():
    """Liveness probe."""
    return {"message": "Hello from our server!"}


@router.post("/scrape", response_model=ScrapeResponse, response_model_exclude_none=True)
async def post_scrape(
    request: ScrapeRequest,
    collector: SearchCollector = Depends(get_search_collector),
    fetcher: ContentFetcher = Depends(get_content_fetcher),
    llm_factory: LLMFactory = Depends(get_llm_factory),
    repository: Optional[CourseStore] = Depends(get_course_repository),
    settings: Settings = Depends(get_settings),
):
    """Collect resources for a topic and optionally generate a course from them."""
    req_id = str(uuid4())
    set_request_id(req_id)
    if not request.topic:
        return _bad_request(TOPIC_REQUIRED)

    logger.info("scrape_request", extra={"topic": request.topic, "provider": request.provider})
    try:
        return await scrape_topic(request, collector, fetcher, llm_factory, repository, settings)
    except Exception as e:
        logger.error("scrape_request_failed", exc_info=True, extra={
            "topic": request.topic,
            "error": str(e),
            "error_type": type(e).__name__,
        })
        return JSONResponse(status_code=500, content={"msg": "Server Error", "error": str(e)})


@router.post("/ai/process", response_model=AIProcessResponse, response_model_exclude_none=True)
async def post_ai_process(
    request: AIProcessRequest,
    fetcher: ContentFetcher = Depends(get_content_fetcher),
    llm_factory: LLMFactory = Depends(get_llm_factory),
    repository: Optional[CourseStore] = Depends(get_course_repository),
    settings: Settings = Depends(get_settings),
):
    """Generate a course structure from caller-supplied resources."""
    req_id = str(uuid4())
    set_request_id(req_id)
    if not request.topic:
        return _bad_request(TOPIC_REQUIRED)
    if not request.resources:
        return _bad_request("Please provide resources")
    if not request.api_key:
        return _bad_request("Please provide an API key")

    logger.info("ai_process_request", extra={"topic": request.topic, "count": len(request.resources)})
    try:
        return await process_resources(request, fetcher, llm_factory, repository, settings)
    except Exception as e:
        logger.error("ai_process_request_failed", exc_info=True, extra={
            "topic": request.topic,
            "error": str(e),
            "error_type": type(e).__name__,
        })
        return JSONResponse(status_code=500, content={"msg": "Server Error", "error": str(e)})


@router.get("/courses/{topic}", response_model=StoredCourse)
async def get_course(topic: str, repository: Optional[CourseStore] = Depends(get_course_repository)):
    """Return the stored course for a topic."""
    set_request_id(str(uuid4()))
    course = await run_in_threadpool(repository.get_by_topic, topic.strip()) if repository else None
    if course is None:
        return JSONResponse(status_code=404, content={"msg": "Course not found"})
    return course
