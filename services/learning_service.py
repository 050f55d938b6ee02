"""
Request orchestration for the scrape and AI processing endpoints.

Flow: search collector -> (optional) content fetcher -> prompt chain -> persistence.
Upstream failures (search, fetch, LLM) never fail the request; they are folded into
`fallback` / `aiError` on the response. Persistence errors propagate to the route.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from starlette.concurrency import run_in_threadpool

from core.config import Settings
from repository import CourseStore
from schemas.api import AIProcessRequest, AIProcessResponse, ScrapeRequest, ScrapeResponse, SearchResult
from schemas.course import CourseOutline
from services.content_fetcher import ContentFetcher
from services.course_generator import (
    CourseGenerator,
    GenerationResult,
    build_fallback_outline,
    heuristic_most_authentic,
)
from services.llm_providers import LLMFactory, LLMProvider, resolve_provider_name
from services.rate_limiter import MinIntervalRateLimiter
from services.search_collector import SearchCollector, build_fallback_content, build_results_content

logger = logging.getLogger("learning_service")


def _make_generator(llm: LLMProvider, settings: Settings) -> CourseGenerator:
    return CourseGenerator(
        llm=llm,
        rate_limiter=MinIntervalRateLimiter.from_milliseconds(settings.llm_call_interval_ms),
        max_modules=settings.max_modules,
        context_chars=settings.prompt_context_chars,
    )


def _build_llm(
    llm_factory: LLMFactory,
    provider: Optional[str],
    api_key: Optional[str],
    settings: Settings,
    errors: List[str],
) -> Tuple[str, Optional[LLMProvider]]:
    name = provider or settings.llm_provider
    try:
        name = resolve_provider_name(provider, settings)
        llm = llm_factory(name, api_key)
    except Exception as e:
        logger.error(f"Could not create {name} client: {e}", extra={"provider": name})
        errors.append(f"{name}: {e}")
        return name, None
    if llm is None:
        errors.append(f"No API key provided for {name}")
    return name, llm


async def attach_page_content(fetcher: ContentFetcher, sources: Sequence[SearchResult]) -> int:
    """Fetch page text for each source in place. Returns how many sources got content."""
    contents = await fetcher.fetch_many([s.url for s in sources])
    fetched = 0
    for source in sources:
        scraped = contents.get(source.url)
        if scraped is not None:
            source.content = scraped.text
            source.scraped = True
            fetched += 1
    return fetched


async def _persist(repository: Optional[CourseStore], topic: str, links: List[str], outline: Optional[CourseOutline]) -> None:
    if repository is None:
        return
    document = outline.to_document() if outline is not None else None
    await run_in_threadpool(repository.upsert_by_topic, topic, links, document)
    logger.info("Course stored", extra={"topic": topic, "count": len(links)})


async def scrape_topic(
    request: ScrapeRequest,
    collector: SearchCollector,
    fetcher: ContentFetcher,
    llm_factory: LLMFactory,
    repository: Optional[CourseStore],
    settings: Settings,
) -> ScrapeResponse:
    topic = request.topic or ""
    outcome = await collector.collect(topic, evaluate_authenticity=request.evaluate_authenticity)
    results = outcome.results
    content = build_fallback_content(topic) if outcome.fallback else build_results_content(results)
    fallback = outcome.fallback

    wants_course = request.generate_course if request.generate_course is not None else bool(request.api_key)
    ai_errors: List[str] = []
    provider_name: Optional[str] = None
    llm: Optional[LLMProvider] = None
    if wants_course or (request.evaluate_authenticity and request.api_key):
        provider_name, llm = _build_llm(llm_factory, request.provider, request.api_key, settings, ai_errors)

    if wants_course and llm is not None and results:
        fetched = await attach_page_content(fetcher, results)
        if fetched == 0:
            logger.warning("No page content could be fetched", extra={"topic": topic})
            fallback = True

    # all LLM calls in a request go through one generator and its limiter
    generator = _make_generator(llm, settings) if llm is not None else None

    most_authentic = None
    if request.evaluate_authenticity and results:
        if generator is not None:
            choice = GenerationResult(outline=CourseOutline())
            most_authentic = await generator.pick_most_authentic(topic, results, choice)
            ai_errors.extend(choice.errors)
            fallback = fallback or choice.used_fallback
        else:
            most_authentic = heuristic_most_authentic(results)

    course_structure: Optional[CourseOutline] = None
    if wants_course:
        if generator is not None:
            generation = await generator.generate(topic, results)
            course_structure = generation.outline
            ai_errors.extend(generation.errors)
            fallback = fallback or generation.used_fallback
        else:
            course_structure = build_fallback_outline(topic)
            fallback = True

    await _persist(repository, topic, [r.url for r in results], course_structure)

    logger.info(
        "Scrape completed",
        extra={"topic": topic, "count": len(results), "fallback": fallback, "provider": outcome.provider},
    )
    return ScrapeResponse(
        topic=topic,
        content=content,
        links=results,
        count=len(results),
        search_results=outcome.candidates or None,
        most_authentic_source=most_authentic,
        course_structure=course_structure,
        fallback=fallback,
        ai_error="; ".join(ai_errors) if ai_errors else None,
        provider=provider_name,
    )


async def process_resources(
    request: AIProcessRequest,
    fetcher: ContentFetcher,
    llm_factory: LLMFactory,
    repository: Optional[CourseStore],
    settings: Settings,
) -> AIProcessResponse:
    topic = request.topic or ""
    sources = [r.to_search_result() for r in request.resources or [] if r.url]
    ai_errors: List[str] = []
    _, llm = _build_llm(llm_factory, request.provider, request.api_key, settings, ai_errors)

    if llm is not None:
        if sources:
            await attach_page_content(fetcher, sources)
        generation = await _make_generator(llm, settings).generate(topic, sources)
        outline = generation.outline
        ai_errors.extend(generation.errors)
    else:
        outline = build_fallback_outline(topic)

    await _persist(repository, topic, [s.url for s in sources], outline)

    return AIProcessResponse(
        topic=topic,
        course_structure=outline,
        resources_processed=len(sources),
        generated_at=datetime.now(timezone.utc).isoformat(),
        ai_error="; ".join(ai_errors) if ai_errors else None,
    )
