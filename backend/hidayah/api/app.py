"""
HTTP API - FastAPI application around the RAG engine.

Routes:
    POST /api/chat           answer a question (JSON, or SSE when the client
                             accepts ``text/event-stream``)
    GET  /api/chat           liveness
    GET  /api/quran/ayah     one verse, Arabic and English
    GET  /api/quran/context  thematic annotation for one verse
"""

import json
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from loguru import logger
from pydantic import ValidationError

from .rate_limit import RateLimiter, client_key
from .schemas import ChatAPIResponse, ChatRequest, first_error_message
from ..config.settings import settings
from ..core.exceptions import ConfigurationError, StorageError
from ..core.generator import no_verses_response
from ..core.models import MAX_SURAH, VerseRef
from ..core.rag_engine import QuranRAGEngine


SERVICE_NAME = "hidayah-chat"

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please wait a moment and try again."
CONFIG_ERROR_MESSAGE = "Service configuration error"
STORAGE_ERROR_MESSAGE = "Database connection error"
GENERIC_ERROR_MESSAGE = "Failed to process your question. Please try again."

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


def _error(status_code: int, message: str) -> JSONResponse:
    body = ChatAPIResponse(success=False, error=message)
    return JSONResponse(body.model_dump(exclude_none=True), status_code=status_code)


def _success(data, context: Optional[list] = None) -> JSONResponse:
    content = {"success": True, "data": data}
    if context is not None:
        content["context"] = context
    return JSONResponse(content)


def _error_for_exception(e: Exception) -> JSONResponse:
    """Map a pipeline failure to a client-safe 500 response."""
    if isinstance(e, ConfigurationError):
        return _error(500, CONFIG_ERROR_MESSAGE)
    if isinstance(e, StorageError):
        return _error(500, STORAGE_ERROR_MESSAGE)
    return _error(500, GENERIC_ERROR_MESSAGE)


def _get_engine(request: Request) -> QuranRAGEngine:
    engine = request.app.state.engine
    if engine is None:
        raise ConfigurationError("RAG engine is not configured")
    return engine


def _parse_verse_params(request: Request) -> tuple[Optional[VerseRef], Optional[JSONResponse]]:
    """Validate ``surah``/``ayah`` query parameters."""
    surah_param = request.query_params.get("surah")
    ayah_param = request.query_params.get("ayah")

    if not surah_param or not ayah_param:
        return None, _error(400, "Both 'surah' and 'ayah' query parameters are required.")

    try:
        surah = int(surah_param)
    except ValueError:
        surah = 0
    if not 1 <= surah <= MAX_SURAH:
        return None, _error(400, f"Invalid surah number. Must be between 1 and {MAX_SURAH}.")

    try:
        ayah = int(ayah_param)
    except ValueError:
        ayah = 0
    if ayah < 1:
        return None, _error(400, "Invalid ayah number. Must be greater than 0.")

    return VerseRef(surah, ayah), None


def create_app(
    engine: Optional[QuranRAGEngine] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        engine: Pre-built engine. When None, one is built from settings at
            startup; a configuration failure is logged and every chat
            request then answers "Service configuration error".
        rate_limiter: Pre-built limiter; defaults to the configured one
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.engine is None:
            try:
                app.state.engine = await QuranRAGEngine.from_settings()
            except ConfigurationError as e:
                logger.error(f"RAG engine not configured: {e}")
        yield

    app = FastAPI(title="Hidayah", lifespan=lifespan)
    app.state.engine = engine
    app.state.rate_limiter = rate_limiter or RateLimiter(
        max_requests=settings.rate_limit.max_requests,
        window_seconds=settings.rate_limit.window_seconds,
        max_clients=settings.rate_limit.max_clients,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests with timing and status."""
        start = time.time()
        response = await call_next(request)
        elapsed_ms = int((time.time() - start) * 1000)
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms}ms)")
        return response

    # =========================================================================
    # CHAT
    # =========================================================================

    @app.post("/api/chat")
    async def chat(request: Request):
        if not app.state.rate_limiter.check(client_key(request.headers)):
            return _error(429, RATE_LIMIT_MESSAGE)

        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return _error(400, "Invalid JSON in request body")

        if not isinstance(body, dict):
            return _error(400, "Invalid request body")

        try:
            chat_request = ChatRequest.model_validate(body)
        except ValidationError as e:
            return _error(400, first_error_message(e))

        message = chat_request.message
        history = chat_request.conversation()
        wants_stream = "text/event-stream" in request.headers.get("accept", "")

        try:
            engine = _get_engine(request)
            logger.info(f"Processing question: {message[:100]}")

            _, context = await engine.retrieve_context(message, history)

            if not context:
                return _success(no_verses_response().to_dict(), context=[])

            if wants_stream:
                async def event_source():
                    events = engine.stream_events(
                        message,
                        context,
                        history,
                        is_disconnected=request.is_disconnected,
                    )
                    try:
                        async for event in events:
                            yield event.to_sse()
                    finally:
                        await events.aclose()

                return StreamingResponse(
                    event_source(),
                    media_type="text/event-stream",
                    headers=SSE_HEADERS,
                )

            response = await engine.generator.generate_verified_answer(message, context, history)
            return _success(response.to_dict(), context=[verse.to_dict() for verse in context])

        except Exception as e:
            logger.exception(f"Error processing chat request: {e}")
            return _error_for_exception(e)

    @app.get("/api/chat")
    async def chat_health():
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # =========================================================================
    # VERSE EXPLORER
    # =========================================================================

    @app.get("/api/quran/ayah")
    async def get_ayah(request: Request):
        ref, error = _parse_verse_params(request)
        if error is not None:
            return error

        try:
            verse = await _get_engine(request).store.fetch_verse(ref.surah, ref.ayah)
        except Exception as e:
            logger.error(f"Error fetching ayah {ref.key}: {e}")
            return _error(500, "Failed to fetch ayah")

        if verse is None:
            return _error(404, f"Verse {ref.key} not found.")

        return {"success": True, "data": verse}

    @app.get("/api/quran/surah/{number}")
    async def get_surah(request: Request, number: str):
        try:
            surah = int(number)
        except ValueError:
            surah = 0
        if not 1 <= surah <= MAX_SURAH:
            return _error(400, f"Invalid surah number. Must be between 1 and {MAX_SURAH}.")

        try:
            verses = await _get_engine(request).store.fetch_surah(surah)
        except Exception as e:
            logger.error(f"Error fetching surah {surah}: {e}")
            return _error(500, "Failed to fetch surah verses")

        return {"success": True, "data": {"surah": surah, "verses": verses}}

    @app.get("/api/quran/context")
    async def get_verse_context(request: Request):
        ref, error = _parse_verse_params(request)
        if error is not None:
            return error

        try:
            contexts = await _get_engine(request).store.fetch_verse_contexts([ref])
        except Exception as e:
            logger.error(f"Error fetching context for {ref.key}: {e}")
            return _error(500, "Failed to fetch verse context")

        context = contexts.get(ref.key)
        if context is None:
            return {"success": True, "data": None}

        return {
            "success": True,
            "data": {
                "theme": context.theme,
                "context_summary": context.context_summary or "",
                "asbab_summary": context.asbab_summary,
            },
        }

    return app
