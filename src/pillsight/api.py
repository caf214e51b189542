"""HTTP API for PillSight."""

import base64
import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from time import perf_counter
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from starlette.responses import Response

from pillsight.ai import (
    AIResponseFormatError,
    AIService,
    AIUnavailableError,
    GeminiClient,
    GenerativeAIError,
)
from pillsight.assistant import AssistantService
from pillsight.models import (
    ChatRequest,
    ChatResponse,
    CompareRequest,
    CompareResponse,
    DatabaseStats,
    SearchRequest,
    SearchResponse,
    SystemStatus,
    TextToSpeechRequest,
    TranscriptResponse,
)
from pillsight.observability import MetricsStore, RequestMetric, duration_ms
from pillsight.search import SearchService
from pillsight.settings import Settings, load_settings
from pillsight.speech import GoogleSpeechClient, SpeechService
from pillsight.status import database_stats, system_status
from pillsight.store import InMemoryRepository, MedicationRepository, SQLiteRepository

LOGGER = logging.getLogger("pillsight.api")

VERSION = "0.1.0"


def _create_repository(settings: Settings) -> MedicationRepository:
    if settings.store_backend == "inmemory":
        return InMemoryRepository()
    if settings.store_backend == "sqlite":
        return SQLiteRepository(settings.sqlite_path)
    raise ValueError(f"unsupported PILLSIGHT_STORE_BACKEND: {settings.store_backend}")


def _create_ai_client(settings: Settings) -> GeminiClient | None:
    if not settings.google_api_key:
        LOGGER.warning("PILLSIGHT_GOOGLE_API_KEY is not set; AI features are disabled")
        return None
    return GeminiClient(
        api_key=settings.google_api_key,
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        timeout_seconds=settings.http_timeout_seconds,
    )


def _create_speech_client(settings: Settings) -> GoogleSpeechClient | None:
    if not settings.speech_api_key:
        return None
    return GoogleSpeechClient(
        api_key=settings.speech_api_key,
        timeout_seconds=settings.http_timeout_seconds,
    )


def create_app(
    repository: MedicationRepository | None = None,
    settings: Settings | None = None,
    ai_client: GeminiClient | None = None,
    speech_client: GoogleSpeechClient | None = None,
) -> FastAPI:
    runtime_settings = settings if settings is not None else load_settings()
    owns_repository = repository is None
    repo = repository if repository is not None else _create_repository(runtime_settings)
    gemini = ai_client if ai_client is not None else _create_ai_client(runtime_settings)
    google_speech = (
        speech_client if speech_client is not None else _create_speech_client(runtime_settings)
    )

    metrics = MetricsStore()
    ai = AIService(gemini)
    speech = SpeechService(google_speech)
    search_service = SearchService(repo, ai, metrics, runtime_settings)
    assistant = AssistantService(repo, ai)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        try:
            yield
        finally:
            if gemini is not None:
                await gemini.aclose()
            if google_speech is not None:
                await google_speech.aclose()
            if owns_repository:
                repo.close()

    app = FastAPI(
        title="PillSight API",
        version=VERSION,
        description="Medication search, explanations and cross-country comparison.",
        lifespan=lifespan,
    )

    def resolve_route_path(request: Request) -> str:
        route = request.scope.get("route")
        if route is not None and hasattr(route, "path"):
            return str(route.path)
        return request.url.path

    @app.middleware("http")
    async def observe_requests(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start_perf = perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            metrics.record(
                RequestMetric(
                    method=request.method,
                    path=resolve_route_path(request),
                    status_code=status_code,
                    duration_ms=duration_ms(start_perf),
                )
            )

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok", "service": "pillsight", "version": VERSION}

    @app.post("/api/search", response_model=SearchResponse)
    async def search(payload: SearchRequest) -> SearchResponse:
        return await search_service.search(payload.query, payload.limit)

    @app.post("/api/med-compare", response_model=CompareResponse)
    async def med_compare(payload: CompareRequest) -> CompareResponse:
        try:
            return await assistant.compare(payload)
        except AIUnavailableError as exc:
            raise HTTPException(status_code=503, detail="ai_unavailable") from exc
        except AIResponseFormatError as exc:
            LOGGER.error("unparsable comparison answer: %s", exc)
            raise HTTPException(status_code=502, detail="Failed to process AI response") from exc
        except GenerativeAIError as exc:
            LOGGER.error("comparison request failed: %s", exc)
            raise HTTPException(status_code=502, detail="ai_request_failed") from exc

    @app.post("/api/chat", response_model=ChatResponse)
    async def chat(payload: ChatRequest) -> ChatResponse:
        try:
            return await assistant.chat(payload)
        except AIUnavailableError as exc:
            raise HTTPException(status_code=503, detail="ai_unavailable") from exc
        except GenerativeAIError as exc:
            LOGGER.error("chat request failed: %s", exc)
            raise HTTPException(status_code=502, detail="ai_request_failed") from exc

    @app.post("/api/speech-to-text", response_model=TranscriptResponse)
    async def speech_to_text(
        audio: Annotated[UploadFile | None, File()] = None,
    ) -> TranscriptResponse:
        if audio is None:
            raise HTTPException(status_code=400, detail="Audio file is required")
        content = await audio.read()
        if not content:
            raise HTTPException(status_code=400, detail="Audio file is required")

        mime_type = audio.content_type or "audio/webm"
        LOGGER.info("processing audio file %s (%d bytes)", audio.filename, len(content))
        transcript, source, confidence = await speech.transcribe(content, mime_type)
        enhanced_response = None
        if source == "google-cloud" and ai.available:
            enhanced_response = await ai.explain_audio(
                base64.b64encode(content).decode("ascii"), transcript, mime_type
            )
        return TranscriptResponse(
            transcript=transcript,
            source=source,
            confidence=confidence,
            enhanced_response=enhanced_response,
        )

    @app.post("/api/text-to-speech")
    async def text_to_speech(payload: TextToSpeechRequest) -> Response:
        audio = await speech.synthesize(payload.text)
        if audio is None:
            raise HTTPException(
                status_code=503,
                detail="Text-to-speech service temporarily unavailable",
            )
        return Response(
            content=audio,
            media_type="audio/mpeg",
            headers={"Cache-Control": "public, max-age=3600"},
        )

    @app.get("/api/database-stats", response_model=DatabaseStats)
    async def stats() -> DatabaseStats:
        return database_stats(repo)

    @app.get("/api/database-check")
    async def database_check() -> dict[str, object]:
        initialized = repo.initialize()
        return {
            "status": "success",
            "initialized": initialized,
            "total_medications": repo.count(),
            "sample_docs": [item.model_dump() for item in repo.sample(5)],
            "indexes": repo.indexes(),
        }

    @app.get("/api/init")
    async def init() -> dict[str, object]:
        repo.initialize()
        count = repo.count()
        LOGGER.info("database contains %d medications", count)
        return {
            "status": "Database initialized successfully",
            "document_count": count,
            "vector_search": "enabled" if repo.count_embedded() > 0 else "fallback",
        }

    @app.get("/api/system-status", response_model=SystemStatus)
    async def status() -> SystemStatus:
        return system_status(repo, ai, speech)

    @app.get("/api/ai-test")
    async def ai_test() -> dict[str, object]:
        try:
            result = await ai.self_test()
        except AIUnavailableError as exc:
            raise HTTPException(status_code=503, detail="ai_unavailable") from exc
        except GenerativeAIError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"success": True, **result}

    @app.get("/api/metrics")
    async def metrics_snapshot() -> dict[str, object]:
        return {
            "service": "pillsight",
            "store_backend": runtime_settings.store_backend,
            "generated_at": datetime.now(UTC).isoformat(),
            "snapshot": metrics.snapshot(),
        }

    return app
