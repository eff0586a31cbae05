import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

# .env is loaded from the project root wherever uvicorn is started from
_PROJ_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJ_ROOT / ".env")

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from openai import AsyncOpenAI
from redis.asyncio import Redis
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from palmjob.api.analyze import router as analyze_router
from palmjob.core.config import Settings, settings as default_settings
from palmjob.core.rate_limit import limiter, set_analyze_rate_limit
from palmjob.core.store import ResultStore, build_redis
from palmjob.core.tasks import TaskRegistry
from palmjob.logging import setup_logging
from palmjob.schemas import HealthResponse
from palmjob.services import analysis, validation
from palmjob.services.analysis import PalmAnalyzer
from palmjob.services.diagnostics import PromptLogRecorder
from palmjob.services.illustration import CardIllustrator
from palmjob.services.orchestrator import AnalysisOrchestrator
from palmjob.services.prompts import PromptLoader
from palmjob.services.validation import PalmValidator
from palmjob.services.vision import VisionClient, build_openai_client

setup_logging(level=default_settings.log_level)
log = logging.getLogger("palmjob")

# Provider images are small; the download only feeds the durable card copy
DOWNLOAD_TIMEOUT_SECONDS = 30.0


def _error_response(request: Request, status_code: int, detail: str) -> JSONResponse:
    rid = getattr(request.state, "request_id", None)
    body = {"error": detail, "status_code": status_code}
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=status_code, content=body)


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    log.warning("rate_limit: path=%s limit=%s", request.url.path, exc.detail)
    return _error_response(request, 429, "Too many requests. Please wait a minute.")


def _validation_error_message(exc: RequestValidationError) -> str:
    errs = exc.errors()
    if not errs:
        return "Invalid request."
    first = errs[0]
    loc = list(first.get("loc") or [])
    field = str(loc[-1]) if loc else None
    if first.get("type") == "missing" and field:
        return f"Missing field: {field}."
    return first.get("msg") or "Invalid request."


def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errs = exc.errors()
    log.warning(
        "Request validation error (422): path=%s method=%s detail=%s",
        request.url.path,
        request.method,
        errs,
    )
    return _error_response(request, 422, _validation_error_message(exc))


def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.detail if isinstance(exc.detail, str) else str(exc.detail))


def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled exception: path=%s %s", request.url.path, exc, exc_info=True)
    path = (request.url.path or "").strip()
    if path.startswith("/api/analyze"):
        user_msg = "Failed to start analysis. Please try again."
    else:
        user_msg = "Unexpected server error."
    return _error_response(request, 500, user_msg)


def create_app(
    settings: Settings | None = None,
    *,
    redis_client: Redis | None = None,
    openai_client: AsyncOpenAI | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """
    Builds the API. Clients passed in are used as-is (tests inject fakes);
    anything omitted is built from settings when the app starts.
    """
    settings = settings or default_settings
    set_analyze_rate_limit(settings.rate_limit_per_minute)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("Starting PalmJob API (environment=%s)", settings.environment)
        log.info("OPENAI_API_KEY loaded: %s", "yes" if settings.is_openai_configured() else "NO (set OPENAI_API_KEY in .env)")
        store = ResultStore(redis_client or build_redis(settings.redis_url), ttl_seconds=settings.result_ttl_seconds)
        openai = openai_client if openai_client is not None else build_openai_client(settings)
        http = http_client or httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT_SECONDS, follow_redirects=True)
        tasks = TaskRegistry()

        vision = VisionClient(openai, settings.vision_model)
        prompt_log = PromptLogRecorder(store, tasks, enabled=settings.prompt_log_enabled)
        validator = PalmValidator(
            vision,
            PromptLoader(settings.prompts_dir / validation.PROMPT_FILE, validation.FALLBACK_PROMPT),
            prompt_log,
        )
        analyzer = PalmAnalyzer(
            vision,
            PromptLoader(settings.prompts_dir / analysis.PROMPT_FILE, analysis.FALLBACK_PROMPT),
            prompt_log,
        )
        illustrator = CardIllustrator(openai, http, model=settings.image_model)

        app.state.settings = settings
        app.state.store = store
        app.state.tasks = tasks
        app.state.openai_configured = openai is not None
        app.state.orchestrator = AnalysisOrchestrator(
            store,
            validator,
            analyzer,
            illustrator,
            tasks,
            store_card_images=settings.store_card_images,
        )
        try:
            yield
        finally:
            left = await tasks.drain(settings.shutdown_grace_seconds)
            if left:
                log.warning("Shutting down with %d analysis task(s) unfinished", left)
            if http_client is None:
                await http.aclose()
            if openai_client is None and openai is not None:
                await openai.close()
            if redis_client is None:
                await store.close()

    app = FastAPI(
        title="PalmJob API",
        description="Palm photo quirky-job recommendations",
        lifespan=lifespan,
    )
    app.state.limiter = limiter
    app.state.settings = settings

    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.middleware("http")
    async def request_id_and_latency(request: Request, call_next):
        request.state.request_id = str(uuid.uuid4())
        start = time.perf_counter()
        response = await call_next(request)
        latency_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request.state.request_id
        log.info(
            "request_id=%s method=%s path=%s status=%s latency_ms=%.2f",
            request.state.request_id,
            request.method,
            request.url.path,
            response.status_code,
            latency_ms,
        )
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(analyze_router)

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request):
        store_ok = "ok"
        try:
            if not await request.app.state.store.ping():
                store_ok = "error"
        except Exception as e:
            log.warning("health: store ping failed: %s", e)
            store_ok = "error"
        return {
            "status": "ok",
            "openai_configured": request.app.state.openai_configured,
            "store": store_ok,
        }

    return app


app = create_app()
