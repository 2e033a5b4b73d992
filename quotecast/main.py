import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException

from quotecast.api import render
from quotecast.config import Settings, get_settings
from quotecast.constants.error_codes import get_error_spec
from quotecast.context import RenderContext
from quotecast.exceptions import QuoteCastError
from quotecast.render.workspace import sweep_stale_workspaces
from quotecast.schemas.render import ErrorInfo

logger = logging.getLogger(__name__)


def _error_response(status_code: int, error: ErrorInfo) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error.model_dump(exclude_none=True))


def _http_error_code(status_code: int) -> str:
    mapping = {
        400: "INVALID_INPUT",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        429: "RATE_LIMITED",
    }
    return mapping.get(status_code, "INTERNAL_ERROR" if status_code >= 500 else "HTTP_ERROR")


async def quotecast_exception_handler(request: Request, exc: QuoteCastError) -> JSONResponse:
    return _error_response(exc.status_code, exc.to_error_info())


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation errors as INVALID_INPUT (400)."""
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        loc = ".".join(str(x) for x in first_error.get("loc", []) if x != "body")
        msg = first_error.get("msg", "Validation error")
        message = f"{loc}: {msg}" if loc else msg
    else:
        message = "Request validation failed"

    spec = get_error_spec("INVALID_INPUT")
    error = ErrorInfo(
        error="INVALID_INPUT",
        message=message,
        retryable=spec.get("retryable", False),
        suggested_fix=spec.get("suggested_fix"),
    )
    return _error_response(400, error)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = _http_error_code(exc.status_code)
    error = ErrorInfo(
        error=code,
        message=str(exc.detail),
        retryable=get_error_spec(code).get("retryable", False),
    )
    return _error_response(exc.status_code, error)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    spec = get_error_spec("INTERNAL_ERROR")
    error = ErrorInfo(
        error="INTERNAL_ERROR",
        message="Internal server error",
        retryable=spec.get("retryable", False),
    )
    return _error_response(500, error)


def create_app(settings: Settings | None = None, context: RenderContext | None = None) -> FastAPI:
    """Build the application.

    When a context is passed in it is used as-is and no database is touched;
    otherwise the lifespan creates the tables and builds a context from
    settings.
    """
    settings = settings or (context.settings if context else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        sweep_stale_workspaces(settings.temp_root)

        if context is not None:
            app.state.render_context = context
            yield
            return

        from quotecast.models.database import get_engine, get_session_maker, init_db
        from quotecast.services.artifact_repository import SQLAlchemyArtifactRepository

        await init_db()
        ctx = RenderContext.build(
            settings, repository=SQLAlchemyArtifactRepository(get_session_maker())
        )
        app.state.render_context = ctx
        logger.info(
            f"{settings.app_name} {settings.app_version} started "
            f"(max_concurrent_jobs={settings.max_concurrent_jobs})"
        )
        yield
        await ctx.aclose()
        await get_engine().dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Video-Hash", "X-Photographer", "X-Delivery-Degraded"],
    )

    app.add_exception_handler(QuoteCastError, quotecast_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(render.router, tags=["render"])
    app.include_router(render.router, prefix="/api", tags=["render"])

    if settings.use_local_storage:
        app.mount(
            "/files",
            StaticFiles(directory=settings.local_storage_path, check_dir=False),
            name="files",
        )

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy", "version": settings.app_version, "git_hash": settings.git_hash}

    return app


logging.basicConfig(
    level=logging.DEBUG if get_settings().debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()
