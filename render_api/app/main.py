import sys
import logging
import httpx

from contextlib import asynccontextmanager
from importlib.metadata import version, PackageNotFoundError
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from render_api.app.api.render import router as render_router
from render_api.app.api.templates import router as templates_router
from render_api.app.core.config import Settings, get_settings
from render_api.app.core.errors import (
    ArtifactNotFoundError,
    DmsNotConfiguredError,
    RenderPipelineError,
    RequestValidationFailure,
    StorageError,
    TemplateError,
    TemplateParseError,
    UpstreamError,
)
from render_api.app.services.browser import PlaywrightLauncher
from render_api.app.services.pdf_renderer import BrowserLauncher, PdfRenderer
from render_api.app.services.template_store import TemplateStore

logger = logging.getLogger("render_api.main")


def get_app_version() -> str:
    """Installed package version, or the source default."""
    try:
        return version("render-api")
    except PackageNotFoundError:
        return "0.1.0"


# =============================================================================
# Exception handlers
# =============================================================================

def _error(status_code: int, message: str) -> ORJSONResponse:
    return ORJSONResponse(status_code=status_code, content={"error": message})


async def _on_validation_failure(request: Request, exc: RequestValidationFailure):
    return _error(400, str(exc))


async def _on_body_validation(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        details.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return _error(400, "invalid json: " + "; ".join(details))


async def _on_template_error(request: Request, exc: TemplateError):
    if isinstance(exc, TemplateParseError):
        return _error(400, f"template parse error: {exc}")
    return _error(400, f"template execute error: {exc}")


async def _on_not_found(request: Request, exc: ArtifactNotFoundError):
    return _error(404, str(exc))


async def _on_storage_error(request: Request, exc: StorageError):
    logger.error("storage_failure", extra={"error": str(exc)})
    return _error(500, str(exc))


async def _on_render_pipeline_error(request: Request, exc: RenderPipelineError):
    return _error(500, str(exc))


async def _on_upstream_error(request: Request, exc: UpstreamError):
    status_code = 500 if isinstance(exc, DmsNotConfiguredError) else 502
    content = {"success": False, "error": str(exc)}
    if exc.response is not None:
        content["response"] = exc.response
    return ORJSONResponse(status_code=status_code, content=content)


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationFailure, _on_validation_failure)
    app.add_exception_handler(RequestValidationError, _on_body_validation)
    app.add_exception_handler(TemplateError, _on_template_error)
    app.add_exception_handler(ArtifactNotFoundError, _on_not_found)
    app.add_exception_handler(StorageError, _on_storage_error)
    app.add_exception_handler(RenderPipelineError, _on_render_pipeline_error)
    app.add_exception_handler(UpstreamError, _on_upstream_error)


# =============================================================================
# Application factory
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    *,
    browser_launcher: Optional[BrowserLauncher] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Application factory for the render service.

    ``browser_launcher`` and ``http_transport`` replace the Playwright
    browser and the network transport used for DMS uploads.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Guarantees:
        - Settings are resolved once and never re-read mid-run
        - One shared HTTP client for upstream calls
        - No browser is started here; each PDF request launches its own
        """
        logger.info(
            "render_api_startup_begin",
            extra={
                "service": "render-api",
                "version": get_app_version(),
                "templates_dir": str(settings.templates_dir),
            },
        )

        app.state.settings = settings

        app.state.template_store = TemplateStore(
            settings.templates_dir,
            serialize=settings.serialize_versions,
        )

        app.state.pdf_renderer = PdfRenderer(
            browser_launcher or PlaywrightLauncher(settings.chrome_path),
            timeout_seconds=settings.pdf_timeout_seconds,
            default_wait_ms=settings.pdf_default_wait_ms,
        )

        # ------------------------------------------------------------------
        # Persistent HTTP client for DMS forwarding
        # ------------------------------------------------------------------
        app.state.http_client = httpx.AsyncClient(
            transport=http_transport,
            timeout=httpx.Timeout(
                timeout=settings.dms_timeout_seconds,
                connect=10.0,
            ),
            headers={
                "User-Agent": f"render-api/{get_app_version()}",
            },
        )

        if not settings.dms_configured:
            logger.warning("dms_not_configured")

        try:
            yield
        finally:
            logger.info("render_api_shutdown_begin")

            try:
                await app.state.http_client.aclose()
            except Exception:
                logger.warning("http_client_shutdown_failed")

    app = FastAPI(
        title="Render API",
        description=(
            "Context-aware HTML templating, versioned template storage "
            "and HTML to PDF rendering."
        ),
        version=get_app_version(),
        docs_url="/docs",
        redoc_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    install_exception_handlers(app)

    app.include_router(render_router)
    app.include_router(templates_router)

    @app.get(
        "/healthz",
        tags=["Monitoring"],
        summary="Liveness probe",
    )
    async def health_check():
        """
        Verifies that the runtime is alive.

        NOTE:
        - Does NOT launch a browser
        - Does NOT call the DMS
        """
        return ORJSONResponse(
            content={
                "status": "ok",
                "service": "render-api",
                "version": app.version,
                "runtime": f"python {sys.version.split()[0]}",
                "dms_configured": settings.dms_configured,
            }
        )

    return app


app = create_app()
