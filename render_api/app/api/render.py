"""
Render endpoints.

    POST /render/html   template + data -> {"html": ...}
    POST /render/pdf    template + data -> application/pdf attachment

Caller data always passes through the sanitizer first, so URL-like
strings keep working inside ``href``/``src`` attributes. Template
failures surface as 400 with the engine's diagnostic; nothing partial
is ever returned.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response

from render_api.app.api.dependencies import get_pdf_renderer
from render_api.app.core.errors import RequestValidationFailure
from render_api.app.schemas.render import PdfRequest, RenderRequest, RenderResponse
from render_api.app.services import template_engine
from render_api.app.services.pdf_renderer import PdfRenderer
from render_api.app.services.sanitizer import sanitize
from render_api.app.services.template_store import normalize_name

logger = logging.getLogger("render_api.api.render")

router = APIRouter(prefix="/render", tags=["Rendering"])

DEFAULT_PDF_FILENAME = "document.pdf"


def _render_request(req: RenderRequest) -> str:
    if not req.template:
        raise RequestValidationFailure("template is required")
    return template_engine.render(req.template, sanitize(req.data))


def pdf_download_name(filename: Optional[str]) -> str:
    """Attachment name for a PDF: the normalised filename plus ``.pdf``."""
    slug = normalize_name(filename or "")
    if not slug:
        return DEFAULT_PDF_FILENAME
    return f"{slug}.pdf"


# =============================================================================
# POST /render/html
# =============================================================================

@router.post(
    "/html",
    response_model=RenderResponse,
    summary="Render a template to HTML",
    responses={400: {"description": "Invalid request or template error"}},
)
def render_html(req: RenderRequest) -> RenderResponse:
    return RenderResponse(html=_render_request(req))


# =============================================================================
# POST /render/pdf
# =============================================================================

@router.post(
    "/pdf",
    summary="Render a template and print it to PDF",
    response_class=Response,
    responses={
        200: {
            "content": {"application/pdf": {}},
            "description": "Rendered PDF document",
        },
        400: {"description": "Invalid request or template error"},
        500: {"description": "PDF generation failure"},
    },
)
async def render_pdf(
    req: PdfRequest,
    renderer: Annotated[PdfRenderer, Depends(get_pdf_renderer)],
) -> Response:
    html = await run_in_threadpool(_render_request, req)

    download_name = pdf_download_name(req.filename)
    pdf_bytes = await renderer.render(
        html,
        req.wait_after_load,
        title=req.filename or None,
    )

    logger.info(
        "pdf_response_ready",
        extra={"download_name": download_name, "pdf_bytes": len(pdf_bytes)},
    )

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{download_name}"',
        },
    )
