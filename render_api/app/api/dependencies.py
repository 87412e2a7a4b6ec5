"""
Dependency providers shared by the routers.

Every collaborator is created once in the application lifespan and
stored on ``app.state``; these providers only hand them out.
"""

import httpx
from fastapi import Request

from render_api.app.core.config import Settings
from render_api.app.services.dms import DmsClient
from render_api.app.services.pdf_renderer import PdfRenderer
from render_api.app.services.template_store import TemplateStore


def get_app_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise RuntimeError("settings not initialized")
    return settings


def get_template_store(request: Request) -> TemplateStore:
    return request.app.state.template_store


def get_pdf_renderer(request: Request) -> PdfRenderer:
    return request.app.state.pdf_renderer


def get_dms_client(request: Request) -> DmsClient:
    """
    Build a DMS client bound to the shared HTTP transport.

    Raises ``DmsNotConfiguredError`` before the request body is used, so
    an unconfigured deployment fails the same way for every payload.
    """
    http_client: httpx.AsyncClient = request.app.state.http_client
    return DmsClient.from_settings(get_app_settings(request), http_client)
