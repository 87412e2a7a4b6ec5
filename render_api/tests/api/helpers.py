from pathlib import Path
from typing import Callable, Optional

import httpx
from fastapi import FastAPI

from render_api.app.core.config import Settings
from render_api.app.main import create_app
from render_api.tests.fixtures.fake_browser import FakeLauncher

DMS_URL = "http://dms.test/api/upload"


def make_settings(templates_dir: Path, *, dms: bool = False, **overrides) -> Settings:
    values = {
        "templates_dir": templates_dir,
        "pdf_default_wait_ms": 1,
        "pdf_timeout_seconds": 5,
        "dms_api_url": DMS_URL if dms else None,
        "dms_api_secret": "s3cret" if dms else None,
        "dms_connect_retries": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_app(
    settings: Settings,
    *,
    launcher: Optional[FakeLauncher] = None,
    dms_handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
) -> FastAPI:
    def unreachable(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected upstream call to {request.url}")

    return create_app(
        settings,
        browser_launcher=launcher or FakeLauncher(),
        http_transport=httpx.MockTransport(dms_handler or unreachable),
    )
