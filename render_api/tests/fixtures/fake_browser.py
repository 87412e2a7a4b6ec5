"""
In-process stand-in for the headless browser.

Implements the ``BrowserLauncher`` / ``BrowserSession`` capability so
that the PDF pipeline can be exercised without Chromium.

IMPORTANT:
- Deterministic
- Records every call for later assertions
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import List, Optional
from urllib.parse import unquote, urlparse

from render_api.app.services.pdf_renderer import PrintOptions
from render_api.tests.fixtures.pdf_factory import one_page_pdf


class FakeSession:
    def __init__(
        self,
        *,
        pdf_bytes: Optional[bytes] = None,
        fail_on: Optional[str] = None,
        hang_on: Optional[str] = None,
    ) -> None:
        self.pdf_bytes = one_page_pdf() if pdf_bytes is None else pdf_bytes
        self.fail_on = fail_on
        self.hang_on = hang_on

        self.calls: List[str] = []
        self.url: Optional[str] = None
        self.document_html: Optional[str] = None
        self.print_options: Optional[PrintOptions] = None
        self.ready_at: Optional[float] = None
        self.printed_at: Optional[float] = None
        self.closed = False

    @property
    def document_path(self) -> Path:
        return Path(unquote(urlparse(self.url).path))

    async def _step(self, name: str) -> None:
        self.calls.append(name)
        if self.hang_on == name:
            await asyncio.sleep(3600)
        if self.fail_on == name:
            raise RuntimeError(f"{name} exploded")

    async def navigate(self, url: str) -> None:
        self.url = url
        self.document_html = self.document_path.read_text(encoding="utf-8")
        await self._step("navigate")

    async def wait_ready(self) -> None:
        await self._step("wait_ready")
        self.ready_at = time.monotonic()

    async def print_to_pdf(self, options: PrintOptions) -> bytes:
        self.print_options = options
        self.printed_at = time.monotonic()
        await self._step("print_to_pdf")
        return self.pdf_bytes

    async def close(self) -> None:
        self.calls.append("close")
        self.closed = True


class FakeLauncher:
    def __init__(self, session: Optional[FakeSession] = None, *, error: Exception | None = None):
        self.session = session or FakeSession()
        self.error = error
        self.launches = 0

    async def launch(self) -> FakeSession:
        self.launches += 1
        if self.error is not None:
            raise self.error
        return self.session
