"""
HTML to PDF conversion through a headless browser.

Pipeline (one dedicated browser session per call, nothing reused):

    1. write the HTML to a private temporary directory
    2. launch a browser session
    3. navigate to the document's file:// URL
    4. wait until <body> is ready
    5. sleep the post-ready wait (async images, web fonts)
    6. print with background graphics, CSS page size preferred,
       0.4in margins on every side
    7. validate the bytes with pikepdf (and stamp the title, if any)

Resource guarantees:
- The browser session is closed on every exit path: success, any
  stage failure, the end-to-end timeout, and task cancellation.
- The temporary document is removed on the same paths.

The browser is reached only through the ``BrowserLauncher`` /
``BrowserSession`` capability below. The production implementation
lives in ``render_api.app.services.browser``.
"""

from __future__ import annotations

import asyncio
import functools
import io
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

import anyio
import pikepdf

from render_api.app.core.errors import (
    BrowserLaunchError,
    NavigationError,
    PrintError,
    RenderPipelineError,
    RenderTimeoutError,
)

logger = logging.getLogger("render_api.pdf_renderer")


# ------------------------------------------------------------------
# Capability interface
# ------------------------------------------------------------------

@dataclass(frozen=True)
class PrintOptions:
    print_background: bool = True
    prefer_css_page_size: bool = True
    margin_inches: float = 0.4


class BrowserSession(Protocol):
    async def navigate(self, url: str) -> None: ...

    async def wait_ready(self) -> None: ...

    async def print_to_pdf(self, options: PrintOptions) -> bytes: ...

    async def close(self) -> None: ...


class BrowserLauncher(Protocol):
    async def launch(self) -> BrowserSession: ...


# ------------------------------------------------------------------
# Post-processing
# ------------------------------------------------------------------

def finalize_pdf(pdf_bytes: bytes, *, title: Optional[str] = None) -> bytes:
    """
    Check that the browser produced a usable PDF and optionally title it.

    Raises:
        PrintError: if the bytes do not open as a PDF or have no pages.
    """
    if not pdf_bytes:
        raise PrintError("pdf generation error: browser returned no data")

    try:
        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            if len(pdf.pages) < 1:
                raise PrintError("pdf generation error: document has no pages")

            if not title:
                return pdf_bytes

            with pdf.open_metadata() as meta:
                meta["dc:title"] = title
            pdf.docinfo["/Title"] = pikepdf.String(title)

            out = io.BytesIO()
            pdf.save(out)
            return out.getvalue()

    except pikepdf.PdfError as exc:
        raise PrintError(f"pdf generation error: invalid PDF output: {exc}") from exc


# ------------------------------------------------------------------
# Renderer
# ------------------------------------------------------------------

class PdfRenderer:
    """
    Converts rendered HTML into PDF bytes.

    Stateless between calls; safe to share across concurrent requests.
    """

    DOCUMENT_NAME = "document.html"

    def __init__(
        self,
        launcher: BrowserLauncher,
        *,
        timeout_seconds: float = 60.0,
        default_wait_ms: int = 500,
        print_options: Optional[PrintOptions] = None,
    ):
        self.launcher = launcher
        self.timeout_seconds = timeout_seconds
        self.default_wait_ms = default_wait_ms
        self.print_options = print_options or PrintOptions()

    def effective_wait_ms(self, wait_after_load_ms: Optional[int]) -> int:
        if wait_after_load_ms is None or wait_after_load_ms <= 0:
            return self.default_wait_ms
        return wait_after_load_ms

    async def render(
        self,
        html: str,
        wait_after_load_ms: Optional[int] = 0,
        *,
        title: Optional[str] = None,
    ) -> bytes:
        wait_ms = self.effective_wait_ms(wait_after_load_ms)

        try:
            pdf_bytes = await asyncio.wait_for(
                self._run(html, wait_ms, title),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "pdf_render_timeout",
                extra={"timeout_seconds": self.timeout_seconds},
            )
            raise RenderTimeoutError(
                f"pdf generation error: timed out after "
                f"{self.timeout_seconds:g}s"
            ) from None
        except RenderPipelineError as exc:
            logger.warning(
                "pdf_render_failed",
                extra={"stage": exc.stage, "error": str(exc)},
            )
            raise

        logger.info(
            "pdf_rendered",
            extra={"wait_ms": wait_ms, "pdf_bytes": len(pdf_bytes)},
        )
        return pdf_bytes

    async def _run(self, html: str, wait_ms: int, title: Optional[str]) -> bytes:
        with tempfile.TemporaryDirectory(prefix="pdf-render-") as tmp:
            document = Path(tmp) / self.DOCUMENT_NAME
            document.write_text(html, encoding="utf-8")

            try:
                session = await self.launcher.launch()
            except RenderPipelineError:
                raise
            except Exception as exc:
                raise BrowserLaunchError(
                    f"pdf generation error: failed to launch browser: {exc}"
                ) from exc

            try:
                pdf_bytes = await self._drive(session, document.as_uri(), wait_ms)
            finally:
                await self._close(session)

        return await anyio.to_thread.run_sync(
            functools.partial(finalize_pdf, pdf_bytes, title=title),
            abandon_on_cancel=True,
        )

    async def _drive(self, session: BrowserSession, url: str, wait_ms: int) -> bytes:
        try:
            await session.navigate(url)
            await session.wait_ready()
        except RenderPipelineError:
            raise
        except Exception as exc:
            raise NavigationError(
                f"pdf generation error: navigation failed: {exc}"
            ) from exc

        await asyncio.sleep(wait_ms / 1000)

        try:
            return await session.print_to_pdf(self.print_options)
        except RenderPipelineError:
            raise
        except Exception as exc:
            raise PrintError(
                f"pdf generation error: print failed: {exc}"
            ) from exc

    @staticmethod
    async def _close(session: BrowserSession) -> None:
        try:
            await session.close()
        except Exception:
            logger.warning("browser_shutdown_failed", exc_info=True)
