"""
Playwright-backed browser sessions for the PDF renderer.

Each ``launch()`` starts its own Playwright driver and headless
Chromium process; ``close()`` tears both down. Playwright errors are
translated into the render pipeline's stage-specific exceptions.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from render_api.app.core.errors import (
    BrowserLaunchError,
    NavigationError,
    PrintError,
)
from render_api.app.services.pdf_renderer import PrintOptions

logger = logging.getLogger("render_api.browser")

CHROMIUM_ARGS = ["--disable-gpu"]


class PlaywrightSession:
    def __init__(self, playwright: Playwright, browser: Browser, page: Page):
        self._playwright = playwright
        self._browser = browser
        self._page = page

    async def navigate(self, url: str) -> None:
        try:
            await self._page.goto(url, wait_until="load")
        except PlaywrightError as exc:
            raise NavigationError(
                f"pdf generation error: navigation failed: {exc.message}"
            ) from exc

    async def wait_ready(self) -> None:
        try:
            await self._page.wait_for_selector("body", state="attached")
        except PlaywrightError as exc:
            raise NavigationError(
                f"pdf generation error: document never became ready: {exc.message}"
            ) from exc

    async def print_to_pdf(self, options: PrintOptions) -> bytes:
        margin = f"{options.margin_inches}in"
        try:
            return await self._page.pdf(
                print_background=options.print_background,
                prefer_css_page_size=options.prefer_css_page_size,
                margin={
                    "top": margin,
                    "right": margin,
                    "bottom": margin,
                    "left": margin,
                },
            )
        except PlaywrightError as exc:
            raise PrintError(
                f"pdf generation error: print failed: {exc.message}"
            ) from exc

    async def close(self) -> None:
        try:
            await self._browser.close()
        finally:
            await self._playwright.stop()


class PlaywrightLauncher:
    """Starts one headless Chromium per ``launch()`` call."""

    def __init__(self, executable_path: Optional[Path] = None):
        self.executable_path = executable_path

    async def launch(self) -> PlaywrightSession:
        playwright = await async_playwright().start()
        browser: Optional[Browser] = None
        step = "launch browser"

        # Also reached when the renderer timeout cancels the launch
        try:
            browser = await playwright.chromium.launch(
                headless=True,
                args=CHROMIUM_ARGS,
                executable_path=(
                    str(self.executable_path) if self.executable_path else None
                ),
            )
            step = "open page"
            page = await browser.new_page()
        except BaseException as exc:
            await _shutdown(playwright, browser)
            if isinstance(exc, PlaywrightError):
                raise BrowserLaunchError(
                    f"pdf generation error: failed to {step}: {exc.message}"
                ) from exc
            raise

        logger.debug(
            "browser_launched",
            extra={"executable_path": str(self.executable_path or "")},
        )
        return PlaywrightSession(playwright, browser, page)


async def _shutdown(playwright: Playwright, browser: Optional[Browser]) -> None:
    try:
        if browser is not None:
            await browser.close()
    except Exception:
        logger.warning("browser_shutdown_failed", exc_info=True)
    finally:
        try:
            await playwright.stop()
        except Exception:
            logger.warning("playwright_stop_failed", exc_info=True)
