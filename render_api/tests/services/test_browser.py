"""
Playwright launcher lifecycle with the driver replaced by fakes.

The driver and browser must be shut down whenever ``launch()`` does not
hand a session back, including when the render timeout cancels it.
"""

import asyncio
from pathlib import Path

import pytest
from playwright.async_api import Error as PlaywrightError

from render_api.app.core.errors import BrowserLaunchError, RenderTimeoutError
from render_api.app.services import browser as browser_module
from render_api.app.services.browser import PlaywrightLauncher, PlaywrightSession
from render_api.app.services.pdf_renderer import PdfRenderer

pytestmark = pytest.mark.anyio

HTML = "<html><body>x</body></html>"


class FakeBrowser:
    def __init__(self, *, page_hangs=False):
        self.page_hangs = page_hangs
        self.closed = False

    async def new_page(self):
        if self.page_hangs:
            await asyncio.sleep(3600)
        return object()

    async def close(self):
        self.closed = True


class FakeChromium:
    def __init__(self, browser, *, hangs=False, error=None):
        self.browser = browser
        self.hangs = hangs
        self.error = error
        self.kwargs = None

    async def launch(self, **kwargs):
        self.kwargs = kwargs
        if self.hangs:
            await asyncio.sleep(3600)
        if self.error is not None:
            raise self.error
        return self.browser


class FakePlaywright:
    def __init__(self, chromium):
        self.chromium = chromium
        self.stopped = False

    async def stop(self):
        self.stopped = True


class FakeDriverStarter:
    def __init__(self, playwright):
        self.playwright = playwright

    async def start(self):
        return self.playwright


@pytest.fixture
def install_driver(monkeypatch):
    def install(chromium: FakeChromium) -> FakePlaywright:
        playwright = FakePlaywright(chromium)
        monkeypatch.setattr(
            browser_module,
            "async_playwright",
            lambda: FakeDriverStarter(playwright),
        )
        return playwright

    return install


async def test_launch_returns_session_with_chromium_flags(install_driver):
    fake_browser = FakeBrowser()
    chromium = FakeChromium(fake_browser)
    playwright = install_driver(chromium)

    session = await PlaywrightLauncher(Path("/opt/chrome")).launch()

    assert isinstance(session, PlaywrightSession)
    assert chromium.kwargs == {
        "headless": True,
        "args": ["--disable-gpu"],
        "executable_path": "/opt/chrome",
    }

    await session.close()
    assert fake_browser.closed
    assert playwright.stopped


async def test_launch_error_stops_driver(install_driver):
    playwright = install_driver(
        FakeChromium(FakeBrowser(), error=PlaywrightError("no chromium"))
    )

    with pytest.raises(BrowserLaunchError, match="failed to launch browser: no chromium"):
        await PlaywrightLauncher().launch()

    assert playwright.stopped


async def test_timeout_during_browser_launch_stops_driver(install_driver):
    playwright = install_driver(FakeChromium(FakeBrowser(), hangs=True))
    renderer = PdfRenderer(PlaywrightLauncher(), timeout_seconds=0.2)

    with pytest.raises(RenderTimeoutError):
        await renderer.render(HTML)

    assert playwright.stopped


async def test_timeout_while_opening_page_closes_browser(install_driver):
    fake_browser = FakeBrowser(page_hangs=True)
    playwright = install_driver(FakeChromium(fake_browser))
    renderer = PdfRenderer(PlaywrightLauncher(), timeout_seconds=0.2)

    with pytest.raises(RenderTimeoutError):
        await renderer.render(HTML)

    assert fake_browser.closed
    assert playwright.stopped
