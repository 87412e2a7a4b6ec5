"""
End-to-end PDF rendering with a real headless Chromium.

Skipped unless RENDER_API_BROWSER_TESTS=1 and Playwright's Chromium is
installed (``playwright install chromium``).
"""

import io
import os

import pikepdf
import pytest

from render_api.app.services.browser import PlaywrightLauncher
from render_api.app.services.pdf_renderer import PdfRenderer
from render_api.app.services.template_engine import render

pytestmark = [
    pytest.mark.anyio,
    pytest.mark.skipif(
        os.environ.get("RENDER_API_BROWSER_TESTS") != "1",
        reason="set RENDER_API_BROWSER_TESTS=1 to run against Chromium",
    ),
]


async def test_renders_template_to_pdf():
    html = render(
        "<html><body><h1>{{.title}}</h1>"
        "{{range .items}}<p>{{.}}</p>{{end}}</body></html>",
        {"title": "Invoice <42>", "items": ["one", "two"]},
    )
    renderer = PdfRenderer(
        PlaywrightLauncher(os.environ.get("CHROME_PATH") or None),
        default_wait_ms=50,
    )

    pdf_bytes = await renderer.render(html, title="Invoice 42")

    assert pdf_bytes.startswith(b"%PDF")
    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
        assert len(pdf.pages) >= 1
        assert str(pdf.docinfo["/Title"]) == "Invoice 42"
