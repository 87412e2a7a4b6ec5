import io

import pikepdf


# ------------------------------------------------------------------
# Minimal PDFs returned by fake browser sessions
# ------------------------------------------------------------------

def one_page_pdf() -> bytes:
    """A structurally valid single-page (A4, blank) PDF."""
    buffer = io.BytesIO()
    with pikepdf.new() as pdf:
        pdf.add_blank_page(page_size=(595, 842))
        pdf.save(buffer)
    return buffer.getvalue()


def zero_page_pdf() -> bytes:
    """
    A valid PDF container without a single page.

    Opens fine with pikepdf but is not a usable rendered document.
    """
    buffer = io.BytesIO()
    with pikepdf.new() as pdf:
        pdf.save(buffer)
    return buffer.getvalue()
