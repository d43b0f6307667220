"""
PDF sanitization.

Print-to-PDF tools frequently produce files with broken cross-reference
tables or stray metadata that analysis services reject outright. Before a
PDF is analysed or bound it is rebuilt:

1. Deep reconstruction: a fresh document receives copies of every page;
   the original xref table and metadata are discarded.
2. Shallow reconstruction (if deep throws): the loaded document is simply
   re-serialized, which rewrites the xref table.
3. Unrecoverable: encrypted, corrupt or zero-page documents yield None and
   no further work is spent on them.

Scanned PDFs have no text layer; render_pdf_pages() rasterizes them so
the oracle can read them as images.
"""

import fitz

from casebinder.config import OCR_DPI, OCR_MAX_PAGES
from casebinder.errors import ExtractionFailure
from casebinder.utils import Timer, debug, warning


def _deep_reconstruct(source: fitz.Document) -> bytes:
    rebuilt = fitz.open()
    try:
        rebuilt.insert_pdf(source)
        if rebuilt.page_count != source.page_count:
            raise RuntimeError(
                f"copied {rebuilt.page_count} of {source.page_count} pages"
            )
        return rebuilt.tobytes(garbage=3, deflate=True)
    finally:
        rebuilt.close()


def _shallow_reconstruct(source: fitz.Document) -> bytes:
    return source.tobytes(garbage=1)


def sanitize_pdf(data: bytes) -> bytes | None:
    """
    Rebuild a PDF so downstream consumers accept it.

    Args:
        data: Raw PDF bytes.

    Returns:
        Sanitized PDF bytes, or None if the document is unrecoverable
        (password-protected, corrupt, or has no pages).
    """
    try:
        source = fitz.open(stream=data, filetype="pdf")
    except Exception as e:
        warning(f"[SANITIZE] PDF could not be opened: {e}")
        return None

    try:
        if source.needs_pass:
            warning("[SANITIZE] PDF is password-protected")
            return None
        if source.page_count == 0:
            warning("[SANITIZE] PDF has 0 pages")
            return None

        with Timer("PDF deep reconstruction", auto_log=False):
            try:
                return _deep_reconstruct(source)
            except Exception as deep_error:
                debug(f"[SANITIZE] Deep reconstruction failed, attempting simple re-save: {deep_error}")

        try:
            return _shallow_reconstruct(source)
        except Exception as shallow_error:
            warning(f"[SANITIZE] PDF validation failed: {shallow_error}")
            return None
    finally:
        source.close()


def pdf_page_count(data: bytes) -> int:
    """Number of pages in a PDF, or 0 if it cannot be opened."""
    try:
        with fitz.open(stream=data, filetype="pdf") as doc:
            return doc.page_count
    except Exception:
        return 0


def render_pdf_pages(data: bytes, dpi: int = OCR_DPI, max_pages: int = OCR_MAX_PAGES) -> list[bytes]:
    """
    Rasterize the first max_pages pages of a PDF to PNG bytes for OCR.

    Raises:
        ExtractionFailure: If the PDF cannot be opened or rendered.
    """
    try:
        with fitz.open(stream=data, filetype="pdf") as doc:
            if doc.page_count > max_pages:
                debug(f"[SANITIZE] Rendering {max_pages} of {doc.page_count} pages for OCR")
            with Timer(f"PDF render ({min(doc.page_count, max_pages)} pages)", auto_log=False):
                return [
                    page.get_pixmap(dpi=dpi).tobytes("png")
                    for page in doc.pages(0, min(doc.page_count, max_pages))
                ]
    except Exception as e:
        raise ExtractionFailure(f"Could not render PDF pages: {e}") from e
