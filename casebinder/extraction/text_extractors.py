"""
Local, deterministic text extractors.

These run without the oracle:
- Digital PDF text via pdfplumber
- Word-processed documents: DOCX via python-docx (paragraphs and table
  cells), RTF via striprtf
- Plain text decoding
- Local OCR of images via pytesseract, used when the oracle cannot OCR

All functions take raw bytes and are blocking; the pipeline calls them
through asyncio.to_thread.
"""

import io
import re

import pdfplumber
import pytesseract
from docx import Document as DocxDocument
from PIL import Image
from striprtf.striprtf import rtf_to_text

from casebinder.errors import ExtractionFailure
from casebinder.utils import Timer, debug, error


def extract_pdf_text(data: bytes) -> str:
    """
    Extract the digital text layer of a PDF using pdfplumber.

    Scanned PDFs return little or no text; callers decide whether to fall
    back to OCR.

    Raises:
        ExtractionFailure: If the PDF cannot be opened, with the reason
                           categorized (password, corrupted, unknown).
    """
    try:
        text_parts = []
        with Timer("Digital PDF text extraction", auto_log=False):
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                page_count = len(pdf.pages)
                debug(f"[EXTRACT] PDF has {page_count} pages")
                for page in pdf.pages:
                    page_text = page.extract_text()
                    if page_text:
                        text_parts.append(page_text)
        return normalize_text("\n".join(text_parts))
    except Exception as e:
        error_msg = str(e).lower()
        if "password" in error_msg or "encrypted" in error_msg:
            reason = "PDF is password-protected or encrypted"
        elif "damaged" in error_msg or "corrupt" in error_msg or "invalid" in error_msg:
            reason = "PDF file appears to be corrupted or damaged"
        else:
            reason = f"Failed to extract PDF text: {e}"
        error(f"[EXTRACT] {reason}")
        raise ExtractionFailure(reason) from e


def extract_docx_text(data: bytes) -> str:
    """Extract paragraphs and table rows (tab-separated) from a DOCX file."""
    try:
        doc = DocxDocument(io.BytesIO(data))
    except Exception as e:
        raise ExtractionFailure(f"Failed to open Word document: {e}") from e

    paragraphs = [p.text for p in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            paragraphs.append("\t".join(cell.text.strip() for cell in row.cells))
    return normalize_text("\n".join(paragraphs))


def extract_rtf_text(data: bytes) -> str:
    """Convert RTF markup to plain text."""
    rtf_content = data.decode('utf-8', errors='ignore')
    try:
        return normalize_text(rtf_to_text(rtf_content))
    except Exception as e:
        raise ExtractionFailure(f"Failed to read RTF document: {e}") from e


def decode_text(data: bytes) -> str:
    """Decode a plain text file, tolerating a BOM and invalid bytes."""
    return data.decode('utf-8-sig', errors='replace')


def ocr_image_locally(data: bytes) -> str:
    """
    OCR an image with Tesseract.

    Raises:
        ExtractionFailure: If the image cannot be read or Tesseract is
                           not installed.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            return normalize_text(pytesseract.image_to_string(image))
    except Exception as e:
        raise ExtractionFailure(f"Local OCR failed: {e}") from e


def normalize_text(raw_text: str) -> str:
    """
    Light normalization that keeps paragraph structure intact.

    1. De-hyphenation (rejoin words split across lines)
    2. Trailing whitespace removal per line
    3. Runs of blank lines collapsed to a single blank line
    """
    text = raw_text.replace('\r\n', '\n').replace('\r', '\n')
    text = re.sub(r'(\w+)-[ \t]*\n[ \t]*(\w+)', r'\1\2', text)
    text = '\n'.join(line.rstrip() for line in text.split('\n'))
    text = re.sub(r'\n\s*\n\s*\n+', '\n\n', text)
    return text.strip()
