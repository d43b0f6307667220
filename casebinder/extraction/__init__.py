"""
Extraction Package

Turns uploaded bytes into content the pipeline can analyse:
- Content type resolution through an ordered dispatch table
- PDF sanitization (deep/shallow reconstruction)
- Local text extraction for PDF, DOCX, RTF, plain text and images
"""

from casebinder.extraction.pdf_sanitizer import pdf_page_count, render_pdf_pages, sanitize_pdf
from casebinder.extraction.strategies import (
    CAPABILITY_TABLE,
    resolve_audio_mime,
    resolve_content_kind,
    resolve_image_mime,
)
from casebinder.extraction.text_extractors import (
    decode_text,
    extract_docx_text,
    extract_pdf_text,
    extract_rtf_text,
    normalize_text,
    ocr_image_locally,
)

__all__ = [
    'CAPABILITY_TABLE',
    'decode_text',
    'extract_docx_text',
    'extract_pdf_text',
    'extract_rtf_text',
    'normalize_text',
    'ocr_image_locally',
    'pdf_page_count',
    'render_pdf_pages',
    'resolve_audio_mime',
    'resolve_content_kind',
    'resolve_image_mime',
    'sanitize_pdf',
]
