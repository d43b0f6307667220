"""
Tests for the extraction package.

Tests cover:
- Capability dispatch table ordering and audio/image MIME resolution
- PDF sanitizer deep/shallow/unrecoverable paths
- Local text extractors and normalization
"""

import io
import sys
from pathlib import Path
from unittest.mock import patch

import fitz
import pytest
from docx import Document as DocxDocument

sys.path.insert(0, str(Path(__file__).parent.parent))

from casebinder.errors import ExtractionFailure, ValidationError
from casebinder.extraction import (
    CAPABILITY_TABLE,
    decode_text,
    extract_docx_text,
    extract_pdf_text,
    extract_rtf_text,
    normalize_text,
    pdf_page_count,
    render_pdf_pages,
    resolve_audio_mime,
    resolve_content_kind,
    resolve_image_mime,
    sanitize_pdf,
)
from casebinder.extraction import pdf_sanitizer
from casebinder.models import ContentKind


def make_pdf(pages=2, text="Disciplinary hearing notes") -> bytes:
    doc = fitz.open()
    for number in range(pages):
        doc.new_page().insert_text((72, 72), f"{text} page {number + 1}")
    data = doc.tobytes()
    doc.close()
    return data


def make_encrypted_pdf() -> bytes:
    doc = fitz.open()
    doc.new_page().insert_text((72, 72), "Confidential")
    data = doc.tobytes(
        encryption=fitz.PDF_ENCRYPT_AES_256,
        owner_pw="owner",
        user_pw="secret",
    )
    doc.close()
    return data


class TestResolveContentKind:
    """Test the ordered capability dispatch table."""

    @pytest.mark.parametrize("filename, declared, expected", [
        ("letter.pdf", "", ContentKind.PDF),
        ("download", "application/pdf", ContentKind.PDF),
        ("notes.docx", "", ContentKind.WORD),
        ("notes.rtf", "text/rtf", ContentKind.WORD),
        ("photo.JPG", "", ContentKind.IMAGE),
        ("scan", "image/png", ContentKind.IMAGE),
        ("call.m4a", "", ContentKind.AUDIO),
        ("voicemail", "audio/ogg", ContentKind.AUDIO),
        ("email.eml", "", ContentKind.TEXT),
        ("README", "", ContentKind.TEXT),
        ("data.bin", "text/plain", ContentKind.TEXT),
    ])
    def test_resolution(self, filename, declared, expected):
        assert resolve_content_kind(filename, declared) == expected

    def test_first_match_wins(self):
        # A .pdf named file declared as text is still a PDF
        assert resolve_content_kind("report.pdf", "text/plain") == ContentKind.PDF

    def test_table_order(self):
        kinds = [kind for _, kind in CAPABILITY_TABLE]
        assert kinds == [
            ContentKind.PDF,
            ContentKind.WORD,
            ContentKind.IMAGE,
            ContentKind.AUDIO,
            ContentKind.TEXT,
        ]

    def test_unsupported_binary(self):
        with pytest.raises(ValidationError, match="Unsupported file type"):
            resolve_content_kind("setup.exe", "application/octet-stream")

    def test_custom_table(self):
        table = [(lambda filename, declared: filename.endswith('.msg'), ContentKind.TEXT)]
        assert resolve_content_kind("mail.msg", "", table) == ContentKind.TEXT
        with pytest.raises(ValidationError):
            resolve_content_kind("letter.pdf", "", table)


class TestResolveAudioMime:
    """Extension overrides beat declared types, which beat fallbacks."""

    @pytest.mark.parametrize("filename, declared, expected", [
        ("call.m4a", "audio/x-m4a", "audio/mp4"),
        ("call.mp3", "audio/mpeg", "audio/mp3"),
        ("call.wav", "audio/x-wav", "audio/wav"),
        ("call.aac", "", "audio/aac"),
        ("call.ogg", "audio/vorbis", "audio/vorbis"),
        ("call.ogg", "", "audio/ogg"),
        ("call.mpga", "", "audio/mpeg"),
        ("recording", "", "audio/mp3"),
    ])
    def test_resolution(self, filename, declared, expected):
        assert resolve_audio_mime(filename, declared) == expected


class TestResolveImageMime:

    def test_declared_type_used(self):
        assert resolve_image_mime("x.png", "image/png") == "image/png"

    def test_extension_fallback(self):
        assert resolve_image_mime("x.jpg", "") == "image/jpeg"
        assert resolve_image_mime("x.webp", None) == "image/webp"


class TestSanitizePdf:
    """Test deep/shallow reconstruction and unrecoverable inputs."""

    def test_deep_reconstruction_keeps_pages(self):
        sanitized = sanitize_pdf(make_pdf(pages=3))
        assert sanitized is not None
        assert pdf_page_count(sanitized) == 3

    def test_falls_back_to_shallow(self):
        with patch.object(pdf_sanitizer, '_deep_reconstruct', side_effect=RuntimeError("xref")):
            sanitized = sanitize_pdf(make_pdf(pages=2))
        assert sanitized is not None
        assert pdf_page_count(sanitized) == 2

    def test_both_reconstructions_fail(self):
        with patch.object(pdf_sanitizer, '_deep_reconstruct', side_effect=RuntimeError("deep")), \
             patch.object(pdf_sanitizer, '_shallow_reconstruct', side_effect=RuntimeError("shallow")):
            assert sanitize_pdf(make_pdf()) is None

    def test_garbage_is_unrecoverable(self):
        assert sanitize_pdf(b"definitely not a pdf") is None

    def test_password_protected_is_unrecoverable(self):
        assert sanitize_pdf(make_encrypted_pdf()) is None

    def test_page_count_of_garbage_is_zero(self):
        assert pdf_page_count(b"garbage") == 0


class TestRenderPdfPages:
    """Rasterizing pages for OCR."""

    def test_one_png_per_page(self):
        pages = render_pdf_pages(make_pdf(pages=2), dpi=72)
        assert len(pages) == 2
        assert all(page.startswith(b"\x89PNG") for page in pages)

    def test_page_limit(self):
        assert len(render_pdf_pages(make_pdf(pages=4), dpi=72, max_pages=3)) == 3

    def test_garbage_raises(self):
        with pytest.raises(ExtractionFailure):
            render_pdf_pages(b"garbage")


class TestTextExtractors:
    """Test local, deterministic extractors."""

    def test_pdf_text(self):
        text = extract_pdf_text(make_pdf(pages=1))
        assert "Disciplinary hearing notes page 1" in text

    def test_pdf_text_of_garbage_raises(self):
        with pytest.raises(ExtractionFailure):
            extract_pdf_text(b"not a pdf")

    def test_docx_paragraphs_and_tables(self):
        doc = DocxDocument()
        doc.add_paragraph("Investigation report")
        table = doc.add_table(rows=2, cols=2)
        table.rows[0].cells[0].text = "Witness"
        table.rows[0].cells[1].text = "Statement"
        table.rows[1].cells[0].text = "J. Smith"
        table.rows[1].cells[1].text = "Saw the incident"
        buffer = io.BytesIO()
        doc.save(buffer)

        text = extract_docx_text(buffer.getvalue())

        assert "Investigation report" in text
        assert "Witness\tStatement" in text
        assert "J. Smith\tSaw the incident" in text

    def test_docx_garbage_raises(self):
        with pytest.raises(ExtractionFailure):
            extract_docx_text(b"not a zip")

    def test_rtf(self):
        rtf = rb"{\rtf1\ansi{\fonttbl\f0\fswiss Helvetica;}\f0\pard Meeting notes\par Second line\par}"
        text = extract_rtf_text(rtf)
        assert "Meeting notes" in text
        assert "Second line" in text

    def test_decode_text_handles_bom_and_bad_bytes(self):
        assert decode_text(b"\xef\xbb\xbfHello") == "Hello"
        assert decode_text(b"caf\xff") == "caf\ufffd"

    def test_normalize_text(self):
        raw = "The defen-\ndant appeared.   \n\n\n\nNext paragraph.\r\n"
        assert normalize_text(raw) == "The defendant appeared.\n\nNext paragraph."
