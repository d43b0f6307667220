"""
Tests for the ingestion pipeline.

Tests cover:
- Mixed uploads with an oversized file and a corrupt PDF
- Fault isolation across items
- Per-kind strategies (PDF, image OCR fallbacks, DOCX, audio, text)
- Empty-content guard and oracle failures
- Concurrency bound and terminal status of every item
"""

import asyncio
import io
import sys
from pathlib import Path
from unittest.mock import patch

import fitz
import pytest
from docx import Document as DocxDocument
from PIL import Image

sys.path.insert(0, str(Path(__file__).parent.parent))

from casebinder import config
from casebinder.ai import AnalysisOracle
from casebinder.errors import ExtractionFailure, FatalOracleError, RetriableOracleError
from casebinder.ingestion import IngestionPipeline
from casebinder.ingestion.pipeline import IMAGE_OCR_FAILED, NO_TEXT_PLACEHOLDER
from casebinder.models import (
    AnalysisResult,
    ContentKind,
    DocStatus,
    FailureKind,
    Issue,
    TimelineEvent,
    UploadItem,
)
from casebinder.registry import CaseState

SAMPLE_TEXT = (
    "On 5 January 2024 the claimant was given a verbal warning by her line manager "
    "without any prior investigation meeting."
)


def make_pdf(text=SAMPLE_TEXT, pages=1) -> bytes:
    doc = fitz.open()
    for _ in range(pages):
        page = doc.new_page()
        if text.strip():
            page.insert_text((72, 72), text[:90])
            page.insert_text((72, 90), text[90:])
    data = doc.tobytes()
    doc.close()
    return data


def make_png() -> bytes:
    buffer = io.BytesIO()
    Image.new('RGB', (200, 100), 'white').save(buffer, format='PNG')
    return buffer.getvalue()


def make_docx() -> bytes:
    doc = DocxDocument()
    doc.add_paragraph("Grievance outcome letter")
    table = doc.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Outcome"
    table.rows[0].cells[1].text = "Not upheld"
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


class FakeOracle(AnalysisOracle):
    """Records every call; behaviour is configured per filename."""

    def __init__(self, delay=0.0, fail_for=(), empty_for=(), ocr_error=None,
                 ocr_text="Scanned page text", transcript="Recorded call transcript"):
        self.delay = delay
        self.fail_for = set(fail_for)
        self.empty_for = set(empty_for)
        self.ocr_error = ocr_error
        self.ocr_text = ocr_text
        self.transcript = transcript
        self.calls = []
        self.in_flight = 0
        self.peak = 0

    async def analyze(self, content, declared_type, filename, doc_id):
        self.calls.append(('analyze', filename, declared_type))
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if filename in self.fail_for:
            raise FatalOracleError("AI blocked content. Reason: safety")
        if filename in self.empty_for:
            return None
        return AnalysisResult(
            summary=[f"Summary of {filename}"],
            timeline_events=[TimelineEvent(
                date="2024-01-05",
                description=f"{filename}: verbal warning issued",
                sources=frozenset({doc_id}),
            )],
            issues=[Issue(category="Procedure", description="No investigation", source_doc=doc_id)],
        )

    async def transcribe(self, audio, mime_type):
        self.calls.append(('transcribe', mime_type))
        return self.transcript

    async def extract_text(self, content, mime_type):
        self.calls.append(('extract_text', mime_type))
        if self.ocr_error:
            raise self.ocr_error
        return self.ocr_text

    def analyzed(self, filename):
        return any(call[0] == 'analyze' and call[1] == filename for call in self.calls)


def run_pipeline(items, oracle=None, max_workers=3):
    oracle = oracle or FakeOracle()
    case = CaseState(case_name="Test Case")
    pipeline = IngestionPipeline(oracle, case=case, max_workers=max_workers)
    report = asyncio.run(pipeline.run(items))
    return case, report, oracle


class TestMixedUpload:
    """Five uploads, one oversized and one corrupt, with concurrency 3."""

    @pytest.fixture
    def items(self):
        return [
            UploadItem("grievance.pdf", make_pdf(), "application/pdf", author="Claimant"),
            UploadItem("huge.txt", b"a" * (12 * 1024 * 1024 + 1), "text/plain"),
            UploadItem("broken.pdf", b"this is not really a pdf file", "application/pdf"),
            UploadItem("notes.txt", SAMPLE_TEXT.encode(), "text/plain"),
            UploadItem("outcome.docx", make_docx(), ""),
        ]

    def test_final_statuses(self, items):
        case, report, _ = run_pipeline(items, max_workers=3)
        registry = case.registry

        assert report.ready_count == 3
        assert report.error_count == 2
        assert registry.count(DocStatus.READY) == 3
        assert registry.count(DocStatus.QUEUED) == 0
        assert registry.count(DocStatus.PROCESSING) == 0

        huge = registry.get(items[1].doc_id)
        broken = registry.get(items[2].doc_id)
        assert huge.status == DocStatus.ERROR
        assert huge.failure_kind == FailureKind.VALIDATION
        assert broken.status == DocStatus.ERROR
        assert broken.failure_kind == FailureKind.EXTRACTION

    def test_corrupt_pdf_never_reaches_oracle(self, items):
        _, _, oracle = run_pipeline(items)
        assert not oracle.analyzed("broken.pdf")
        assert not oracle.analyzed("huge.txt")
        assert oracle.analyzed("grievance.pdf")

    def test_facts_folded_into_case(self, items):
        case, _, _ = run_pipeline(items)
        assert len(case.timeline) == 3
        assert len(case.issues) == 3
        ready_ids = {doc.id for doc in case.registry.documents(DocStatus.READY)}
        assert set().union(*(event.sources for event in case.timeline)) == ready_ids

    def test_error_summary_is_recorded(self, items):
        case, _, _ = run_pipeline(items)
        huge = case.registry.get(items[1].doc_id)
        assert huge.summary == [f"Error: {huge.error_message}"]
        assert "12MB" in huge.error_message


class TestFaultIsolation:
    """Exactly one bad file among K never affects the others."""

    @pytest.mark.parametrize("k", [2, 5, 8])
    def test_one_corrupt_file(self, k):
        items = [UploadItem(f"doc{i}.txt", f"Document {i} text".encode()) for i in range(k - 1)]
        items.append(UploadItem("corrupt.pdf", b"%PDF-1.4 nonsense", "application/pdf"))

        case, report, _ = run_pipeline(items, max_workers=2)

        assert report.ready_count == k - 1
        assert report.error_count == 1
        assert case.registry.count(DocStatus.ERROR) == 1

    def test_unexpected_exception_becomes_error(self):
        items = [UploadItem("a.txt", b"alpha text"), UploadItem("b.txt", b"beta text")]
        oracle = FakeOracle()

        original = oracle.analyze

        async def flaky(content, declared_type, filename, doc_id):
            if filename == "a.txt":
                raise KeyError("unexpected")
            return await original(content, declared_type, filename, doc_id)

        oracle.analyze = flaky
        case, report, _ = run_pipeline(items, oracle)

        assert report.ready_count == 1
        failed = case.registry.get(items[0].doc_id)
        assert failed.status == DocStatus.ERROR
        assert "unexpected" in failed.error_message


class TestConcurrency:
    """The pool never runs more items than its bound."""

    @pytest.mark.parametrize("max_workers", [1, 2, 4])
    def test_bound_respected(self, max_workers):
        items = [UploadItem(f"doc{i}.txt", b"some evidence text") for i in range(7)]
        oracle = FakeOracle(delay=0.01)

        case, report, _ = run_pipeline(items, oracle, max_workers=max_workers)

        assert report.ready_count == 7
        assert report.peak_in_flight <= max_workers
        assert oracle.peak <= max_workers

    def test_every_item_reaches_terminal_state(self):
        items = [UploadItem(f"note{i}.txt", b"meeting note text") for i in range(6)]
        oracle = FakeOracle(delay=0.01)
        case = CaseState(case_name="Test Case")
        pipeline = IngestionPipeline(oracle, case=case, max_workers=2)

        report = asyncio.run(pipeline.run(items))

        assert report.total == 6
        assert case.registry.count(DocStatus.QUEUED) == 0
        assert case.registry.count(DocStatus.PROCESSING) == 0
        assert not hasattr(pipeline, 'cancel')

    def test_empty_run(self):
        case, report, oracle = run_pipeline([])
        assert report.total == 0
        assert oracle.calls == []


class TestStrategies:
    """Per content kind behaviour."""

    def test_pdf_uses_digital_text_and_keeps_sanitized_bytes(self):
        item = UploadItem("letter.pdf", make_pdf(), "application/pdf")
        case, _, oracle = run_pipeline([item])

        document = case.registry.get(item.doc_id)
        assert document.status == DocStatus.READY
        assert document.content_kind == ContentKind.PDF
        assert "verbal warning" in document.text_content
        assert ('extract_text', 'application/pdf') not in oracle.calls
        assert case.registry.sanitized_pdf(item.doc_id) is not None

    def test_pdf_page_count_recorded(self):
        item = UploadItem("minutes.pdf", make_pdf(pages=3), "application/pdf")
        case, _, _ = run_pipeline([item])
        assert case.registry.get(item.doc_id).page_count == 3

    def test_scanned_pdf_asks_oracle_for_text(self):
        item = UploadItem("scan.pdf", make_pdf(text=" "), "application/pdf")
        case, _, oracle = run_pipeline([item])

        assert ('extract_text', 'application/pdf') in oracle.calls
        assert case.registry.get(item.doc_id).text_content == "Scanned page text"

    def test_pdf_text_failure_does_not_fail_item(self):
        item = UploadItem("scan.pdf", make_pdf(text=" "), "application/pdf")
        oracle = FakeOracle(ocr_error=RetriableOracleError("timed out"))
        case, _, _ = run_pipeline([item], oracle)

        document = case.registry.get(item.doc_id)
        assert document.status == DocStatus.READY
        assert document.text_content.startswith("(Text extraction failed")

    def test_image_uses_oracle_ocr(self):
        item = UploadItem("fit_note.png", make_png(), "image/png")
        case, _, oracle = run_pipeline([item])

        document = case.registry.get(item.doc_id)
        assert document.content_kind == ContentKind.IMAGE
        assert document.text_content == "Scanned page text"
        assert ('analyze', 'fit_note.png', 'image/png') in oracle.calls

    def test_image_falls_back_to_local_ocr(self):
        item = UploadItem("fit_note.png", make_png(), "image/png")
        oracle = FakeOracle(ocr_error=FatalOracleError("blocked"))
        with patch('casebinder.ingestion.pipeline.ocr_image_locally', return_value="Local OCR text"):
            case, _, _ = run_pipeline([item], oracle)

        assert case.registry.get(item.doc_id).text_content == "Local OCR text"

    def test_image_ocr_placeholder_when_all_ocr_fails(self):
        item = UploadItem("fit_note.png", make_png(), "image/png")
        oracle = FakeOracle(ocr_error=FatalOracleError("blocked"))
        with patch('casebinder.ingestion.pipeline.ocr_image_locally',
                   side_effect=ExtractionFailure("tesseract not installed")):
            case, _, _ = run_pipeline([item], oracle)

        document = case.registry.get(item.doc_id)
        assert document.status == DocStatus.READY
        assert document.text_content == IMAGE_OCR_FAILED

    def test_docx_converted_locally(self):
        item = UploadItem("outcome.docx", make_docx())
        case, _, oracle = run_pipeline([item])

        document = case.registry.get(item.doc_id)
        assert document.content_kind == ContentKind.WORD
        assert "Grievance outcome letter" in document.text_content
        assert "Outcome\tNot upheld" in document.text_content
        assert not any(call[0] == 'extract_text' for call in oracle.calls)

    def test_audio_transcribed_with_resolved_mime(self):
        item = UploadItem("call.m4a", b"\x00" * 2048, "audio/x-m4a")
        case, _, oracle = run_pipeline([item])

        document = case.registry.get(item.doc_id)
        assert ('transcribe', 'audio/mp4') in oracle.calls
        assert document.content_kind == ContentKind.AUDIO
        assert document.text_content == "Recorded call transcript"

    def test_audio_over_ceiling_is_rejected_before_transmission(self, monkeypatch):
        monkeypatch.setattr(config, 'SETTINGS', {'audio_payload_ceiling_mb': 1})
        item = UploadItem("meeting.mp3", b"\x00" * (2 * 1024 * 1024), "audio/mpeg")
        case, _, oracle = run_pipeline([item])

        document = case.registry.get(item.doc_id)
        assert document.status == DocStatus.ERROR
        assert document.failure_kind == FailureKind.VALIDATION
        assert oracle.calls == []

    def test_audio_ceiling_applies_when_file_limit_raised(self, monkeypatch):
        monkeypatch.setattr(config, 'SETTINGS', {'max_file_size_mb': 20})
        item = UploadItem("hearing.wav", b"\x00" * (16 * 1024 * 1024), "audio/wav")
        case, _, oracle = run_pipeline([item])

        document = case.registry.get(item.doc_id)
        assert document.failure_kind == FailureKind.VALIDATION
        assert "limit ~15MB" in document.error_message
        assert oracle.calls == []

    def test_unsupported_binary_type(self):
        item = UploadItem("archive.zip", b"PK\x03\x04", "application/zip")
        case, _, oracle = run_pipeline([item])

        document = case.registry.get(item.doc_id)
        assert document.failure_kind == FailureKind.VALIDATION
        assert "Unsupported file type" in document.error_message
        assert oracle.calls == []


class TestGuardsAndOracleFailures:
    """Empty content and oracle failures."""

    def test_empty_text_skips_analysis(self):
        item = UploadItem("blank.txt", b"   \n\n  ", "text/plain")
        case, _, oracle = run_pipeline([item])

        document = case.registry.get(item.doc_id)
        assert document.status == DocStatus.READY
        assert document.text_content == NO_TEXT_PLACEHOLDER
        assert document.stats.event_count == 0
        assert not oracle.analyzed("blank.txt")

    def test_fatal_oracle_error(self):
        item = UploadItem("notes.txt", b"Some notes")
        case, _, _ = run_pipeline([item], FakeOracle(fail_for={"notes.txt"}))

        document = case.registry.get(item.doc_id)
        assert document.status == DocStatus.ERROR
        assert document.failure_kind == FailureKind.ORACLE

    def test_empty_analysis_is_oracle_failure(self):
        item = UploadItem("notes.txt", b"Some notes")
        case, _, _ = run_pipeline([item], FakeOracle(empty_for={"notes.txt"}))

        document = case.registry.get(item.doc_id)
        assert document.failure_kind == FailureKind.ORACLE
        assert document.error_message == "Analysis returned empty result"

    def test_stats_recorded(self):
        item = UploadItem("notes.txt", b"Some notes")
        case, _, _ = run_pipeline([item])

        stats = case.registry.get(item.doc_id).stats
        assert stats.event_count == 1
        assert stats.issue_count == 1
