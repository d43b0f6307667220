"""
Ingestion Pipeline - bounded, fault-isolated processing of uploaded files.

Each UploadItem goes through:

1. Size guard (MAX_FILE_SIZE_MB)
2. Content type resolution through the capability dispatch table
3. A per-kind extraction strategy (PDF, IMAGE, WORD, AUDIO, TEXT)
4. The empty-content guard for text-based content
5. Oracle analysis

and always ends in exactly one CompletionEvent, READY or ERROR. Items run
on a self-replenishing pool of at most `max_workers` asyncio tasks. Item
tasks never touch case state: they post events to an asyncio.Queue that
CaseState.consume() drains, so the registry and the timeline have a single
writer.

Usage:
    oracle = OllamaOracle()
    pipeline = IngestionPipeline(oracle, case=CaseState(case_name="Smith v Acme"))
    report = asyncio.run(pipeline.run(items))
    print(f"{report.ready_count} ready, {report.error_count} failed")
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from casebinder.config import MIN_DIGITAL_TEXT_CHARS, get_setting
from casebinder.errors import CaseBinderError, ExtractionFailure, OracleError, ValidationError
from casebinder.extraction import (
    decode_text,
    extract_docx_text,
    extract_pdf_text,
    extract_rtf_text,
    normalize_text,
    ocr_image_locally,
    pdf_page_count,
    resolve_audio_mime,
    resolve_content_kind,
    resolve_image_mime,
    sanitize_pdf,
)
from casebinder.logging_config import debug_log, error, info, warning
from casebinder.models import (
    AnalysisResult,
    CompletionEvent,
    ContentKind,
    DocStatus,
    ExtractionStats,
    FailureKind,
    ProcessingStarted,
    UploadItem,
)
from casebinder.parallel import ParallelTaskRunner, ProgressAggregator, TaskResult
from casebinder.registry import STOP, CaseState

if TYPE_CHECKING:
    from queue import Queue

    from casebinder.ai import AnalysisOracle

NO_TEXT_PLACEHOLDER = "(No readable text extracted)"
NO_TEXT_SUMMARY = (
    "No text content could be extracted from this file. "
    "It may be an image-only PDF (OCR required) or empty."
)
PDF_TEXT_EMPTY = "(PDF Text Extraction Empty)"
PDF_TEXT_FAILED = "(Text extraction failed - relied on visual analysis)"
IMAGE_TEXT_EMPTY = "(Image Text Extraction Empty)"
IMAGE_OCR_FAILED = "(Image OCR failed)"

_MB = 1024 * 1024


@dataclass
class PipelineReport:
    """
    Outcome of one IngestionPipeline.run().

    Attributes:
        ready_count: Items that finished READY.
        error_count: Items that finished ERROR.
        results: Per-item TaskResults in completion order.
        elapsed_seconds: Wall-clock time for the whole run.
        peak_in_flight: Highest number of items processed at once.
    """
    ready_count: int = 0
    error_count: int = 0
    results: list[TaskResult] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    peak_in_flight: int = 0

    @property
    def total(self) -> int:
        return self.ready_count + self.error_count


class IngestionPipeline:
    """
    Turns UploadItems into CompletionEvents with bounded concurrency.

    Args:
        oracle: AnalysisOracle used for analysis, OCR and transcription.
        case: CaseState that receives the events (a new one if omitted).
        max_workers: Pool bound (defaults to the upload_concurrency setting).
        progress_queue: Optional queue receiving ('progress', (pct, msg)).
    """

    def __init__(
        self,
        oracle: AnalysisOracle,
        case: CaseState | None = None,
        max_workers: int | None = None,
        progress_queue: Queue | None = None,
    ):
        self.oracle = oracle
        self.case = case if case is not None else CaseState()
        self.max_workers = max_workers or get_setting('upload_concurrency')
        self.aggregator = ProgressAggregator(progress_queue)

    async def run(self, items: list[UploadItem]) -> PipelineReport:
        """
        Process every item to a terminal state.

        Items are registered QUEUED up front and move to PROCESSING as they
        take a pool slot. Returns once every started item has been applied
        to the case.
        """
        start_time = time.time()
        report = PipelineReport()
        if not items:
            return report

        for item in items:
            self.case.registry.register(item)

        events: asyncio.Queue = asyncio.Queue()
        consumer = asyncio.create_task(self.case.consume(events), name="casebinder:reducer")
        self.aggregator.set_total(len(items))
        by_id = {item.doc_id: item for item in items}

        def on_task_start(doc_id: str) -> None:
            events.put_nowait(ProcessingStarted(doc_id))
            self.aggregator.update(doc_id, f"Processing {by_id[doc_id].filename}...")

        async def handle(item: UploadItem) -> CompletionEvent:
            event = await self.process_item(item)
            await events.put(event)
            self.aggregator.complete(item.doc_id, failed=event.status == DocStatus.ERROR)
            return event

        runner = ParallelTaskRunner(max_workers=self.max_workers, on_task_start=on_task_start)
        info(f"[PIPELINE] Ingesting {len(items)} files with concurrency {self.max_workers}")
        try:
            results = await runner.run(handle, [(item.doc_id, item) for item in items])
        finally:
            await events.put(STOP)
            await consumer

        # process_item never raises; this only catches failures around it
        for result in results:
            if not result.success:
                error(f"[PIPELINE] Task for {result.task_id} raised outside item scope: {result.error}")
                fallback = CompletionEvent(
                    doc_id=result.task_id,
                    status=DocStatus.ERROR,
                    failure_kind=FailureKind.EXTRACTION,
                    error_message=str(result.error) or type(result.error).__name__,
                )
                self.case.apply(fallback)
                result.result = fallback

        for result in results:
            if result.result is not None and result.result.status == DocStatus.READY:
                report.ready_count += 1
            else:
                report.error_count += 1

        report.results = results
        report.peak_in_flight = runner.peak_in_flight
        report.elapsed_seconds = time.time() - start_time
        info(
            f"[PIPELINE] Completed: {report.ready_count} ready, {report.error_count} failed "
            f"in {report.elapsed_seconds:.1f}s"
        )
        return report

    # ------------------------------------------------------------------
    # Per-item processing
    # ------------------------------------------------------------------

    async def process_item(self, item: UploadItem) -> CompletionEvent:
        """
        Process one item and return its CompletionEvent.

        Never raises: every failure becomes an ERROR event attributed to
        the item.
        """
        content_kind = None
        try:
            self._check_size(item)
            content_kind = resolve_content_kind(item.filename, item.declared_type)
            debug_log(f"[PIPELINE] {item.filename} resolved as {content_kind.value}")

            if content_kind == ContentKind.PDF:
                return await self._process_pdf(item)
            if content_kind == ContentKind.IMAGE:
                return await self._process_image(item)
            if content_kind == ContentKind.WORD:
                text = await asyncio.to_thread(self._convert_word, item)
            elif content_kind == ContentKind.AUDIO:
                text = await self._transcribe(item)
            else:
                text = decode_text(item.data)
            return await self._process_text(item, content_kind, text)

        except CaseBinderError as e:
            warning(f"[PIPELINE] {item.filename} failed ({e.kind.value}): {e}")
            return self._error_event(item, content_kind, e.kind, str(e))
        except Exception as e:
            error(f"[PIPELINE] Unexpected error processing {item.filename}: {e}", exc_info=True)
            return self._error_event(item, content_kind, FailureKind.EXTRACTION, str(e) or type(e).__name__)

    def _check_size(self, item: UploadItem) -> None:
        limit_mb = get_setting('max_file_size_mb')
        if item.size_bytes > limit_mb * _MB:
            raise ValidationError(f"File too large for AI analysis (>{limit_mb}MB)")

    async def _process_pdf(self, item: UploadItem) -> CompletionEvent:
        self.aggregator.update(item.doc_id, f"Sanitizing {item.filename}...")
        sanitized = await asyncio.to_thread(sanitize_pdf, item.data)
        if sanitized is None:
            raise ExtractionFailure("Invalid or password-protected PDF")

        text = await self._pdf_raw_text(item, sanitized)
        self.aggregator.update(item.doc_id, f"Analysing {item.filename}...")
        analysis = await self.oracle.analyze(sanitized, 'application/pdf', item.filename, item.doc_id)
        page_count = await asyncio.to_thread(pdf_page_count, sanitized)
        return self._ready_event(item, ContentKind.PDF, text, analysis, sanitized_pdf=sanitized,
                                 page_count=page_count)

    async def _pdf_raw_text(self, item: UploadItem, sanitized: bytes) -> str:
        """Digital text first, oracle OCR when the text layer is too thin."""
        try:
            text = normalize_text(await asyncio.to_thread(extract_pdf_text, sanitized))
            if len(text) < MIN_DIGITAL_TEXT_CHARS:
                debug_log(f"[PIPELINE] {item.filename}: {len(text)} digital chars, asking oracle")
                self.aggregator.update(item.doc_id, f"Reading scanned pages of {item.filename}...")
                text = (await self.oracle.extract_text(sanitized, 'application/pdf')).strip() or text
        except CaseBinderError as e:
            debug_log(f"[PIPELINE] Text extraction failed for {item.filename}: {e}")
            return PDF_TEXT_FAILED
        return text or PDF_TEXT_EMPTY

    async def _process_image(self, item: UploadItem) -> CompletionEvent:
        mime_type = resolve_image_mime(item.filename, item.declared_type)
        self.aggregator.update(item.doc_id, f"Reading {item.filename}...")
        try:
            text = (await self.oracle.extract_text(item.data, mime_type)).strip() or IMAGE_TEXT_EMPTY
        except OracleError as e:
            debug_log(f"[PIPELINE] Oracle OCR failed for {item.filename} ({e}), trying local OCR")
            try:
                text = await asyncio.to_thread(ocr_image_locally, item.data) or IMAGE_TEXT_EMPTY
            except ExtractionFailure as local_error:
                debug_log(f"[PIPELINE] Local OCR failed for {item.filename}: {local_error}")
                text = IMAGE_OCR_FAILED

        self.aggregator.update(item.doc_id, f"Analysing {item.filename}...")
        analysis = await self.oracle.analyze(item.data, mime_type, item.filename, item.doc_id)
        return self._ready_event(item, ContentKind.IMAGE, text, analysis)

    def _convert_word(self, item: UploadItem) -> str:
        if item.filename.lower().endswith('.rtf') or 'rtf' in (item.declared_type or ''):
            return extract_rtf_text(item.data)
        return extract_docx_text(item.data)

    async def _transcribe(self, item: UploadItem) -> str:
        ceiling_mb = get_setting('audio_payload_ceiling_mb')
        if item.size_bytes > ceiling_mb * _MB:
            raise ValidationError(f"Audio file too large for inline transcription (limit ~{ceiling_mb}MB)")
        mime_type = resolve_audio_mime(item.filename, item.declared_type)
        debug_log(f"[PIPELINE] Transcribing {item.filename} as {mime_type}")
        self.aggregator.update(item.doc_id, f"Transcribing {item.filename}...")
        return await self.oracle.transcribe(item.data, mime_type)

    async def _process_text(self, item: UploadItem, content_kind: ContentKind, text: str) -> CompletionEvent:
        if not text or not text.strip():
            info(f"[PIPELINE] No text found in {item.filename} - analysis skipped")
            return CompletionEvent(
                doc_id=item.doc_id,
                status=DocStatus.READY,
                content_kind=content_kind,
                text_content=NO_TEXT_PLACEHOLDER,
                summary=(NO_TEXT_SUMMARY,),
                stats=ExtractionStats(),
            )

        self.aggregator.update(item.doc_id, f"Analysing {item.filename}...")
        analysis = await self.oracle.analyze(text, 'text/plain', item.filename, item.doc_id)
        return self._ready_event(item, content_kind, text, analysis)

    def _ready_event(
        self,
        item: UploadItem,
        content_kind: ContentKind,
        text: str,
        analysis: AnalysisResult | None,
        sanitized_pdf: bytes | None = None,
        page_count: int | None = None,
    ) -> CompletionEvent:
        if analysis is None:
            raise OracleError("Analysis returned empty result")
        debug_log(
            f"[PIPELINE] {item.filename}: {len(analysis.timeline_events)} events, "
            f"{len(analysis.issues)} issues"
        )
        return CompletionEvent(
            doc_id=item.doc_id,
            status=DocStatus.READY,
            content_kind=content_kind,
            text_content=text,
            summary=tuple(analysis.summary),
            stats=ExtractionStats.from_analysis(analysis),
            analysis=analysis,
            sanitized_pdf=sanitized_pdf,
            page_count=page_count,
        )

    @staticmethod
    def _error_event(
        item: UploadItem,
        content_kind: ContentKind | None,
        failure_kind: FailureKind,
        message: str,
    ) -> CompletionEvent:
        return CompletionEvent(
            doc_id=item.doc_id,
            status=DocStatus.ERROR,
            content_kind=content_kind,
            failure_kind=failure_kind,
            error_message=message,
        )
