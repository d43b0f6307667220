"""
Document Registry - authoritative per-file state.

Holds every Document plus the bytes it was uploaded with (and, for PDFs,
the sanitized form produced during ingestion, which the bundle compiler
reuses). Status changes are monotonic: QUEUED -> PROCESSING -> READY|ERROR,
and a terminal status is never replaced. Attempts to regress are ignored
and logged rather than raised, so a late or duplicated completion event
cannot corrupt the registry.

Only CaseState applies completion events; the pipeline never writes here
from concurrently running item tasks.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterator

from casebinder.logging_config import debug_log
from casebinder.models import (
    CompletionEvent,
    DocStatus,
    Document,
    ExtractionStats,
    UploadItem,
)


class DocumentRegistry:
    """Map of document id -> Document, with the associated file bytes."""

    def __init__(self):
        self._documents: dict[str, Document] = {}
        self._files: dict[str, bytes] = {}
        self._sanitized_pdfs: dict[str, bytes] = {}

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, doc_id: str) -> bool:
        return doc_id in self._documents

    def __iter__(self) -> Iterator[Document]:
        return iter(self._documents.values())

    def register(self, item: UploadItem, uploaded_at: datetime | None = None) -> Document:
        """
        Add a QUEUED document for an upload.

        Raises:
            ValueError: If the id is already registered.
        """
        if item.doc_id in self._documents:
            raise ValueError(f"Document id already registered: {item.doc_id}")
        document = Document(
            id=item.doc_id,
            filename=item.filename,
            declared_type=item.declared_type,
            size_bytes=item.size_bytes,
            uploaded_at=uploaded_at or datetime.now(),
            author=item.author,
        )
        self._documents[item.doc_id] = document
        self._files[item.doc_id] = item.data
        return document

    def add_document(self, document: Document, data: bytes | None = None) -> None:
        """Insert an existing Document (e.g. restored from a case snapshot)."""
        self._documents[document.id] = document
        if data is not None:
            self._files[document.id] = data

    def get(self, doc_id: str) -> Document | None:
        return self._documents.get(doc_id)

    def file_bytes(self, doc_id: str) -> bytes | None:
        return self._files.get(doc_id)

    def sanitized_pdf(self, doc_id: str) -> bytes | None:
        return self._sanitized_pdfs.get(doc_id)

    def documents(self, status: DocStatus | None = None) -> list[Document]:
        """All documents in registration order, optionally filtered by status."""
        if status is None:
            return list(self._documents.values())
        return [doc for doc in self._documents.values() if doc.status == status]

    def count(self, status: DocStatus) -> int:
        return sum(1 for doc in self._documents.values() if doc.status == status)

    def _advance(self, document: Document, status: DocStatus) -> bool:
        if document.status.is_terminal or status.rank < document.status.rank:
            debug_log(
                f"[REGISTRY] Ignoring status change {document.status.value} -> {status.value} "
                f"for {document.filename}"
            )
            return False
        document.status = status
        return True

    def mark_processing(self, doc_id: str) -> bool:
        """Move a QUEUED document to PROCESSING. Returns False if ignored."""
        document = self._documents.get(doc_id)
        if document is None:
            return False
        return self._advance(document, DocStatus.PROCESSING)

    def apply(self, event: CompletionEvent) -> bool:
        """
        Apply a terminal completion event to its document.

        Returns:
            True if the document changed, False if the event was ignored
            (unknown id or document already terminal).
        """
        document = self._documents.get(event.doc_id)
        if document is None:
            debug_log(f"[REGISTRY] Completion event for unknown document {event.doc_id}")
            return False
        if not self._advance(document, event.status):
            return False

        if event.content_kind is not None:
            document.content_kind = event.content_kind
        if event.text_content is not None:
            document.text_content = event.text_content
        if event.summary:
            document.summary = list(event.summary)
        document.stats = event.stats or ExtractionStats()
        if event.page_count:
            document.page_count = event.page_count
        if event.sanitized_pdf is not None:
            self._sanitized_pdfs[event.doc_id] = event.sanitized_pdf
        if event.status == DocStatus.ERROR:
            document.failure_kind = event.failure_kind
            document.error_message = event.error_message
            if not event.summary:
                document.summary = [f"Error: {event.error_message}"]
        return True
