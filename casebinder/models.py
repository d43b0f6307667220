"""
Shared Data Model for CaseBinder

Simple dataclasses passed between the ingestion pipeline, the document
registry, the timeline merger and the bundle compiler.

Key Types:
    Document - Per-file record owned by the DocumentRegistry
    UploadItem - A file submitted to the ingestion pipeline
    TimelineEvent - One dated fact, attributed to one or more documents
    AnalysisResult - Structured facts returned by the analysis oracle
    CompletionEvent - Immutable outcome of processing one UploadItem
    Section - Named, ordered grouping of documents for binder layout

Usage:
    item = UploadItem(filename="grievance.pdf", data=pdf_bytes,
                      declared_type="application/pdf", author="Claimant")
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class DocStatus(str, Enum):
    """Lifecycle of a Document. READY and ERROR are terminal."""
    QUEUED = "queued"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (DocStatus.READY, DocStatus.ERROR)


_STATUS_RANK = {
    DocStatus.QUEUED: 0,
    DocStatus.PROCESSING: 1,
    DocStatus.READY: 2,
    DocStatus.ERROR: 2,
}


class FailureKind(str, Enum):
    """Where a document failed. Shown to the user alongside the message."""
    VALIDATION = "validation"
    EXTRACTION = "extraction"
    ORACLE = "oracle"
    COMPILE = "compile"


class ContentKind(str, Enum):
    """Effective content type after dispatch-table resolution."""
    PDF = "pdf"
    IMAGE = "image"
    WORD = "word"
    AUDIO = "audio"
    TEXT = "text"


class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @classmethod
    def coerce(cls, value) -> Severity:
        """Map loose oracle output ("high", None, "severe") onto a Severity."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        return cls.MEDIUM


class RelevanceTag(str, Enum):
    SUPPORT = "Support"
    CONTRADICTION = "Contradiction"
    NEUTRAL_LINK = "Neutral-link"

    @classmethod
    def coerce(cls, value) -> RelevanceTag | None:
        if value is None or isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        return None


@dataclass
class ExtractionStats:
    """Counts of facts found in one document."""
    event_count: int = 0
    issue_count: int = 0
    medical_count: int = 0
    entity_count: int = 0
    policy_count: int = 0

    @classmethod
    def from_analysis(cls, analysis: AnalysisResult) -> ExtractionStats:
        return cls(
            event_count=len(analysis.timeline_events),
            issue_count=len(analysis.issues),
            medical_count=len(analysis.medical_evidence),
            entity_count=len(analysis.entities),
            policy_count=len(analysis.policy_references),
        )


@dataclass
class Document:
    """
    Per-file state. Owned by the DocumentRegistry and only changed by
    applying CompletionEvents.

    Attributes:
        id: Opaque unique identifier.
        filename: Original filename (e.g., "grievance_letter.pdf").
        declared_type: MIME type as reported at upload (may be empty).
        status: Lifecycle status; never regresses.
        size_bytes: File size in bytes.
        uploaded_at: Enqueue timestamp, used for chronological binder order.
        author: Classification tag (e.g., "Claimant", "Respondent").
        content_kind: Resolved content type, once known.
        text_content: Extracted text, if any.
        summary: Summary points from the oracle, or placeholder/error text.
        stats: Counts of facts found.
        page_count: Pages the document occupies when planning a binder
            (set from the sanitized PDF; 1 for everything else).
        failure_kind: Set when status is ERROR.
        error_message: Human-readable failure reason.
    """
    id: str
    filename: str
    declared_type: str = ""
    status: DocStatus = DocStatus.QUEUED
    size_bytes: int = 0
    uploaded_at: datetime = field(default_factory=datetime.now)
    author: str = "Respondent"
    content_kind: ContentKind | None = None
    text_content: str | None = None
    summary: list[str] = field(default_factory=list)
    stats: ExtractionStats = field(default_factory=ExtractionStats)
    page_count: int = 1
    failure_kind: FailureKind | None = None
    error_message: str | None = None


@dataclass
class UploadItem:
    """A file handed to the ingestion pipeline."""
    filename: str
    data: bytes
    declared_type: str = ""
    author: str = "Respondent"
    doc_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class TimelineEvent:
    """
    One dated fact in the case timeline.

    sources holds document ids and only ever grows when events merge.
    """
    date: str
    description: str
    sources: frozenset[str]
    severity: Severity = Severity.MEDIUM
    category: str = ""
    quote: str | None = None
    relevance: RelevanceTag | None = None

    def __post_init__(self):
        if not self.sources:
            raise ValueError("TimelineEvent requires at least one source document")
        if not isinstance(self.sources, frozenset):
            object.__setattr__(self, 'sources', frozenset(self.sources))


@dataclass
class Issue:
    category: str
    description: str
    source_doc: str
    severity: Severity = Severity.MEDIUM
    source_quote: str = ""


@dataclass
class Entity:
    name: str
    role: str
    source_doc: str
    sentiment: str = "Neutral"


@dataclass
class MedicalEvidence:
    date: str
    type: str
    value: str
    source_doc: str
    context: str = ""


@dataclass
class PolicyReference:
    policy_name: str
    compliance_status: str
    source_doc: str
    quote: str = ""


@dataclass
class AnalysisResult:
    """Structured facts extracted from one document by the oracle."""
    summary: list[str] = field(default_factory=list)
    timeline_events: list[TimelineEvent] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)
    entities: list[Entity] = field(default_factory=list)
    medical_evidence: list[MedicalEvidence] = field(default_factory=list)
    policy_references: list[PolicyReference] = field(default_factory=list)


@dataclass(frozen=True)
class CompletionEvent:
    """
    Terminal outcome of processing one UploadItem.

    Produced by pipeline tasks and consumed only by the CaseState reducer.
    """
    doc_id: str
    status: DocStatus
    content_kind: ContentKind | None = None
    text_content: str | None = None
    summary: tuple[str, ...] = ()
    stats: ExtractionStats | None = None
    analysis: AnalysisResult | None = None
    sanitized_pdf: bytes | None = None
    page_count: int | None = None
    failure_kind: FailureKind | None = None
    error_message: str | None = None

    def __post_init__(self):
        if not self.status.is_terminal:
            raise ValueError(f"CompletionEvent must carry a terminal status, got {self.status}")
        if self.status == DocStatus.ERROR and not self.error_message:
            object.__setattr__(self, 'error_message', "Unknown error during processing")


@dataclass
class Section:
    """Named grouping of documents. doc_ids may reference missing documents."""
    name: str
    doc_ids: list[str] = field(default_factory=list)
    summary: str = ""


@dataclass(frozen=True)
class ProcessingStarted:
    """Posted when an item takes a pool slot; moves QUEUED -> PROCESSING."""
    doc_id: str
