"""
Analysis Oracle interface.

The oracle is the external capability that reads evidence and returns
structured facts, transcribes audio and extracts text (OCR). The ingestion
pipeline only talks to this interface; OllamaOracle is the shipped
implementation and tests substitute fakes.

Raw oracle payloads are normalised by analysis_from_payload(), which
tolerates missing or malformed fields and tags every fact with the
document it came from.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from casebinder.models import (
    AnalysisResult,
    Entity,
    Issue,
    MedicalEvidence,
    PolicyReference,
    RelevanceTag,
    Severity,
    TimelineEvent,
)


class AnalysisOracle(ABC):
    """
    Abstract analysis capability.

    Implementations raise RetriableOracleError for transient failures and
    FatalOracleError for malformed requests or blocked content.
    """

    @abstractmethod
    async def analyze(
        self,
        content: bytes | str,
        declared_type: str,
        filename: str,
        doc_id: str,
    ) -> AnalysisResult | None:
        """
        Extract structured facts from one document.

        Args:
            content: Text, or raw bytes for PDF/image content.
            declared_type: MIME type of content ("text/plain" for text).
            filename: Original filename, for prompts and logging.
            doc_id: Document id used to attribute every extracted fact.

        Returns:
            AnalysisResult, or None when the response was absent or could
            not be parsed even after repair.
        """

    @abstractmethod
    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        """Transcribe audio to text."""

    @abstractmethod
    async def extract_text(self, content: bytes, mime_type: str) -> str:
        """Extract readable text (OCR) from a PDF or image."""


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def analysis_from_payload(payload: Any, doc_id: str) -> AnalysisResult | None:
    """
    Convert a parsed oracle JSON payload into an AnalysisResult.

    Args:
        payload: Parsed JSON (expected to be a dict).
        doc_id: Source document id stamped onto every fact.

    Returns:
        AnalysisResult, or None if payload is not a JSON object.
    """
    if not isinstance(payload, dict):
        return None

    summary = payload.get('summary')
    if isinstance(summary, str):
        summary = [summary]

    events = []
    for raw in _as_list(payload.get('timeline') or payload.get('timelineEvents')):
        if not isinstance(raw, dict):
            continue
        description = _text(raw.get('event') or raw.get('description'))
        if not description:
            continue
        events.append(TimelineEvent(
            date=_text(raw.get('date')),
            description=description,
            sources=frozenset({doc_id}),
            severity=Severity.coerce(raw.get('severity')),
            category=_text(raw.get('category')),
            quote=_text(raw.get('quote')) or None,
            relevance=RelevanceTag.coerce(raw.get('relevanceTag')),
        ))

    issues = [
        Issue(
            category=_text(raw.get('category')),
            description=_text(raw.get('description')),
            source_doc=doc_id,
            severity=Severity.coerce(raw.get('severity')),
            source_quote=_text(raw.get('sourceQuote') or raw.get('quote')),
        )
        for raw in _as_list(payload.get('issues')) if isinstance(raw, dict)
    ]
    entities = [
        Entity(
            name=_text(raw.get('name')),
            role=_text(raw.get('role')) or "Other",
            source_doc=doc_id,
            sentiment=_text(raw.get('sentiment')) or "Neutral",
        )
        for raw in _as_list(payload.get('entities')) if isinstance(raw, dict)
    ]
    medical = [
        MedicalEvidence(
            date=_text(raw.get('date')),
            type=_text(raw.get('type')),
            value=_text(raw.get('value')),
            source_doc=doc_id,
            context=_text(raw.get('context')),
        )
        for raw in _as_list(payload.get('medicalEvidence')) if isinstance(raw, dict)
    ]
    policies = [
        PolicyReference(
            policy_name=_text(raw.get('policyName')),
            compliance_status=_text(raw.get('complianceStatus')),
            source_doc=doc_id,
            quote=_text(raw.get('quote')),
        )
        for raw in _as_list(payload.get('policyReferences')) if isinstance(raw, dict)
    ]

    return AnalysisResult(
        summary=[_text(point) for point in _as_list(summary) if _text(point)],
        timeline_events=events,
        issues=issues,
        entities=entities,
        medical_evidence=medical,
        policy_references=policies,
    )
