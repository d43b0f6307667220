"""
Case Store - JSON snapshots of case state.

A snapshot holds everything the pipeline learned about a case (document
records, timeline, issues, entities, medical evidence, policy references
and sections) but not the uploaded file bytes. Snapshots live one file
per case in CASES_DIR (or a directory given by the caller).

Missing or corrupted snapshot files load as None; they are logged and
never raised, so a damaged file cannot stop the application.
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from casebinder.config import CASES_DIR
from casebinder.logging_config import debug_log, info
from casebinder.models import (
    ContentKind,
    DocStatus,
    Document,
    Entity,
    ExtractionStats,
    FailureKind,
    Issue,
    MedicalEvidence,
    PolicyReference,
    RelevanceTag,
    Section,
    Severity,
    TimelineEvent,
)
from casebinder.registry import CaseState, DocumentRegistry

SNAPSHOT_VERSION = 1
_CASE_ID = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.-]*$')


def _document_to_dict(document: Document) -> dict[str, Any]:
    data = asdict(document)
    data['status'] = document.status.value
    data['uploaded_at'] = document.uploaded_at.isoformat()
    data['content_kind'] = document.content_kind.value if document.content_kind else None
    data['failure_kind'] = document.failure_kind.value if document.failure_kind else None
    return data


def _document_from_dict(data: dict[str, Any]) -> Document:
    return Document(
        id=data['id'],
        filename=data['filename'],
        declared_type=data.get('declared_type', ''),
        status=DocStatus(data.get('status', DocStatus.QUEUED.value)),
        size_bytes=data.get('size_bytes', 0),
        uploaded_at=datetime.fromisoformat(data['uploaded_at']),
        author=data.get('author', 'Respondent'),
        content_kind=ContentKind(data['content_kind']) if data.get('content_kind') else None,
        text_content=data.get('text_content'),
        summary=list(data.get('summary', [])),
        stats=ExtractionStats(**data.get('stats', {})),
        page_count=data.get('page_count', 1),
        failure_kind=FailureKind(data['failure_kind']) if data.get('failure_kind') else None,
        error_message=data.get('error_message'),
    )


def _event_to_dict(event: TimelineEvent) -> dict[str, Any]:
    return {
        'date': event.date,
        'description': event.description,
        'sources': sorted(event.sources),
        'severity': event.severity.value,
        'category': event.category,
        'quote': event.quote,
        'relevance': event.relevance.value if event.relevance else None,
    }


def _event_from_dict(data: dict[str, Any]) -> TimelineEvent:
    return TimelineEvent(
        date=data['date'],
        description=data['description'],
        sources=frozenset(data['sources']),
        severity=Severity.coerce(data.get('severity')),
        category=data.get('category', ''),
        quote=data.get('quote'),
        relevance=RelevanceTag.coerce(data.get('relevance')),
    )


def _record_to_dict(record) -> dict[str, Any]:
    data = asdict(record)
    if isinstance(getattr(record, 'severity', None), Severity):
        data['severity'] = record.severity.value
    return data


def _issue_from_dict(data: dict[str, Any]) -> Issue:
    return Issue(**{**data, 'severity': Severity.coerce(data.get('severity'))})


@dataclass
class CaseSnapshot:
    """Serializable state of one case (file bytes excluded)."""
    case_name: str
    documents: list[Document] = field(default_factory=list)
    timeline: list[TimelineEvent] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)
    entities: list[Entity] = field(default_factory=list)
    medical_evidence: list[MedicalEvidence] = field(default_factory=list)
    policy_references: list[PolicyReference] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)
    saved_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_case(cls, case: CaseState) -> CaseSnapshot:
        return cls(
            case_name=case.case_name,
            documents=case.registry.documents(),
            timeline=list(case.timeline),
            issues=list(case.issues),
            entities=list(case.entities),
            medical_evidence=list(case.medical_evidence),
            policy_references=list(case.policy_references),
            sections=list(case.sections),
        )

    def to_case(self) -> CaseState:
        """Rebuild a CaseState. Restored documents carry no file bytes."""
        registry = DocumentRegistry()
        for document in self.documents:
            registry.add_document(document)
        return CaseState(
            case_name=self.case_name,
            registry=registry,
            timeline=list(self.timeline),
            issues=list(self.issues),
            entities=list(self.entities),
            medical_evidence=list(self.medical_evidence),
            policy_references=list(self.policy_references),
            sections=list(self.sections),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            'version': SNAPSHOT_VERSION,
            'case_name': self.case_name,
            'saved_at': self.saved_at.isoformat(),
            'documents': [_document_to_dict(doc) for doc in self.documents],
            'timeline': [_event_to_dict(event) for event in self.timeline],
            'issues': [_record_to_dict(issue) for issue in self.issues],
            'entities': [asdict(entity) for entity in self.entities],
            'medical_evidence': [asdict(item) for item in self.medical_evidence],
            'policy_references': [asdict(ref) for ref in self.policy_references],
            'sections': [asdict(section) for section in self.sections],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CaseSnapshot:
        return cls(
            case_name=data['case_name'],
            documents=[_document_from_dict(doc) for doc in data.get('documents', [])],
            timeline=[_event_from_dict(event) for event in data.get('timeline', [])],
            issues=[_issue_from_dict(issue) for issue in data.get('issues', [])],
            entities=[Entity(**entity) for entity in data.get('entities', [])],
            medical_evidence=[MedicalEvidence(**item) for item in data.get('medical_evidence', [])],
            policy_references=[PolicyReference(**ref) for ref in data.get('policy_references', [])],
            sections=[Section(**section) for section in data.get('sections', [])],
            saved_at=datetime.fromisoformat(data['saved_at']) if data.get('saved_at') else datetime.now(),
        )


class CaseStore:
    """
    Saves and loads CaseSnapshots as <case_id>.json files.

    Args:
        directory: Folder holding the snapshot files (defaults to CASES_DIR).
    """

    def __init__(self, directory: Path | None = None):
        self.directory = Path(directory) if directory is not None else CASES_DIR

    def _path(self, case_id: str) -> Path:
        if not _CASE_ID.match(case_id):
            raise ValueError(f"Invalid case id: {case_id!r}")
        return self.directory / f"{case_id}.json"

    def save(self, case_id: str, snapshot: CaseSnapshot) -> Path:
        """
        Write a snapshot, replacing any previous one for the same id.

        Raises:
            ValueError: If case_id contains path separators or other
                        characters outside [A-Za-z0-9_.-].
        """
        path = self._path(case_id)
        self.directory.mkdir(parents=True, exist_ok=True)
        snapshot.saved_at = datetime.now()

        temp_path = path.with_suffix('.json.tmp')
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(snapshot.to_dict(), f, indent=2)
        temp_path.replace(path)

        info(f"[STORE] Saved case '{snapshot.case_name}' as {case_id}")
        return path

    def load(self, case_id: str) -> CaseSnapshot | None:
        """Load a snapshot, or None if it is missing or unreadable."""
        path = self._path(case_id)
        if not path.exists():
            debug_log(f"[STORE] No saved case {case_id}")
            return None
        try:
            with open(path, encoding='utf-8') as f:
                return CaseSnapshot.from_dict(json.load(f))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            debug_log(f"[STORE] Could not load case {case_id}: {e}")
            return None

    def list_cases(self) -> list[str]:
        """Ids of all saved cases, sorted."""
        if not self.directory.exists():
            return []
        return sorted(path.stem for path in self.directory.glob('*.json'))

    def delete(self, case_id: str) -> bool:
        """Delete a saved case. Returns False if it did not exist."""
        path = self._path(case_id)
        if not path.exists():
            return False
        path.unlink()
        info(f"[STORE] Deleted case {case_id}")
        return True
