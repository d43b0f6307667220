"""
Case state and its single serializing reducer.

CaseState owns every piece of shared mutable case data: the document
registry, the canonical timeline and the accumulated issues, entities,
medical evidence and policy references. Pipeline tasks hand their
CompletionEvents (and ProcessingStarted notices) to an asyncio.Queue;
consume() is the only coroutine
that reads that queue and the only code that mutates case state, so
interleaved completions can never lose updates.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable

from casebinder.logging_config import debug_log, info
from casebinder.models import (
    CompletionEvent,
    Entity,
    Issue,
    MedicalEvidence,
    PolicyReference,
    ProcessingStarted,
    Section,
    TimelineEvent,
)
from casebinder.timeline import merge_timeline

from .document_registry import DocumentRegistry

# Sentinel that tells consume() the producer side has finished
STOP = object()


@dataclass
class CaseState:
    """All data belonging to one case."""
    case_name: str = "Untitled Case"
    registry: DocumentRegistry = field(default_factory=DocumentRegistry)
    timeline: list[TimelineEvent] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)
    entities: list[Entity] = field(default_factory=list)
    medical_evidence: list[MedicalEvidence] = field(default_factory=list)
    policy_references: list[PolicyReference] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)

    def apply(self, event: CompletionEvent | ProcessingStarted) -> bool:
        """
        Reduce one pipeline event into the case.

        Facts are folded in only when the registry accepted the event, so a
        duplicated event cannot double-count issues or entities.
        """
        if isinstance(event, ProcessingStarted):
            return self.registry.mark_processing(event.doc_id)

        if not self.registry.apply(event):
            return False

        analysis = event.analysis
        if analysis is not None:
            if analysis.timeline_events:
                self.timeline = merge_timeline(self.timeline, analysis.timeline_events)
            self.issues.extend(analysis.issues)
            self.entities.extend(analysis.entities)
            self.medical_evidence.extend(analysis.medical_evidence)
            self.policy_references.extend(analysis.policy_references)

        document = self.registry.get(event.doc_id)
        debug_log(
            f"[REDUCER] {document.filename} -> {event.status.value}"
            + (f" ({event.failure_kind.value}: {event.error_message})" if event.failure_kind else "")
        )
        return True

    async def consume(
        self,
        events: asyncio.Queue,
        on_applied: Callable[[CompletionEvent | ProcessingStarted], None] | None = None,
    ) -> int:
        """
        Apply events from the queue until the STOP sentinel arrives.

        Returns:
            Number of events applied.
        """
        applied = 0
        while True:
            event = await events.get()
            try:
                if event is STOP:
                    break
                if self.apply(event):
                    applied += 1
                    if on_applied:
                        on_applied(event)
            finally:
                events.task_done()
        info(f"[REDUCER] Applied {applied} completion events")
        return applied
