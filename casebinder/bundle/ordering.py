"""
Binder ordering policy.

With sections, the binder follows them: each section's header, then its
documents in listed order. Without sections, documents are ordered by
upload time. The order is computed once and shared by both compiler
passes, so the index always describes exactly what was laid out.

plan_binder() estimates the same layout before anything is rendered,
using each document's recorded page count.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from casebinder.config import INDEX_LINES_PER_PAGE
from casebinder.logging_config import debug_log
from casebinder.models import Document, Section
from casebinder.registry import DocumentRegistry

from .layout import EntryKind, IndexEntry, assign_start_pages, compute_index_page_count


@dataclass(frozen=True)
class CompileItem:
    """A section header marker or a document, in binder order."""
    kind: EntryKind
    label: str
    document: Document | None = None


def build_compile_order(
    registry: DocumentRegistry,
    sections: list[Section] | None = None,
) -> list[CompileItem]:
    """
    Resolve the sequence of items for the compiler.

    Section references to documents that are not in the registry are
    dropped (and logged); they never produce an index entry.
    """
    if not sections:
        documents = sorted(registry.documents(), key=lambda doc: doc.uploaded_at)
        return [CompileItem(EntryKind.DOCUMENT, doc.filename, doc) for doc in documents]

    order: list[CompileItem] = []
    for section in sections:
        order.append(CompileItem(EntryKind.SECTION_HEADER, section.name))
        for doc_id in section.doc_ids:
            document = registry.get(doc_id)
            if document is None:
                debug_log(f"[BUNDLE] Section '{section.name}' references missing document {doc_id}; skipped")
                continue
            order.append(CompileItem(EntryKind.DOCUMENT, document.filename, document))
    return order


@dataclass
class BinderPlan:
    """Planned page ranges for a binder that has not been compiled yet."""
    entries: list[IndexEntry] = field(default_factory=list)
    index_page_count: int = 1
    total_pages: int = 0


def plan_binder(
    registry: DocumentRegistry,
    sections: list[Section] | None = None,
    lines_per_index_page: int = INDEX_LINES_PER_PAGE,
) -> BinderPlan:
    """
    Plan start pages without rendering anything.

    Headers take one page; documents take their recorded page_count
    (at least 1). Text and audio documents always plan as a single page,
    so the compiled binder can run longer than the plan.
    """
    entries = []
    for item in build_compile_order(registry, sections):
        if item.document is None:
            entries.append(IndexEntry(item.kind, item.label))
            continue
        entries.append(IndexEntry(
            item.kind,
            item.label,
            page_count=max(1, item.document.page_count),
            date=item.document.uploaded_at.strftime("%d/%m/%Y"),
        ))

    index_page_count = compute_index_page_count(entries, lines_per_index_page)
    total_pages = assign_start_pages(entries, index_page_count)
    return BinderPlan(entries, index_page_count, total_pages)
