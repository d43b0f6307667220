"""
Bundle Compiler - two-pass binder assembly.

The index has to cite the first page of every item, but those page numbers
depend on how long the index itself is and on how many pages each item
takes once laid out. The compiler therefore works in two passes:

Pass 1 (arena): lay every item out into a scratch PyMuPDF document and
    record its page count in an IndexEntry. A failing item is rolled back
    and replaced by a single "Error loading file" page.
Pass 2 (assembly): compute the index page count, assign start pages,
    write the cover and index, append the arena verbatim, then stamp
    "Page i of N" on every page.

Usage:
    compiler = BundleCompiler()
    result = compiler.compile(case.registry, case.sections, case_name="Smith v Acme")
    Path("bundle.pdf").write_bytes(result.pdf_bytes)
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

import fitz
from PIL import Image

from casebinder.config import (
    BODY_FONT_SIZE,
    BODY_LINE_HEIGHT,
    INDEX_LABEL_MAX_CHARS,
    INDEX_LINE_HEIGHT,
    INDEX_LINES_PER_PAGE,
    PAGE_HEIGHT,
    PAGE_MARGIN,
    PAGE_WIDTH,
    SECTION_HEADER_FONT_SIZE,
    STAMP_FONT_SIZE,
    TITLE_FONT_SIZE,
    get_setting,
)
from casebinder.errors import CompileError
from casebinder.extraction import resolve_content_kind, sanitize_pdf
from casebinder.logging_config import Timer, debug_log, info, warning
from casebinder.models import ContentKind, Document, Section
from casebinder.registry import DocumentRegistry

from .layout import (
    EntryKind,
    IndexEntry,
    assign_start_pages,
    compute_index_page_count,
    scale_to_fit,
    wrap_text,
)
from .ordering import CompileItem, build_compile_order

REGULAR_FONT = "helv"
BOLD_FONT = "hebo"
NO_TEXT_CONTENT = "(No text content extracted or file is audio)"
GREY = (0.4, 0.4, 0.4)


@dataclass
class BinderResult:
    """
    Compiled binder.

    Attributes:
        pdf_bytes: The binder as PDF bytes.
        entries: Index entries in binder order, with start pages assigned.
        index_page_count: Number of index pages after the cover.
        total_pages: Page count of the binder (N in "Page i of N").
    """
    pdf_bytes: bytes
    entries: list[IndexEntry] = field(default_factory=list)
    index_page_count: int = 1
    total_pages: int = 0


def _text_width(text: str) -> float:
    return fitz.get_text_length(text, fontname=REGULAR_FONT, fontsize=BODY_FONT_SIZE)


def _new_page(doc: fitz.Document) -> fitz.Page:
    return doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)


class BundleCompiler:
    """
    Compiles registry documents into one paginated, indexed PDF.

    Args:
        lines_per_index_page: Index capacity in line units.
        on_progress: Optional callback(message) for progress reporting.
    """

    def __init__(
        self,
        lines_per_index_page: int = INDEX_LINES_PER_PAGE,
        on_progress: Callable[[str], None] | None = None,
    ):
        self.lines_per_index_page = lines_per_index_page
        self.on_progress = on_progress

    def _progress(self, message: str) -> None:
        debug_log(f"[BUNDLE] {message}")
        if self.on_progress:
            self.on_progress(message)

    def compile(
        self,
        registry: DocumentRegistry,
        sections: list[Section] | None = None,
        case_name: str = "Untitled Case",
        generated_on: datetime | None = None,
    ) -> BinderResult:
        """
        Build the binder.

        Args:
            registry: Documents and their stored bytes.
            sections: Optional section layout; chronological order without.
            case_name: Printed on the cover page.
            generated_on: Date printed on the cover (defaults to now).

        Returns:
            BinderResult with the PDF bytes and the resolved index.
        """
        order = build_compile_order(registry, sections)
        info(f"[BUNDLE] Compiling {len(order)} items for '{case_name}'")

        arena = fitz.open()
        try:
            with Timer("Bundle pass 1 (layout)"):
                entries = self._layout_pass(arena, registry, order)
            with Timer("Bundle pass 2 (assembly)"):
                return self._assembly_pass(arena, entries, case_name, generated_on or datetime.now())
        finally:
            arena.close()

    # ------------------------------------------------------------------
    # Pass 1
    # ------------------------------------------------------------------

    def _layout_pass(
        self,
        arena: fitz.Document,
        registry: DocumentRegistry,
        order: list[CompileItem],
    ) -> list[IndexEntry]:
        entries: list[IndexEntry] = []
        for item in order:
            if item.kind == EntryKind.SECTION_HEADER:
                page = _new_page(arena)
                page.insert_text(
                    (PAGE_MARGIN, PAGE_HEIGHT / 2),
                    item.label.upper(),
                    fontname=BOLD_FONT,
                    fontsize=SECTION_HEADER_FONT_SIZE,
                )
                entries.append(IndexEntry(EntryKind.SECTION_HEADER, item.label, page_count=1))
                continue

            document = item.document
            self._progress(f"Processing: {document.filename}...")
            start_count = arena.page_count
            try:
                self._layout_document(arena, registry, document)
            except Exception as e:
                warning(f"[BUNDLE] Error processing {document.filename}: {e}")
                if arena.page_count > start_count:
                    arena.delete_pages(from_page=start_count, to_page=arena.page_count - 1)
                page = _new_page(arena)
                page.insert_text((PAGE_MARGIN, 142), f"Error loading file: {document.filename}", fontsize=12)

            page_count = arena.page_count - start_count
            if page_count == 0:
                _new_page(arena)
                page_count = 1

            entries.append(IndexEntry(
                EntryKind.DOCUMENT,
                document.filename,
                page_count=page_count,
                date=document.uploaded_at.strftime("%d/%m/%Y"),
            ))
        return entries

    def _layout_document(self, arena: fitz.Document, registry: DocumentRegistry, document: Document) -> None:
        kind = document.content_kind or resolve_content_kind(document.filename, document.declared_type)
        if kind == ContentKind.PDF:
            self._layout_pdf(arena, registry, document)
        elif kind == ContentKind.IMAGE:
            self._layout_image(arena, registry, document)
        else:
            self._layout_text(arena, document)

    def _layout_pdf(self, arena: fitz.Document, registry: DocumentRegistry, document: Document) -> None:
        data = registry.sanitized_pdf(document.id)
        if data is None:
            raw = registry.file_bytes(document.id)
            if raw is None:
                raise CompileError(f"No stored bytes for {document.filename}")
            data = sanitize_pdf(raw)
            if data is None:
                raise CompileError(f"{document.filename} could not be sanitized")
        with fitz.open(stream=data, filetype="pdf") as source:
            arena.insert_pdf(source)

    def _layout_image(self, arena: fitz.Document, registry: DocumentRegistry, document: Document) -> None:
        data = registry.file_bytes(document.id)
        if data is None:
            raise CompileError(f"No stored bytes for {document.filename}")
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
        box_width = PAGE_WIDTH - 2 * PAGE_MARGIN
        box_height = PAGE_HEIGHT - 2 * PAGE_MARGIN
        scaled_width, scaled_height = scale_to_fit(width, height, box_width, box_height)

        page = _new_page(arena)
        rect = fitz.Rect(PAGE_MARGIN, PAGE_MARGIN, PAGE_MARGIN + scaled_width, PAGE_MARGIN + scaled_height)
        page.insert_image(rect, stream=data)

    def _layout_text(self, arena: fitz.Document, document: Document) -> None:
        content = document.text_content or NO_TEXT_CONTENT
        max_width = PAGE_WIDTH - 2 * PAGE_MARGIN

        page = _new_page(arena)
        page.insert_text(
            (PAGE_MARGIN, PAGE_MARGIN),
            f"Document: {document.filename}",
            fontname=BOLD_FONT,
            fontsize=TITLE_FONT_SIZE,
        )
        y = PAGE_MARGIN + 30
        for line in wrap_text(content, _text_width, max_width):
            if y > PAGE_HEIGHT - PAGE_MARGIN:
                page = _new_page(arena)
                y = PAGE_MARGIN
            if line:
                page.insert_text((PAGE_MARGIN, y), line, fontname=REGULAR_FONT, fontsize=BODY_FONT_SIZE)
            y += BODY_LINE_HEIGHT

    # ------------------------------------------------------------------
    # Pass 2
    # ------------------------------------------------------------------

    def _assembly_pass(
        self,
        arena: fitz.Document,
        entries: list[IndexEntry],
        case_name: str,
        generated_on: datetime,
    ) -> BinderResult:
        self._progress("Assembling Master Bundle...")
        index_page_count = compute_index_page_count(entries, self.lines_per_index_page)
        expected_total = assign_start_pages(entries, index_page_count)

        binder = fitz.open()
        try:
            self._write_cover(binder, case_name, generated_on)
            self._progress("Generating Dynamic Index...")
            self._write_index(binder, entries, index_page_count)

            self._progress("Merging Evidence...")
            if arena.page_count:
                binder.insert_pdf(arena)

            total_pages = binder.page_count
            if total_pages != expected_total:
                warning(f"[BUNDLE] Binder has {total_pages} pages, index assumed {expected_total}")

            self._progress("Applying Bates Stamp...")
            for number, page in enumerate(binder, start=1):
                page.insert_text(
                    (page.rect.width - 100, page.rect.height - 20),
                    f"Page {number} of {total_pages}",
                    fontname=REGULAR_FONT,
                    fontsize=STAMP_FONT_SIZE,
                )

            pdf_bytes = binder.tobytes(garbage=3, deflate=True)
        finally:
            binder.close()

        info(f"[BUNDLE] Binder complete: {total_pages} pages, {index_page_count} index pages")
        return BinderResult(
            pdf_bytes=pdf_bytes,
            entries=entries,
            index_page_count=index_page_count,
            total_pages=total_pages,
        )

    def _write_cover(self, binder: fitz.Document, case_name: str, generated_on: datetime) -> None:
        cover = _new_page(binder)
        cover.insert_text((PAGE_MARGIN, 150), get_setting('binder_title'), fontname=BOLD_FONT, fontsize=24)
        cover.insert_text((PAGE_MARGIN, 200), f"Case: {case_name}", fontname=REGULAR_FONT, fontsize=18)
        cover.insert_text(
            (PAGE_MARGIN, 230),
            f"Generated: {generated_on.strftime('%d/%m/%Y')}",
            fontname=REGULAR_FONT,
            fontsize=12,
            color=GREY,
        )

    def _write_index(self, binder: fitz.Document, entries: list[IndexEntry], index_page_count: int) -> None:
        """
        Write exactly index_page_count index pages.

        A page breaks once it holds lines_per_index_page line units, so the
        rendered page count never exceeds the computed one; any shortfall is
        padded with blank index pages to keep start pages valid.
        """
        page = _new_page(binder)
        pages_written = 1
        page.insert_text((PAGE_MARGIN, 80), "INDEX OF DOCUMENTS", fontname=BOLD_FONT, fontsize=18)
        y = 120
        units_on_page = 0

        for entry in entries:
            if units_on_page >= self.lines_per_index_page:
                page = _new_page(binder)
                pages_written += 1
                y = PAGE_MARGIN
                units_on_page = 0

            if entry.kind == EntryKind.SECTION_HEADER:
                y += INDEX_LINE_HEIGHT / 2
                page.insert_text((PAGE_MARGIN, y), entry.label.upper(), fontname=BOLD_FONT, fontsize=11)
            else:
                label = entry.label
                if len(label) > INDEX_LABEL_MAX_CHARS:
                    label = label[:INDEX_LABEL_MAX_CHARS] + "..."
                page.insert_text((PAGE_MARGIN, y), f"p.{entry.start_page}", fontname=REGULAR_FONT, fontsize=10)
                page.insert_text((100, y), label, fontname=REGULAR_FONT, fontsize=10)
                page.insert_text((450, y), entry.date, fontname=REGULAR_FONT, fontsize=10)

            y += INDEX_LINE_HEIGHT
            units_on_page += entry.line_units

        while pages_written < index_page_count:
            _new_page(binder)
            pages_written += 1
