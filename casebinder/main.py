"""
CaseBinder - Command Line Entry Point

Ingests evidence files with the Ollama oracle, prints a per-document status
summary and writes the compiled binder PDF.

Examples:
  # Chronological binder
  casebinder grievance.pdf notes.docx call.m4a --case-name "Smith v Acme" --output bundle.pdf

  # Sectioned binder, saved for later
  casebinder *.pdf --case-name "Smith v Acme" --output bundle.pdf \\
      --sections sections.yaml --save-case smith-v-acme

  # Debug mode (verbose logging)
  DEBUG=true casebinder letter.pdf --case-name Test --output out.pdf
"""

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path

import yaml

from casebinder.ai import OllamaOracle
from casebinder.bundle import BundleCompiler
from casebinder.config import get_setting
from casebinder.ingestion import IngestionPipeline
from casebinder.logging_config import close_debug_log, info, warning
from casebinder.models import DocStatus, Section, UploadItem
from casebinder.registry import CaseState
from casebinder.storage import CaseSnapshot, CaseStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="casebinder",
        description="CaseBinder - Build an indexed, page-stamped evidence bundle from case files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Sections file (YAML):
  - name: Correspondence
    summary: Letters exchanged before the grievance
    files: [grievance.pdf, reply.docx]
  - name: Medical
    files: [fit_note.jpg]
        """
    )
    parser.add_argument('files', nargs='+', help='Evidence files (PDF, images, audio, DOCX, RTF, text)')
    parser.add_argument('--case-name', required=True, help='Case name printed on the cover page')
    parser.add_argument('--output', required=True, help='Path of the binder PDF to write')
    parser.add_argument(
        '--concurrency',
        type=int,
        default=None,
        help=f"Files processed at once (default: {get_setting('upload_concurrency')})"
    )
    parser.add_argument('--sections', default=None, help='YAML file describing binder sections')
    parser.add_argument(
        '--author',
        default='Respondent',
        choices=['Claimant', 'Respondent'],
        help='Classification tag applied to every file (default: Respondent)'
    )
    parser.add_argument('--save-case', metavar='ID', default=None, help='Save a case snapshot under this id')
    return parser


def read_sections_file(path: Path) -> list[dict]:
    """
    Read and validate a sections YAML file.

    Raises:
        ValueError: If the file is not a list of mappings, each with a
            non-empty name and a list of filenames.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, encoding='utf-8') as f:
        raw = yaml.safe_load(f) or []
    if not isinstance(raw, list):
        raise ValueError(f"{path}: expected a list of sections")

    for position, entry in enumerate(raw, start=1):
        if not isinstance(entry, dict):
            raise ValueError(f"{path}: section {position} must be a mapping with a name")
        name = entry.get('name')
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"{path}: section {position} has no name")
        files = entry.get('files', [])
        if not isinstance(files, list) or not all(isinstance(filename, str) for filename in files):
            raise ValueError(f"{path}: section '{name}' files must be a list of filenames")
    return raw


def resolve_sections(entries: list[dict], ids_by_filename: dict[str, str]) -> list[Section]:
    """
    Turn validated section entries into Sections of document ids.

    Filenames that match no input file keep a placeholder id, which the
    compiler skips as a missing reference.
    """
    sections = []
    for entry in entries:
        doc_ids = []
        for filename in entry.get('files', []):
            doc_id = ids_by_filename.get(filename)
            if doc_id is None:
                warning(f"Section '{entry['name']}' lists unknown file {filename}")
                doc_id = f"missing:{filename}"
            doc_ids.append(doc_id)
        sections.append(Section(name=entry['name'], doc_ids=doc_ids, summary=str(entry.get('summary') or '')))
    return sections


def load_sections(path: Path, ids_by_filename: dict[str, str]) -> list[Section]:
    """Read a sections YAML file and resolve filenames to document ids."""
    return resolve_sections(read_sections_file(path), ids_by_filename)


def read_items(paths: list[str], author: str) -> list[UploadItem]:
    items = []
    for file_path in paths:
        path = Path(file_path)
        declared_type, _ = mimetypes.guess_type(path.name)
        items.append(UploadItem(
            filename=path.name,
            data=path.read_bytes(),
            declared_type=declared_type or '',
            author=author,
        ))
    return items


def print_summary(case: CaseState) -> None:
    print("\n" + "=" * 60)
    print("PROCESSING SUMMARY")
    print("=" * 60)

    for document in case.registry:
        status_symbol = {
            DocStatus.READY: '[OK]',
            DocStatus.ERROR: '[ERROR]',
        }.get(document.status, '[?]')
        print(f"\n{status_symbol} {document.filename}")
        print(f"  Status: {document.status.value.upper()}")
        if document.content_kind:
            print(f"  Type: {document.content_kind.value}")
        print(f"  Size: {document.size_bytes / (1024 * 1024):.2f} MB")
        if document.status == DocStatus.ERROR:
            print(f"  Error ({document.failure_kind.value if document.failure_kind else 'unknown'}): "
                  f"{document.error_message}")
        else:
            stats = document.stats
            print(f"  Found: {stats.event_count} events, {stats.issue_count} issues, "
                  f"{stats.entity_count} people")

    ready = case.registry.count(DocStatus.READY)
    errors = case.registry.count(DocStatus.ERROR)
    print("\n" + "=" * 60)
    print(f"Total: {len(case.registry)} | Ready: {ready} | Errors: {errors} | "
          f"Timeline events: {len(case.timeline)}")
    print("=" * 60)


async def run(args: argparse.Namespace) -> int:
    items = read_items(args.files, args.author)
    case = CaseState(case_name=args.case_name)

    oracle = OllamaOracle()
    if not oracle.check_connection():
        warning(f"Ollama is not reachable at {oracle.api_base}; analysis will fail for every file")

    pipeline = IngestionPipeline(oracle, case=case, max_workers=args.concurrency)
    await pipeline.run(items)

    section_entries = getattr(args, 'section_entries', None)
    if section_entries is None and args.sections:
        section_entries = read_sections_file(Path(args.sections))
    if section_entries:
        ids_by_filename = {item.filename: item.doc_id for item in items}
        case.sections = resolve_sections(section_entries, ids_by_filename)

    print_summary(case)

    compiler = BundleCompiler(on_progress=info)
    result = await asyncio.to_thread(compiler.compile, case.registry, case.sections, case.case_name)
    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(result.pdf_bytes)
    print(f"\nBinder written to {output} ({result.total_pages} pages)")

    if args.save_case:
        path = CaseStore().save(args.save_case, CaseSnapshot.from_case(case))
        print(f"Case saved to {path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Console script entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    missing = [path for path in args.files if not Path(path).is_file()]
    if missing:
        parser.error(f"File(s) not found: {', '.join(missing)}")
    if args.concurrency is not None and args.concurrency < 1:
        parser.error("--concurrency must be at least 1")
    if args.sections:
        # Checked before any file is sent for analysis
        try:
            args.section_entries = read_sections_file(Path(args.sections))
        except (OSError, ValueError, yaml.YAMLError) as e:
            parser.error(f"Invalid sections file: {e}")

    try:
        return asyncio.run(run(args))
    finally:
        close_debug_log()


if __name__ == "__main__":
    sys.exit(main())
