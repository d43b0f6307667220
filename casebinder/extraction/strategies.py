"""
Content type resolution via an ordered capability-dispatch table.

Each entry pairs a predicate over (filename, declared MIME type) with the
ContentKind it selects. Entries are consulted in order and the first match
wins, so supporting a new format means adding one row rather than another
branch. Declared types from uploads are unreliable (empty for many files,
wrong for some audio containers), so predicates also look at extensions.

Usage:
    kind = resolve_content_kind("interview.m4a", "")
    # ContentKind.AUDIO
    mime = resolve_audio_mime("interview.m4a", "audio/x-m4a")
    # "audio/mp4"
"""

from pathlib import PurePath
from typing import Callable

from casebinder.errors import ValidationError
from casebinder.models import ContentKind

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.webp', '.heic', '.gif', '.bmp', '.tif', '.tiff'}
AUDIO_EXTENSIONS = {'.mp3', '.wav', '.m4a', '.mpga', '.mpeg', '.ogg', '.aac', '.webm', '.flac'}
WORD_EXTENSIONS = {'.docx', '.rtf'}
TEXT_EXTENSIONS = {'.txt', '.md', '.csv', '.log', '.eml', '.json', '.html', '.htm', '.xml'}

WORD_MIME_TYPES = {
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'application/rtf',
    'text/rtf',
}

# Extensions whose declared MIME type is known to be unreliable
AUDIO_MIME_OVERRIDES = {
    '.m4a': 'audio/mp4',
    '.mp3': 'audio/mp3',
    '.wav': 'audio/wav',
    '.aac': 'audio/aac',
}

AUDIO_MIME_FALLBACKS = {
    '.ogg': 'audio/ogg',
    '.mpeg': 'audio/mpeg',
    '.mpga': 'audio/mpeg',
    '.webm': 'audio/webm',
    '.flac': 'audio/flac',
}

DEFAULT_AUDIO_MIME = 'audio/mp3'

Predicate = Callable[[str, str], bool]


def _ext(filename: str) -> str:
    return PurePath(filename).suffix.lower()


def _is_pdf(filename: str, declared_type: str) -> bool:
    return declared_type == 'application/pdf' or _ext(filename) == '.pdf'


def _is_word(filename: str, declared_type: str) -> bool:
    return declared_type in WORD_MIME_TYPES or _ext(filename) in WORD_EXTENSIONS


def _is_image(filename: str, declared_type: str) -> bool:
    return declared_type.startswith('image/') or _ext(filename) in IMAGE_EXTENSIONS


def _is_audio(filename: str, declared_type: str) -> bool:
    return declared_type.startswith('audio/') or _ext(filename) in AUDIO_EXTENSIONS


def _is_text(filename: str, declared_type: str) -> bool:
    return declared_type.startswith('text/') or _ext(filename) in TEXT_EXTENSIONS or not _ext(filename)


CAPABILITY_TABLE: list[tuple[Predicate, ContentKind]] = [
    (_is_pdf, ContentKind.PDF),
    (_is_word, ContentKind.WORD),
    (_is_image, ContentKind.IMAGE),
    (_is_audio, ContentKind.AUDIO),
    (_is_text, ContentKind.TEXT),
]


def resolve_content_kind(
    filename: str,
    declared_type: str | None,
    table: list[tuple[Predicate, ContentKind]] = CAPABILITY_TABLE,
) -> ContentKind:
    """
    Determine the effective content type of an upload.

    Args:
        filename: Original filename (extension is inspected).
        declared_type: MIME type reported at upload; may be empty.
        table: Ordered (predicate, kind) pairs; first match wins.

    Raises:
        ValidationError: If no entry matches (unsupported type).
    """
    declared = (declared_type or '').strip().lower()
    for predicate, kind in table:
        if predicate(filename, declared):
            return kind
    raise ValidationError(
        f"Unsupported file type: {_ext(filename) or declared or 'unknown'}. "
        "Supported formats: PDF, images, audio, DOCX, RTF, plain text"
    )


def resolve_audio_mime(filename: str, declared_type: str | None) -> str:
    """
    Pick the MIME type to send with audio for transcription.

    Extension overrides win over the declared type, which wins over the
    generic extension fallback table.
    """
    ext = _ext(filename)
    if ext in AUDIO_MIME_OVERRIDES:
        return AUDIO_MIME_OVERRIDES[ext]
    declared = (declared_type or '').strip().lower()
    if declared.startswith('audio/'):
        return declared
    return AUDIO_MIME_FALLBACKS.get(ext, DEFAULT_AUDIO_MIME)


def resolve_image_mime(filename: str, declared_type: str | None) -> str:
    declared = (declared_type or '').strip().lower()
    if declared.startswith('image/'):
        return declared
    ext = _ext(filename)
    if ext in ('.jpg', '.jpeg'):
        return 'image/jpeg'
    if ext in ('.tif', '.tiff'):
        return 'image/tiff'
    return f"image/{ext.lstrip('.') or 'jpeg'}"
