"""
CaseBinder Configuration Module
Centralized configuration for the application.
"""

import os
from pathlib import Path

import yaml

# Debug Mode Configuration
DEBUG_MODE = os.environ.get('DEBUG', 'false').lower() == 'true'

# Application Paths
APP_NAME = "CaseBinder"
APPDATA_DIR = Path(os.environ.get('APPDATA', os.path.expanduser('~/.config'))) / APP_NAME
LOGS_DIR = APPDATA_DIR / "logs"
CASES_DIR = APPDATA_DIR / "cases"

# Ensure directories exist
for directory in [APPDATA_DIR, LOGS_DIR, CASES_DIR]:
    directory.mkdir(parents=True, exist_ok=True)

# File Processing Limits
# 12MB keeps base64 overhead (1.33x) inside a 20MB oracle payload limit
MAX_FILE_SIZE_MB = 12
# Inline transcription limit (~15MB raw, 20MB base64). Only reachable when
# max_file_size_mb is raised in casebinder.yaml
AUDIO_PAYLOAD_CEILING_MB = 15
MIN_DIGITAL_TEXT_CHARS = 50  # Below this, PDF raw text is requested from the oracle

# Ingestion Pool
UPLOAD_CONCURRENCY = 3
PROGRESS_THROTTLE_MS = 100

# Timeline Deduplication
# Signature is (date, casefolded description[:prefix]). Coarse on purpose;
# a longer prefix under-merges rephrased events, a shorter one over-merges.
TIMELINE_SIGNATURE_PREFIX = 20

# Oracle Retry Policy
ORACLE_MAX_ATTEMPTS = 3
ORACLE_RETRY_BASE_SECONDS = 1.0
ORACLE_RETRY_MAX_SECONDS = 30.0

# Oracle Endpoints (Ollama for analysis/OCR, OpenAI-compatible server for audio)
OLLAMA_API_BASE = "http://localhost:11434"
OLLAMA_MODEL_NAME = "gemma3:4b"
OLLAMA_TIMEOUT_SECONDS = 600
OLLAMA_CONTEXT_WINDOW = 8192
TRANSCRIPTION_API_BASE = "http://localhost:8000"
TRANSCRIPTION_MODEL_NAME = "whisper-1"
ANALYSIS_MAX_INPUT_CHARS = 30000

# OCR Configuration
# Scanned PDF pages are rendered to PNG and sent to the vision model
OCR_DPI = 150
OCR_MAX_PAGES = 10

# Binder Page Geometry (points, A4 portrait)
PAGE_WIDTH = 595
PAGE_HEIGHT = 842
PAGE_MARGIN = 50
BODY_FONT_SIZE = 10
BODY_LINE_HEIGHT = 12
TITLE_FONT_SIZE = 14
SECTION_HEADER_FONT_SIZE = 24
STAMP_FONT_SIZE = 10

# Index Layout
INDEX_LINE_HEIGHT = 20
INDEX_LINES_PER_PAGE = (PAGE_HEIGHT - 150) // INDEX_LINE_HEIGHT
INDEX_LABEL_MAX_CHARS = 60
BINDER_TITLE = "EVIDENCE BUNDLE"

# Logging Configuration
LOG_FILE = LOGS_DIR / "processing.log"
DEBUG_FLOW_FILE = LOGS_DIR / "debug_flow.txt"
LOG_FORMAT = "[%(levelname)s %(asctime)s] %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

# --- Optional YAML Overrides ---
SETTINGS_FILE = Path(os.environ.get(
    'CASEBINDER_CONFIG',
    Path(__file__).parent.parent / "config" / "casebinder.yaml"
))

# Only these keys may be overridden from the settings file
OVERRIDABLE_SETTINGS = {
    'max_file_size_mb': MAX_FILE_SIZE_MB,
    'audio_payload_ceiling_mb': AUDIO_PAYLOAD_CEILING_MB,
    'upload_concurrency': UPLOAD_CONCURRENCY,
    'timeline_signature_prefix': TIMELINE_SIGNATURE_PREFIX,
    'oracle_max_attempts': ORACLE_MAX_ATTEMPTS,
    'oracle_retry_base_seconds': ORACLE_RETRY_BASE_SECONDS,
    'ollama_api_base': OLLAMA_API_BASE,
    'ollama_model_name': OLLAMA_MODEL_NAME,
    'transcription_api_base': TRANSCRIPTION_API_BASE,
    'binder_title': BINDER_TITLE,
}

SETTINGS = {}


def load_settings(settings_file: Path | None = None) -> dict:
    """
    Load user overrides from a YAML settings file.

    Unknown keys are ignored. A missing or unreadable file leaves the
    defaults in place.

    Args:
        settings_file: Path to the YAML file (defaults to SETTINGS_FILE).

    Returns:
        dict of effective overrides that were applied.
    """
    global SETTINGS
    path = Path(settings_file) if settings_file else SETTINGS_FILE
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"expected a mapping at top level, got {type(data).__name__}")
        SETTINGS = {key: value for key, value in data.items() if key in OVERRIDABLE_SETTINGS}
        if DEBUG_MODE and SETTINGS:
            from casebinder.logging_config import debug_log
            debug_log(f"[Config] Loaded {len(SETTINGS)} overrides from {path}")
    except FileNotFoundError:
        SETTINGS = {}
    except Exception as e:
        from casebinder.logging_config import debug_log
        debug_log(f"[Config] ERROR: Failed to load or parse settings file {path}: {e}")
        SETTINGS = {}
    return SETTINGS


def get_setting(name: str):
    """
    Return the effective value of an overridable setting.

    Args:
        name: Lower-case setting key (e.g. 'upload_concurrency').

    Raises:
        KeyError: If the name is not an overridable setting.
    """
    if name not in OVERRIDABLE_SETTINGS:
        raise KeyError(f"Unknown setting: {name}")
    return SETTINGS.get(name, OVERRIDABLE_SETTINGS[name])


# Load overrides on module import
load_settings()
