"""
Utility Modules for CaseBinder

Re-exports the logging helpers so extraction and bundle code can write:
    from casebinder.utils import debug, info, warning, error, Timer

Logging itself lives in casebinder/logging_config.py.
"""

from casebinder.logging_config import (
    DEBUG_MODE,
    Timer,
    critical,
    debug,
    debug_log,
    error,
    info,
    warning,
)

__all__ = [
    'debug',
    'debug_log',
    'info',
    'warning',
    'error',
    'critical',
    'Timer',
    'DEBUG_MODE',
]
