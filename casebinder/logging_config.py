"""
Unified Logging Configuration for CaseBinder

This module provides a centralized logging system that combines:
- Console output with timestamps
- File output to debug_flow.txt (audit trail of a processing session)
- File output to logs/processing.log
- Performance timing via Timer context manager

All modules should import logging functions from this module:
    from casebinder.logging_config import debug_log, info, warning, error, Timer

The module respects DEBUG_MODE from config:
- DEBUG_MODE=True: All messages shown on console, verbose timing
- DEBUG_MODE=False: Only warnings/errors shown on console

Messages are prefixed with a bracketed component tag, e.g.
"[PIPELINE] 5 items queued" or "[BUNDLE] Pass 1 complete".
"""

import logging
import sys
import threading
import time
from datetime import datetime

from casebinder.config import DEBUG_FLOW_FILE, DEBUG_MODE, LOG_DATE_FORMAT, LOG_FILE, LOG_FORMAT

# =============================================================================
# File Logger Setup (debug_flow.txt)
# =============================================================================

class _DebugFileLogger:
    """
    Manages the debug_flow.txt file for detailed debugging output.

    This singleton writes all debug messages to a file regardless of DEBUG_MODE.
    Writes are serialized because oracle calls run in worker threads.
    """

    _instance = None
    _log_file = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._initialize_log_file()
        return cls._instance

    @classmethod
    def _initialize_log_file(cls):
        """Create and initialize the debug log file."""
        try:
            cls._log_file = open(DEBUG_FLOW_FILE, 'w', encoding='utf-8')
        except OSError:
            cls._log_file = None
            return
        cls._log_file.write("=== CaseBinder Debug Log ===\n")
        cls._log_file.write(f"Started: {datetime.now().isoformat()}\n")
        cls._log_file.write(f"DEBUG_MODE: {DEBUG_MODE}\n")
        cls._log_file.write("=" * 60 + "\n\n")
        cls._log_file.flush()

    def write(self, message: str):
        """Write message to the debug log file."""
        with self._lock:
            if self._log_file:
                timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
                self._log_file.write(f"[{timestamp}] {message}\n")
                self._log_file.flush()

    def close(self):
        """Close the debug log file gracefully."""
        with self._lock:
            if self._log_file:
                self._log_file.write(f"\n{'=' * 60}\n")
                self._log_file.write(f"Ended: {datetime.now().isoformat()}\n")
                self._log_file.close()
                type(self)._log_file = None


_debug_file_logger = _DebugFileLogger()


# =============================================================================
# Standard Python Logging Setup
# =============================================================================

def _setup_standard_logging() -> logging.Logger:
    """
    Configure the standard Python logging framework.

    Returns:
        Configured logger instance for CaseBinder
    """
    logger = logging.getLogger('CaseBinder')
    logger.setLevel(logging.DEBUG if DEBUG_MODE else logging.INFO)

    # Prevent duplicate handlers if called multiple times
    if logger.handlers:
        return logger

    try:
        file_handler = logging.FileHandler(LOG_FILE, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        logger.addHandler(file_handler)
    except OSError:
        pass  # Log directory not writable; console/debug file still work

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if DEBUG_MODE else logging.WARNING)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger.addHandler(console_handler)

    return logger


_logger = _setup_standard_logging()


# =============================================================================
# Timer Context Manager
# =============================================================================

class Timer:
    """
    Context manager for timing code blocks with automatic logging.

    Usage:
        with Timer("Pass 1 layout"):
            ...

    Output (debug_flow.txt):
        [14:32:01.120] Starting Pass 1 layout...
        [14:32:01.962] Pass 1 layout took 842 ms

    Attributes:
        operation_name: Name of the operation being timed
        duration_ms: Duration in milliseconds (available after exit)
    """

    def __init__(self, operation_name: str, auto_log: bool = True):
        self.operation_name = operation_name
        self.auto_log = auto_log
        self.start_time: float | None = None
        self.end_time: float | None = None
        self.duration_ms: float | None = None

    def __enter__(self):
        if self.auto_log:
            debug_log(f"Starting {self.operation_name}...")
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = time.time()
        self.duration_ms = (self.end_time - self.start_time) * 1000

        if self.auto_log:
            if self.duration_ms < 1000:
                duration_str = f"{self.duration_ms:.0f} ms"
            else:
                duration_str = f"{self.duration_ms / 1000:.1f} seconds"
            debug_log(f"{self.operation_name} took {duration_str}")

        return False  # Don't suppress exceptions

    def get_duration_ms(self) -> float:
        """
        Get the measured duration in milliseconds.

        Raises:
            ValueError: If timer has not completed yet
        """
        if self.duration_ms is None:
            raise ValueError("Timer has not been completed yet")
        return self.duration_ms


# =============================================================================
# Public Logging Functions
# =============================================================================

def debug_log(message: str):
    """
    Log a debug message to the debug file, and to the console in DEBUG_MODE.

    Args:
        message: The message to log (prefix with [COMPONENT] for clarity)

    Example:
        debug_log("[PIPELINE] Processing 5 documents with max 3 concurrent")
    """
    _debug_file_logger.write(message)
    _logger.debug(message)


def debug(message: str):
    """Alias for debug_log()."""
    debug_log(message)


def info(message: str):
    """Log an informational message."""
    _debug_file_logger.write(f"[INFO] {message}")
    _logger.info(message)


def warning(message: str):
    """Log a warning message (always shown on console)."""
    _debug_file_logger.write(f"[WARNING] {message}")
    _logger.warning(message)


def error(message: str, exc_info: bool = False):
    """
    Log an error message with optional exception traceback.

    Args:
        message: The error message to log
        exc_info: If True, include exception traceback (only in DEBUG_MODE)
    """
    _debug_file_logger.write(f"[ERROR] {message}")
    _logger.error(message, exc_info=exc_info and DEBUG_MODE)


def critical(message: str, exc_info: bool = True):
    """Log a critical error, with traceback in DEBUG_MODE."""
    _debug_file_logger.write(f"[CRITICAL] {message}")
    _logger.critical(message, exc_info=exc_info and DEBUG_MODE)


def debug_timing(operation: str, elapsed_seconds: float):
    """
    Log operation timing information in human-readable format.

    Args:
        operation: Description of the operation that was timed
        elapsed_seconds: Elapsed time in seconds (float)
    """
    if elapsed_seconds < 1:
        time_str = f"{elapsed_seconds*1000:.0f} ms"
    elif elapsed_seconds < 60:
        time_str = f"{elapsed_seconds:.2f}s"
    else:
        time_str = f"{elapsed_seconds/60:.1f}m"
    debug_log(f"{operation} took {time_str}")


def close_debug_log():
    """Close the debug log file. Call at application shutdown."""
    _debug_file_logger.close()


__all__ = [
    'debug_log',
    'debug',
    'debug_timing',
    'info',
    'warning',
    'error',
    'critical',
    'close_debug_log',
    'Timer',
    'DEBUG_MODE',
]
