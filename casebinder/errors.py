"""
Error taxonomy for CaseBinder.

Every failure is attributed to the document it came from. The ingestion
pipeline converts these exceptions into ERROR completion events at the
item boundary; the bundle compiler converts them into placeholder pages.
"""

from casebinder.models import FailureKind


class CaseBinderError(Exception):
    """Base class for all CaseBinder errors."""

    kind: FailureKind | None = None


class ValidationError(CaseBinderError):
    """Oversized or unsupported input. The item is skipped."""

    kind = FailureKind.VALIDATION


class ExtractionFailure(CaseBinderError):
    """Content could not be extracted (corrupt or protected PDF, etc.)."""

    kind = FailureKind.EXTRACTION


class OracleError(CaseBinderError):
    """Failure reported by the analysis oracle."""

    kind = FailureKind.ORACLE
    retriable = False


class RetriableOracleError(OracleError):
    """Timeouts and transient server-side failures. Retried with backoff."""

    retriable = True


class FatalOracleError(OracleError):
    """Malformed request or blocked content. Never retried."""


class CompileError(CaseBinderError):
    """A binder item could not be resolved (e.g. dangling section reference)."""

    kind = FailureKind.COMPILE
