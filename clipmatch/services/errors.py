"""Typed errors raised by the matching core.

Every public operation either returns its result model or raises one of these.
"""


class MatchingError(Exception):
    """Base exception for matching core errors."""

    pass


class NotFoundError(MatchingError):
    """Report, transaction, or match is missing."""

    def __init__(self, resource: str, identifier: object):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class ConflictError(MatchingError):
    """A transaction is already matched within the report."""

    def __init__(self, message: str, *, side: str | None = None, transaction_id: int | None = None):
        self.side = side
        self.transaction_id = transaction_id
        super().__init__(message)


class ReportBusyError(ConflictError):
    """Another matching operation holds the report's run token."""

    def __init__(self, report_id: int):
        self.report_id = report_id
        super().__init__(f"Report {report_id} has a matching operation in progress")


class ConfigurationError(MatchingError):
    """Account scope is empty for one side or otherwise malformed."""

    pass


class ValidationError(MatchingError):
    """Malformed input: time range, thresholds, or source payload."""

    pass


class ComputationError(MatchingError):
    """A metric could not be computed from the given values."""

    pass


class AutoMatchInterruptedError(MatchingError):
    """Auto-match stopped after committing part of its matches."""

    def __init__(self, report_id: int, committed: int, cause: BaseException | None = None):
        self.report_id = report_id
        self.committed = committed
        reason = f": {cause}" if cause is not None else ""
        super().__init__(f"Auto-match for report {report_id} interrupted after {committed} matches{reason}")
