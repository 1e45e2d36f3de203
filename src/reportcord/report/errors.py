"""Exceptions raised by the report pipeline."""


class ReportError(Exception):
    """Base class for report pipeline failures."""


class ClassificationError(ReportError):
    """The classification backend failed or returned nothing usable."""


class ResponseParseError(ReportError):
    """The classifier's raw text could not be decoded into an assessment."""

    def __init__(self, message: str, raw_response: str = "") -> None:
        super().__init__(message)
        self.raw_response = raw_response


class DispatchError(ReportError):
    """An enforcement action was rejected by the action dispatcher."""


class AuthorizationRevokedError(ReportError):
    """An elevated authorization context was used after its scope ended."""
