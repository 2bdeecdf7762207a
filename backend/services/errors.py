"""
Compliance Reading Engine - Error Taxonomy
Version: 1.1.0

Changelog:
v1.1.0 (2026-10-19): SubmissionConflictError for submits that keep losing
                      to concurrent writes
v1.0.0 (2026-10-05): Initial error taxonomy

Typed failures raised by the forms engine. Routers translate them to HTTP
status codes (see api.http_error); calibration staleness and numeric parse
failures are never errors.
"""

from typing import List, Optional


class FormsError(Exception):
    """Base class for all engine failures."""

    status_code = 400

    def __init__(self, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class ValidationError(FormsError, ValueError):
    """Missing identifiers, malformed answers, or a blocking policy."""


class NotFoundError(FormsError, LookupError):
    """Unknown submission, instance, template, asset, meter or calibration."""

    status_code = 404


class SubmissionLockedError(ValidationError):
    """Write attempted against a submission that has been finalized."""

    status_code = 409


class SubmissionConflictError(FormsError):
    """Submission data kept changing while it was being finalized."""

    status_code = 409
