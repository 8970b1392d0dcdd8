"""Error kinds raised by the service layer.

Hierarchy::

    TrackerError
    ├── AccessDenied         caller lacks the role or ownership for the action
    ├── NotFound             a resource id does not resolve
    ├── ValidationViolation  invalid input, duplicate membership, owner
    │                        protection, illegal status transition
    └── DependencyFailure    mail or file collaborator unreachable

The API layer maps each kind to an HTTP status in ``app.main``.
"""

from typing import Optional


class TrackerError(Exception):
    """Base class for all service errors."""

    status_code = 400
    default_reason = "error"

    def __init__(self, message: str, reason: Optional[str] = None):
        self.message = message
        self.reason = reason or self.default_reason
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, reason={self.reason!r})"


class AccessDenied(TrackerError):
    status_code = 403
    default_reason = "access_denied"


class NotFound(TrackerError):
    status_code = 404
    default_reason = "not_found"


class ValidationViolation(TrackerError):
    status_code = 400
    default_reason = "validation_violation"


class DependencyFailure(TrackerError):
    status_code = 502
    default_reason = "dependency_failure"
