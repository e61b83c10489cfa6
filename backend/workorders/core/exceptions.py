"""
Work order error hierarchy.

WHAT: Every failure the API can report, each with an HTTP status and a
stable code (VALIDATION_ERROR, INVALID_TRANSITION, CONFLICT, ...).

WHY: Clients branch on the code, never on the message text. Services
raise these and exception_handlers turns them into the one error body.
"""

from typing import Any, Dict, Optional

_REDACTED_KEYS = frozenset({"password", "token", "secret", "key", "api_key"})


class AppException(Exception):
    """
    Root of the hierarchy.

    Subclasses override status_code, error_code and default_message;
    keyword arguments become the "details" object of the response.
    """

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Args:
            message: Overrides default_message
            status_code: Overrides the class status
            **context: Details such as ticket_id or allowed_transitions
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Error body: error, code, message, status_code, details.

        Credential-like keys never leave the process, even if a caller put
        them in the context.
        """
        details = {
            name: value for name, value in self.context.items()
            if name.lower() not in _REDACTED_KEYS
        }

        return {
            "error": self.__class__.__name__,
            "code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "details": details or None,
        }


# ============================================================================
# Who is calling, and what they may do
# ============================================================================


class AuthenticationError(AppException):
    """
    The caller could not be identified.

    WHY: Missing, expired, revoked or otherwise invalid credentials are
    fatal for the request. One exception type keeps the response identical
    regardless of which step failed.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    error_code = "UNAUTHORIZED"
    default_message = "Authentication failed"


class TokenExpiredError(AuthenticationError):
    """Raised when a JWT has expired."""

    default_message = "Token has expired"


class TokenInvalidError(AuthenticationError):
    """Raised when a JWT is malformed or has an invalid signature."""

    default_message = "Token is invalid"


class AuthorizationError(AppException):
    """
    Raised when the caller's role does not permit an action.

    WHY: The caller is known but their role forbids the action, for
    example a restricted field or an internal note from org staff.

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    error_code = "FORBIDDEN"
    default_message = "You do not have permission to perform this action"


# ============================================================================
# Validation & Input Exceptions
# ============================================================================


class ValidationError(AppException):
    """
    Input outside the accepted range or format.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    error_code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class InvalidPathError(ValidationError):
    """
    Raised when an attachment path does not follow the storage convention.

    WHY: Paths must look like "tickets/{ticket_id}/{file}". Anything else
    cannot be tied to an owning ticket and is rejected before insert.

    HTTP Status: 400 Bad Request
    """

    error_code = "INVALID_PATH"
    default_message = "Invalid file path format"


class PathMismatchError(ValidationError):
    """
    Raised when an attachment path names a different ticket.

    WHY: Without this check a caller could attach metadata for an object
    stored under another ticket's prefix.

    HTTP Status: 400 Bad Request
    """

    error_code = "PATH_MISMATCH"
    default_message = "File path does not match ticket ID"


class NoChangesError(ValidationError):
    """
    Raised when an update carries nothing to apply.

    HTTP Status: 400 Bad Request
    """

    error_code = "NO_CHANGES"
    default_message = "No fields to update"


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist or isn't visible.

    WHY: Rows outside the caller's tenancy are reported exactly like missing
    rows so their existence is not disclosed.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    error_code = "NOT_FOUND"
    default_message = "Resource not found"


class TicketNotFoundError(ResourceNotFoundError):
    """Ticket missing, or outside the caller's visibility."""

    default_message = "Ticket not found"


class AttachmentNotFoundError(ResourceNotFoundError):
    """Attachment missing, or its ticket is not visible."""

    default_message = "Attachment not found"


class ConflictError(AppException):
    """
    Raised when a conditional write loses a race.

    WHY: Ticket updates are predicated on the status read at the start of
    the request. If another writer changed the row first, zero rows match
    and the caller must reload and retry.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    error_code = "CONFLICT"
    default_message = "Ticket was modified concurrently; reload and retry"


# ============================================================================
# Lifecycle Exceptions
# ============================================================================


class InvalidTransitionError(AuthorizationError):
    """
    Raised when a status move is not permitted for the caller's role.

    WHY: The transition matrix is an authorization rule (who may move a
    ticket where), so the failure maps to 403 rather than 400/422.

    HTTP Status: 403 Forbidden
    """

    error_code = "INVALID_TRANSITION"
    default_message = "Status transition not permitted"


# ============================================================================
# External Service Exceptions
# ============================================================================


class ExternalServiceError(AppException):
    """
    An outbound dependency (S3, Resend, Twilio) failed.

    HTTP Status: 502 Bad Gateway
    """

    status_code = 502
    default_message = "External service error"


class StorageError(ExternalServiceError):
    """Raised when blob storage (S3) operations fail."""

    default_message = "File storage error"


class EmailServiceError(ExternalServiceError):
    """
    Raised when email sending or rendering fails.

    WHY: Notification code catches this and logs it; it never reaches
    the client of the request that triggered the notification.
    """

    default_message = "Email service error"
