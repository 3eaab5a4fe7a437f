"""
AssetLogix - Custom Exceptions
==============================
Centralized exception hierarchy for structured error handling.
"""

from typing import Optional, Dict, Any


class AssetLogixBaseException(Exception):
    """Base exception for all AssetLogix errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/API responses."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }
        if self.original_error:
            result["original_error"] = str(self.original_error)
        return result


# =============================================================================
# Infrastructure Errors
# =============================================================================

class DatabaseConnectionError(AssetLogixBaseException):
    """Database connection or query failure."""

    status_code = 503

    def __init__(
        self,
        message: str = "Failed to connect to the database",
        url: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        # Never expose credentials embedded in the URL
        context = {"url": url.split("@")[-1]} if url else {}
        super().__init__(message, context, original_error)


class StorageError(AssetLogixBaseException):
    """File storage failure (upload directory, missing file, bad path)."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        context = {"path": path} if path else {}
        super().__init__(message, context, original_error)


class MigrationError(AssetLogixBaseException):
    """Schema patch failure."""

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        context = {"step": step} if step else {}
        super().__init__(message, context, original_error)


class NotificationError(AssetLogixBaseException):
    """Email delivery failure."""

    status_code = 502

    def __init__(
        self,
        message: str,
        recipient: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        context = {"recipient": recipient} if recipient else {}
        super().__init__(message, context, original_error)


# =============================================================================
# Request Errors
# =============================================================================

class ValidationError(AssetLogixBaseException):
    """Input validation failure."""

    status_code = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None
    ):
        context = {}
        if field:
            context["field"] = field
        if value is not None:
            context["value"] = str(value)[:100]
        super().__init__(message, context)


class AuthenticationError(AssetLogixBaseException):
    """Missing, expired or invalid credentials."""

    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class PermissionDeniedError(AssetLogixBaseException):
    """Authenticated user lacks the permission for an action."""

    status_code = 403

    def __init__(
        self,
        message: str = "Permission denied",
        action: Optional[str] = None,
        user_id: Optional[int] = None
    ):
        context = {}
        if action:
            context["action"] = action
        if user_id is not None:
            context["user_id"] = user_id
        super().__init__(message, context)


class NotFoundError(AssetLogixBaseException):
    """Requested resource does not exist."""

    status_code = 404

    def __init__(
        self,
        resource: str,
        resource_id: Optional[Any] = None,
        message: Optional[str] = None
    ):
        context: Dict[str, Any] = {"resource": resource}
        if resource_id is not None:
            context["resource_id"] = resource_id
        super().__init__(message or f"{resource} not found", context)


class ConflictError(AssetLogixBaseException):
    """Resource already exists or is in a conflicting state."""

    def __init__(
        self,
        message: str,
        resource: Optional[str] = None,
        status_code: int = 409
    ):
        context = {"resource": resource} if resource else {}
        super().__init__(message, context)
        self.status_code = status_code
