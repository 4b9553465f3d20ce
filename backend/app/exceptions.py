"""
Writegy Backend - Custom Exception Hierarchy
==============================================

What:  Application-specific exceptions for each recoverable error scenario.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services and middleware; caught by global handlers.

Exception Hierarchy:
    WritegyError (base)
    ├── ValidationError            → 400 Bad Request
    ├── UnauthorizedError          → 401 Unauthorized
    ├── NotFoundError              → 404 Not Found
    ├── CircularReferenceError     → 409 Conflict
    ├── RateLimitExceededError     → 429 Too Many Requests
    ├── DatabaseError              → 500 Internal Server Error
    └── ServiceUnavailableError    → 503 Service Unavailable
        ├── LLMServiceError
        ├── CircuitBreakerOpenError
        ├── StorageError
        └── IdentityProviderError
"""

from typing import Any, Dict, Optional


class WritegyError(Exception):
    """
    Base exception for all Writegy application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client
                  unless the handler opts in)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(WritegyError):
    """
    Raised when client input fails a business rule.

    When:    Empty or oversized upload, unsupported file type, blank title,
             missing email claim, hierarchy deeper than allowed.
    HTTP:    400 Bad Request (FastAPI keeps 422 for schema validation)
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class UnauthorizedError(WritegyError):
    """
    Raised when the caller's identity cannot be established.

    When:    Bearer token is malformed, expired or has a bad signature, or the
             request is anonymous and the demo account is not available.
    HTTP:    401 Unauthorized
    """

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(WritegyError):
    """
    Raised when a requested resource does not exist.

    Documents owned by another user are reported the same way, so the
    response never reveals that the id exists.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class CircularReferenceError(WritegyError):
    """
    Raised when re-parenting a document would create a cycle.

    When:    The proposed parent is the document itself or one of its
             descendants. Nothing is modified when this is raised.
    HTTP:    409 Conflict
    """

    def __init__(
        self,
        document_id: Optional[str] = None,
        parent_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = "Cannot move a document under itself or one of its descendants"
        ctx = context or {}
        if document_id:
            ctx["document_id"] = document_id
        if parent_id:
            ctx["parent_id"] = parent_id
        super().__init__(message=message, context=ctx)


class ServiceUnavailableError(WritegyError):
    """
    Raised when a downstream dependency cannot serve the request.

    HTTP:    503 Service Unavailable, with Retry-After when known.
    """

    def __init__(
        self,
        message: str = "A required service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class LLMServiceError(ServiceUnavailableError):
    """
    Raised when the AI completion endpoint fails after all retries, answers
    with a non-2xx status, or returns a body without a first choice.

    The grammar orchestrator catches this and falls back to the heuristic
    checker; it only reaches the client from other call sites.
    """

    def __init__(
        self,
        message: str = "AI completion service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, retry_after=retry_after, context=context)


class CircuitBreakerOpenError(ServiceUnavailableError):
    """
    Raised when the circuit breaker is OPEN.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for recovery_timeout)
        → After recovery_timeout → HALF-OPEN (allow one test call)
        → Test succeeds → CLOSED; test fails → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"AI service is temporarily unavailable due to repeated failures. "
            f"The service will automatically retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, retry_after=recovery_time, context=ctx)
        self.recovery_time = recovery_time


class StorageError(ServiceUnavailableError):
    """Raised when object storage (S3-compatible or local disk) rejects an operation."""

    def __init__(
        self,
        message: str = "File storage is temporarily unavailable",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class IdentityProviderError(ServiceUnavailableError):
    """Raised when the identity provider's signing keys cannot be fetched."""

    def __init__(
        self,
        message: str = "Identity provider is temporarily unavailable",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(WritegyError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic. SQL, constraint
    names and driver errors are logged server-side only.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(WritegyError):
    """
    A client's token bucket is empty.

    retry_after is the number of seconds until the bucket refills.
    HTTP:    429 Too Many Requests with a Retry-After header, rendered by
             RateLimitMiddleware (middleware responses skip the app handlers)
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
