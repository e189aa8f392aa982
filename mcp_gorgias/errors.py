"""Domain errors raised by the Gorgias client."""

from enum import Enum

# Statuses that are worth another attempt even when the error kind alone would not say so
RETRYABLE_STATUSES = frozenset({408, 429})


class ErrorCode(str, Enum):
    """Machine-readable error codes.

    Attributes:
        UNAUTHORIZED: Invalid API credentials (401)
        FORBIDDEN: Access denied (403)
        RESOURCE_NOT_FOUND: Resource does not exist (404)
        RATE_LIMIT_EXCEEDED: Remote rate limit hit (429)
        NETWORK_ERROR: Server-side (5xx) or transport-level failure
        VALIDATION_ERROR: Invalid input rejected before any request was made
    """

    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    NETWORK_ERROR = "NETWORK_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"


class GorgiasError(Exception):
    """Base class for all Gorgias domain errors.

    Attributes:
        code: Machine-readable error code
        message: Human-readable explanation
        status_code: HTTP status of the failed exchange, if there was one
    """

    code = ErrorCode.NETWORK_ERROR

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize the error with a message and optional HTTP status."""
        self.message = message
        self.status_code = status_code
        super().__init__(f"{self.code.value}: {message}")


class UnauthorizedError(GorgiasError):
    """Raised on HTTP 401."""

    code = ErrorCode.UNAUTHORIZED


class ForbiddenError(GorgiasError):
    """Raised on HTTP 403."""

    code = ErrorCode.FORBIDDEN


class ResourceNotFoundError(GorgiasError):
    """Raised on HTTP 404."""

    code = ErrorCode.RESOURCE_NOT_FOUND


class RateLimitExceededError(GorgiasError):
    """Raised on HTTP 429."""

    code = ErrorCode.RATE_LIMIT_EXCEEDED


class NetworkError(GorgiasError):
    """Raised on 5xx responses, unexpected statuses and transport failures."""

    code = ErrorCode.NETWORK_ERROR


class InputValidationError(GorgiasError):
    """Raised when arguments fail validation before any request is sent."""

    code = ErrorCode.VALIDATION_ERROR


def classify_http_error(status_code: int | None, detail: str) -> GorgiasError:
    """Translate a failed HTTP exchange into a domain error.

    Args:
        status_code: HTTP status, or None when no response was received
        detail: Message from the response body or the transport exception

    Returns:
        The matching GorgiasError subclass instance
    """
    if status_code == 401:
        return UnauthorizedError(f"Invalid API credentials - {detail}", status_code)
    if status_code == 403:
        return ForbiddenError(f"Access denied - {detail}", status_code)
    if status_code == 404:
        return ResourceNotFoundError(f"Resource not found - {detail}", status_code)
    if status_code == 429:
        return RateLimitExceededError(f"Rate limit exceeded - {detail}", status_code)
    if status_code is not None and status_code >= 500:
        return NetworkError(f"Server error ({status_code}) - {detail}", status_code)
    return NetworkError(f"Request failed - {detail}", status_code)


def is_retryable(error: BaseException) -> bool:
    """Return True if another attempt could succeed.

    Rate-limit and network errors are retryable, as is anything carrying
    a 408, 429 or 5xx status. Everything else fails fast.
    """
    if isinstance(error, RateLimitExceededError | NetworkError):
        return True
    status = getattr(error, "status_code", None)
    return isinstance(status, int) and (status in RETRYABLE_STATUSES or status >= 500)
