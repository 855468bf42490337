"""Error taxonomy for the orchestration core and LLM error wrapping."""

import re
from typing import Optional, Tuple
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories of model endpoint errors."""
    NETWORK = "network"  # Connection issues
    TIMEOUT = "timeout"  # Call exceeded its deadline
    API_ERROR = "api_error"  # API returned error response
    AUTH_ERROR = "auth_error"  # Authentication/authorization failures
    RATE_LIMIT = "rate_limit"  # Rate limit exceeded
    UNKNOWN = "unknown"  # Unknown errors


class ReplyHubError(Exception):
    """Base exception for all orchestration core errors."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class EndpointError(ReplyHubError):
    """Transport or API failure talking to the model endpoint."""
    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        self.category = category
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message)


class CircuitOpenError(ReplyHubError):
    """Call rejected without contacting the endpoint because the circuit is open."""
    def __init__(self, message: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(message)


class MalformedClassificationError(ReplyHubError):
    """Model output could not be parsed into a valid classification."""
    def __init__(self, message: str, raw_output: Optional[str] = None):
        self.raw_output = raw_output
        super().__init__(message)


class ToolNotPermittedError(ReplyHubError):
    """Model requested a tool outside the tenant's allowed set."""
    def __init__(self, tool_name: str, tenant_id: str):
        self.tool_name = tool_name
        self.tenant_id = tenant_id
        super().__init__(f"Tool '{tool_name}' is not permitted for tenant {tenant_id}")


class ToolExecutionError(ReplyHubError):
    """Tool failed, timed out or received invalid arguments."""
    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"{tool_name}: {message}")


class RequestCancelledError(ReplyHubError):
    """Caller abandoned the request before the agent loop finished."""


class TenantNotFoundError(ReplyHubError):
    """No configuration exists for the requested tenant."""
    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant {tenant_id} not found")


def _extract_retry_after(error: Exception) -> Optional[float]:
    """Read Retry-After from an SDK error's response headers or message."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if headers is not None:
        value = headers.get("retry-after")
        if value:
            try:
                return float(value)
            except ValueError:
                return None
    match = re.search(r"retry[_-]after[:\s]+(\d+)", str(error), re.IGNORECASE)
    if match:
        return float(match.group(1))
    return None


def classify_error(error: Exception) -> Tuple[ErrorCategory, Optional[int]]:
    """
    Classify an endpoint exception.

    Args:
        error: The exception raised by the SDK or transport

    Returns:
        Tuple of (category, status_code)
    """
    if isinstance(error, EndpointError):
        return error.category, error.status_code

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        if status_code == 429:
            return ErrorCategory.RATE_LIMIT, status_code
        if status_code in (401, 403):
            return ErrorCategory.AUTH_ERROR, status_code
        if status_code == 408:
            return ErrorCategory.TIMEOUT, status_code
        return ErrorCategory.API_ERROR, status_code

    error_str = str(error).lower()
    error_type = type(error).__name__.lower()

    if isinstance(error, TimeoutError) or "timeout" in error_type or "timed out" in error_str:
        return ErrorCategory.TIMEOUT, None
    if "rate limit" in error_str or "too many requests" in error_str:
        return ErrorCategory.RATE_LIMIT, None
    if any(keyword in error_str for keyword in ["unauthorized", "forbidden", "authentication"]):
        return ErrorCategory.AUTH_ERROR, None
    if isinstance(error, ConnectionError) or "connection" in error_type or any(
        keyword in error_str for keyword in ["connection", "network", "dns", "refused"]
    ):
        return ErrorCategory.NETWORK, None

    return ErrorCategory.UNKNOWN, None


def wrap_llm_error(error: Exception, provider: str) -> EndpointError:
    """
    Wrap LLM API errors into EndpointError.

    Args:
        error: Original exception
        provider: LLM provider name (e.g. 'openai')

    Returns:
        EndpointError with appropriate category
    """
    if isinstance(error, EndpointError):
        return error

    category, status_code = classify_error(error)
    retry_after = _extract_retry_after(error) if category == ErrorCategory.RATE_LIMIT else None

    if status_code is not None:
        message = f"{provider} {category.value} ({status_code}): {error}"
    else:
        message = f"{provider} {category.value}: {error}"
    return EndpointError(message, category=category, status_code=status_code, retry_after=retry_after)
