"""
Shared error types and actionable error messages.

User-visible errors must be clear and actionable.
"""
import httpx
import openai


class AppErrors:
    """Centralized actionable error messages."""

    STORAGE_UNAVAILABLE = (
        "Knowledge storage could not be initialized. Check HUB_DATA_ROOT and restart the service."
    )

    OPENAI_NOT_CONFIGURED = (
        "Embedding provider is not configured. Set OPENAI_API_KEY to enable semantic search."
    )

    OPENAI_AUTH_FAILED = (
        "OpenAI authentication failed. Check OPENAI_API_KEY."
    )

    OPENAI_RATE_LIMIT = (
        "OpenAI rate limit exceeded. Wait a moment and try again."
    )

    JIRA_NOT_CONFIGURED = (
        "Jira is not configured. Set JIRA_BASE_URL, JIRA_EMAIL and JIRA_API_TOKEN."
    )

    JIRA_AUTH_FAILED = (
        "Jira rejected the credentials. Check JIRA_EMAIL and JIRA_API_TOKEN."
    )

    EMPTY_INPUT = (
        "Input is empty. Provide text or select a file."
    )


class NotFoundError(LookupError):
    """Raised by write paths when the target entity does not exist."""
    pass


class StorageInitError(Exception):
    """Raised when storage initialization exhausts its retry budget."""
    pass


class ExtractionError(Exception):
    """Raised when model-based extraction fails after all retries."""
    pass


def format_openai_error(error: Exception) -> str:
    """Actionable message for a failed embedding or extraction call."""
    if isinstance(error, openai.AuthenticationError):
        return AppErrors.OPENAI_AUTH_FAILED
    if isinstance(error, openai.RateLimitError):
        return AppErrors.OPENAI_RATE_LIMIT
    if isinstance(error, openai.APIConnectionError):
        return f"OpenAI is not reachable: {error}"
    if isinstance(error, openai.APIStatusError):
        request_id = getattr(error, "request_id", None) or "n/a"
        return f"OpenAI error (HTTP {error.status_code}, request {request_id}): {error.message}"
    return f"OpenAI error: {error}"


def format_jira_error(error: Exception) -> str:
    """Format Jira HTTP error as actionable message."""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status in (401, 403):
            return AppErrors.JIRA_AUTH_FAILED
        return f"Jira error (HTTP {status}): {error.response.text[:200]}"

    if isinstance(error, httpx.TransportError):
        return f"Jira is not reachable: {error}"

    return f"Jira error: {error}"
