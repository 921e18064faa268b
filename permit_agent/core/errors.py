"""
Exception taxonomy for Permit Agent.

Transport errors carry an ``is_retryable`` flag that the retry helpers
honour. Parse and external-service errors are caught close to where they
happen and turned into "zero contribution" results.
"""


class PermitAgentError(Exception):
    """Base class for all errors raised by this package."""


# =============================================================================
# Transport
# =============================================================================


class FetchError(PermitAgentError):
    """A network operation failed."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        is_retryable: bool = True,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.url = url
        self.is_retryable = is_retryable
        self.status_code = status_code


class FetchTimeoutError(FetchError):
    """Request exceeded its per-call timeout."""

    def __init__(self, url: str, timeout: float):
        super().__init__(f"Timed out after {timeout}s", url=url, is_retryable=True)
        self.timeout = timeout


class HttpStatusError(FetchError):
    """Server answered with a non-success status."""

    # Client errors other than these are final
    RETRYABLE_4XX = {408, 429}

    def __init__(self, url: str, status_code: int):
        retryable = status_code >= 500 or status_code in self.RETRYABLE_4XX
        super().__init__(
            f"HTTP {status_code}",
            url=url,
            is_retryable=retryable,
            status_code=status_code,
        )


class InvalidUrlError(FetchError):
    """URL is malformed or uses a disallowed scheme/port."""

    def __init__(self, url: str, reason: str = "malformed URL"):
        super().__init__(reason, url=url, is_retryable=False)


# =============================================================================
# Parsing / external services
# =============================================================================


class ParseError(PermitAgentError):
    """Third-party content could not be parsed."""


class AIServiceError(PermitAgentError):
    """The text-understanding service failed or returned garbage."""


class ConfigurationError(PermitAgentError):
    """A required setting or credential is missing."""
