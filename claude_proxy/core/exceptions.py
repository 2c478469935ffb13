"""Core exceptions for the proxy."""

from typing import Optional


class ProxyError(Exception):
    """Base exception for proxy errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ProxyError):
    """Raised when a provider is missing required configuration."""
    pass


class UnsupportedProviderError(ProxyError):
    """Raised when a request names a provider identifier we do not know."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"Unsupported provider: {identifier}")
        self.identifier = identifier


class BackendError(ProxyError):
    """Raised when an upstream call fails (non-2xx, network error, timeout)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider


class StreamTerminationError(ProxyError):
    """Raised from a live upstream stream that failed after it was opened."""

    def __init__(self, message: str, provider: Optional[str] = None) -> None:
        super().__init__(message)
        self.provider = provider


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid."""

    def __init__(self, message: str, param: Optional[str] = None) -> None:
        super().__init__(message)
        self.param = param
