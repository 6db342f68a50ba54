"""Project-wide custom exceptions."""

from __future__ import annotations


class AIQueryError(Exception):
    """Base exception for the ai-query toolkit."""


class ConfigurationError(AIQueryError):
    """Raised when configuration loading or validation fails."""


class ConfigParseError(ConfigurationError):
    """Raised when the configuration file contains a malformed line or value."""


class ConfigMissingError(ConfigurationError):
    """Raised when the configuration file does not exist."""


class ProviderResolutionError(AIQueryError):
    """Raised when no usable provider or API key can be resolved."""


class CatalogError(AIQueryError):
    """Raised when schema metadata cannot be read from the database."""


class PromptBuildError(AIQueryError):
    """Raised when the prompt cannot be assembled (usually a catalog failure)."""


class ProviderAPIError(AIQueryError):
    """Raised by transports when a provider call fails.

    ``status_code`` is the HTTP status, or 0 when the failure happened before a
    response was received (DNS, refused connection, client-side timeout).
    """

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(body)
        self.status_code = status_code
        self.body = body


class ResponseParseError(AIQueryError):
    """Raised when an LLM answer cannot be mapped onto a query result."""


class ValidationError(AIQueryError):
    """Raised when user input is rejected before any external call."""
