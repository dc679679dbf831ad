"""
CertChain - Exception Hierarchy

Request-level errors raised by the HTTP layer and the certificate handlers.
Storage faults live in ``storage.base`` so backends can be used on their own.

Tamper detection is never an exception: a forged certificate or a broken
chain is reported through ``validation.ValidationResult``.
"""

from typing import Any


class CertChainError(Exception):
    """Base exception for CertChain errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        result = {
            "error_type": type(self).__name__,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class MalformedRequest(CertChainError):
    """The raw request could not be parsed (request line, headers, length, boundary)."""
    pass


class ClientDataError(CertChainError):
    """The request parsed but its data is unusable (missing field, bad id, not found)."""
    pass


class HashProviderUnavailable(CertChainError):
    """SHA-256 is not available in this interpreter. Fatal at startup."""
    pass


class ConfigurationError(CertChainError):
    """An environment or command-line setting has an invalid value."""
    pass
