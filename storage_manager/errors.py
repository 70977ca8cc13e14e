from __future__ import annotations
"""Exception hierarchy for storage operations."""


class StorageError(Exception):
    """Base class for every error surfaced by the storage layer."""


class ConfigurationError(StorageError):
    """Raised when credentials are missing or malformed."""


class CredentialsNotFoundError(ConfigurationError):
    """Raised when no credentials are stored under a reference."""


class CredentialStoreError(StorageError):
    """Raised when credentials cannot be written to the secret store."""


class TransportError(StorageError):
    """Raised for malformed URLs, connection failures and non-HTTP replies."""


class ProtocolError(StorageError):
    """Raised when the server answers with a non-2xx status."""

    def __init__(self, status: int, body: str):
        super().__init__(f"API Error ({status}): {body}")
        self.status = status
        self.body = body


class ParseError(StorageError):
    """Describes a degraded parse. Logged by the parser, never raised to callers."""
