"""Error taxonomy for the primer TUI and its collaborators."""

from __future__ import annotations


class PrimerError(Exception):
    """Base class for every error raised by primer_tui."""


class NotFoundError(PrimerError):
    def __init__(self, entity: str, key: str):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class StorageFailure(PrimerError):
    """Raised when the SQLite store rejects or fails an operation."""


class TransportFailure(PrimerError):
    """Raised when the model API cannot be reached or the stream breaks."""


class UpstreamFailure(PrimerError):
    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"API error (status {status}): {body}")


class ValidationFailure(PrimerError):
    """Raised for input rejected before any dispatch happens."""


class ConfigError(PrimerError):
    """Raised when startup configuration is missing or invalid."""


class SeedError(PrimerError):
    """Raised when a seed file cannot be parsed."""
