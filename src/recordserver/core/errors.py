"""
Custom exceptions for recordserver.

Sources raise these; the JSON:API error translator is the only place they are
mapped to HTTP status codes.
"""

from __future__ import annotations

from typing import Any, Optional


class RecordServerError(Exception):
    """Base exception for all recordserver errors."""

    def __init__(self, message: str, description: str = ""):
        self.description = description
        super().__init__(message)


class RecordNotFoundError(RecordServerError):
    """Raised when a record (or a record referenced by linkage) does not exist."""

    def __init__(self, type: str, id: Optional[str] = None, description: str = ""):
        self.type = type
        self.id = id
        if not description:
            description = f"{type}:{id}" if id is not None else type
        super().__init__("Record not found", description)


class ValidationError(RecordServerError):
    """Raised when a document or record does not match the schema."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        self.errors = errors or []
        super().__init__(message, "; ".join(self.errors))


class RecordAlreadyExistsError(ValidationError):
    """Raised when adding a record whose identity is already taken."""

    def __init__(self, type: str, id: str):
        self.type = type
        self.id = id
        super().__init__("Record already exists", [f"{type}:{id}"])


class UpstreamError(RecordServerError):
    """Raised when a remote source responds with an error status."""

    def __init__(self, status_code: int, message: str, body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message, f"Upstream responded with {status_code}")


class SchemaConfigError(RecordServerError):
    """Raised when a schema cannot be turned into routes, tables or GraphQL types."""

    def __init__(self, message: str):
        super().__init__(message)


class ConfigError(RecordServerError):
    """Raised when configuration files cannot be loaded."""

    def __init__(self, message: str):
        super().__init__(message)
