"""
Exception hierarchy for the scheme ingestion and retrieval core.

Every failure the core can surface is one of these classes; the API layer maps
each class to a status code in ``nitisetu.main``.
"""
from typing import Any, Dict, Optional


class SchemeServiceError(Exception):
    """Base exception for all scheme service errors"""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ValidationError(SchemeServiceError):
    """Malformed or missing input at a boundary (missing file, empty query, ...)"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class NotFound(SchemeServiceError):
    """Requested scheme does not exist"""

    status_code = 404

    def __init__(self, scheme_id: str, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details["scheme_id"] = scheme_id
        super().__init__(f"Scheme not found: {scheme_id}", details)


class ExtractionError(SchemeServiceError):
    """Source document could not be parsed (corrupt, encrypted, empty)"""

    status_code = 422


class ServiceUnavailableError(SchemeServiceError):
    """A collaborator is unreachable; the caller may retry later"""

    status_code = 503


class EmbeddingUnavailable(ServiceUnavailableError):
    """Embedding provider unreachable or returned malformed output"""


class StorageError(ServiceUnavailableError):
    """Backing store unreachable or a read/write failed"""


class ReasoningUnavailable(ServiceUnavailableError):
    """Language model collaborator failed to produce a usable answer"""
