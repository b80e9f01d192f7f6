"""
Error taxonomy shared by the search core, ingestion and the HTTP layer.
"""

from __future__ import annotations


class DocSearchError(Exception):
    """Base class for all docsearch errors."""


class UpstreamServiceError(DocSearchError):
    """Raised when an embedding or generative model call fails or misbehaves."""


class EmbeddingServiceError(UpstreamServiceError):
    """Raised when the embedding model fails or returns a malformed vector."""


class QueryValidationError(DocSearchError, ValueError):
    """Raised when a request is rejected before any network call."""


class AuthorizationError(DocSearchError, PermissionError):
    """Raised when no user identity can be resolved for a request."""


class NotFoundError(DocSearchError, LookupError):
    """Raised when a referenced document does not exist for the user."""
