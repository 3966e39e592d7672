"""
Custom exceptions for the clustering engine.

These exceptions provide structured error handling with clear messages
and context for debugging. Every error raised by the core components is a
subclass of ClusteringError so callers can tell the kinds apart.
"""

from typing import Dict, Any, Optional


class ClusteringError(Exception):
    """Base exception for all clustering engine errors."""

    def __init__(
        self,
        error_type: str,
        user_message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_type = error_type
        self.user_message = user_message
        self.details = details or {}
        super().__init__(user_message)


class InvalidInputError(ClusteringError):
    """Raised when a matrix is malformed, non-finite or too small."""

    def __init__(self, user_message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_type="INVALID_INPUT",
            user_message=user_message,
            details=details
        )


class InvalidKError(ClusteringError):
    """Raised when the number of clusters is out of range for an operation."""

    def __init__(self, user_message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_type="INVALID_K",
            user_message=user_message,
            details=details
        )


class EmptyClusterError(ClusteringError):
    """Raised when a K-Means run ends up with fewer than k non-empty clusters."""

    def __init__(self, user_message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_type="EMPTY_CLUSTER",
            user_message=user_message,
            details=details
        )


class NonEmbeddableError(ClusteringError):
    """Raised when MDS asks for more dimensions than non-negative eigenvalues allow."""

    def __init__(self, user_message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_type="NON_EMBEDDABLE",
            user_message=user_message,
            details=details
        )
