"""Error taxonomy for the semantic retrieval core.

- ValidationError: bad input (empty/oversized text, malformed weights or chunk
  config, dimension mismatch). Never retried.
- ProviderError / TransientProviderError: embedding provider failures. Retried by
  the retry policy when marked retryable.
- PersistenceError: storage failures. Surfaced immediately, never retried here.
"""
from typing import Any, Dict, Optional


class SemanticCoreError(Exception):
    """Base exception for all semantic core errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ValidationError(SemanticCoreError):
    """Raised when input validation fails."""

    retryable = False

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class DimensionMismatchError(ValidationError):
    """Raised when a vector does not have the expected number of dimensions."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimension mismatch: expected {expected}, got {actual}",
            details={"expected": expected, "actual": actual},
        )


class ProviderError(SemanticCoreError):
    """Raised when the embedding provider call fails.

    Attributes:
        retryable: Whether the retry policy may attempt the call again.
        status_code: HTTP status returned by the provider, when known.
    """

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.retryable = retryable
        self.status_code = status_code
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)


class TransientProviderError(ProviderError):
    """Network, rate-limit or 5xx failure; always retryable."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, retryable=True, status_code=status_code, details=details)


class PersistenceError(SemanticCoreError):
    """Raised when a storage operation fails."""

    retryable = False

    def __init__(self, message: str, operation: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)


class NotFoundError(SemanticCoreError):
    """Raised when a source or chunk does not exist."""

    def __init__(self, kind: str, item_id: str) -> None:
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} not found: {item_id}", {"id": item_id})
