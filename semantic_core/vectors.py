"""Vector math for fixed-dimension embeddings.

Provides:
- cosine_similarity: similarity remapped from [-1, 1] to [0, 1]
- normalize_vector: scale to unit length
- dot_product / euclidean_distance / magnitude
- validate_dimensions: guard used before storage and before comparisons

All binary operations require equal lengths and raise DimensionMismatchError
otherwise.
"""
import math
from typing import List, Sequence

from semantic_core.exceptions import DimensionMismatchError, ValidationError

DEFAULT_DIMENSIONS = 1536

Embedding = List[float]


def _check_same_length(vec1: Sequence[float], vec2: Sequence[float]) -> None:
    if len(vec1) != len(vec2):
        raise DimensionMismatchError(expected=len(vec1), actual=len(vec2))


def _dot(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    return math.fsum(a * b for a, b in zip(vec1, vec2))


def magnitude(vector: Sequence[float]) -> float:
    """Euclidean norm of a vector."""
    return math.sqrt(math.fsum(x * x for x in vector))


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """Cosine similarity mapped onto [0, 1].

    The raw cosine in [-1, 1] is remapped via (x + 1) / 2 and clamped, so
    opposite vectors score 0.0, orthogonal 0.5 and identical 1.0.

    Args:
        vec1: First vector.
        vec2: Second vector of the same length.

    Returns:
        float: Similarity in [0, 1]; 0.0 if either vector has zero magnitude.

    Raises:
        DimensionMismatchError: If the vectors differ in length.
    """
    _check_same_length(vec1, vec2)
    mag1 = magnitude(vec1)
    mag2 = magnitude(vec2)
    if mag1 == 0 or mag2 == 0:
        return 0.0
    similarity = _dot(vec1, vec2) / (mag1 * mag2)
    return max(0.0, min(1.0, (similarity + 1) / 2))


def normalize_vector(vector: Sequence[float]) -> Embedding:
    """Return a unit-length copy of ``vector``.

    Raises:
        ValidationError: If the vector has zero magnitude.
    """
    mag = magnitude(vector)
    if mag == 0:
        raise ValidationError("Cannot normalize zero vector", field="embedding")
    return [x / mag for x in vector]


def dot_product(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """Dot product of two equal-length vectors."""
    _check_same_length(vec1, vec2)
    return _dot(vec1, vec2)


def euclidean_distance(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """Euclidean distance between two equal-length vectors."""
    _check_same_length(vec1, vec2)
    return math.sqrt(math.fsum((a - b) ** 2 for a, b in zip(vec1, vec2)))


def validate_dimensions(vector: Sequence[float], expected_dimensions: int = DEFAULT_DIMENSIONS) -> bool:
    """Ensure a vector has exactly ``expected_dimensions`` entries.

    Returns:
        bool: True when valid.

    Raises:
        DimensionMismatchError: On any length mismatch.
    """
    if len(vector) != expected_dimensions:
        raise DimensionMismatchError(expected=expected_dimensions, actual=len(vector))
    return True
