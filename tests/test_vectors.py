"""
Tests for semantic_core/vectors.py
Cosine similarity, normalization and dimension checks.
"""
import math

import pytest

from semantic_core.exceptions import DimensionMismatchError, ValidationError
from semantic_core.vectors import (
    cosine_similarity,
    dot_product,
    euclidean_distance,
    magnitude,
    normalize_vector,
    validate_dimensions,
)


class TestCosineSimilarity:
    """Test similarity remapped to [0, 1]."""

    def test_identical_vectors_score_one(self):
        v = [0.3, -1.2, 4.0, 0.5]
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_symmetric(self):
        a = [1.0, 2.0, 3.0]
        b = [-2.0, 0.5, 1.0]
        assert cosine_similarity(a, b) == cosine_similarity(b, a)

    def test_orthogonal_maps_to_half(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.5)

    def test_opposite_maps_to_zero(self):
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(0.0)

    def test_zero_magnitude_returns_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_dimension_mismatch_raises(self):
        with pytest.raises(DimensionMismatchError):
            cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


class TestNormalize:
    """Test unit-length normalization."""

    def test_unit_magnitude(self):
        v = normalize_vector([3.0, 4.0, 12.0])
        assert magnitude(v) == pytest.approx(1.0)

    def test_zero_vector_fails(self):
        with pytest.raises(ValidationError):
            normalize_vector([0.0, 0.0, 0.0])


class TestOtherOps:
    """Test dot product, distance and dimension validation."""

    def test_dot_product(self):
        assert dot_product([1.0, 2.0, 3.0], [4.0, 5.0, 6.0]) == 32.0

    def test_euclidean_distance(self):
        assert euclidean_distance([0.0, 0.0], [3.0, 4.0]) == pytest.approx(5.0)

    def test_binary_ops_check_length(self):
        with pytest.raises(DimensionMismatchError):
            dot_product([1.0], [1.0, 2.0])
        with pytest.raises(DimensionMismatchError):
            euclidean_distance([1.0], [1.0, 2.0])

    def test_validate_dimensions_default(self):
        assert validate_dimensions([0.0] * 1536) is True
        with pytest.raises(DimensionMismatchError) as exc_info:
            validate_dimensions([0.0] * 1535)
        assert exc_info.value.details["expected"] == 1536
        assert exc_info.value.details["actual"] == 1535

    def test_dimension_mismatch_is_validation_error(self):
        with pytest.raises(ValidationError):
            validate_dimensions([1.0, 2.0], 3)
        assert math.isclose(magnitude([1.0, 0.0]), 1.0)
