"""Hybrid semantic + keyword scoring.

Provides:
- HybridWeights / HybridScore value types
- validate_weights: weights must be non-negative, each <= 1, summing to 1.0
- calculate_hybrid_score: weighted blend with single-signal passthrough
- rank_hybrid: score and sort candidates supplied by a search caller

Keyword scores come from an external search implementation; this module only
combines them. Items lacking an embedding keep ranking by keyword alone.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from semantic_core.config import settings
from semantic_core.exceptions import ValidationError
from semantic_core.vectors import DEFAULT_DIMENSIONS, cosine_similarity, validate_dimensions

WEIGHT_TOLERANCE = 1e-4


@dataclass(frozen=True)
class HybridWeights:
    semantic: float = 0.7
    keyword: float = 0.3


@dataclass(frozen=True)
class HybridScore:
    final_score: float
    semantic_score: Optional[float]
    keyword_score: Optional[float]
    weights: HybridWeights


@dataclass
class RankCandidate:
    """An item to rank: optional embedding plus the caller's keyword score."""
    item_id: str
    embedding: Optional[Sequence[float]] = None
    keyword_score: Optional[float] = None
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RankedItem:
    item_id: str
    score: HybridScore
    payload: Dict[str, Any] = field(default_factory=dict)


def default_weights() -> HybridWeights:
    """Return the configured weights (HYBRID_SEMANTIC_WEIGHT / HYBRID_KEYWORD_WEIGHT, 0.7 / 0.3 by default)."""
    return HybridWeights(semantic=settings.HYBRID_SEMANTIC_WEIGHT, keyword=settings.HYBRID_KEYWORD_WEIGHT)


def validate_weights(weights: HybridWeights) -> bool:
    """Validate hybrid weights.

    Raises:
        ValidationError: If a weight is negative, exceeds 1.0, or the sum is not
            within 1e-4 of 1.0.
    """
    if weights.semantic < 0 or weights.keyword < 0:
        raise ValidationError("Weights cannot be negative", field="weights")
    if weights.semantic > 1 or weights.keyword > 1:
        raise ValidationError("Individual weights cannot exceed 1.0", field="weights")
    total = weights.semantic + weights.keyword
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise ValidationError(
            f"Weights must sum to 1.0, got {total:.4f} "
            f"(semantic: {weights.semantic}, keyword: {weights.keyword})",
            field="weights",
        )
    return True


def calculate_hybrid_score(
    semantic_score: Optional[float],
    keyword_score: Optional[float],
    weights: Optional[HybridWeights] = None,
) -> HybridScore:
    """Combine a semantic and a keyword score into one ranking value.

    Args:
        semantic_score: Semantic similarity in [0, 1], or None if unavailable.
        keyword_score: Keyword match score in [0, 1], or None if unavailable.
        weights: Blend weights; defaults to default_weights().

    Returns:
        HybridScore: 0.0 when both are None, the present score unmodified when
        only one is given, else ``w_s * semantic + w_k * keyword``.
    """
    weights = weights or default_weights()
    validate_weights(weights)

    if semantic_score is None and keyword_score is None:
        final = 0.0
    elif semantic_score is None:
        final = keyword_score
    elif keyword_score is None:
        final = semantic_score
    else:
        final = weights.semantic * semantic_score + weights.keyword * keyword_score

    return HybridScore(
        final_score=final,
        semantic_score=semantic_score,
        keyword_score=keyword_score,
        weights=weights,
    )


def rank_hybrid(
    query_vector: Optional[Sequence[float]],
    candidates: List[RankCandidate],
    weights: Optional[HybridWeights] = None,
    dimensions: int = DEFAULT_DIMENSIONS,
) -> List[RankedItem]:
    """Score candidates and return them sorted by final score (descending).

    The semantic score is the cosine similarity between ``query_vector`` and the
    candidate's embedding. Candidates without an embedding (or a query without a
    vector) get a null semantic score and rank on keyword score alone.

    Raises:
        DimensionMismatchError: If the query or a candidate embedding has the
            wrong dimension.
    """
    weights = weights or default_weights()
    validate_weights(weights)
    if query_vector is not None:
        validate_dimensions(query_vector, dimensions)

    ranked: List[RankedItem] = []
    for cand in candidates:
        semantic: Optional[float] = None
        if query_vector is not None and cand.embedding is not None:
            validate_dimensions(cand.embedding, dimensions)
            semantic = cosine_similarity(query_vector, cand.embedding)
        score = calculate_hybrid_score(semantic, cand.keyword_score, weights)
        ranked.append(RankedItem(item_id=cand.item_id, score=score, payload=cand.payload))

    ranked.sort(key=lambda r: r.score.final_score, reverse=True)
    return ranked
