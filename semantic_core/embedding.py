"""Embedding generation wrapping an external provider (OpenAI embeddings API).

Provides:
- EmbeddingConfig: provider credentials/model injected into the generator.
- EmbeddingProvider / OpenAIEmbeddingProvider: one call = one text -> one vector.
- EmbeddingGenerator: validation, retry/backoff, dimension checks, normalization,
  sequential batch generation and a cached query helper.
- get_generator: Cached generator built from semantic_core.config settings.

Texts longer than EmbeddingConfig.max_text_length (8000 chars) or blank texts fail
with ValidationError and are never sent to the provider.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Protocol

import openai
from openai import AsyncOpenAI

from semantic_core.cache import QueryEmbeddingCache
from semantic_core.config import settings
from semantic_core.exceptions import ProviderError, TransientProviderError, ValidationError
from semantic_core.obs import span
from semantic_core.retry import RetryOutcome, RetryPolicy
from semantic_core.vectors import normalize_vector, validate_dimensions

logger = logging.getLogger(__name__)


class EmbeddableKind(str, Enum):
    SUMMARY = "summary"
    CHUNK = "chunk"
    QUERY = "query"
    TITLE = "title"
    TOPICS = "topics"


@dataclass(frozen=True)
class EmbeddingConfig:
    api_key: str = ""
    model: str = "text-embedding-3-small"
    dimensions: int = 1536
    base_url: Optional[str] = None
    timeout: float = 30.0
    max_text_length: int = 8000

    @classmethod
    def from_settings(cls) -> "EmbeddingConfig":
        return cls(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_EMBEDDING_MODEL,
            dimensions=settings.EMBEDDING_DIM,
            base_url=settings.OPENAI_BASE_URL or None,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
            max_text_length=settings.EMBEDDING_MAX_TEXT_LENGTH,
        )


@dataclass
class ProviderEmbedding:
    vector: List[float]
    total_tokens: int
    model: str


class EmbeddingProvider(Protocol):
    async def embed(self, text: str, model: str) -> ProviderEmbedding:
        ...


class OpenAIEmbeddingProvider:
    """OpenAI embeddings endpoint; SDK retries are disabled so RetryPolicy owns backoff."""

    def __init__(self, config: EmbeddingConfig):
        self.config = config
        self._client: Optional[AsyncOpenAI] = None

    def get_client(self) -> AsyncOpenAI:
        """Return a lazily created AsyncOpenAI client for the configured key."""
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                max_retries=0,
            )
        return self._client

    async def embed(self, text: str, model: str) -> ProviderEmbedding:
        client = self.get_client()
        try:
            resp = await client.embeddings.create(model=model, input=[text])
        except openai.APIConnectionError as exc:
            raise TransientProviderError(f"Embedding provider unreachable: {exc}") from exc
        except openai.APIStatusError as exc:
            status = exc.status_code
            if status in (408, 409, 429) or status >= 500:
                raise TransientProviderError(f"Embedding provider error: {exc.message}", status_code=status) from exc
            raise ProviderError(f"Embedding request rejected: {exc.message}", retryable=False, status_code=status) from exc

        if not resp.data:
            raise TransientProviderError("Embedding provider returned no data")
        tokens = resp.usage.total_tokens if resp.usage else 0
        return ProviderEmbedding(vector=list(resp.data[0].embedding), total_tokens=tokens, model=resp.model or model)


@dataclass
class EmbeddingResult:
    embedding: List[float]
    model: str
    tokens: int
    dimensions: int


@dataclass
class BatchEmbeddingItem:
    index: int
    embedding: Optional[List[float]] = None
    error: Optional[str] = None


@dataclass
class BatchEmbeddingResult:
    results: List[BatchEmbeddingItem] = field(default_factory=list)
    successful: int = 0
    failed: int = 0
    total_tokens: int = 0


class EmbeddingGenerator:
    """Generates validated (and by default unit-length) embeddings.

    Args:
        provider: Backend performing the network call; defaults to OpenAI.
        config: Model, dimension and text limits.
        retry_policy: Backoff applied around each provider call.
        cache: Optional query embedding cache used by ``embed``.
        sleep: Awaitable sleep used between retries (tests pass a fake).
    """

    def __init__(
        self,
        provider: Optional[EmbeddingProvider] = None,
        config: Optional[EmbeddingConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cache: Optional[QueryEmbeddingCache] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.config = config or EmbeddingConfig.from_settings()
        self.provider = provider or OpenAIEmbeddingProvider(self.config)
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.cache = cache
        self._sleep = sleep

    def validate_text(self, text: str) -> None:
        if text is None or not text.strip():
            raise ValidationError("Text cannot be empty", field="text")
        if len(text) > self.config.max_text_length:
            raise ValidationError(
                f"Text exceeds max length of {self.config.max_text_length} characters",
                field="text",
                details={"length": len(text)},
            )

    async def _generate_once(self, text: str, normalize: bool) -> EmbeddingResult:
        response = await self.provider.embed(text, self.config.model)
        vector = list(response.vector)
        validate_dimensions(vector, self.config.dimensions)
        if normalize:
            vector = normalize_vector(vector)
        return EmbeddingResult(
            embedding=vector,
            model=response.model or self.config.model,
            tokens=response.total_tokens,
            dimensions=len(vector),
        )

    async def try_generate(
        self,
        text: str,
        kind: EmbeddableKind = EmbeddableKind.SUMMARY,
        normalize: bool = True,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> RetryOutcome[EmbeddingResult]:
        """Generate an embedding, returning the outcome instead of raising."""
        try:
            self.validate_text(text)
        except ValidationError as exc:
            return RetryOutcome(error=exc, attempts=0)

        policy = retry_policy or self.retry_policy
        with span("embedding.generate", {"kind": EmbeddableKind(kind).value, "chars": len(text)}):
            outcome = await policy.run(lambda: self._generate_once(text, normalize), sleep=self._sleep)
        if not outcome.ok:
            logger.warning("Embedding failed after %d attempt(s): %s", outcome.attempts, outcome.error)
        return outcome

    async def generate(
        self,
        text: str,
        kind: EmbeddableKind = EmbeddableKind.SUMMARY,
        normalize: bool = True,
    ) -> EmbeddingResult:
        """Generate an embedding for one text.

        Raises:
            ValidationError: Blank or oversized text, wrong dimension, zero vector.
            ProviderError: Provider failure after retries were exhausted.
        """
        outcome = await self.try_generate(text, kind=kind, normalize=normalize)
        return outcome.unwrap()

    async def generate_batch(
        self,
        texts: List[str],
        kind: EmbeddableKind = EmbeddableKind.SUMMARY,
        normalize: bool = True,
    ) -> BatchEmbeddingResult:
        """Embed texts one by one; an item's failure never aborts the batch."""
        batch = BatchEmbeddingResult()
        for i, text in enumerate(texts):
            outcome = await self.try_generate(text, kind=kind, normalize=normalize)
            if outcome.ok:
                batch.results.append(BatchEmbeddingItem(index=i, embedding=outcome.value.embedding))
                batch.successful += 1
                batch.total_tokens += outcome.value.tokens
            else:
                batch.results.append(BatchEmbeddingItem(index=i, error=str(outcome.error)))
                batch.failed += 1
        logger.info("Batch embedding: %d ok, %d failed, %d tokens", batch.successful, batch.failed, batch.total_tokens)
        return batch

    async def embed(self, text: str) -> List[float]:
        """Embed a search query (normalized), using the query cache when configured."""
        if self.cache is not None:
            cached = await self.cache.get(text, self.config.model)
            if cached is not None:
                return cached
        result = await self.generate(text, kind=EmbeddableKind.QUERY, normalize=True)
        if self.cache is not None:
            await self.cache.set(text, self.config.model, result.embedding)
        return result.embedding


_generator: Optional[EmbeddingGenerator] = None


def get_generator() -> EmbeddingGenerator:
    """Return a cached generator configured from settings.

    Returns:
        EmbeddingGenerator: A singleton-like generator reused across calls.
    """
    global _generator
    if _generator is None:
        cache = QueryEmbeddingCache() if settings.EMBEDDING_CACHE_ENABLED else None
        _generator = EmbeddingGenerator(cache=cache)
    return _generator
