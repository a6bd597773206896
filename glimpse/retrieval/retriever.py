"""
Retriever for Glimpse.

Answers top-K queries against a store's completed records, ranking by cosine
similarity with a linear recency penalty.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import numpy as np

from glimpse.core.errors import DimensionMismatchError, ProviderError
from glimpse.core.models import RetrievalOutcome, RetrievalResult, RetrievalStatus
from glimpse.providers.base import Embedder
from glimpse.retrieval.similarity import age_hours, as_vector, cosine_similarities, rank_score
from glimpse.storage.memory_store import MemoryStore
from glimpse.utils.ids import current_millis

logger = logging.getLogger(__name__)

DEFAULT_RECENCY_WEIGHT = 0.01
DEFAULT_TOP_K = 3


class Retriever:
    """Top-K semantic search over indexed memories.

    Ranking: ``score = similarity - recency_weight * age_hours``. Results
    are ordered by score, ties going to the more recent capture, and each
    result reports its raw similarity. Only ``completed`` records are
    candidates, so queries are safe while indexing is still running.

    Usage:
        retriever = Retriever(store, provider)
        outcome = await retriever.retrieve("what was I reading?", k=3)
        if outcome.is_empty_corpus:
            ...
    """

    def __init__(
        self,
        store: MemoryStore,
        provider: Embedder,
        recency_weight: float = DEFAULT_RECENCY_WEIGHT,
        min_similarity: float | None = None,
        clock: Callable[[], int] = current_millis,
    ):
        """Initialize the retriever.

        Args:
            store: Store to search
            provider: The embedding provider used to index ``store``
            recency_weight: Score penalty per hour of age
            min_similarity: Drop results whose raw similarity is below this
            clock: Millisecond clock used to age records
        """
        if recency_weight < 0:
            raise ValueError("recency_weight must not be negative")

        self.store = store
        self.provider = provider
        self.recency_weight = recency_weight
        self.min_similarity = min_similarity
        self._clock = clock

    async def retrieve(self, query: str, k: int = DEFAULT_TOP_K) -> RetrievalOutcome:
        """Rank completed records against ``query``.

        Args:
            query: Natural-language question
            k: Maximum number of results

        Returns:
            RetrievalOutcome whose status separates an empty corpus from a
            search that matched nothing

        Raises:
            ValueError: If ``k`` is less than 1
            ProviderError: If embedding the query fails
            DimensionMismatchError: If the query vector and a stored vector
                differ in length
        """
        if k < 1:
            raise ValueError("k must be at least 1")

        stats = self.store.get_stats()
        candidates = self.store.embedded_records()
        if not candidates:
            logger.info("Retrieval skipped: no indexed memories yet")
            return RetrievalOutcome(
                status=RetrievalStatus.EMPTY_CORPUS,
                indexed=0,
                pending=stats.awaiting_index,
            )

        query_vector = await self._embed_query(query)

        for record in candidates:
            if len(record.embedding) != query_vector.shape[0]:
                raise DimensionMismatchError(
                    query_vector.shape[0], len(record.embedding), record_id=record.id
                )

        matrix = np.asarray([record.embedding for record in candidates], dtype=np.float64)
        similarities = cosine_similarities(query_vector, matrix)

        now = self._clock()
        scored: list[RetrievalResult] = []
        for record, similarity in zip(candidates, similarities):
            similarity = float(similarity)
            if self.min_similarity is not None and similarity < self.min_similarity:
                continue
            score = rank_score(
                similarity, age_hours(record.capture_time, now), self.recency_weight
            )
            scored.append(RetrievalResult(record=record, similarity=similarity, score=score))

        scored.sort(key=lambda r: (r.score, r.record.capture_time), reverse=True)
        results = scored[:k]

        status = RetrievalStatus.MATCHED if results else RetrievalStatus.NO_MATCH
        logger.info(
            f"Retrieved {len(results)}/{len(candidates)} memories "
            f"({stats.awaiting_index} awaiting index)"
        )
        return RetrievalOutcome(
            status=status,
            results=results,
            indexed=len(candidates),
            pending=stats.awaiting_index,
        )

    async def retrieve_records(self, query: str, k: int = DEFAULT_TOP_K) -> list[RetrievalResult]:
        """Like ``retrieve`` but returns only the ranked results."""
        outcome = await self.retrieve(query, k)
        return outcome.results

    async def _embed_query(self, query: str) -> np.ndarray:
        vector = await self.provider.embed(query)
        if not vector:
            raise ProviderError("Provider returned an empty embedding for the query")
        return as_vector(vector)
