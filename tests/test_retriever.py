"""Retriever Tests.

Tests for top-K ranking, recency weighting and empty-corpus handling.
"""

import tempfile
import unittest
from pathlib import Path

from glimpse.core.errors import DimensionMismatchError, ProviderError
from glimpse.core.models import EmbeddingStatus, RetrievalStatus
from glimpse.retrieval.retriever import Retriever
from glimpse.retrieval.similarity import MILLIS_PER_HOUR
from glimpse.storage.memory_store import MemoryStore

T0 = 1_700_000_000_000


class FixedClock:
    """Settable millisecond clock."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now


class KeywordEmbedder:
    """Mock embedding provider mapping known texts to fixed vectors."""

    def __init__(self, vectors: dict[str, list[float]]):
        self.vectors = vectors
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return self.vectors[text]


class FailingEmbedder:
    async def embed(self, text: str) -> list[float]:
        raise ProviderError("embedding service unavailable", status_code=503)


class RetrieverTest(unittest.IsolatedAsyncioTestCase):
    """Test Retriever functionality."""

    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.clock = FixedClock()
        self.store = MemoryStore(
            Path(self._tmp.name) / "db_retrieval.json", debounce_seconds=0.01, clock=self.clock
        )
        await self.store.initialize()

    async def asyncTearDown(self) -> None:
        await self.store.close()
        self._tmp.cleanup()

    async def add_indexed(self, description: str, vector: list[float], at: int = T0) -> str:
        self.clock.now = at
        record_id = await self.store.add_record(f"{description}.png", description)
        await self.store.mark_processing(record_id)
        await self.store.mark_completed(record_id, vector)
        return record_id

    async def add_pending(self, description: str) -> str:
        return await self.store.add_record(f"{description}.png", description)

    def retriever(self, provider, **kwargs) -> Retriever:
        return Retriever(self.store, provider, clock=self.clock, **kwargs)

    async def test_most_similar_record_ranks_first(self) -> None:
        """Test that a query about cars finds the red car screenshot."""
        car = await self.add_indexed("red car", [1.0, 0.0, 0.0])
        await self.add_indexed("blue sky", [0.0, 1.0, 0.0])
        provider = KeywordEmbedder({"car": [0.9, 0.1, 0.0]})

        outcome = await self.retriever(provider).retrieve("car", k=1)
        self.assertEqual(outcome.status, RetrievalStatus.MATCHED)
        self.assertEqual(len(outcome.results), 1)
        self.assertEqual(outcome.results[0].record.id, car)
        self.assertGreater(outcome.results[0].similarity, 0.9)

    async def test_only_completed_records_are_candidates(self) -> None:
        """Test that pending, processing and failed records are never returned."""
        completed = [await self.add_indexed(f"done {i}", [1.0, float(i)]) for i in range(5)]
        await self.add_pending("waiting 1")
        await self.add_pending("waiting 2")
        in_flight = await self.add_pending("in flight")
        await self.store.mark_processing(in_flight)
        failed = await self.add_pending("broken")
        await self.store.mark_processing(failed)
        await self.store.mark_failed(failed)

        provider = KeywordEmbedder({"anything": [1.0, 1.0]})
        outcome = await self.retriever(provider).retrieve("anything", k=10)

        self.assertEqual(len(outcome.results), 5)
        self.assertEqual({r.record.id for r in outcome.results}, set(completed))
        for result in outcome.results:
            self.assertEqual(result.record.status, EmbeddingStatus.COMPLETED)
        self.assertEqual(outcome.indexed, 5)
        self.assertEqual(outcome.pending, 3)
        self.assertTrue(outcome.indexing_in_progress)

    async def test_top_k_limits_results(self) -> None:
        for i in range(5):
            await self.add_indexed(f"r{i}", [1.0, float(i)])
        provider = KeywordEmbedder({"q": [1.0, 2.0]})

        outcome = await self.retriever(provider).retrieve("q", k=2)
        self.assertEqual(len(outcome.results), 2)
        scores = [r.score for r in outcome.results]
        self.assertEqual(scores, sorted(scores, reverse=True))

    async def test_empty_corpus(self) -> None:
        """Test that nothing indexed is reported without calling the provider."""
        await self.add_pending("not yet")
        provider = KeywordEmbedder({})

        outcome = await self.retriever(provider).retrieve("anything")
        self.assertEqual(outcome.status, RetrievalStatus.EMPTY_CORPUS)
        self.assertTrue(outcome.is_empty_corpus)
        self.assertEqual(outcome.results, [])
        self.assertEqual(outcome.pending, 1)
        self.assertEqual(provider.calls, [])

    async def test_empty_store(self) -> None:
        outcome = await self.retriever(KeywordEmbedder({})).retrieve("anything")
        self.assertEqual(outcome.status, RetrievalStatus.EMPTY_CORPUS)
        self.assertEqual(outcome.pending, 0)

    async def test_no_match_is_not_empty_corpus(self) -> None:
        """Test that a threshold excluding everything reports no_match."""
        await self.add_indexed("sky", [0.0, 1.0])
        provider = KeywordEmbedder({"car": [1.0, 0.0]})

        outcome = await self.retriever(provider, min_similarity=0.5).retrieve("car")
        self.assertEqual(outcome.status, RetrievalStatus.NO_MATCH)
        self.assertFalse(outcome.is_empty_corpus)
        self.assertEqual(outcome.indexed, 1)

    async def test_recency_breaks_similarity_ties(self) -> None:
        """Test that with equal similarity the more recent capture ranks higher."""
        old = await self.add_indexed("old", [1.0, 0.0], at=T0)
        new = await self.add_indexed("new", [1.0, 0.0], at=T0 + 10 * MILLIS_PER_HOUR)
        self.clock.now = T0 + 10 * MILLIS_PER_HOUR
        provider = KeywordEmbedder({"q": [1.0, 0.0]})

        outcome = await self.retriever(provider).retrieve("q", k=2)
        self.assertEqual([r.record.id for r in outcome.results], [new, old])
        self.assertAlmostEqual(outcome.results[0].score, 1.0)
        self.assertAlmostEqual(outcome.results[1].score, 0.9)
        self.assertAlmostEqual(outcome.results[1].similarity, 1.0)

    async def test_recency_can_outweigh_similarity(self) -> None:
        stale = await self.add_indexed("stale exact", [1.0, 0.0], at=T0)
        fresh = await self.add_indexed("fresh close", [0.8, 0.6], at=T0 + 100 * MILLIS_PER_HOUR)
        self.clock.now = T0 + 100 * MILLIS_PER_HOUR
        provider = KeywordEmbedder({"q": [1.0, 0.0]})

        outcome = await self.retriever(provider).retrieve("q", k=2)
        self.assertEqual([r.record.id for r in outcome.results], [fresh, stale])

        unweighted = await self.retriever(provider, recency_weight=0.0).retrieve("q", k=2)
        self.assertEqual([r.record.id for r in unweighted.results], [stale, fresh])

    async def test_equal_scores_prefer_newer_capture(self) -> None:
        first = await self.add_indexed("first", [1.0, 0.0], at=T0)
        second = await self.add_indexed("second", [1.0, 0.0], at=T0 + 1)
        provider = KeywordEmbedder({"q": [1.0, 0.0]})

        outcome = await self.retriever(provider, recency_weight=0.0).retrieve("q", k=2)
        self.assertEqual([r.record.id for r in outcome.results], [second, first])

    async def test_provider_error_propagates(self) -> None:
        await self.add_indexed("something", [1.0, 0.0])
        with self.assertRaises(ProviderError):
            await self.retriever(FailingEmbedder()).retrieve("q")

    async def test_empty_query_embedding_is_an_error(self) -> None:
        await self.add_indexed("something", [1.0, 0.0])
        with self.assertRaises(ProviderError):
            await self.retriever(KeywordEmbedder({"q": []})).retrieve("q")

    async def test_dimension_mismatch(self) -> None:
        """Test that vectors from a different model are reported, not silently scored."""
        record_id = await self.add_indexed("three dims", [1.0, 0.0, 0.0])
        provider = KeywordEmbedder({"q": [1.0, 0.0]})

        with self.assertRaises(DimensionMismatchError) as ctx:
            await self.retriever(provider).retrieve("q")
        self.assertEqual(ctx.exception.record_id, record_id)

    async def test_invalid_k(self) -> None:
        with self.assertRaises(ValueError):
            await self.retriever(KeywordEmbedder({})).retrieve("q", k=0)

    async def test_retrieve_records(self) -> None:
        record_id = await self.add_indexed("only", [1.0])
        results = await self.retriever(KeywordEmbedder({"q": [2.0]})).retrieve_records("q")
        self.assertEqual([r.record.id for r in results], [record_id])
        self.assertEqual(results[0].to_dict()["description"], "only")


if __name__ == "__main__":
    unittest.main()
