"""Tests for cosine scoring, ranking and the query path."""

from __future__ import annotations

import math
from pathlib import Path

import pytest

from conftest import FakeEmbedder, write_doc
from knowledge_local.errors import EmbeddingError
from knowledge_local.local_index.cache import IndexCache
from knowledge_local.local_index.indexer import LocalIndexer
from knowledge_local.local_index.scanner import DocumentScanner
from knowledge_local.local_index.searcher import LocalSearcher, cosine_similarity, rank
from knowledge_local.local_index.store import Document, IndexStore, KnowledgeIndex


def _doc(name: str, embedding) -> Document:
    return Document(id=name, path=f"/k/{name}.md", content=f"content of {name}", embedding=tuple(embedding), last_modified=1)


class TestCosineSimilarity:
    def test_identical_vectors(self) -> None:
        assert cosine_similarity([0.3, 0.4, 0.5], [0.3, 0.4, 0.5]) == pytest.approx(1.0)

    def test_magnitude_independent(self) -> None:
        assert cosine_similarity([1.0, 2.0], [10.0, 20.0]) == pytest.approx(1.0)

    def test_orthogonal_and_opposite(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_vector_scores_zero(self) -> None:
        score = cosine_similarity([0.0, 0.0], [1.0, 1.0])
        assert score == 0.0
        assert not math.isnan(score)

    def test_dimension_mismatch_scores_zero(self) -> None:
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0]) == 0.0


class TestRank:
    def test_sorted_descending_and_thresholded(self) -> None:
        docs = [
            _doc("weak", [0.2, 1.0]),
            _doc("best", [1.0, 0.0]),
            _doc("good", [1.0, 0.5]),
            _doc("opposite", [-1.0, 0.0]),
        ]

        results = rank([1.0, 0.0], docs, max_results=10, min_score=0.3)

        assert [r.path for r in results] == ["/k/best.md", "/k/good.md"]
        assert all(r.score >= 0.3 for r in results)
        assert all(a.score >= b.score for a, b in zip(results, results[1:]))

    def test_truncates_to_max_results(self) -> None:
        docs = [_doc(str(i), [1.0, i / 10]) for i in range(10)]
        results = rank([1.0, 0.0], docs, max_results=3, min_score=-1.0)
        assert len(results) == 3
        assert results[0].path == "/k/0.md"

    def test_ties_keep_original_order(self) -> None:
        docs = [_doc("first", [0.6, 0.8]), _doc("second", [0.6, 0.8]), _doc("third", [0.6, 0.8])]
        results = rank([1.0, 0.0], docs, max_results=3, min_score=0.0)
        assert [r.path for r in results] == ["/k/first.md", "/k/second.md", "/k/third.md"]

    def test_zero_vectors_never_produce_nan(self) -> None:
        docs = [_doc("zero", [0.0, 0.0]), _doc("real", [1.0, 0.0])]

        results = rank([1.0, 0.0], docs, max_results=5, min_score=-1.0)

        assert [r.path for r in results] == ["/k/real.md", "/k/zero.md"]
        assert results[1].score == 0.0
        assert rank([0.0, 0.0], docs, max_results=5, min_score=0.1) == []

    def test_mismatched_dimensions_are_scored_zero(self) -> None:
        docs = [_doc("short", [1.0]), _doc("ok", [1.0, 0.0])]
        results = rank([1.0, 0.0], docs, max_results=5, min_score=0.5)
        assert [r.path for r in results] == ["/k/ok.md"]

    def test_empty_inputs(self) -> None:
        assert rank([1.0], [], max_results=3, min_score=0.0) == []
        assert rank([1.0], [_doc("a", [1.0])], max_results=0, min_score=0.0) == []


@pytest.fixture
def store(tmp_path: Path) -> IndexStore:
    return IndexStore(tmp_path / "index.json")


class TestLocalSearcher:
    @pytest.mark.asyncio
    async def test_self_similarity(self, knowledge_dir: Path, store: IndexStore, provider: FakeEmbedder) -> None:
        cache = IndexCache()
        write_doc(knowledge_dir / "deploy.md", "deploy with the blue green checklist")
        write_doc(knowledge_dir / "cooking.md", "bake bread at high heat")
        await LocalIndexer(DocumentScanner(knowledge_dir), store, cache, provider).ingest()
        searcher = LocalSearcher(store, cache, provider, max_results=5, min_score=-1.0)

        results = await searcher.search("deploy with the blue green checklist")

        assert results[0].content == "deploy with the blue green checklist"
        assert results[0].score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_query_returns_contents_only(self, store: IndexStore) -> None:
        provider = FakeEmbedder(vectors={"q": [1.0, 0.0]})
        cache = IndexCache(KnowledgeIndex(documents=(_doc("a", [1.0, 0.1]), _doc("b", [0.0, 1.0])), model=provider.model_name))
        searcher = LocalSearcher(store, cache, provider, max_results=3, min_score=0.5)

        assert await searcher.query("q") == ["content of a"]

    @pytest.mark.asyncio
    async def test_lazy_loads_snapshot_once(self, store: IndexStore, provider: FakeEmbedder) -> None:
        provider.vectors["q"] = [1.0, 0.0]
        on_disk = KnowledgeIndex(documents=(_doc("a", [1.0, 0.0]),), model=provider.model_name)
        store.save(on_disk)
        cache = IndexCache()
        searcher = LocalSearcher(store, cache, provider, min_score=0.5)

        assert await searcher.query("q") == ["content of a"]
        assert cache.read() == on_disk

        store.clear()
        assert await searcher.query("q") == ["content of a"]

    @pytest.mark.asyncio
    async def test_no_index_anywhere_returns_empty_without_embedding(self, store: IndexStore, provider: FakeEmbedder) -> None:
        cache = IndexCache()
        searcher = LocalSearcher(store, cache, provider)

        assert await searcher.query("anything") == []
        assert provider.calls == []
        assert cache.read() is None

    @pytest.mark.asyncio
    async def test_snapshot_from_other_model_is_not_served(self, store: IndexStore, provider: FakeEmbedder) -> None:
        store.save(KnowledgeIndex(documents=(_doc("a", [1.0, 0.0]),), model="some-other-model"))
        searcher = LocalSearcher(store, IndexCache(), provider, min_score=-1.0)

        assert await searcher.query("q") == []

    @pytest.mark.asyncio
    async def test_blank_query_returns_empty(self, store: IndexStore, provider: FakeEmbedder) -> None:
        cache = IndexCache(KnowledgeIndex(documents=(_doc("a", [1.0]),)))
        searcher = LocalSearcher(store, cache, provider)

        assert await searcher.query("   ") == []
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_provider_failure_is_an_error_not_empty(self, store: IndexStore, failing_provider: FakeEmbedder) -> None:
        cache = IndexCache(KnowledgeIndex(documents=(_doc("a", [1.0]),), model=failing_provider.model_name))
        searcher = LocalSearcher(store, cache, failing_provider)

        with pytest.raises(EmbeddingError):
            await searcher.query("q")

    @pytest.mark.asyncio
    async def test_limit_and_min_score_overrides(self, store: IndexStore) -> None:
        provider = FakeEmbedder(vectors={"q": [1.0, 0.0]})
        docs = tuple(_doc(str(i), [1.0, i / 4]) for i in range(5))
        searcher = LocalSearcher(store, IndexCache(KnowledgeIndex(documents=docs)), provider, max_results=1, min_score=0.99)

        assert len(await searcher.search("q")) == 1
        assert len(await searcher.search("q", limit=10, min_score=0.0)) == 5
