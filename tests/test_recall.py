"""
Unit tests for RecallEngine and cosine similarity.

Tests:
- cosine_similarity(): bounds and degenerate vectors
- search(): threshold, ordering, limit and scoping over a real store
- Native path: used when available, fallback when it fails
"""
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest
from sqlalchemy.dialects import postgresql

from agent_context.core.exceptions import DependencyError, ValidationError
from agent_context.services.memory.long_term import LongTermMemory
from agent_context.services.memory.recall import (
    RecallEngine,
    cosine_similarity,
    decode_embedding,
)


def _mock_store(dimensions=2):
    store = MagicMock(spec=LongTermMemory)
    store.validate_embedding.side_effect = LongTermMemory(None, dimensions).validate_embedding
    store.similarity_search = AsyncMock()
    store.fetch_candidates = AsyncMock(return_value=[])
    return store


# ============================================================================
# cosine_similarity
# ============================================================================

def test_cosine_of_vector_with_itself_is_one():
    assert cosine_similarity([0.3, 0.4, 0.5], [0.3, 0.4, 0.5]) == pytest.approx(1.0)


def test_cosine_orthogonal_is_zero():
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)


def test_cosine_opposite_is_minus_one():
    assert cosine_similarity([1, 2], [-1, -2]) == pytest.approx(-1.0)


def test_cosine_zero_vector_is_zero():
    assert cosine_similarity([0, 0], [1, 0]) == 0.0
    assert cosine_similarity([0, 0], [0, 0]) == 0.0


def test_cosine_length_mismatch_is_zero():
    assert cosine_similarity([1, 0, 0], [1, 0]) == 0.0


def test_cosine_stays_in_range():
    rng = np.random.default_rng(7)
    for _ in range(20):
        a, b = rng.normal(size=8), rng.normal(size=8)
        assert -1.0 - 1e-9 <= cosine_similarity(a, b) <= 1.0 + 1e-9


def test_decode_embedding_text_form():
    decoded = decode_embedding("[0.5, -1,2]")

    assert decoded.tolist() == [0.5, -1.0, 2.0]
    assert decode_embedding(None) is None
    assert decode_embedding(b"[]") is None


# ============================================================================
# search over a real store (SQLite => in-process fallback)
# ============================================================================

@pytest.mark.asyncio
async def test_recall_finds_matching_memory(long_term, recall_engine, agent_id, owner_id):
    memory = await long_term.store(
        agent_id=agent_id, owner_id=owner_id,
        content="user prefers dark mode", embedding=[1.0, 0.0],
    )

    results = await recall_engine.search(agent_id, [1.0, 0.0], limit=5, threshold=0.7)

    assert len(results) == 1
    assert results[0].memory.id == memory.id
    assert results[0].similarity == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_recall_orthogonal_query_finds_nothing(long_term, recall_engine, agent_id, owner_id):
    await long_term.store(
        agent_id=agent_id, owner_id=owner_id,
        content="user prefers dark mode", embedding=[1.0, 0.0],
    )

    assert await recall_engine.search(agent_id, [0.0, 1.0], limit=5, threshold=0.7) == []


@pytest.mark.asyncio
async def test_recall_threshold_is_inclusive(long_term, recall_engine, agent_id, owner_id):
    await long_term.store(
        agent_id=agent_id, owner_id=owner_id, content="exact", embedding=[0.6, 0.8],
    )

    similarity = cosine_similarity([1.0, 0.0], [0.6, 0.8])
    results = await recall_engine.search(agent_id, [1.0, 0.0], threshold=similarity)

    assert len(results) == 1


@pytest.mark.asyncio
async def test_recall_ordered_and_limited(long_term, recall_engine, agent_id, owner_id):
    vectors = {"far": [0.7, 0.71], "near": [1.0, 0.05], "nearest": [1.0, 0.0]}
    for content, embedding in vectors.items():
        await long_term.store(
            agent_id=agent_id, owner_id=owner_id, content=content, embedding=embedding,
        )

    results = await recall_engine.search(agent_id, [1.0, 0.0], limit=10, threshold=0.5)
    assert [r.memory.content for r in results] == ["nearest", "near", "far"]
    similarities = [r.similarity for r in results]
    assert similarities == sorted(similarities, reverse=True)

    limited = await recall_engine.search(agent_id, [1.0, 0.0], limit=2, threshold=0.5)
    assert len(limited) <= 2


@pytest.mark.asyncio
async def test_recall_scoped_to_agent_and_embedded_rows(long_term, recall_engine, agent_id, owner_id):
    await long_term.store(
        agent_id=uuid.uuid4(), owner_id=owner_id, content="someone else", embedding=[1.0, 0.0],
    )
    await long_term.store(agent_id=agent_id, owner_id=owner_id, content="no vector")

    assert await recall_engine.search(agent_id, [1.0, 0.0], threshold=0.0) == []


@pytest.mark.asyncio
async def test_recall_type_filter(long_term, recall_engine, agent_id, owner_id):
    await long_term.store(
        agent_id=agent_id, owner_id=owner_id, content="fact", embedding=[1.0, 0.0],
    )
    await long_term.store(
        agent_id=agent_id, owner_id=owner_id, content="how-to",
        memory_type="procedural", embedding=[1.0, 0.0],
    )

    results = await recall_engine.search(
        agent_id, [1.0, 0.0], threshold=0.5, memory_type="procedural"
    )

    assert [r.memory.content for r in results] == ["how-to"]


@pytest.mark.asyncio
async def test_recall_rejects_wrong_query_dimensions(recall_engine, agent_id):
    with pytest.raises(ValidationError):
        await recall_engine.search(agent_id, [1.0, 0.0, 0.0])


@pytest.mark.asyncio
async def test_recall_empty_query_or_zero_limit(recall_engine, agent_id):
    assert await recall_engine.search(agent_id, []) == []
    assert await recall_engine.search(agent_id, [1.0, 0.0], limit=0) == []


# ============================================================================
# Native path selection
# ============================================================================

@pytest.mark.asyncio
async def test_native_results_used_when_available(agent_id):
    store = _mock_store()
    memory = MagicMock(content="native hit")
    store.similarity_search.return_value = [(memory, 0.93)]

    results = await RecallEngine(store, native_enabled=True).search(agent_id, [1.0, 0.0])

    assert results[0].memory is memory
    assert results[0].similarity == pytest.approx(0.93)
    store.fetch_candidates.assert_not_called()


@pytest.mark.asyncio
async def test_native_failure_falls_back(agent_id):
    store = _mock_store()
    store.similarity_search.side_effect = DependencyError("operator missing", dependency="database")
    candidate = MagicMock(embedding=np.array([1.0, 0.0]), content="fallback hit")
    store.fetch_candidates.return_value = [candidate]

    results = await RecallEngine(store, native_enabled=True).search(
        agent_id, [1.0, 0.0], limit=3, threshold=0.7
    )

    assert [r.memory for r in results] == [candidate]
    store.fetch_candidates.assert_awaited_once_with(agent_id, limit=3, memory_type=None)


@pytest.mark.asyncio
async def test_native_disabled_skips_native_path(agent_id):
    store = _mock_store()

    await RecallEngine(store, native_enabled=False).search(agent_id, [1.0, 0.0])

    store.similarity_search.assert_not_called()
    store.fetch_candidates.assert_awaited_once()


@pytest.mark.asyncio
async def test_both_paths_failing_raises_dependency_error(agent_id):
    store = _mock_store()
    store.similarity_search.side_effect = DependencyError("operator missing", dependency="database")
    store.fetch_candidates.side_effect = DependencyError("unreachable", dependency="database")

    with pytest.raises(DependencyError):
        await RecallEngine(store, native_enabled=True).search(agent_id, [1.0, 0.0])


# ============================================================================
# Zero vectors and NaN
# ============================================================================

@pytest.mark.asyncio
async def test_zero_query_matches_nothing(agent_id):
    store = _mock_store()

    results = await RecallEngine(store, native_enabled=True).search(
        agent_id, [0.0, 0.0], threshold=0.7
    )

    assert results == []
    store.similarity_search.assert_not_called()
    store.fetch_candidates.assert_not_called()


@pytest.mark.asyncio
async def test_native_nan_similarities_dropped(agent_id):
    store = _mock_store()
    degenerate, hit = MagicMock(content="zero vector"), MagicMock(content="hit")
    store.similarity_search.return_value = [(hit, 0.9), (degenerate, float("nan"))]

    results = await RecallEngine(store, native_enabled=True).search(agent_id, [1.0, 0.0])

    assert [r.memory for r in results] == [hit]


@pytest.mark.asyncio
async def test_zero_stored_vector_scores_zero(long_term, recall_engine, agent_id, owner_id):
    await long_term.store(
        agent_id=agent_id, owner_id=owner_id, content="zero vector", embedding=[0.0, 0.0],
    )

    assert await recall_engine.search(agent_id, [1.0, 0.0], threshold=0.7) == []

    results = await recall_engine.search(agent_id, [1.0, 0.0], threshold=0.0)
    assert [r.similarity for r in results] == [0.0]


# ============================================================================
# Native query shape and parity with the fallback
# ============================================================================

def test_similarity_statement_ranks_server_side(agent_id):
    stmt = LongTermMemory(None, dimensions=2).similarity_statement(
        agent_id, [1.0, 0.0], limit=3, threshold=0.7, memory_type="episodic"
    )

    compiled = stmt.compile(dialect=postgresql.dialect())
    sql = " ".join(str(compiled).split())

    assert "agent_memories.embedding <=>" in sql
    assert ") >= " in sql
    assert "agent_memories.embedding IS NOT NULL" in sql
    assert "agent_memories.memory_type = " in sql
    assert "ORDER BY agent_memories.embedding <=>" in sql
    assert "LIMIT" in sql

    params = list(compiled.params.values())
    assert 0.7 in params
    assert 3 in params
    assert "episodic" in params
    assert agent_id in params


def test_similarity_statement_without_type_filter(agent_id):
    stmt = LongTermMemory(None, dimensions=2).similarity_statement(
        agent_id, [1.0, 0.0], limit=3, threshold=0.7
    )

    sql = str(stmt.compile(dialect=postgresql.dialect()))

    assert "memory_type =" not in sql


def _ranking_store(memories):
    """Store whose native search ranks the same rows the way the server does."""
    store = _mock_store()

    async def server_rank(agent_id, query, limit, threshold, memory_type=None):
        scored = [(m, cosine_similarity(query, m.embedding)) for m in memories]
        kept = [(m, s) for m, s in scored if s >= threshold]
        kept.sort(key=lambda pair: pair[1], reverse=True)
        return kept[:limit]

    store.similarity_search.side_effect = server_rank
    store.fetch_candidates.return_value = list(memories)
    return store


@pytest.mark.asyncio
async def test_native_and_fallback_agree(agent_id):
    memories = [
        SimpleNamespace(id=uuid.uuid4(), content=name, embedding=np.array(vector))
        for name, vector in [
            ("far", [0.7, 0.71]),
            ("nearest", [1.0, 0.0]),
            ("orthogonal", [0.0, 1.0]),
            ("near", [1.0, 0.1]),
            ("close", [1.0, 0.3]),
        ]
    ]

    for limit, threshold in [(5, 0.5), (2, 0.5), (5, 0.96)]:
        native = await RecallEngine(_ranking_store(memories), native_enabled=True).search(
            agent_id, [1.0, 0.0], limit=limit, threshold=threshold
        )
        fallback = await RecallEngine(_ranking_store(memories), native_enabled=False).search(
            agent_id, [1.0, 0.0], limit=len(memories), threshold=threshold
        )

        assert [r.memory.content for r in native] == [r.memory.content for r in fallback][:limit]
        assert [r.similarity for r in native] == pytest.approx(
            [r.similarity for r in fallback][:limit]
        )
