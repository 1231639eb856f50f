"""
Recall Engine - Similarity-ranked retrieval of long-term memories.

Two paths:
- Native: pgvector ranks rows server-side (fast, needs the vector operator)
- Fallback: fetch pre-filtered candidates and rank them in-process

The native path is an accelerator; when it fails the engine degrades to
the fallback instead of failing context assembly.
"""
import math
from typing import Any, List, Optional, Sequence, Union

import numpy as np

from agent_context.core.config import settings
from agent_context.core.exceptions import DependencyError, ValidationError
from agent_context.core.logging import get_logger
from agent_context.models.context import RecallResult
from agent_context.models.memory import MemoryType
from agent_context.services.memory.long_term import IdLike, LongTermMemory

logger = get_logger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity dot(a, b) / (|a| * |b|).

    Returns 0.0 when either vector has zero norm or the lengths differ,
    so no NaN ever reaches the ranking.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    if va.shape != vb.shape or va.size == 0:
        return 0.0

    denominator = np.linalg.norm(va) * np.linalg.norm(vb)
    if denominator == 0:
        return 0.0

    return float(np.dot(va, vb) / denominator)


def decode_embedding(value: Any) -> Optional[np.ndarray]:
    """
    Decode a stored embedding.

    Accepts numpy arrays (pgvector's SQLAlchemy type), plain sequences,
    or pgvector text like '[0.1,0.2,...]'.
    """
    if value is None:
        return None

    if isinstance(value, (bytes, str)):
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        cleaned = value.strip().strip("[]")
        if not cleaned:
            return None
        return np.array([float(x) for x in cleaned.split(",")], dtype=np.float64)

    return np.asarray(value, dtype=np.float64)


class RecallEngine:
    """
    Ranked recall of long-term memories for a query vector.
    """

    def __init__(
        self,
        long_term: LongTermMemory,
        native_enabled: Optional[bool] = None
    ):
        """
        Initialize recall engine.

        Args:
            long_term: Long-term memory store
            native_enabled: Try server-side ranking first (default from settings)
        """
        self.long_term = long_term
        self.native_enabled = (
            settings.RECALL_NATIVE_SEARCH_ENABLED if native_enabled is None else native_enabled
        )

    async def search(
        self,
        agent_id: IdLike,
        query_embedding: Sequence[float],
        limit: Optional[int] = None,
        threshold: Optional[float] = None,
        memory_type: Optional[Union[str, MemoryType]] = None
    ) -> List[RecallResult]:
        """
        Search long-term memories by similarity.

        Args:
            agent_id: Agent whose memories are searched
            query_embedding: Query vector
            limit: Maximum results (default 10)
            threshold: Minimum similarity, inclusive (default 0.7)
            memory_type: Filter by memory type

        Returns:
            RecallResults ordered by descending similarity

        Raises:
            DependencyError: both paths failed
        """
        limit = settings.RECALL_DEFAULT_LIMIT if limit is None else limit
        threshold = settings.RECALL_DEFAULT_THRESHOLD if threshold is None else threshold

        if limit <= 0 or query_embedding is None or len(query_embedding) == 0:
            return []

        query = self.long_term.validate_embedding(query_embedding)

        # A zero vector is similar to nothing: cosine is 0 for every row
        if threshold > 0 and not np.any(np.asarray(query, dtype=np.float64)):
            return []

        if self.native_enabled:
            try:
                return await self._search_native(agent_id, query, limit, threshold, memory_type)
            except DependencyError as e:
                logger.warning(
                    "Native similarity search unavailable, falling back to in-process ranking",
                    agent_id=str(agent_id),
                    error=str(e)
                )

        return await self._search_fallback(agent_id, query, limit, threshold, memory_type)

    async def _search_native(
        self,
        agent_id: IdLike,
        query: List[float],
        limit: int,
        threshold: float,
        memory_type: Optional[Union[str, MemoryType]]
    ) -> List[RecallResult]:
        rows = await self.long_term.similarity_search(
            agent_id,
            query,
            limit=limit,
            threshold=threshold,
            memory_type=memory_type
        )

        logger.debug(
            "Native recall completed",
            agent_id=str(agent_id),
            results_count=len(rows)
        )

        # pgvector yields NaN distance for zero-norm stored vectors
        return [
            RecallResult(memory=memory, similarity=sim)
            for memory, sim in rows
            if not math.isnan(sim)
        ]

    async def _search_fallback(
        self,
        agent_id: IdLike,
        query: List[float],
        limit: int,
        threshold: float,
        memory_type: Optional[Union[str, MemoryType]]
    ) -> List[RecallResult]:
        candidates = await self.long_term.fetch_candidates(
            agent_id,
            limit=limit,
            memory_type=memory_type
        )

        results: List[RecallResult] = []
        for memory in candidates:
            try:
                embedding = decode_embedding(memory.embedding)
            except ValueError:
                logger.warning("Skipping memory with undecodable embedding", id=str(memory.id))
                continue

            if embedding is None:
                continue

            similarity = cosine_similarity(query, embedding)
            if similarity >= threshold:
                results.append(RecallResult(memory=memory, similarity=similarity))

        results.sort(key=lambda r: r.similarity, reverse=True)

        logger.debug(
            "Fallback recall completed",
            agent_id=str(agent_id),
            candidates_count=len(candidates),
            results_count=min(len(results), limit)
        )

        return results[:limit]
