"""
Long-Term Memory - Durable, owner-scoped memories stored with pgvector.

Stores:
- Episodic memories (specific interactions)
- Semantic memories (learned facts and preferences)
- Procedural memories (workflows)
- Reflections (summaries and self-assessments)

Content and embedding are never modified after insert; only access
statistics change, through touch().
"""
import asyncio
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agent_context.core.config import settings
from agent_context.core.exceptions import DependencyError, NotFoundError, ValidationError
from agent_context.core.logging import get_logger
from agent_context.models.memory import AgentMemory, MemoryType, utcnow

logger = get_logger(__name__)

IdLike = Union[str, uuid.UUID]


@dataclass
class StoreMemoryOptions:
    """Options for storing a long-term memory."""
    agent_id: IdLike
    owner_id: IdLike
    content: str
    memory_type: Union[str, MemoryType] = MemoryType.SEMANTIC
    # Pre-computed embedding vector
    embedding: Optional[Sequence[float]] = None
    importance: float = 0.5
    session_id: Optional[IdLike] = None
    message_id: Optional[IdLike] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def coerce_uuid(value: IdLike, name: str = "id") -> uuid.UUID:
    """Parse an identifier, raising ValidationError when malformed."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}: {value!r}")


def coerce_memory_type(value: Union[str, MemoryType]) -> str:
    try:
        return MemoryType(value).value
    except ValueError:
        allowed = ", ".join(t.value for t in MemoryType)
        raise ValidationError(f"Invalid memory_type {value!r}, expected one of: {allowed}")


@contextmanager
def _db_errors(operation: str, **fields) -> Iterator[None]:
    """Translate durable store failures into the package's error taxonomy."""
    try:
        yield
    except IntegrityError as e:
        raise ValidationError(f"Long-term memory {operation} rejected: {e.orig}") from e
    except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
        logger.error(
            "Long-term memory operation failed",
            operation=operation,
            error=str(e),
            **fields
        )
        raise DependencyError(
            f"Long-term memory {operation} failed: {e}",
            dependency="database"
        ) from e


class LongTermMemory:
    """
    Long-term memory store on PostgreSQL + pgvector.

    Each operation opens its own session from the injected factory,
    so one instance is safe to share across concurrent requests.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dimensions: Optional[int] = settings.EMBEDDING_DIMENSIONS
    ):
        """
        Initialize long-term memory.

        Args:
            session_factory: Factory producing AsyncSession instances
            dimensions: Required embedding length, or None to accept any
        """
        self.session_factory = session_factory
        self.dimensions = dimensions

    def validate_embedding(self, embedding: Sequence[float]) -> List[float]:
        """Check dimensionality and return the vector as a list of floats."""
        vector = [float(x) for x in embedding]

        if not vector:
            raise ValidationError("Embedding must not be empty")

        if self.dimensions is not None and len(vector) != self.dimensions:
            raise ValidationError(
                f"Embedding must have {self.dimensions} dimensions, got {len(vector)}"
            )

        return vector

    async def store(
        self,
        options: Optional[StoreMemoryOptions] = None,
        **fields: Any
    ) -> AgentMemory:
        """
        Store a new long-term memory.

        Memories without an embedding are kept but excluded from
        similarity recall until one is stored with an embedding.

        Args:
            options: StoreMemoryOptions, or the same fields as keywords

        Returns:
            Created AgentMemory record
        """
        opts = options or StoreMemoryOptions(**fields)

        if not opts.content or not opts.content.strip():
            raise ValidationError("Memory content must not be empty")

        if not 0.0 <= opts.importance <= 1.0:
            raise ValidationError(f"importance must be within [0, 1], got {opts.importance}")

        now = utcnow()
        record = AgentMemory(
            id=uuid.uuid4(),
            agent_id=coerce_uuid(opts.agent_id, "agent_id"),
            owner_id=coerce_uuid(opts.owner_id, "owner_id"),
            content=opts.content,
            memory_type=coerce_memory_type(opts.memory_type),
            embedding=(
                self.validate_embedding(opts.embedding)
                if opts.embedding is not None else None
            ),
            importance=float(opts.importance),
            session_id=coerce_uuid(opts.session_id, "session_id") if opts.session_id else None,
            message_id=coerce_uuid(opts.message_id, "message_id") if opts.message_id else None,
            access_count=0,
            last_accessed_at=None,
            extra_metadata=dict(opts.metadata or {}),
            created_at=now,
            updated_at=now,
        )

        with _db_errors("store", agent_id=str(record.agent_id)):
            async with self.session_factory() as session:
                session.add(record)
                await session.commit()

        logger.debug(
            "Stored long-term memory",
            id=str(record.id),
            agent_id=str(record.agent_id),
            memory_type=record.memory_type,
            has_embedding=record.has_embedding
        )

        return record

    async def list(
        self,
        agent_id: IdLike,
        memory_type: Optional[Union[str, MemoryType]] = None,
        session_id: Optional[IdLike] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> Tuple[List[AgentMemory], int]:
        """
        List memories for an agent, newest first.

        Args:
            agent_id: Agent to list memories for
            memory_type: Filter by memory type
            session_id: Filter by originating session
            limit: Page size (default 20, capped at 100)
            offset: Rows to skip

        Returns:
            (page of records, total matching count)
        """
        limit = settings.MEMORY_LIST_DEFAULT_LIMIT if limit is None else limit
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be >= 1 and offset must be >= 0")
        limit = min(limit, settings.MEMORY_LIST_MAX_LIMIT)

        filters = [AgentMemory.agent_id == coerce_uuid(agent_id, "agent_id")]
        if memory_type:
            filters.append(AgentMemory.memory_type == coerce_memory_type(memory_type))
        if session_id:
            filters.append(AgentMemory.session_id == coerce_uuid(session_id, "session_id"))

        stmt = (
            select(AgentMemory)
            .where(*filters)
            .order_by(AgentMemory.created_at.desc(), AgentMemory.id.desc())
            .offset(offset)
            .limit(limit)
        )
        count_stmt = select(func.count()).select_from(AgentMemory).where(*filters)

        with _db_errors("list", agent_id=str(agent_id)):
            async with self.session_factory() as session:
                records = (await session.execute(stmt)).scalars().all()
                total = (await session.execute(count_stmt)).scalar_one()

        return list(records), total

    async def get(
        self,
        memory_id: IdLike,
        agent_id: Optional[IdLike] = None,
        owner_id: Optional[IdLike] = None
    ) -> Optional[AgentMemory]:
        """
        Get a single memory, optionally scoped to an agent and owner.

        Returns:
            AgentMemory or None if not found (or the id is malformed)
        """
        try:
            stmt = select(AgentMemory).where(
                AgentMemory.id == coerce_uuid(memory_id, "memory_id")
            )
            if agent_id is not None:
                stmt = stmt.where(AgentMemory.agent_id == coerce_uuid(agent_id, "agent_id"))
            if owner_id is not None:
                stmt = stmt.where(AgentMemory.owner_id == coerce_uuid(owner_id, "owner_id"))
        except ValidationError:
            logger.warning("Invalid identifier in memory lookup", memory_id=str(memory_id))
            return None

        with _db_errors("get", memory_id=str(memory_id)):
            async with self.session_factory() as session:
                return (await session.execute(stmt)).scalar_one_or_none()

    async def require(
        self,
        memory_id: IdLike,
        agent_id: Optional[IdLike] = None,
        owner_id: Optional[IdLike] = None
    ) -> AgentMemory:
        """Same as get(), raising NotFoundError instead of returning None."""
        record = await self.get(memory_id, agent_id=agent_id, owner_id=owner_id)
        if record is None:
            raise NotFoundError(f"Memory not found: {memory_id}")
        return record

    async def touch(self, memory_id: IdLike) -> bool:
        """
        Record an access: bump access_count and set last_accessed_at.

        Read-then-update, not atomic: concurrent touches may lose
        increments. The counter is advisory usage telemetry.

        Returns:
            True if the memory exists and was updated
        """
        try:
            memory_uuid = coerce_uuid(memory_id, "memory_id")
        except ValidationError:
            logger.warning("Invalid memory_id in touch", memory_id=str(memory_id))
            return False

        with _db_errors("touch", memory_id=str(memory_uuid)):
            async with self.session_factory() as session:
                current = (await session.execute(
                    select(AgentMemory.access_count).where(AgentMemory.id == memory_uuid)
                )).scalar_one_or_none()

                if current is None:
                    return False

                now = utcnow()
                await session.execute(
                    update(AgentMemory)
                    .where(AgentMemory.id == memory_uuid)
                    .values(access_count=current + 1, last_accessed_at=now, updated_at=now)
                )
                await session.commit()

        return True

    async def delete(self, memory_id: IdLike, owner_id: IdLike) -> bool:
        """
        Delete a memory owned by owner_id.

        Returns:
            True if deleted, False if no row matched (idempotent)
        """
        try:
            memory_uuid = coerce_uuid(memory_id, "memory_id")
            owner_uuid = coerce_uuid(owner_id, "owner_id")
        except ValidationError:
            logger.warning("Invalid identifier in delete", memory_id=str(memory_id))
            return False

        with _db_errors("delete", memory_id=str(memory_uuid)):
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(AgentMemory).where(
                        AgentMemory.id == memory_uuid,
                        AgentMemory.owner_id == owner_uuid,
                    )
                )
                await session.commit()

        deleted = result.rowcount > 0

        logger.info(
            "Deleted long-term memory",
            memory_id=str(memory_uuid),
            deleted=deleted
        )

        return deleted

    def similarity_statement(
        self,
        agent_id: IdLike,
        query_embedding: Sequence[float],
        limit: int,
        threshold: float,
        memory_type: Optional[Union[str, MemoryType]] = None
    ) -> Select:
        """Server-side ranking query: (AgentMemory, similarity) rows, nearest first."""
        distance = AgentMemory.embedding.cosine_distance(list(query_embedding))
        similarity = (1 - distance).label("similarity")

        stmt = (
            select(AgentMemory, similarity)
            .where(
                AgentMemory.agent_id == coerce_uuid(agent_id, "agent_id"),
                AgentMemory.embedding.isnot(None),
                (1 - distance) >= threshold,
            )
            .order_by(distance)
            .limit(limit)
        )
        if memory_type:
            stmt = stmt.where(AgentMemory.memory_type == coerce_memory_type(memory_type))

        return stmt

    async def similarity_search(
        self,
        agent_id: IdLike,
        query_embedding: Sequence[float],
        limit: int,
        threshold: float,
        memory_type: Optional[Union[str, MemoryType]] = None
    ) -> List[Tuple[AgentMemory, float]]:
        """
        Rank memories server-side with pgvector's cosine distance.

        similarity = 1 - cosine_distance. Only rows at or above threshold
        are returned, most similar first.

        Raises:
            DependencyError: operator unavailable or database unreachable
        """
        stmt = self.similarity_statement(agent_id, query_embedding, limit, threshold, memory_type)

        with _db_errors("similarity_search", agent_id=str(agent_id)):
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).all()

        return [(row[0], float(row[1])) for row in rows]

    async def fetch_candidates(
        self,
        agent_id: IdLike,
        limit: int,
        memory_type: Optional[Union[str, MemoryType]] = None
    ) -> List[AgentMemory]:
        """
        Fetch embedded memories for in-process ranking.

        Filtered by agent and type, newest first, NOT ranked by similarity.
        """
        stmt = (
            select(AgentMemory)
            .where(
                AgentMemory.agent_id == coerce_uuid(agent_id, "agent_id"),
                AgentMemory.embedding.isnot(None),
            )
            .order_by(AgentMemory.created_at.desc())
            .limit(limit)
        )
        if memory_type:
            stmt = stmt.where(AgentMemory.memory_type == coerce_memory_type(memory_type))

        with _db_errors("fetch_candidates", agent_id=str(agent_id)):
            async with self.session_factory() as session:
                return list((await session.execute(stmt)).scalars().all())
