"""
Memory Manager - Wires the memory layers and the context assembler.

Coordinates between:
- WorkingMemory: Session-scoped scratchpad (Redis)
- LongTermMemory: Durable owner-scoped memories (PostgreSQL + pgvector)
- RecallEngine: Similarity search over long-term memory
- AccessTracker: Background access statistics
- ContextWindowAssembler: Budgeted context for a model turn

Clients are passed in explicitly; from_settings() builds them from
configuration for callers that do not manage their own.
"""
from typing import Optional, Sequence

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from agent_context.core.config import Settings, settings as default_settings
from agent_context.core.database import create_engine, create_session_factory
from agent_context.core.logging import get_logger, setup_logging
from agent_context.core.redis import create_redis
from agent_context.models.context import ContextWindow
from agent_context.services.context.assembler import ContextWindowAssembler, Message
from agent_context.services.memory.access import AccessTracker
from agent_context.services.memory.long_term import IdLike, LongTermMemory
from agent_context.services.memory.recall import RecallEngine
from agent_context.services.memory.working import WorkingMemory

logger = get_logger(__name__)


class MemoryManager:
    """
    Single entry point for the memory layers.
    """

    def __init__(
        self,
        redis: Redis,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
        engine: Optional[AsyncEngine] = None
    ):
        """
        Args:
            redis: asyncio Redis client for working memory
            session_factory: Session factory for the durable store
            settings: Tuning values (default: environment settings)
            engine: Engine to dispose on aclose(), when owned by the manager
        """
        settings = settings or default_settings

        self.redis = redis
        self.engine = engine

        self.working = WorkingMemory(
            redis,
            key_prefix=settings.WORKING_MEMORY_KEY_PREFIX,
            default_ttl_seconds=settings.WORKING_MEMORY_TTL_SECONDS,
            max_ttl_seconds=settings.WORKING_MEMORY_MAX_TTL_SECONDS
        )
        self.long_term = LongTermMemory(
            session_factory,
            dimensions=settings.EMBEDDING_DIMENSIONS
        )
        self.recall = RecallEngine(
            self.long_term,
            native_enabled=settings.RECALL_NATIVE_SEARCH_ENABLED
        )
        self.access_tracker = AccessTracker(
            self.long_term,
            max_queue_size=settings.ACCESS_TRACKER_QUEUE_SIZE
        )
        self.assembler = ContextWindowAssembler(
            self.working,
            self.recall,
            self.access_tracker,
            memory_budget_ratio=settings.CONTEXT_MEMORY_BUDGET_RATIO,
            recall_limit=settings.CONTEXT_RECALL_LIMIT,
            recall_threshold=settings.CONTEXT_RECALL_THRESHOLD
        )
        self.default_token_budget = settings.CONTEXT_TOKEN_BUDGET

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "MemoryManager":
        """Configure logging and build Redis and database clients from settings."""
        settings = settings or default_settings
        setup_logging(settings)
        engine = create_engine(settings)

        return cls(
            redis=create_redis(settings),
            session_factory=create_session_factory(engine),
            settings=settings,
            engine=engine
        )

    async def assemble_context(
        self,
        agent_id: IdLike,
        session_id: str,
        system_prompt: Optional[str],
        recent_messages: Sequence[Message],
        query_embedding: Optional[Sequence[float]] = None,
        token_budget: Optional[int] = None
    ) -> ContextWindow:
        """Assemble a context window; see ContextWindowAssembler.assemble."""
        return await self.assembler.assemble(
            agent_id,
            session_id,
            system_prompt,
            recent_messages,
            query_embedding=query_embedding,
            token_budget=self.default_token_budget if token_budget is None else token_budget
        )

    async def end_session(self, agent_id: IdLike, session_id: str) -> int:
        """
        Drop a session's working memory without waiting for expiry.

        Returns:
            Number of entries removed
        """
        return await self.working.clear(str(agent_id), str(session_id))

    async def aclose(self) -> None:
        """Drain pending access updates and release the clients."""
        await self.access_tracker.stop()
        await self.redis.aclose()

        if self.engine is not None:
            await self.engine.dispose()

        logger.info("Memory manager closed")
