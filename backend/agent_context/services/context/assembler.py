"""
Context Window Assembler - Builds the budgeted context for one agent turn.

Priority order (highest to lowest):
  1. System prompt (always included in full)
  2. Working memory (always included in full)
  3. Recalled long-term memories (15% of the remaining budget)
  4. Recent conversation messages (newest kept first, trimmed to fit)
"""
import math
import time
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from agent_context.core.config import settings
from agent_context.core.exceptions import ValidationError
from agent_context.core.logging import get_logger, log_context_assembly
from agent_context.models.context import (
    ContextMessage,
    ContextWindow,
    RecalledMemory,
    render_working_memory,
)
from agent_context.services.context.tokens import estimate_tokens
from agent_context.services.memory.access import AccessTracker
from agent_context.services.memory.long_term import IdLike
from agent_context.services.memory.recall import RecallEngine
from agent_context.services.memory.working import WorkingMemory

logger = get_logger(__name__)

Message = Union[Mapping[str, Any], Any]


def _message_field(message: Message, name: str) -> Any:
    if isinstance(message, Mapping):
        return message.get(name)
    return getattr(message, name, None)


class ContextWindowAssembler:
    """
    Blends working memory, recalled memories and message history into a
    single ordered payload under a token budget.

    Stateless: one instance serves concurrent assemblies for any session.
    """

    def __init__(
        self,
        working_memory: WorkingMemory,
        recall_engine: RecallEngine,
        access_tracker: AccessTracker,
        memory_budget_ratio: Optional[float] = None,
        recall_limit: Optional[int] = None,
        recall_threshold: Optional[float] = None
    ):
        self.working_memory = working_memory
        self.recall_engine = recall_engine
        self.access_tracker = access_tracker
        self.memory_budget_ratio = (
            settings.CONTEXT_MEMORY_BUDGET_RATIO if memory_budget_ratio is None else memory_budget_ratio
        )
        self.recall_limit = settings.CONTEXT_RECALL_LIMIT if recall_limit is None else recall_limit
        self.recall_threshold = (
            settings.CONTEXT_RECALL_THRESHOLD if recall_threshold is None else recall_threshold
        )

    async def assemble(
        self,
        agent_id: IdLike,
        session_id: str,
        system_prompt: Optional[str],
        recent_messages: Sequence[Message],
        query_embedding: Optional[Sequence[float]] = None,
        token_budget: Optional[int] = None
    ) -> ContextWindow:
        """
        Assemble a context window for an agent turn.

        Args:
            agent_id: Agent identifier
            session_id: Session identifier
            system_prompt: Agent's system prompt (may be None)
            recent_messages: Session messages, oldest first, each with role/content
            query_embedding: Embedding of the latest user message, enables recall
            token_budget: Target size in estimated tokens (default 8192)

        Returns:
            ContextWindow

        Raises:
            ValidationError: negative token_budget, or a query_embedding whose
                dimensionality does not match the long-term store
            DependencyError: working memory or long-term memory unreachable
        """
        budget = settings.CONTEXT_TOKEN_BUDGET if token_budget is None else token_budget
        if budget < 0:
            raise ValidationError(f"token_budget must be >= 0, got {budget}")

        started = time.perf_counter()
        window = ContextWindow(system_prompt=system_prompt or None, token_budget=budget)

        # 1. System prompt: never trimmed, even when it alone exceeds the budget
        if window.system_prompt:
            window.tokens_used += estimate_tokens(window.system_prompt)

        # 2. Working memory: counted in full, never partially included
        window.working_memory = await self.working_memory.get_all(str(agent_id), str(session_id))
        if window.working_memory:
            window.tokens_used += estimate_tokens(render_working_memory(window.working_memory))

        # 3. Long-term memories
        if query_embedding is not None and len(query_embedding) > 0:
            memory_budget = math.floor((budget - window.tokens_used) * self.memory_budget_ratio)
            window.memories, memory_tokens = await self._recall(
                agent_id, query_embedding, memory_budget
            )
            window.tokens_used += memory_tokens

        # 4. Recent messages
        window.messages, message_tokens = self._fit_messages(
            recent_messages, budget - window.tokens_used
        )
        window.tokens_used += message_tokens

        log_context_assembly(
            logger,
            window,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            agent_id=str(agent_id),
            session_id=str(session_id)
        )

        return window

    async def _recall(
        self,
        agent_id: IdLike,
        query_embedding: Sequence[float],
        memory_budget: int
    ) -> Tuple[List[RecalledMemory], int]:
        """Greedy by rank: stop at the first memory that does not fit."""
        results = await self.recall_engine.search(
            agent_id,
            query_embedding,
            limit=self.recall_limit,
            threshold=self.recall_threshold
        )

        memories: List[RecalledMemory] = []
        used = 0

        for result in results[:self.recall_limit]:
            # NaN fails this comparison and is skipped
            if not result.similarity >= self.recall_threshold:
                continue

            tokens = estimate_tokens(result.memory.content)
            if used + tokens > memory_budget:
                break

            memories.append(RecalledMemory(
                content=result.memory.content,
                type=result.memory.memory_type,
                similarity=result.similarity
            ))
            used += tokens

            self.access_tracker.record(result.memory.id)

        return memories, used

    def _fit_messages(
        self,
        recent_messages: Sequence[Message],
        remaining_budget: int
    ) -> Tuple[List[ContextMessage], int]:
        """Keep the newest messages that fit, returned oldest first."""
        kept: List[ContextMessage] = []
        used = 0

        for message in reversed(list(recent_messages)):
            content = _message_field(message, "content") or ""
            tokens = estimate_tokens(content)

            if used + tokens > remaining_budget:
                break

            kept.append(ContextMessage(
                role=_message_field(message, "role") or "",
                content=content,
                token_count=tokens
            ))
            used += tokens

        kept.reverse()
        return kept, used
