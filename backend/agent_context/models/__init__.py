from agent_context.models.memory import AgentMemory, MemoryType
from agent_context.models.context import (
    ContextMessage,
    ContextWindow,
    RecallResult,
    RecalledMemory,
)

__all__ = [
    "AgentMemory",
    "MemoryType",
    "ContextMessage",
    "ContextWindow",
    "RecallResult",
    "RecalledMemory",
]
