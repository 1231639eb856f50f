"""
Memory module - Two-tier memory for agents.

Memory layers:
- WorkingMemory: Session-scoped scratchpad with per-entry expiry (Redis)
- LongTermMemory: Durable owner-scoped memories with embeddings (pgvector)
- RecallEngine: Similarity recall with native and in-process ranking
- AccessTracker: Background recording of memory accesses
"""
from agent_context.services.memory.working import WorkingMemory
from agent_context.services.memory.long_term import LongTermMemory, StoreMemoryOptions
from agent_context.services.memory.recall import RecallEngine, cosine_similarity
from agent_context.services.memory.access import AccessTracker
from agent_context.services.memory.manager import MemoryManager

__all__ = [
    "WorkingMemory",
    "LongTermMemory",
    "StoreMemoryOptions",
    "RecallEngine",
    "cosine_similarity",
    "AccessTracker",
    "MemoryManager",
]
