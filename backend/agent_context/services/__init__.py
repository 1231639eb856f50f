"""
Services module - memory layers and context assembly.
"""
from agent_context.services.memory import MemoryManager
from agent_context.services.context import ContextWindowAssembler

__all__ = [
    "MemoryManager",
    "ContextWindowAssembler",
]
