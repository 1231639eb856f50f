"""
Context module - budgeted context window assembly.
"""
from agent_context.services.context.tokens import estimate_tokens
from agent_context.services.context.assembler import ContextWindowAssembler

__all__ = ["estimate_tokens", "ContextWindowAssembler"]
