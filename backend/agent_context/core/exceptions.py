"""
Error taxonomy shared by the memory stores and the context assembler.
"""
from typing import Optional


class AgentContextError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(AgentContextError):
    """Input rejected before reaching any store (e.g. empty memory content)."""


class NotFoundError(AgentContextError):
    """
    A referenced record does not exist.

    touch() and delete() report a missing row as False instead of raising,
    so deletion stays idempotent. Only strict lookups raise this.
    """


class DependencyError(AgentContextError):
    """The cache or the durable store is unreachable, timed out, or failed."""

    def __init__(self, message: str, dependency: Optional[str] = None):
        super().__init__(message)
        self.dependency = dependency
