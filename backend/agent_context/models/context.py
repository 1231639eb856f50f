"""
Ephemeral records produced by recall and context assembly.
None of these are persisted.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from agent_context.models.memory import AgentMemory


@dataclass
class RecallResult:
    """A long-term memory paired with its similarity to one query."""
    memory: AgentMemory
    similarity: float


@dataclass
class RecalledMemory:
    """A recalled memory as injected into the context window."""
    content: str
    type: str
    similarity: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"content": self.content, "type": self.type}
        if self.similarity is not None:
            data["similarity"] = self.similarity
        return data


@dataclass
class ContextMessage:
    """A conversation message kept in the window with its token estimate."""
    role: str
    content: str
    token_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "tokenCount": self.token_count,
        }


@dataclass
class ContextWindow:
    """
    Assembled context window for one model turn.

    Parts are listed in priority order. tokens_used is advisory accounting
    and may exceed token_budget when the system prompt or working memory
    alone are larger than the budget.
    """
    system_prompt: Optional[str]
    memories: List[RecalledMemory] = field(default_factory=list)
    working_memory: Dict[str, str] = field(default_factory=dict)
    messages: List[ContextMessage] = field(default_factory=list)
    token_budget: int = 0
    tokens_used: int = 0

    def render_working_memory(self) -> str:
        """Working memory as "key: value" lines."""
        return render_working_memory(self.working_memory)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "systemPrompt": self.system_prompt,
            "memories": [m.to_dict() for m in self.memories],
            "workingMemory": dict(self.working_memory),
            "messages": [m.to_dict() for m in self.messages],
            "tokenBudget": self.token_budget,
            "tokensUsed": self.tokens_used,
        }


def render_working_memory(entries: Dict[str, str]) -> str:
    return "\n".join(f"{key}: {value}" for key, value in entries.items())
