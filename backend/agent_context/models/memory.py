"""
Agent Memory database model for long-term memory.
Uses pgvector for semantic similarity search.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from pgvector.sqlalchemy import Vector

from agent_context.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryType(str, Enum):
    """Categories of long-term memory."""
    EPISODIC = "episodic"        # Specific events or interactions
    SEMANTIC = "semantic"        # General knowledge or learned facts
    PROCEDURAL = "procedural"    # How-to knowledge and workflows
    REFLECTION = "reflection"    # Self-assessments and summaries


class AgentMemory(Base):
    """Long-term memory record owned by one (agent, owner) pair."""

    __tablename__ = "agent_memories"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    agent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True
    )
    content: Mapped[str] = mapped_column(
        Text,
        nullable=False
    )
    memory_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=MemoryType.SEMANTIC.value
    )
    # Dimensionality is checked by LongTermMemory; the vector index with
    # vector_cosine_ops is owned by the database migrations.
    embedding: Mapped[Optional[Any]] = mapped_column(
        Vector(),
        nullable=True
    )
    # Provenance back-references (lookup only, not ownership)
    session_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True
    )
    message_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True
    )
    importance: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.5
    )
    access_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0
    )
    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    extra_metadata: Mapped[dict] = mapped_column(
        "metadata",
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "importance >= 0.0 AND importance <= 1.0",
            name="importance_range"
        ),
        Index("ix_agent_memories_agent_created", "agent_id", "created_at"),
        Index("ix_agent_memories_agent_type", "agent_id", "memory_type"),
    )

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None

    def to_dict(self) -> dict:
        """Convert to dictionary (embedding omitted)."""
        return {
            "id": str(self.id),
            "agentId": str(self.agent_id),
            "ownerId": str(self.owner_id),
            "content": self.content,
            "memoryType": self.memory_type,
            "importance": self.importance,
            "accessCount": self.access_count,
            "lastAccessedAt": (
                int(self.last_accessed_at.timestamp() * 1000)
                if self.last_accessed_at else None
            ),
            "sessionId": str(self.session_id) if self.session_id else None,
            "messageId": str(self.message_id) if self.message_id else None,
            "hasEmbedding": self.has_embedding,
            "metadata": self.extra_metadata,
            "createdAt": int(self.created_at.timestamp() * 1000),
        }
