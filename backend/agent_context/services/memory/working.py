"""
Working Memory - Session-scoped scratchpad stored in Redis.

Stores:
- Active tool state
- Intermediate reasoning results
- Any key/value the agent needs for the rest of the session

Entries are namespaced by agent and session and expire independently.
"""
import asyncio
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Union

from redis.asyncio import Redis
from redis.exceptions import RedisError

from agent_context.core.config import settings
from agent_context.core.exceptions import DependencyError, ValidationError
from agent_context.core.logging import get_logger

logger = get_logger(__name__)

# Characters with special meaning in Redis MATCH patterns
_GLOB_SPECIAL = "\\*?[]"


def _escape_glob(value: str) -> str:
    return "".join(f"\\{c}" if c in _GLOB_SPECIAL else c for c in value)


def _encode_segment(value: str) -> str:
    """Percent-encode the separator so id segments can never contain ':'."""
    return str(value).replace("%", "%25").replace(":", "%3A")


def _to_str(value: Union[str, bytes]) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


@contextmanager
def _cache_errors(operation: str, **fields) -> Iterator[None]:
    """Translate cache failures into DependencyError."""
    try:
        yield
    except (RedisError, OSError, asyncio.TimeoutError) as e:
        logger.error(
            "Working memory operation failed",
            operation=operation,
            error=str(e),
            **fields
        )
        raise DependencyError(
            f"Working memory {operation} failed: {e}",
            dependency="redis"
        ) from e


class WorkingMemory:
    """
    Redis-backed working memory for active sessions.

    Key format: `{prefix}:{agent_id}:{session_id}:{key}`, with ':' and '%'
    percent-encoded in the agent and session segments.
    Absence is reported as None / empty, never as an error.
    """

    def __init__(
        self,
        redis: Redis,
        key_prefix: Optional[str] = None,
        default_ttl_seconds: Optional[int] = None,
        max_ttl_seconds: Optional[int] = None
    ):
        """
        Initialize working memory.

        Args:
            redis: asyncio Redis client
            key_prefix: Namespace for all working memory keys
            default_ttl_seconds: Expiry used when set() gets no TTL
            max_ttl_seconds: Largest TTL set() accepts
        """
        self.redis = redis
        self.key_prefix = key_prefix or settings.WORKING_MEMORY_KEY_PREFIX
        self.default_ttl_seconds = default_ttl_seconds or settings.WORKING_MEMORY_TTL_SECONDS
        self.max_ttl_seconds = max_ttl_seconds or settings.WORKING_MEMORY_MAX_TTL_SECONDS

    def _session_prefix(self, agent_id: str, session_id: str) -> str:
        return f"{self.key_prefix}:{_encode_segment(agent_id)}:{_encode_segment(session_id)}:"

    def _make_key(self, agent_id: str, session_id: str, key: str) -> str:
        # Only the trailing key may contain ':'; the encoded prefix is unambiguous
        return f"{self._session_prefix(agent_id, session_id)}{key}"

    def _session_pattern(self, agent_id: str, session_id: str) -> str:
        return f"{_escape_glob(self._session_prefix(agent_id, session_id))}*"

    async def _scan_session(self, agent_id: str, session_id: str) -> List[str]:
        pattern = self._session_pattern(agent_id, session_id)
        return [_to_str(k) async for k in self.redis.scan_iter(match=pattern, count=100)]

    async def set(
        self,
        agent_id: str,
        session_id: str,
        key: str,
        value: str,
        ttl_seconds: Optional[int] = None
    ) -> None:
        """
        Store an entry, overwriting any previous value and expiry.

        Args:
            agent_id: Agent identifier
            session_id: Session identifier
            key: Entry key
            value: Entry value
            ttl_seconds: Expiry in seconds (default: 2 hours)
        """
        if not key:
            raise ValidationError("Working memory key must not be empty")

        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0 or ttl > self.max_ttl_seconds:
            raise ValidationError(
                f"ttl_seconds must be between 1 and {self.max_ttl_seconds}, got {ttl}"
            )

        with _cache_errors("set", agent_id=str(agent_id), session_id=str(session_id)):
            await self.redis.set(self._make_key(agent_id, session_id, key), value, ex=ttl)

        logger.debug(
            "Set working memory",
            agent_id=str(agent_id),
            session_id=str(session_id),
            key=key,
            ttl_seconds=ttl
        )

    async def get(self, agent_id: str, session_id: str, key: str) -> Optional[str]:
        """
        Get an entry.

        Returns:
            Value, or None if missing or expired
        """
        with _cache_errors("get", agent_id=str(agent_id), session_id=str(session_id)):
            value = await self.redis.get(self._make_key(agent_id, session_id, key))

        return None if value is None else _to_str(value)

    async def delete(self, agent_id: str, session_id: str, key: str) -> bool:
        """
        Delete an entry.

        Returns:
            True if an entry was removed
        """
        with _cache_errors("delete", agent_id=str(agent_id), session_id=str(session_id)):
            removed = await self.redis.delete(self._make_key(agent_id, session_id, key))

        return removed > 0

    async def ttl(self, agent_id: str, session_id: str, key: str) -> Optional[int]:
        """
        Remaining lifetime of an entry in seconds.

        Returns:
            Seconds left, or None if the entry does not exist
        """
        with _cache_errors("ttl", agent_id=str(agent_id), session_id=str(session_id)):
            remaining = await self.redis.ttl(self._make_key(agent_id, session_id, key))

        # -2: key missing; -1: key without expiry (never written by set())
        if remaining == -2:
            return None
        return remaining

    async def list_keys(self, agent_id: str, session_id: str) -> List[str]:
        """
        List entry keys for an agent + session.

        Returns:
            Keys with the namespace prefix stripped
        """
        prefix = self._session_prefix(agent_id, session_id)

        with _cache_errors("list_keys", agent_id=str(agent_id), session_id=str(session_id)):
            keys = await self._scan_session(agent_id, session_id)

        return [k[len(prefix):] for k in keys]

    async def get_all(self, agent_id: str, session_id: str) -> Dict[str, str]:
        """
        Get all entries for an agent + session with a single MGET.

        Returns:
            Dict of key -> value (empty when the session has no entries)
        """
        prefix = self._session_prefix(agent_id, session_id)

        with _cache_errors("get_all", agent_id=str(agent_id), session_id=str(session_id)):
            keys = await self._scan_session(agent_id, session_id)
            if not keys:
                return {}
            values = await self.redis.mget(keys)

        result: Dict[str, str] = {}
        for full_key, value in zip(keys, values):
            # Expired between SCAN and MGET
            if value is None:
                continue
            result[full_key[len(prefix):]] = _to_str(value)

        return result

    async def clear(self, agent_id: str, session_id: str) -> int:
        """
        Delete all entries for an agent + session.
        Called when a session ends to drop its working memory early.

        Returns:
            Number of entries removed
        """
        with _cache_errors("clear", agent_id=str(agent_id), session_id=str(session_id)):
            keys = await self._scan_session(agent_id, session_id)
            if not keys:
                return 0
            removed = await self.redis.delete(*keys)

        logger.info(
            "Cleared working memory",
            agent_id=str(agent_id),
            session_id=str(session_id),
            count=removed
        )

        return removed
