"""
Shared fixtures: fakeredis for working memory, SQLite (aiosqlite) for the
durable store. SQLite has no pgvector operator, so recall through a real
store always exercises the in-process fallback.
"""
import uuid

import fakeredis
import pytest
import pytest_asyncio

from agent_context.core.database import create_engine, create_session_factory, init_db
from agent_context.services.memory.access import AccessTracker
from agent_context.services.memory.long_term import LongTermMemory
from agent_context.services.memory.recall import RecallEngine
from agent_context.services.memory.working import WorkingMemory


@pytest.fixture
def redis_client():
    """Isolated in-memory Redis."""
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def working_memory(redis_client):
    return WorkingMemory(redis_client)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Temporary SQLite database with all tables created."""
    engine = create_engine(url=f"sqlite+aiosqlite:///{tmp_path / 'memories.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def long_term(session_factory):
    """Long-term store accepting 2-dimensional test vectors."""
    return LongTermMemory(session_factory, dimensions=2)


@pytest.fixture
def recall_engine(long_term):
    return RecallEngine(long_term)


@pytest_asyncio.fixture
async def access_tracker(long_term):
    tracker = AccessTracker(long_term)
    yield tracker
    await tracker.stop()


@pytest.fixture
def agent_id():
    return uuid.uuid4()


@pytest.fixture
def owner_id():
    return uuid.uuid4()


@pytest.fixture
def session_id():
    return str(uuid.uuid4())
