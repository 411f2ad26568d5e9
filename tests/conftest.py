import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
TESTS = Path(__file__).resolve().parent
for path in (ROOT, TESTS):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from chat_session import ChatSession
from conversation_store import ConversationStore
from errors import GenerationFailed
from fakes import FakeGenerator, FakeModeration, counter_ids
from persistence import MemoryStorage


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return ConversationStore.load(storage, id_factory=counter_ids())


@pytest.fixture
def moderation():
    return FakeModeration()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def session(store, moderation, generator):
    return ChatSession(store, moderation, generator)


@pytest.fixture
def failing_generator():
    return FakeGenerator(error=GenerationFailed("service down"))
