"""
Durable storage for the conversation set.

The store writes the whole set after every mutation and reads it once at
startup. Storage backends only move text around; encoding and validation of
the record live here so every backend shares the same format.
"""
import json
import logging
import os
import tempfile
from typing import List, Optional

from pydantic import ValidationError

from errors import PersistenceCorrupt, PersistenceError
from models import Conversation, ConversationSet

logger = logging.getLogger(__name__)


class MemoryStorage:
    """In-process storage, used by tests and throwaway sessions."""

    def __init__(self, data: Optional[str] = None):
        self.data = data
        self.writes = 0

    def load(self) -> Optional[str]:
        return self.data

    def save(self, data: str) -> None:
        self.data = data
        self.writes += 1


class JsonFileStorage:
    """Single JSON file on local disk, replaced atomically on each save."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[str]:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceCorrupt(f"Could not read {self.path}: {e}") from e

    def save(self, data: str) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".conversations-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"Could not write {self.path}: {e}") from e


def serialize_conversations(conversations: List[Conversation]) -> str:
    return ConversationSet(conversations=list(conversations)).model_dump_json(indent=2)


def deserialize_conversations(data: str) -> List[Conversation]:
    """
    Decode a persisted record.

    Raises:
        PersistenceCorrupt: malformed JSON, schema violations or duplicate ids
    """
    try:
        record = ConversationSet.model_validate_json(data)
    except (ValidationError, json.JSONDecodeError, ValueError) as e:
        raise PersistenceCorrupt(f"Malformed conversation record: {e}") from e

    seen = set()
    for conversation in record.conversations:
        if conversation.id in seen:
            raise PersistenceCorrupt(f"Duplicate conversation id in record: {conversation.id}")
        seen.add(conversation.id)
    return record.conversations


def load_conversations(storage) -> List[Conversation]:
    """Read the stored conversations, recovering from absent or corrupt records."""
    try:
        data = storage.load()
        if data is None or not data.strip():
            logger.info("No saved conversations found, starting fresh")
            return []
        conversations = deserialize_conversations(data)
    except PersistenceCorrupt as e:
        logger.warning(f"Discarding corrupt conversation record: {e}")
        return []

    logger.info(f"Loaded {len(conversations)} conversations")
    return conversations
