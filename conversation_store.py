import logging
from dataclasses import dataclass
from typing import Callable, List, Optional
from uuid import uuid4

from config import DEFAULT_TITLE, TITLE_MAX_LENGTH
from errors import ConversationNotFound, PersistenceError
from models import USER_ROLE, Attachment, Conversation, Message
from persistence import MemoryStorage, load_conversations, serialize_conversations

logger = logging.getLogger(__name__)

ACTIVE_VIEW = "active"
ARCHIVED_VIEW = "archived"


@dataclass
class Draft:
    """Pending input text and staged attachment."""
    text: str = ""
    attachment: Optional[Attachment] = None

    def clear(self):
        self.text = ""
        self.attachment = None

    def is_empty(self) -> bool:
        return not self.text.strip() and self.attachment is None


def make_title(message: Message) -> str:
    lines = message.content.strip().splitlines()
    snippet = lines[0].strip()[:TITLE_MAX_LENGTH] if lines else ""
    if not snippet and message.attachment is not None:
        snippet = message.attachment.name[:TITLE_MAX_LENGTH]
    return snippet or DEFAULT_TITLE


class ConversationStore:
    """
    Owns the conversation set, the active pointer, the visible partition and the
    draft. Every mutation is followed by a full write to storage.
    """

    def __init__(self, storage=None, conversations: Optional[List[Conversation]] = None,
                 id_factory: Callable[[], str] = None):
        self.storage = storage if storage is not None else MemoryStorage()
        self._id_factory = id_factory or (lambda: uuid4().hex)
        self._conversations: List[Conversation] = list(conversations or [])
        self.active_id: Optional[str] = None
        self.view = ACTIVE_VIEW
        self.draft = Draft()
        self.save_failed = False

    @classmethod
    def load(cls, storage, id_factory: Callable[[], str] = None) -> "ConversationStore":
        """Restore from storage and re-derive the active conversation."""
        store = cls(storage, load_conversations(storage), id_factory=id_factory)
        unarchived = store._partition(ACTIVE_VIEW)
        if unarchived:
            store.active_id = unarchived[0].id
        else:
            # Nothing visible in the active list: start a fresh chat
            store.create()
        return store

    # Read helpers

    @property
    def conversations(self) -> List[Conversation]:
        return list(self._conversations)

    @property
    def active(self) -> Optional[Conversation]:
        if self.active_id is None:
            return None
        return self._find(self.active_id)

    def get(self, conversation_id: str) -> Conversation:
        conversation = self._find(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        return conversation

    def exists(self, conversation_id: str) -> bool:
        return self._find(conversation_id) is not None

    def visible(self) -> List[Conversation]:
        return self._partition(self.view)

    def snapshot(self, conversation_id: str) -> Conversation:
        """Copy of a conversation suitable for a later restore()."""
        conversation = self.get(conversation_id)
        return conversation.model_copy(update={"messages": list(conversation.messages)})

    # Mutations

    def create(self) -> Conversation:
        conversation = Conversation(id=self._new_id())
        self._conversations.insert(0, conversation)
        self.active_id = conversation.id
        self.view = ACTIVE_VIEW
        self.draft.clear()
        logger.debug(f"Created conversation {conversation.id}")
        self._persist()
        return conversation

    def select(self, conversation_id: str) -> None:
        if not self.exists(conversation_id):
            logger.debug(f"Ignoring select of unknown conversation {conversation_id}")
            return
        self.active_id = conversation_id

    def delete(self, conversation_id: str) -> None:
        conversation = self.get(conversation_id)
        partition = ARCHIVED_VIEW if conversation.archived else ACTIVE_VIEW
        self._conversations.remove(conversation)
        logger.debug(f"Deleted conversation {conversation_id}")

        if self.active_id == conversation_id:
            self.active_id = None
            same = self._partition(partition)
            other_view = ACTIVE_VIEW if partition == ARCHIVED_VIEW else ARCHIVED_VIEW
            other = self._partition(other_view)
            if same:
                self.active_id = same[0].id
            elif other:
                self.active_id = other[0].id
                self.view = other_view
            else:
                self.create()
                return

        if not self._conversations:
            self.create()
            return
        self._persist()

    def archive(self, conversation_id: str, flag: bool = True) -> None:
        conversation = self.get(conversation_id)
        conversation.archived = flag

        if flag:
            if self.active_id == conversation_id:
                unarchived = self._partition(ACTIVE_VIEW)
                if unarchived:
                    self.active_id = unarchived[0].id
                else:
                    self.active_id = None
                    self.view = ARCHIVED_VIEW
        else:
            self.view = ACTIVE_VIEW
            if self.active_id is None:
                self.active_id = conversation_id

        logger.debug(f"Set archived={flag} on conversation {conversation_id}")
        self._persist()

    def set_view(self, view: str) -> None:
        if view not in (ACTIVE_VIEW, ARCHIVED_VIEW):
            raise ValueError(f"Unknown view: {view}")
        self.view = view
        if view == ACTIVE_VIEW and not self._partition(ACTIVE_VIEW):
            self.create()

    def append(self, conversation_id: str, message: Message) -> None:
        conversation = self.get(conversation_id)
        if not conversation.messages and message.role == USER_ROLE:
            conversation.title = make_title(message)
        conversation.messages = conversation.messages + [message]
        self._persist()

    def replace_messages(self, conversation_id: str, messages: List[Message]) -> None:
        """Swap the whole message sequence in one step. Never changes the title."""
        conversation = self.get(conversation_id)
        conversation.messages = list(messages)
        self._persist()

    def restore(self, snapshot: Conversation) -> None:
        """
        Put a snapshot's messages back on the live conversation with the same id.

        Only the message sequence is rolled back (plus the title when the
        snapshot was empty), so archive changes made meanwhile survive.
        """
        conversation = self._find(snapshot.id)
        if conversation is None:
            logger.warning(f"Cannot roll back conversation {snapshot.id}: it no longer exists")
            return
        conversation.messages = list(snapshot.messages)
        if not snapshot.messages:
            conversation.title = snapshot.title
        logger.warning(f"Rolled back conversation {snapshot.id} to {len(snapshot.messages)} messages")
        self._persist()

    # Internals

    def _find(self, conversation_id: str) -> Optional[Conversation]:
        for conversation in self._conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    def _partition(self, view: str) -> List[Conversation]:
        archived = view == ARCHIVED_VIEW
        return [c for c in self._conversations if c.archived == archived]

    def _new_id(self) -> str:
        while True:
            conversation_id = self._id_factory()
            if not self.exists(conversation_id):
                return conversation_id

    def _persist(self) -> None:
        try:
            self.storage.save(serialize_conversations(self._conversations))
            self.save_failed = False
        except PersistenceError as e:
            # In-memory state stays authoritative; the next mutation rewrites everything
            self.save_failed = True
            logger.error(f"Failed to save conversations: {e}")
