"""
Edit/Resubmit Controller

Replaces a historical user message, discards everything after it and runs
the pipeline again from that point. The truncation is destructive: no branch
history is kept.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from chat_session import ChatSession, SubmissionResult, SubmissionStatus
from errors import (
    ContentRejected,
    EmptySubmission,
    GenerationFailed,
    MessageNotEditable,
    ModerationUnavailable,
    SubmissionInFlight,
)
from models import USER_ROLE, user_message
from moderation import REFUSAL_MESSAGE

logger = logging.getLogger(__name__)


@dataclass
class EditDraft:
    conversation_id: str
    message_index: int
    content: str


class EditController:
    """Two states: idle (``editing is None``) and editing (holds an EditDraft)."""

    def __init__(self, session: ChatSession):
        self.session = session
        self.editing: Optional[EditDraft] = None

    @property
    def is_editing(self) -> bool:
        return self.editing is not None

    def start(self, conversation_id: str, message_index: int) -> EditDraft:
        conversation = self.session.store.get(conversation_id)
        if not 0 <= message_index < len(conversation.messages):
            raise MessageNotEditable(f"No message at index {message_index}")
        message = conversation.messages[message_index]
        if message.role != USER_ROLE:
            raise MessageNotEditable("Only your own messages can be edited")
        if message.attachment is not None:
            raise MessageNotEditable("Messages with an attachment cannot be edited")

        self.editing = EditDraft(conversation_id, message_index, message.content)
        return self.editing

    def update(self, content: str) -> None:
        if self.editing is None:
            raise MessageNotEditable("No edit in progress")
        self.editing.content = content

    def cancel(self) -> None:
        self.editing = None

    async def commit(self, content: Optional[str] = None) -> SubmissionResult:
        """
        Commit the edit and regenerate.

        On failure the edited message is rolled back but the truncation stays,
        and the draft text is not restored.
        """
        if self.editing is None:
            raise MessageNotEditable("No edit in progress")
        if content is not None:
            self.editing.content = content

        edit = self.editing
        new_content = edit.content.strip()
        if not new_content:
            self.editing = None
            return SubmissionResult(SubmissionStatus.REJECTED, edit.conversation_id,
                                    error=EmptySubmission("Edited message is empty"))

        session = self.session
        if session.in_flight:
            return SubmissionResult(SubmissionStatus.REJECTED, edit.conversation_id,
                                    error=SubmissionInFlight("A reply is still pending"))

        store = session.store
        if not store.exists(edit.conversation_id):
            self.editing = None
            return SubmissionResult(SubmissionStatus.REJECTED, edit.conversation_id,
                                    error=MessageNotEditable("Conversation no longer exists"))

        self.editing = None
        session.in_flight = True
        try:
            history = store.get(edit.conversation_id).messages[:edit.message_index]
            store.replace_messages(edit.conversation_id, history + [user_message(new_content)])
            truncated = store.snapshot(edit.conversation_id)
            truncated.messages = list(history)
            logger.debug(f"Truncated conversation {edit.conversation_id} at message {edit.message_index}")

            try:
                reply = await session.respond(history, new_content)
            except ContentRejected as e:
                return session.deliver(edit.conversation_id, REFUSAL_MESSAGE, SubmissionStatus.REFUSED, error=e)
            except (ModerationUnavailable, GenerationFailed) as e:
                store.restore(truncated)
                session.notify_failure(e)
                return SubmissionResult(SubmissionStatus.FAILED, edit.conversation_id, error=e)
            return session.deliver(edit.conversation_id, reply, SubmissionStatus.REPLIED)
        finally:
            session.in_flight = False
