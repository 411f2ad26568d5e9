"""
Submission pipeline.

Gates each prompt through moderation, assembles context and calls the
generation service. The user message is appended optimistically; if either
external call fails the conversation is restored from a snapshot and the
staged input comes back exactly as it was submitted.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from attachments import check_size, load_attachment
from context_assembler import assemble
from conversation_store import ConversationStore
from errors import (
    AttachmentTooLarge,
    ChatError,
    ContentRejected,
    EmptySubmission,
    GenerationFailed,
    ModerationUnavailable,
    SubmissionInFlight,
)
from models import Attachment, Conversation, Message, assistant_message, user_message
from moderation import REFUSAL_MESSAGE

logger = logging.getLogger(__name__)


class SubmissionStatus(str, Enum):
    REPLIED = "replied"
    REFUSED = "refused"
    FAILED = "failed"
    REJECTED = "rejected"


@dataclass
class SubmissionResult:
    status: SubmissionStatus
    conversation_id: Optional[str] = None
    reply: Optional[str] = None
    error: Optional[ChatError] = None

    @property
    def ok(self) -> bool:
        return self.status in (SubmissionStatus.REPLIED, SubmissionStatus.REFUSED)


@dataclass
class Notification:
    title: str
    description: str


GENERATION_FAILED_NOTICE = Notification(
    "An error occurred", "Failed to get a response from the AI. Please try again."
)
MODERATION_FAILED_NOTICE = Notification(
    "An error occurred", "Could not check your message right now. Please try again."
)


class ChatSession:
    """
    Front-end facing entry point: one store, one moderation gate, one generator.

    Only one moderation/generation call may be outstanding per session. The
    reply is always applied to the conversation the submission started in,
    even if another conversation was selected while waiting.
    """

    def __init__(self, store: ConversationStore, moderation, generator):
        self.store = store
        self.moderation = moderation
        self.generator = generator
        self.in_flight = False
        self.notifications: List[Notification] = []

    # Staging

    @property
    def draft(self):
        return self.store.draft

    def stage_text(self, text: str) -> None:
        self.store.draft.text = text

    def stage_attachment(self, attachment: Optional[Attachment]) -> None:
        """Stage (or clear, with None) an attachment. Oversized ones are rejected like stage_file."""
        if attachment is not None:
            try:
                check_size(attachment.name, attachment.data)
            except AttachmentTooLarge as e:
                self.notify(Notification("File too large", str(e)))
                raise
        self.store.draft.attachment = attachment

    def stage_file(self, path: str) -> Attachment:
        """Stage a file from disk. Oversized files are rejected with a notification."""
        try:
            attachment = load_attachment(path)
        except AttachmentTooLarge as e:
            self.notify(Notification("File too large", str(e)))
            raise
        self.store.draft.attachment = attachment
        return attachment

    def new_chat(self) -> Conversation:
        return self.store.create()

    # Notifications

    def notify(self, notification: Notification) -> None:
        logger.info(f"{notification.title}: {notification.description}")
        self.notifications.append(notification)

    def pop_notifications(self) -> List[Notification]:
        notifications, self.notifications = self.notifications, []
        return notifications

    # Pipeline

    async def send(self, text: str, attachment: Optional[Attachment] = None) -> SubmissionResult:
        self.stage_text(text)
        if attachment is not None:
            try:
                self.stage_attachment(attachment)
            except AttachmentTooLarge as e:
                return SubmissionResult(SubmissionStatus.REJECTED, self.store.active_id, error=e)
        return await self.submit()

    async def submit(self) -> SubmissionResult:
        """Submit the staged draft to the active conversation."""
        draft = self.store.draft
        prompt = draft.text.strip()
        attachment = draft.attachment

        if not prompt and attachment is None:
            return SubmissionResult(SubmissionStatus.REJECTED, error=EmptySubmission("Nothing to send"))
        conversation = self.store.active
        if conversation is None:
            return SubmissionResult(SubmissionStatus.REJECTED, error=EmptySubmission("No active conversation"))
        if self.in_flight:
            return SubmissionResult(
                SubmissionStatus.REJECTED, conversation.id, error=SubmissionInFlight("A reply is still pending")
            )

        conversation_id = conversation.id
        snapshot = self.store.snapshot(conversation_id)
        staged_text, staged_attachment = draft.text, draft.attachment

        self.in_flight = True
        try:
            self.store.append(conversation_id, user_message(prompt, attachment))
            draft.clear()
            try:
                reply = await self.respond(snapshot.messages, prompt, attachment)
            except ContentRejected as e:
                return self.deliver(conversation_id, REFUSAL_MESSAGE, SubmissionStatus.REFUSED, error=e)
            except (ModerationUnavailable, GenerationFailed) as e:
                self.store.restore(snapshot)
                draft.text = staged_text
                draft.attachment = staged_attachment
                self.notify_failure(e)
                return SubmissionResult(SubmissionStatus.FAILED, conversation_id, error=e)
            return self.deliver(conversation_id, reply, SubmissionStatus.REPLIED)
        finally:
            self.in_flight = False

    async def respond(
        self,
        history: Sequence[Message],
        prompt: str,
        attachment: Optional[Attachment] = None,
    ) -> str:
        """
        Run moderation and generation for one turn and return the model reply.

        Raises ContentRejected when moderation flags the prompt, and
        ModerationUnavailable or GenerationFailed when a service call fails.
        """
        if prompt:
            try:
                verdict = await self.moderation.check(prompt)
            except ModerationUnavailable:
                raise
            except Exception as e:
                raise ModerationUnavailable(f"Moderation call failed: {e}") from e
            if verdict.offensive:
                raise ContentRejected(verdict.reason)

        context = assemble(history, prompt, attachment)
        try:
            text = await self.generator.generate(context)
        except GenerationFailed:
            raise
        except Exception as e:
            raise GenerationFailed(f"Generation call failed: {e}") from e
        return text

    def deliver(self, conversation_id: str, reply: str, status: SubmissionStatus,
                error: Optional[ChatError] = None) -> SubmissionResult:
        """Append the assistant turn to the originating conversation."""
        if not self.store.exists(conversation_id):
            logger.warning(f"Conversation {conversation_id} was deleted before its reply arrived; dropping reply")
            return SubmissionResult(status, conversation_id, reply=reply, error=error)
        self.store.append(conversation_id, assistant_message(reply))
        return SubmissionResult(status, conversation_id, reply=reply, error=error)

    def notify_failure(self, error: ChatError) -> None:
        logger.warning(f"Submission rolled back: {error}")
        if isinstance(error, ModerationUnavailable):
            self.notify(MODERATION_FAILED_NOTICE)
        else:
            self.notify(GENERATION_FAILED_NOTICE)
