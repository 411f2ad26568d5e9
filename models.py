"""
Core data models shared by the store, the pipeline and the front ends.

Messages and attachments are frozen: an edit produces a replacement message
instead of mutating one in place.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from config import DEFAULT_TITLE

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
Role = Literal["user", "assistant"]


class Attachment(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: str  # data:<mime_type>;base64,<payload>
    name: str
    mime_type: str


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    attachment: Optional[Attachment] = None


class Conversation(BaseModel):
    id: str
    title: str = DEFAULT_TITLE
    messages: List[Message] = Field(default_factory=list)
    archived: bool = False


class ConversationSet(BaseModel):
    """The persisted record. The active conversation is re-derived on load."""

    conversations: List[Conversation] = Field(default_factory=list)


class ModerationResult(BaseModel):
    offensive: bool
    reason: str = ""


class HistoryTurn(BaseModel):
    role: Role
    text: str
    attachment_present: bool = False


class ContextAttachment(BaseModel):
    uri: str
    name: Optional[str] = None


class GenerationContext(BaseModel):
    history: List[HistoryTurn] = Field(default_factory=list)
    prompt: str
    attachment: Optional[ContextAttachment] = None


def user_message(content: str, attachment: Optional[Attachment] = None) -> Message:
    return Message(role=USER_ROLE, content=content, attachment=attachment)


def assistant_message(content: str) -> Message:
    return Message(role=ASSISTANT_ROLE, content=content)
