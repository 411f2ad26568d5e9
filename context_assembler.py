"""
Context assembly for the generation service.

Turns a conversation's history plus the new prompt into a GenerationContext.
Past attachments are reduced to a presence flag so the payload only ever
carries the current turn's file.
"""
from typing import Optional, Sequence

from models import Attachment, ContextAttachment, GenerationContext, HistoryTurn, Message

ATTACHMENT_MARKER = "[a file was attached to this message]"


def assemble(
    history: Sequence[Message],
    prompt: str,
    attachment: Optional[Attachment] = None,
) -> GenerationContext:
    """
    Build the structured input for one generation call.

    Args:
        history: Messages that precede the new prompt, oldest first. May be empty.
        prompt: The new user prompt (may be empty for attachment-only turns)
        attachment: Attachment staged with the new prompt, forwarded in full

    Returns:
        GenerationContext preserving message order and role tags
    """
    turns = [
        HistoryTurn(role=msg.role, text=msg.content, attachment_present=msg.attachment is not None)
        for msg in history
    ]

    context_attachment = None
    if attachment is not None:
        context_attachment = ContextAttachment(uri=attachment.data, name=attachment.name)

    return GenerationContext(history=turns, prompt=prompt, attachment=context_attachment)


def turn_text(turn: HistoryTurn) -> str:
    """Text sent for a historical turn, with the marker for a dropped attachment."""
    if not turn.attachment_present:
        return turn.text
    if turn.text:
        return f"{turn.text}\n\n{ATTACHMENT_MARKER}"
    return ATTACHMENT_MARKER
