"""
Error taxonomy for the chat pipeline and conversation store.

Pipeline-level errors are caught at the submit/edit boundary and turned into a
rollback plus a user-visible notification; none of them should escape to the
process.
"""


class ChatError(Exception):
    """Base class for every error raised by this project."""


class EmptySubmission(ChatError):
    """No prompt text and no attachment. Rejected before any mutation."""


class SubmissionInFlight(ChatError):
    """Another moderation/generation call is still outstanding."""


class ModerationUnavailable(ChatError):
    """The moderation call itself failed; the prompt is unclassified."""


class ContentRejected(ChatError):
    """Moderation flagged the prompt."""

    def __init__(self, reason: str = ""):
        super().__init__(reason or "Prompt was flagged by moderation")
        self.reason = reason


class GenerationFailed(ChatError):
    """The generation service failed for any reason."""


class AttachmentTooLarge(ChatError):
    """Encoded attachment exceeds the configured limit."""

    def __init__(self, name: str, size: int, limit: int):
        super().__init__(
            f"'{name}' is too large to attach ({size / (1024 * 1024):.1f} MiB encoded, "
            f"limit is {limit / (1024 * 1024):.1f} MiB)"
        )
        self.name = name
        self.size = size
        self.limit = limit


class PersistenceCorrupt(ChatError):
    """The durable record could not be decoded."""


class PersistenceError(ChatError):
    """The durable record could not be written."""


class ConversationNotFound(ChatError, KeyError):
    def __init__(self, conversation_id: str):
        super().__init__(conversation_id)
        self.conversation_id = conversation_id

    def __str__(self):
        return f"Conversation not found: {self.conversation_id}"


class MessageNotEditable(ChatError):
    """Only user messages without an attachment can be edited."""


class ConfigurationError(ChatError):
    pass
