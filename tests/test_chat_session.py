import asyncio

import pytest

import attachments
from chat_session import GENERATION_FAILED_NOTICE, ChatSession, SubmissionStatus
from errors import (
    AttachmentTooLarge,
    ContentRejected,
    EmptySubmission,
    GenerationFailed,
    ModerationUnavailable,
    SubmissionInFlight,
)
from fakes import FakeGenerator, FakeModeration
from models import Attachment, assistant_message, user_message
from moderation import REFUSAL_MESSAGE

PNG = Attachment(data="data:image/png;base64,iVBORw0K", name="chart.png", mime_type="image/png")


@pytest.mark.asyncio
async def test_hello_scenario(session, store):
    result = await session.send("hello")

    assert result.status == SubmissionStatus.REPLIED
    assert result.reply == "hi there"
    convo = store.get(result.conversation_id)
    assert convo.messages == [user_message("hello"), assistant_message("hi there")]
    assert convo.title == "hello"
    assert store.draft.text == ""


@pytest.mark.asyncio
async def test_offensive_prompt_gets_refusal_and_no_generation(store):
    moderation = FakeModeration(offensive=True, reason="x")
    generator = FakeGenerator()
    session = ChatSession(store, moderation, generator)

    result = await session.send("hello")

    assert result.status == SubmissionStatus.REFUSED
    assert isinstance(result.error, ContentRejected)
    assert result.error.reason == "x"
    assert store.active.messages == [user_message("hello"), assistant_message(REFUSAL_MESSAGE)]
    assert generator.calls == []
    assert session.notifications == []


@pytest.mark.asyncio
async def test_generation_failure_rolls_back_and_restores_draft(store, moderation, failing_generator):
    session = ChatSession(store, moderation, failing_generator)
    store.append("c1", user_message("first"))
    store.append("c1", assistant_message("reply"))
    before = list(store.get("c1").messages)

    session.stage_attachment(PNG)
    result = await session.send("  second  ")

    assert result.status == SubmissionStatus.FAILED
    assert isinstance(result.error, GenerationFailed)
    assert store.get("c1").messages == before
    assert store.draft.text == "  second  "
    assert store.draft.attachment == PNG
    assert session.pop_notifications() == [GENERATION_FAILED_NOTICE]
    assert session.in_flight is False


@pytest.mark.asyncio
async def test_rollback_of_first_message_restores_default_title(store, moderation, failing_generator):
    session = ChatSession(store, moderation, failing_generator)
    await session.send("hello")
    assert store.get("c1").messages == []
    assert store.get("c1").title == "New Chat"


@pytest.mark.asyncio
async def test_moderation_failure_rolls_back_without_generation(store, generator):
    moderation = FakeModeration(error=ModerationUnavailable("down"))
    session = ChatSession(store, moderation, generator)

    result = await session.send("hello")

    assert result.status == SubmissionStatus.FAILED
    assert isinstance(result.error, ModerationUnavailable)
    assert store.active.messages == []
    assert store.draft.text == "hello"
    assert generator.calls == []
    assert len(session.pop_notifications()) == 1


@pytest.mark.asyncio
async def test_unexpected_service_errors_are_treated_as_failures(store, moderation):
    session = ChatSession(store, moderation, FakeGenerator(error=RuntimeError("socket closed")))
    result = await session.send("hello")
    assert result.status == SubmissionStatus.FAILED
    assert isinstance(result.error, GenerationFailed)
    assert store.active.messages == []


@pytest.mark.asyncio
async def test_empty_submission_rejected_without_mutation(session, store, storage, moderation):
    writes = storage.writes
    result = await session.send("   ")

    assert result.status == SubmissionStatus.REJECTED
    assert isinstance(result.error, EmptySubmission)
    assert store.active.messages == []
    assert storage.writes == writes
    assert moderation.calls == []
    assert session.notifications == []


@pytest.mark.asyncio
async def test_no_active_conversation_rejected(session, store):
    store.archive("c1", True)
    result = await session.send("hello")
    assert result.status == SubmissionStatus.REJECTED


@pytest.mark.asyncio
async def test_attachment_only_submission_skips_moderation(session, store, moderation, generator):
    session.stage_attachment(PNG)
    result = await session.submit()

    assert result.status == SubmissionStatus.REPLIED
    assert moderation.calls == []
    assert generator.calls[0].attachment.uri == PNG.data
    assert store.active.messages[0] == user_message("", PNG)
    assert store.active.title == "chart.png"
    assert store.draft.attachment is None


@pytest.mark.asyncio
async def test_context_excludes_the_optimistic_message(session, store, generator):
    await session.send("hello")
    await session.send("again")

    context = generator.calls[-1]
    assert [(t.role, t.text) for t in context.history] == [("user", "hello"), ("assistant", "hi there")]
    assert context.prompt == "again"


@pytest.mark.asyncio
async def test_second_submission_refused_while_in_flight(store, moderation):
    gate = asyncio.Event()

    class SlowGenerator(FakeGenerator):
        async def generate(self, context):
            await gate.wait()
            return await super().generate(context)

    session = ChatSession(store, moderation, SlowGenerator())
    first = asyncio.ensure_future(session.send("hello"))
    await asyncio.sleep(0)

    second = await session.send("another")
    assert second.status == SubmissionStatus.REJECTED
    assert isinstance(second.error, SubmissionInFlight)

    gate.set()
    assert (await first).status == SubmissionStatus.REPLIED
    assert [m.content for m in store.get("c1").messages] == ["hello", "hi there"]


@pytest.mark.asyncio
async def test_reply_lands_in_originating_conversation(store, moderation):
    gate = asyncio.Event()

    class SlowGenerator(FakeGenerator):
        async def generate(self, context):
            await gate.wait()
            return await super().generate(context)

    session = ChatSession(store, moderation, SlowGenerator())
    pending = asyncio.ensure_future(session.send("hello"))
    await asyncio.sleep(0)

    other = session.new_chat()
    gate.set()
    result = await pending

    assert result.conversation_id == "c1"
    assert [m.content for m in store.get("c1").messages] == ["hello", "hi there"]
    assert store.get(other.id).messages == []
    assert store.active_id == other.id


@pytest.mark.asyncio
async def test_reply_dropped_if_conversation_deleted_meanwhile(store, moderation):
    gate = asyncio.Event()

    class SlowGenerator(FakeGenerator):
        async def generate(self, context):
            await gate.wait()
            return await super().generate(context)

    session = ChatSession(store, moderation, SlowGenerator())
    pending = asyncio.ensure_future(session.send("hello"))
    await asyncio.sleep(0)

    store.delete("c1")
    gate.set()
    result = await pending

    assert result.status == SubmissionStatus.REPLIED
    assert not store.exists("c1")


def test_stage_file_rejects_oversized(tmp_path, session, monkeypatch):
    path = tmp_path / "huge.bin"
    path.write_bytes(b"x" * 200)
    monkeypatch.setattr(attachments, "MAX_ATTACHMENT_BYTES", 10)

    with pytest.raises(AttachmentTooLarge):
        session.stage_file(str(path))
    assert session.draft.attachment is None
    assert session.pop_notifications()[0].title == "File too large"


@pytest.mark.asyncio
async def test_rollback_keeps_archive_made_while_pending(store, moderation):
    gate = asyncio.Event()

    class SlowFailingGenerator(FakeGenerator):
        async def generate(self, context):
            await gate.wait()
            raise GenerationFailed("down")

    store.create()
    store.select("c1")
    session = ChatSession(store, moderation, SlowFailingGenerator())
    pending = asyncio.ensure_future(session.send("hello"))
    await asyncio.sleep(0)

    store.archive("c1", True)
    gate.set()
    result = await pending

    assert result.status == SubmissionStatus.FAILED
    convo = store.get("c1")
    assert convo.archived is True
    assert convo.messages == []
    assert convo.title == "New Chat"


@pytest.mark.asyncio
async def test_send_rejects_oversized_attachment(session, store, storage, generator, monkeypatch):
    monkeypatch.setattr(attachments, "MAX_ATTACHMENT_BYTES", 20)
    huge = Attachment(data="data:text/plain;base64," + "A" * 100, name="huge.txt", mime_type="text/plain")
    writes = storage.writes

    result = await session.send("x", huge)

    assert result.status == SubmissionStatus.REJECTED
    assert isinstance(result.error, AttachmentTooLarge)
    assert storage.writes == writes
    assert store.get("c1").messages == []
    assert session.draft.attachment is None
    assert generator.calls == []
    assert session.pop_notifications()[0].title == "File too large"


def test_stage_attachment_rejects_oversized(session, monkeypatch):
    monkeypatch.setattr(attachments, "MAX_ATTACHMENT_BYTES", 20)
    huge = Attachment(data="data:text/plain;base64," + "A" * 100, name="huge.txt", mime_type="text/plain")

    with pytest.raises(AttachmentTooLarge):
        session.stage_attachment(huge)
    assert session.draft.attachment is None

    session.stage_attachment(None)
    assert session.draft.attachment is None
