import pytest

from chat_session import ChatSession
from chatbot import Chatbot
from errors import GenerationFailed
from fakes import FakeGenerator, FakeModeration


@pytest.fixture
def bot(session):
    return Chatbot(session)


@pytest.mark.asyncio
async def test_process_query_replies(bot, store):
    assert await bot.process_query("hello") == "hi there"
    assert store.active.title == "hello"


@pytest.mark.asyncio
async def test_failure_prints_notification(store):
    bot = Chatbot(ChatSession(store, FakeModeration(), FakeGenerator(error=GenerationFailed("down"))))
    output = await bot.process_query("hello")
    assert "Failed to get a response" in output


@pytest.mark.asyncio
async def test_list_open_and_history(bot):
    await bot.process_query("hello")
    await bot.handle_command("/new")
    listing = await bot.handle_command("/list")
    assert "* 1. New Chat" in listing
    assert "2. hello (2 messages)" in listing

    history = await bot.handle_command("/open 2")
    assert "You: hello" in history
    assert "Bot: hi there" in history


@pytest.mark.asyncio
async def test_archive_commands(bot, store):
    await bot.handle_command("/archive 1")
    assert store.get("c1").archived is True
    assert "1. New Chat" in await bot.handle_command("/archived")
    await bot.handle_command("/unarchive 1")
    assert store.get("c1").archived is False


@pytest.mark.asyncio
async def test_edit_command(bot, store):
    await bot.process_query("hello")
    assert await bot.handle_command("/edit 0 hey there") == "hi there"
    assert [m.content for m in store.active.messages] == ["hey there", "hi there"]
    assert "Only your own messages" in await bot.handle_command("/edit 1 nope")


@pytest.mark.asyncio
async def test_attach_and_detach(bot, tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("some notes")
    assert await bot.handle_command(f"/attach {path}") == "Attached notes.txt (text/plain)."
    assert bot.session.draft.attachment.name == "notes.txt"
    await bot.handle_command("/detach")
    assert bot.session.draft.attachment is None
    assert "Could not read file" in await bot.handle_command(f"/attach {tmp_path / 'missing.txt'}")


@pytest.mark.asyncio
async def test_unknown_command_and_bad_index(bot):
    assert "Unknown command" in await bot.handle_command("/frobnicate")
    assert "No chat number" in await bot.handle_command("/open 9")
