import argparse
import asyncio
import logging
from typing import List, Optional

import config
from chat_session import ChatSession, SubmissionStatus
from conversation_store import ACTIVE_VIEW, ARCHIVED_VIEW, ConversationStore
from edit_controller import EditController
from errors import AttachmentTooLarge, ChatError, MessageNotEditable
from generation import GenerationClient
from moderation import ModerationGate
from persistence import JsonFileStorage

logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  /new                 start a new chat
  /list                list chats (current view)
  /archived            switch to archived chats
  /active              switch to active chats
  /open N              open chat number N from the list
  /delete N            delete chat number N
  /archive N           archive chat number N
  /unarchive N         unarchive chat number N
  /history             show the open chat
  /edit N TEXT         replace your message N (from /history) and regenerate
  /attach PATH         attach a file to your next message
  /detach              drop the staged attachment
  /help                show this help
  quit                 exit"""


class Chatbot:
    """Interactive terminal front end over a ChatSession."""

    def __init__(self, session: ChatSession):
        self.session = session
        self.store = session.store
        self.editor = EditController(session)

    @classmethod
    def from_storage(cls, storage_path: str) -> "Chatbot":
        store = ConversationStore.load(JsonFileStorage(storage_path))
        return cls(ChatSession(store, ModerationGate(), GenerationClient()))

    def format_list(self) -> str:
        conversations = self.store.visible()
        if not conversations:
            return f"No {self.store.view} chats."
        lines = []
        for idx, convo in enumerate(conversations, 1):
            marker = "*" if convo.id == self.store.active_id else " "
            lines.append(f"{marker} {idx}. {convo.title} ({len(convo.messages)} messages)")
        return "\n".join(lines)

    def format_history(self) -> str:
        convo = self.store.active
        if convo is None:
            return "No chat open."
        if not convo.messages:
            return f"[{convo.title}] Start a conversation."
        lines = [f"[{convo.title}]"]
        for idx, msg in enumerate(convo.messages):
            who = "You" if msg.role == "user" else "Bot"
            attached = f" [file: {msg.attachment.name}]" if msg.attachment else ""
            lines.append(f"{idx:>3} {who}: {msg.content}{attached}")
        return "\n".join(lines)

    def _pick(self, arg: str):
        conversations = self.store.visible()
        try:
            idx = int(arg)
        except ValueError:
            return None
        if 1 <= idx <= len(conversations):
            return conversations[idx - 1]
        return None

    async def handle_command(self, line: str) -> Optional[str]:
        """Run one slash command and return the text to print."""
        parts: List[str] = line.split(maxsplit=2)
        cmd = parts[0].lower()
        arg = parts[1] if len(parts) > 1 else ""

        if cmd == "/help":
            return HELP_TEXT
        if cmd == "/new":
            self.session.new_chat()
            return "Started a new chat."
        if cmd == "/list":
            return self.format_list()
        if cmd == "/archived":
            self.store.set_view(ARCHIVED_VIEW)
            return self.format_list()
        if cmd == "/active":
            self.store.set_view(ACTIVE_VIEW)
            return self.format_list()
        if cmd == "/history":
            return self.format_history()
        if cmd == "/detach":
            self.session.stage_attachment(None)
            return "Attachment removed."
        if cmd == "/attach":
            path = line.split(maxsplit=1)[1] if len(parts) > 1 else ""
            if not path:
                return "Usage: /attach PATH"
            try:
                attachment = self.session.stage_file(path.strip())
            except AttachmentTooLarge as e:
                self.session.pop_notifications()
                return str(e)
            except OSError as e:
                return f"Could not read file: {e}"
            return f"Attached {attachment.name} ({attachment.mime_type})."
        if cmd == "/edit":
            if len(parts) < 3:
                return "Usage: /edit N TEXT"
            return await self.edit(arg, parts[2])

        if cmd in ("/open", "/delete", "/archive", "/unarchive"):
            convo = self._pick(arg)
            if convo is None:
                return f"No chat number {arg!r} in this list."
            if cmd == "/open":
                self.store.select(convo.id)
                return self.format_history()
            if cmd == "/delete":
                self.store.delete(convo.id)
                return f"Deleted '{convo.title}'."
            self.store.archive(convo.id, cmd == "/archive")
            return f"{'Archived' if cmd == '/archive' else 'Unarchived'} '{convo.title}'."

        return f"Unknown command {cmd}. Type /help for commands."

    async def edit(self, index_arg: str, text: str) -> str:
        convo = self.store.active
        if convo is None:
            return "No chat open."
        try:
            self.editor.start(convo.id, int(index_arg))
        except ValueError:
            return "Usage: /edit N TEXT"
        except MessageNotEditable as e:
            return str(e)
        result = await self.editor.commit(text)
        return self.describe(result)

    def describe(self, result) -> str:
        notices = self.session.pop_notifications()
        if result.status in (SubmissionStatus.REPLIED, SubmissionStatus.REFUSED):
            return result.reply
        if notices:
            return "\n".join(f"{n.title}: {n.description}" for n in notices)
        return str(result.error) if result.error else "Nothing sent."

    async def process_query(self, query: str) -> str:
        """Send one message to the active chat and return the reply text."""
        if self.store.active is None:
            self.session.new_chat()
        result = await self.session.send(query)
        return self.describe(result)

    async def run_interactive(self):
        print("\n" + "=" * 80)
        print("Chat Assistant")
        print("=" * 80)
        print("\nType a message to chat, /help for commands, 'quit' or 'exit' to leave.\n")

        while True:
            try:
                line = (await asyncio.to_thread(input, "You: ")).strip()
            except (KeyboardInterrupt, EOFError):
                print("\n\nGoodbye!")
                break

            if line.lower() in ("quit", "exit", "q"):
                print("\nGoodbye!")
                break
            if not line and self.session.draft.attachment is None:
                continue

            try:
                if line.startswith("/"):
                    output = await self.handle_command(line)
                else:
                    output = await self.process_query(line)
            except ChatError as e:
                logger.warning(f"Command failed: {e}")
                output = f"Error: {e}"
            print(f"\nBot: {output}\n")


def main():
    parser = argparse.ArgumentParser(description="Interactive chat assistant with moderated, persistent conversations")
    parser.add_argument("--storage", type=str, default=config.STORAGE_PATH,
                        help="Path to the conversations JSON file")
    parser.add_argument("--query", type=str, default=None,
                        help="Single message to send (non-interactive mode)")
    parser.add_argument("--log-level", type=str, default=None, help="Logging level (default from CHAT_LOG_LEVEL)")
    args = parser.parse_args()

    config.configure_logging(args.log_level)
    chatbot = Chatbot.from_storage(args.storage)

    if args.query:
        print(asyncio.run(chatbot.process_query(args.query)))
    else:
        asyncio.run(chatbot.run_interactive())


if __name__ == "__main__":
    main()
