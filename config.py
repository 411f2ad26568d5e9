"""
Runtime configuration for the chat assistant.

Values come from the environment (optionally a .env file in the working
directory) and fall back to sensible local defaults.
"""
import os
import logging
from typing import List

import dotenv

dotenv.load_dotenv()

POE_API_KEY = os.getenv("POE_API_KEY")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
POE_BASE_URL = "https://api.poe.com/v1"

STORAGE_PATH = os.getenv("CHAT_STORAGE_PATH", os.path.join("data", "conversations.json"))

# Limit applies to the encoded data URI, not the raw file
MAX_ATTACHMENT_BYTES = int(os.getenv("CHAT_MAX_ATTACHMENT_BYTES", str(4 * 1024 * 1024)))

GENERATION_MODELS: List[str] = [
    m.strip() for m in os.getenv("CHAT_GENERATION_MODELS", "gpt-4o,gpt-4o-mini").split(",") if m.strip()
]
MODERATION_MODEL = os.getenv("CHAT_MODERATION_MODEL", "gpt-4o-mini")
TEMPERATURE = float(os.getenv("CHAT_TEMPERATURE", "0.7"))

LOG_LEVEL = os.getenv("CHAT_LOG_LEVEL", "INFO")

DEFAULT_TITLE = "New Chat"
TITLE_MAX_LENGTH = 30


def configure_logging(level: str = None) -> None:
    """Set up root logging for the CLI and API entry points."""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
