import functools
import logging
from typing import Dict, List, Optional, Sequence

from openai import AsyncOpenAI, OpenAIError

import config
from attachments import is_image
from context_assembler import turn_text
from errors import ConfigurationError, GenerationFailed
from models import GenerationContext

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful and friendly AI assistant. "
    "Provide a concise and conversational response to the user's prompt. "
    "When the user attaches a file, use its contents to answer."
)


@functools.lru_cache(maxsize=1)
def get_client() -> AsyncOpenAI:
    if config.POE_API_KEY:
        logger.info("Using Poe API for chat completions")
        return AsyncOpenAI(api_key=config.POE_API_KEY, base_url=config.POE_BASE_URL)
    if config.OPENAI_API_KEY:
        logger.info("Using OpenAI API for chat completions")
        return AsyncOpenAI(api_key=config.OPENAI_API_KEY)
    raise ConfigurationError("No API key configured. Please set POE_API_KEY or OPENAI_API_KEY.")


def _final_turn(context: GenerationContext):
    if context.attachment is None:
        return context.prompt

    parts: List[Dict] = []
    if context.prompt:
        parts.append({"type": "text", "text": context.prompt})
    uri = context.attachment.uri
    mime_type = uri[len("data:"):].split(";", 1)[0] if uri.startswith("data:") else ""
    if is_image(mime_type):
        parts.append({"type": "image_url", "image_url": {"url": uri}})
    else:
        parts.append({
            "type": "file",
            "file": {"filename": context.attachment.name or "attachment", "file_data": uri},
        })
    return parts


def to_chat_messages(context: GenerationContext, system_prompt: str = SYSTEM_PROMPT) -> List[Dict]:
    """Render a GenerationContext as OpenAI chat messages."""
    messages = [{"role": "system", "content": system_prompt}]
    for turn in context.history:
        messages.append({"role": turn.role, "content": turn_text(turn)})
    messages.append({"role": "user", "content": _final_turn(context)})
    return messages


class GenerationClient:
    """Calls the chat completion API, falling back through the configured models."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, models: Sequence[str] = None,
                 temperature: float = None, system_prompt: str = SYSTEM_PROMPT):
        self._client = client
        self.models = list(models or config.GENERATION_MODELS)
        self.temperature = config.TEMPERATURE if temperature is None else temperature
        self.system_prompt = system_prompt

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = get_client()
        return self._client

    async def generate(self, context: GenerationContext) -> str:
        try:
            client = self.client
        except ConfigurationError as e:
            raise GenerationFailed(str(e)) from e

        messages = to_chat_messages(context, self.system_prompt)
        last_error = None
        for model in self.models:
            try:
                resp = await client.chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=self.temperature,
                )
                text = (resp.choices[0].message.content or "").strip()
                if not text:
                    raise GenerationFailed(f"Model {model} returned an empty response")
                return text
            except (OpenAIError, GenerationFailed, IndexError) as e:
                logger.warning(f"Generation with {model} failed: {e}")
                last_error = e
                continue
        raise GenerationFailed(f"All model attempts failed ({', '.join(self.models)})") from last_error
