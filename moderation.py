"""
Moderation Gate

Classifies a prompt as safe or offensive before any generation call is made.
A failed classification is never treated as safe.
"""
import json
import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

import config
from errors import ConfigurationError, EmptySubmission, ModerationUnavailable
from generation import get_client
from models import ModerationResult

logger = logging.getLogger(__name__)

REFUSAL_MESSAGE = "I cannot respond to this prompt. Please try something else."

CLASSIFIER_PROMPT = """You are an AI assistant designed to identify potentially offensive prompts.
Determine if the user's prompt is likely to generate an offensive or inappropriate response.

Treat the following as offensive:
- Hate speech (medium severity and above)
- Harassment (medium severity and above)
- Sexually explicit content (low severity and above)
- Dangerous content (high severity only)

Respond with a JSON object and nothing else:
{"isOffensive": <true or false>, "reason": "<short reason for your determination>"}"""


class ModerationGate:
    def __init__(self, client: Optional[AsyncOpenAI] = None, model: str = None):
        self._client = client
        self.model = model or config.MODERATION_MODEL

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = get_client()
        return self._client

    async def check(self, prompt: str) -> ModerationResult:
        """
        Classify a single candidate prompt.

        Args:
            prompt (str): The user's prompt; must be non-empty after trimming

        Returns:
            ModerationResult: offensive flag plus the classifier's reason

        Raises:
            EmptySubmission: blank prompt
            ModerationUnavailable: the classification call failed or was unreadable
        """
        if not prompt or not prompt.strip():
            raise EmptySubmission("Cannot moderate an empty prompt")

        try:
            client = self.client
        except ConfigurationError as e:
            raise ModerationUnavailable(str(e)) from e

        try:
            resp = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": CLASSIFIER_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0,
                response_format={"type": "json_object"},
            )
            raw = resp.choices[0].message.content or ""
            return parse_verdict(raw)
        except OpenAIError as e:
            logger.warning(f"Moderation call failed: {e}")
            raise ModerationUnavailable("Moderation service unavailable") from e
        except IndexError as e:
            raise ModerationUnavailable("Moderation service returned no choices") from e


def parse_verdict(raw: str) -> ModerationResult:
    """Parse the classifier's JSON reply into a ModerationResult."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Unreadable moderation verdict: {raw[:200]!r}")
        raise ModerationUnavailable("Moderation verdict was not valid JSON") from e

    if not isinstance(data, dict) or not isinstance(data.get("isOffensive"), bool):
        raise ModerationUnavailable("Moderation verdict is missing 'isOffensive'")

    try:
        result = ModerationResult(offensive=data["isOffensive"], reason=str(data.get("reason") or ""))
    except ValidationError as e:
        raise ModerationUnavailable("Moderation verdict has an unexpected shape") from e

    if result.offensive:
        logger.info(f"Prompt flagged by moderation: {result.reason}")
    return result
