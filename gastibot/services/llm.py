"""
Chat-completion client for DeepSeek through the OpenAI SDK.
"""

import json
import logging
import re
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from gastibot.config import Config
from gastibot.errors import ParseError, UpstreamError

logger = logging.getLogger(__name__)

SERVICE = "llm"

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def decode_json_reply(content: Optional[str]) -> dict[str, Any]:
    """
    Parse a model reply that should contain a single JSON object.

    Code-fence markers are stripped first.

    Raises:
        ParseError: if the reply is empty, not JSON, or not a JSON object.
    """
    if not content:
        raise ParseError("Empty reply from the model")

    cleaned = _FENCE_RE.sub("", content).strip()
    try:
        result = json.loads(cleaned)
    except ValueError as e:
        raise ParseError(f"Model reply is not valid JSON: {cleaned[:200]!r}") from e

    if not isinstance(result, dict):
        raise ParseError(f"Model reply is not a JSON object: {cleaned[:200]!r}")
    return result


class LLMClient:
    """Send a system prompt plus user payload and return the model's text."""

    def __init__(self, config: Config, client: Optional[AsyncOpenAI] = None):
        self.client = client or AsyncOpenAI(
            api_key=config.deepseek_api_key,
            base_url=config.deepseek_base_url,
            timeout=config.http_timeout,
            max_retries=0,
        )
        self.model = config.llm_model

    async def complete(
        self,
        system_prompt: str,
        user_content: str,
        temperature: float = 0,
        model: Optional[str] = None,
    ) -> str:
        """
        Run one chat completion.

        Raises:
            UpstreamError: if the API call fails.
        """
        try:
            response = await self.client.chat.completions.create(
                model=model or self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content},
                ],
                temperature=temperature,
                stream=False,
            )
        except openai.APIStatusError as e:
            raise UpstreamError(SERVICE, e.status_code, e.response.text) from e
        except openai.APIError as e:
            raise UpstreamError(SERVICE, None, str(e)) from e

        content = response.choices[0].message.content or ""
        return content.strip()
