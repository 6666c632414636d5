"""Thin wrapper over the OpenAI chat API that always hands back a JSON object."""
import base64
import json
import logging

from openai import AsyncOpenAI, OpenAIError

from tripstory.config import settings
from tripstory.utils.exceptions import OracleError, mask_secrets

logger = logging.getLogger(__name__)


def _build_api_kwargs(model: str, messages: list[dict], json_mode: bool, max_tokens: int) -> dict:
    """Build OpenAI API kwargs based on model type."""
    api_kwargs: dict = {
        "model": model,
        "messages": messages,
    }

    if model.startswith("o"):
        # o-series reasoning models (o1, o3, o4-mini, etc.)
        # - no temperature support
        # - use max_completion_tokens instead of max_tokens
        api_kwargs["max_completion_tokens"] = max_tokens
    else:
        api_kwargs["max_tokens"] = max_tokens
        api_kwargs["temperature"] = settings.openai_temperature

    if json_mode:
        api_kwargs["response_format"] = {"type": "json_object"}

    return api_kwargs


def strip_code_fences(raw_text: str) -> str:
    text = raw_text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [line for line in lines if not line.strip().startswith("```")]
        text = "\n".join(lines)
    return text.strip()


def parse_json_object(raw_text: str) -> dict:
    """Parse model output into a dict, raising OracleError on anything else."""
    text = strip_code_fences(raw_text or "")
    if not text:
        raise OracleError("Model returned an empty response")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise OracleError(f"Model returned invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise OracleError(f"Model returned {type(parsed).__name__}, expected a JSON object")
    return parsed


def image_data_url(image: bytes) -> str:
    b64 = base64.b64encode(image).decode("utf-8")
    return f"data:image/jpeg;base64,{b64}"


class LLMClient:
    def __init__(self, client: AsyncOpenAI | None = None):
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.openai_api_key:
                # No API key = error, not silent mock
                raise OracleError("OPENAI_API_KEY not configured")
            self._client = AsyncOpenAI(api_key=settings.openai_api_key)
        return self._client

    async def _complete(self, model: str, messages: list[dict], json_mode: bool) -> dict:
        client = self._get_client()
        api_kwargs = _build_api_kwargs(model, messages, json_mode, settings.openai_max_tokens)
        try:
            response = await client.chat.completions.create(**api_kwargs)
        except OpenAIError as e:
            raise OracleError(mask_secrets(f"OpenAI request failed: {e}")) from e

        raw_text = response.choices[0].message.content or ""
        logger.debug("OpenAI raw response (%d chars): %s", len(raw_text), raw_text[:500])
        return parse_json_object(raw_text)

    async def complete_json(self, system: str, prompt: str) -> dict:
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ]
        return await self._complete(settings.openai_model, messages, json_mode=True)

    async def complete_vision_json(self, image: bytes, prompt: str) -> dict:
        content = [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": image_data_url(image), "detail": "high"}},
        ]
        # Some vision models don't support JSON mode
        return await self._complete(
            settings.openai_vision_model, [{"role": "user", "content": content}], json_mode=False
        )
