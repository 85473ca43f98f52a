"""Completion client utilities and LLM output parsing."""

import asyncio
import json
import re
import time
from typing import TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel

from app.core.config import get_settings
from app.core.llm_usage import log_llm_usage
from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class LLMResponseError(RuntimeError):
    """Raised when a completion comes back without usable content."""


def get_async_client() -> AsyncOpenAI:
    """
    Get an OpenAI async client configured with the shared timeout and retry policy.

    Returns:
        AsyncOpenAI instance
    """
    settings = get_settings()
    return AsyncOpenAI(
        api_key=settings.OPENAI_API_KEY,
        timeout=settings.LLM_TIMEOUT_SECONDS,
        max_retries=settings.LLM_MAX_RETRIES,
    )


async def complete_json(
    system_prompt: str,
    user_content: str,
    model: str,
    temperature: float,
    chain: str | None = None,
    user_id: str | None = None,
) -> str:
    """
    Run a single JSON-mode chat completion and return the raw content.

    Args:
        system_prompt: System instructions
        user_content: User message content
        model: Chat model name
        temperature: Sampling temperature
        chain: Chain name recorded with usage
        user_id: Optional user id recorded with usage

    Returns:
        Raw completion text (expected to be a JSON object)

    Raises:
        LLMResponseError: If the completion has no content
        openai.OpenAIError: If the API call fails
    """
    client = get_async_client()

    start = time.time()
    response = await client.chat.completions.create(
        model=model,
        temperature=temperature,
        response_format={"type": "json_object"},
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ],
    )
    duration_ms = int((time.time() - start) * 1000)

    usage = response.usage
    if usage:
        await asyncio.to_thread(
            log_llm_usage,
            workflow="conversation",
            model=model,
            provider="openai",
            tokens_input=usage.prompt_tokens,
            tokens_output=usage.completion_tokens,
            duration_ms=duration_ms,
            user_id=user_id,
            chain=chain,
        )

    content = response.choices[0].message.content if response.choices else None
    if not content or not content.strip():
        raise LLMResponseError(f"Empty completion from {model} ({chain or 'unknown chain'})")

    logger.debug(f"Completion received from {model}", extra={"chain": chain, "duration_ms": duration_ms})
    return content


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_llm_json(raw_output: str, model: type[T]) -> T:
    """
    Parse LLM output as JSON and validate against a Pydantic model.

    Raises:
        json.JSONDecodeError: If JSON parsing fails after cleanup
        pydantic.ValidationError: If parsed JSON doesn't match schema
    """
    cleaned = _strip_llm_fences(raw_output)
    parsed = json.loads(cleaned)
    return model.model_validate(parsed)


def parse_llm_json_dict(raw_output: str) -> dict:
    """
    Parse LLM output as JSON, returning a raw dict.

    Use this when fields need adjusting before Pydantic validation.

    Raises:
        json.JSONDecodeError: If JSON parsing fails or the payload is not an object
    """
    cleaned = _strip_llm_fences(raw_output)
    parsed = json.loads(cleaned)
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("Expected a JSON object", cleaned, 0)
    return parsed
