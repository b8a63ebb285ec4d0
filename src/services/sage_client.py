"""
Gemini client for the Sage conversation.

One ``generate`` call per tool round. Rate limits (429) and server errors (5xx)
are retried with exponential backoff; anything else surfaces immediately.
"""

from __future__ import annotations

import logging
from typing import Optional

from google import genai
from google.genai import errors, types
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.config import get_settings
from src.utils.logging_config import get_logger

logger = get_logger("sage.llm")


def is_transient_error(exc: BaseException) -> bool:
    """True for 429 and 5xx API errors."""
    if not isinstance(exc, errors.APIError):
        return False
    code = getattr(exc, "code", None) or 0
    return code == 429 or code >= 500


class SageClient:
    """Thin async wrapper over ``google.genai.Client`` with retries."""

    def __init__(self, client: Optional[genai.Client] = None, model: Optional[str] = None):
        settings = get_settings()
        self._client = client
        self.model = model or settings.model_sage
        self.max_output_tokens = settings.sage_max_output_tokens
        self.max_retries = settings.llm_max_retries
        self.retry_base_delay = settings.llm_retry_base_delay

    @property
    def client(self) -> genai.Client:
        # Created lazily so importing the app never needs an API key
        if self._client is None:
            self._client = genai.Client(api_key=get_settings().google_api_key)
        return self._client

    def build_config(
        self,
        system_instruction: str,
        declarations: list[types.FunctionDeclaration],
    ) -> types.GenerateContentConfig:
        tools = [types.Tool(function_declarations=declarations)] if declarations else None
        return types.GenerateContentConfig(
            system_instruction=system_instruction,
            tools=tools,
            max_output_tokens=self.max_output_tokens,
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )

    async def generate(
        self,
        contents: list[types.Content],
        config: types.GenerateContentConfig,
    ) -> types.GenerateContentResponse:
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_transient_error),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_base_delay, max=30),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self.client.aio.models.generate_content(
                    model=self.model,
                    contents=contents,
                    config=config,
                )
        raise RuntimeError("unreachable")  # pragma: no cover


def response_text(response: types.GenerateContentResponse) -> str:
    """Concatenated text parts of the first candidate."""
    parts = _first_parts(response)
    return "".join(part.text for part in parts if part.text and not getattr(part, "thought", False))


def response_function_calls(response: types.GenerateContentResponse) -> list[types.FunctionCall]:
    return [part.function_call for part in _first_parts(response) if part.function_call]


def response_content(response: types.GenerateContentResponse) -> Optional[types.Content]:
    if not response.candidates:
        return None
    return response.candidates[0].content


def _first_parts(response: types.GenerateContentResponse) -> list[types.Part]:
    content = response_content(response)
    if content is None or not content.parts:
        return []
    return list(content.parts)


def usage_tokens(response: types.GenerateContentResponse) -> tuple[int, int]:
    usage = response.usage_metadata
    if usage is None:
        return 0, 0
    return usage.prompt_token_count or 0, usage.candidates_token_count or 0
