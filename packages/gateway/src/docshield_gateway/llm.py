"""
Upstream LLM adapter for DocShield Gateway

Builds prompts from sanitised requests, calls the chat completion API and
extracts the JSON object from the free-form reply.
"""

import logging
from typing import Any, Dict, Optional, Protocol

import openai

from .errors import GatewayError, OutputValidationError, UpstreamError
from .models import AnalysisRequest, TextAnalysisRequest
from .prompts import (
    DOCUMENT_ANALYSIS_SYSTEM_PROMPT,
    TEXT_ANALYSIS_SYSTEM_PROMPT,
    build_document_prompt,
    build_text_prompt,
)
from .schema import parse_json

logger = logging.getLogger(__name__)

ANALYSIS_TEMPERATURE = 0.3
_FENCE = "```"


class LLMClient(Protocol):
    """Single-operation contract of the upstream model."""

    async def complete(self, system_prompt: str, user_prompt: str, temperature: float) -> str: ...


class OpenAIChatClient:
    """LLMClient backed by the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        max_retries: int = 3,
        timeout: float = 60.0,
        client: Optional[openai.AsyncOpenAI] = None,
    ):
        self.model = model
        self.client = client or openai.AsyncOpenAI(
            api_key=api_key, base_url=base_url, max_retries=max_retries, timeout=timeout
        )
        logger.info(f"OpenAI client initialized with model {model}")

    async def complete(self, system_prompt: str, user_prompt: str, temperature: float) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
            )
        except openai.OpenAIError as e:
            logger.error(f"OpenAI completion failed: {type(e).__name__}")
            raise UpstreamError(f"completion request failed: {type(e).__name__}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise UpstreamError("completion returned no content")
        return content


def _strip_fence(text: str) -> Optional[str]:
    """Body of the first fenced code block, without its language tag."""
    start = text.find(_FENCE)
    if start == -1:
        return None
    body_start = start + len(_FENCE)
    end = text.find(_FENCE, body_start)
    if end == -1:
        return None

    body = text[body_start:end]
    newline = body.find("\n")
    if newline != -1 and body[:newline].strip().isalnum():
        body = body[newline + 1 :]
    return body.strip()


def _outermost_object(text: str) -> Optional[str]:
    """The balanced ``{...}`` starting at the first brace, ignoring braces in strings."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def extract_json(text: str) -> Any:
    """
    Parse the JSON value in an LLM reply.

    Tries the reply as is, then the body of a fenced code block, then the
    outermost balanced object.

    Raises:
        OutputValidationError: No candidate parses as JSON
    """
    stripped = text.strip()
    candidates = [stripped, _strip_fence(stripped), _outermost_object(stripped)]

    for candidate in candidates:
        if not candidate:
            continue
        try:
            return parse_json(candidate)
        except ValueError:
            continue

    raise OutputValidationError("no JSON object found in AI response")


class AIClientAdapter:
    """Turns sanitised requests into upstream calls and parsed replies."""

    def __init__(self, client: LLMClient, temperature: float = ANALYSIS_TEMPERATURE):
        self.client = client
        self.temperature = temperature

    async def _complete(self, system_prompt: str, user_prompt: str) -> str:
        try:
            return await self.client.complete(system_prompt, user_prompt, self.temperature)
        except (UpstreamError, GatewayError):
            raise
        except Exception as e:
            raise UpstreamError(f"completion request failed: {type(e).__name__}") from e

    async def analyze(self, request: AnalysisRequest) -> Dict[str, Any]:
        """Run a document analysis and return the parsed reply."""
        user_prompt = build_document_prompt(
            request.document_text, request.document_type, request.prompt
        )
        reply = await self._complete(DOCUMENT_ANALYSIS_SYSTEM_PROMPT, user_prompt)
        return extract_json(reply)

    async def analyze_text(self, request: TextAnalysisRequest) -> Dict[str, Any]:
        """Run a free text analysis and return the parsed reply."""
        user_prompt = build_text_prompt(request.text, request.prompt)
        reply = await self._complete(TEXT_ANALYSIS_SYSTEM_PROMPT, user_prompt)
        return extract_json(reply)
