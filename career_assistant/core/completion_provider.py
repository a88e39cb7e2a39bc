"""Completion service access.

The gateway only sees the CompletionProvider protocol; the Anthropic client
lives behind it so the rest of the system can be exercised with fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from anthropic import Anthropic, APIConnectionError, APIStatusError

from career_assistant.config import settings

logger = logging.getLogger(__name__)

EMPTY_COMPLETION_FALLBACK = "I'm not sure how to respond to that."


class ConfigurationError(RuntimeError):
    """Required configuration (API key, webhook URL) is missing."""


class UpstreamError(RuntimeError):
    """The completion service answered with an error or could not be reached.

    Attributes:
        status_code: HTTP status from the service, passed through to the caller
        detail: Diagnostic text for the logs (never sent to the visitor)
    """

    def __init__(self, status_code: int, detail: str = ""):
        super().__init__(f"AI service error: {status_code}")
        self.status_code = status_code
        self.detail = detail


@dataclass(frozen=True)
class CompletionResult:
    text: str
    id: Optional[str] = None
    usage: Dict[str, Any] = field(default_factory=dict)


class CompletionProvider(Protocol):
    def complete(self, system_prompt: str, messages: List[Dict[str, str]]) -> CompletionResult:
        ...


class AnthropicCompletionProvider:
    """CompletionProvider backed by the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        client: Optional[Anthropic] = None,
    ):
        if not api_key:
            raise ConfigurationError("Completion service API key is not configured")
        self.model = model or settings.get_model_name()
        self.max_tokens = max_tokens or settings.get_max_tokens()
        self.temperature = temperature if temperature is not None else settings.get_temperature()
        # max_retries=0: upstream rate limits are not managed here
        self.client = client or Anthropic(api_key=api_key, max_retries=0)

    def complete(self, system_prompt: str, messages: List[Dict[str, str]]) -> CompletionResult:
        logger.info(
            f"Completion request: model={self.model} max_tokens={self.max_tokens} "
            f"messages={len(messages)} has_api_key=True"
        )
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system_prompt,
                messages=messages,
            )
        except APIStatusError as e:
            logger.error(f"Completion service error: status={e.status_code} body={e.body!r:.500}")
            raise UpstreamError(e.status_code, str(e)) from e
        except APIConnectionError as e:
            logger.error(f"Completion service unreachable: {e}")
            raise UpstreamError(502, str(e)) from e

        text = ""
        for block in response.content or []:
            if getattr(block, "type", None) == "text" and getattr(block, "text", ""):
                text = block.text
                break

        usage = {}
        if response.usage is not None:
            usage = {
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            }
        logger.info(f"Completion success: id={response.id} model={response.model} usage={usage}")

        return CompletionResult(text=text or EMPTY_COMPLETION_FALLBACK, id=response.id, usage=usage)
