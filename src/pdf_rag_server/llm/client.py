"""
Completion Client

Async client for the OpenAI chat completions API (or any compatible
provider), plus the chat title helper built on top of it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Dict, Optional

import httpx

from ..config import settings
from ..core.errors import CompletionError

logger = logging.getLogger("rag.llm")

TITLE_MAX_CHARS = 50
TITLE_FALLBACK_WORDS = 6
DEFAULT_TITLE = "New Chat"
TITLE_PROMPT = (
    "Generate a short, descriptive title (max 50 characters) for a chat "
    "conversation based on the user's question. Be concise and capture the "
    "main topic."
)


@dataclass(frozen=True)
class TokenUsage:
    prompt: int = 0
    completion: int = 0
    total: int = 0


@dataclass(frozen=True)
class Completion:
    answer: str
    usage: TokenUsage
    model: str
    finish_reason: str


def cap_title(title: str) -> str:
    """Cap a title at 50 characters, ending truncated titles with '...'."""
    if len(title) > TITLE_MAX_CHARS:
        return title[: TITLE_MAX_CHARS - 3] + "..."
    return title


def fallback_title(query: str) -> str:
    """Title made from the first six words of the query."""
    words = " ".join(query.split()[:TITLE_FALLBACK_WORDS])
    return cap_title(words) if words else DEFAULT_TITLE


class LLMClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.openai_api_key.get_secret_value()
        self.model = model or settings.chat_model
        self.url = (base_url or settings.openai_base_url).rstrip("/") + "/chat/completions"
        self.max_tokens = max_tokens or settings.chat_max_tokens
        self.temperature = (
            temperature if temperature is not None else settings.chat_temperature
        )
        self.timeout = timeout if timeout is not None else settings.completion_timeout
        self._transport = transport

    async def complete(
        self,
        messages: List[Dict[str, str]],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Completion:
        """
        Run one chat completion over role-tagged messages.

        Raises
        ------
        CompletionError
            On transport failure, timeout, HTTP error status or a response
            without choices.
        """
        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": self.temperature if temperature is None else temperature,
            "stream": False,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                resp = await client.post(
                    self.url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            logger.error(
                "Completion request failed (%s): %s",
                type(exc).__name__,
                str(exc),
            )
            raise CompletionError(
                f"Completion failed: {type(exc).__name__}"
            ) from exc
        except ValueError as exc:
            raise CompletionError("Completion response is not valid JSON.") from exc

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise CompletionError("Completion response contained no choices.")

        choice = choices[0]
        if not isinstance(choice, dict):
            raise CompletionError("Malformed completion choice.")
        usage = data.get("usage") or {}

        return Completion(
            answer=(choice.get("message") or {}).get("content") or "No response generated",
            usage=TokenUsage(
                prompt=int(usage.get("prompt_tokens", 0)),
                completion=int(usage.get("completion_tokens", 0)),
                total=int(usage.get("total_tokens", 0)),
            ),
            model=data.get("model") or self.model,
            finish_reason=choice.get("finish_reason") or "unknown",
        )

    async def generate_title(self, query: str) -> str:
        """
        Ask the model for a short chat title.

        Never raises: any failure falls back to the first words of the query.
        """
        try:
            completion = await self.complete(
                [
                    {"role": "system", "content": TITLE_PROMPT},
                    {"role": "user", "content": query},
                ],
                max_tokens=20,
                temperature=0.3,
            )
        except Exception as exc:
            logger.warning("Title generation failed, using query words: %s", exc)
            return fallback_title(query)

        title = completion.answer.strip().strip('"')
        return cap_title(title) if title else fallback_title(query)
