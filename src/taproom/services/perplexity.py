"""Perplexity client for ABV lookups.

Asks the ``sonar`` model for a single number and parses it defensively: a
reply of ``unknown``, a reply without a number, or a number outside 0–70 all
mean "not found" rather than an error. Transport and HTTP failures raise
:mod:`taproom.core.errors` types so the consumer can choose a retry delay.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from taproom.core.errors import (
    ConfigError,
    MalformedResponseError,
    RateLimitError,
    UpstreamError,
    UpstreamTimeoutError,
)
from taproom.core.logging import get_logger
from taproom.core.settings import TaproomSettings

logger = get_logger(__name__)

LOOKUP_CONFIDENCE = 0.7
MAX_LOOKUP_ABV = 70.0
_NUMBER_RE = re.compile(r"(\d+\.?\d*)", re.ASCII)

SYSTEM_PROMPT = (
    "You are a beer expert assistant. Provide only the requested information, "
    "nothing more. Be concise."
)


@dataclass(frozen=True)
class AbvLookup:
    abv: float
    confidence: float = LOOKUP_CONFIDENCE


class AbvLookupClient(Protocol):
    async def lookup(
        self, beer_name: str, brewer: str | None = None, description: str | None = None
    ) -> AbvLookup | None: ...


def build_prompt(beer_name: str, brewer: str | None, description: str | None) -> str:
    subject = f'"{beer_name}" by {brewer}' if brewer else f'"{beer_name}"'
    prompt = (
        f"What is the ABV (alcohol by volume) percentage of {subject}? "
        'Reply with ONLY the numeric ABV value (e.g., "5.5" or "8.0"). '
        'If you cannot find reliable information, reply with "unknown".'
    )
    if description:
        prompt += f"\nDescription from the menu: {description[:500]}"
    return prompt


def parse_abv_reply(content: str | None) -> float | None:
    """Parse the model's reply; None when unknown or implausible."""
    content = (content or "").strip()
    if not content or content.lower() == "unknown":
        return None
    match = _NUMBER_RE.search(content)
    if match:
        abv = float(match.group(1))
        if 0 <= abv <= MAX_LOOKUP_ABV:
            return abv
    logger.warning("perplexity.unparsable_reply", content=content[:100])
    return None


class PerplexityAbvClient:
    """ABV lookup against the Perplexity chat completions API."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.perplexity.ai",
        model: str = "sonar",
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: TaproomSettings) -> PerplexityAbvClient:
        if not settings.perplexity_api_key:
            raise ConfigError("TAPROOM_PERPLEXITY_API_KEY is not set")
        return cls(
            settings.perplexity_api_key,
            base_url=settings.perplexity_base_url,
            model=settings.perplexity_model,
            timeout=settings.lookup_timeout_seconds,
        )

    async def lookup(
        self, beer_name: str, brewer: str | None = None, description: str | None = None
    ) -> AbvLookup | None:
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(beer_name, brewer, description)},
            ],
            "max_tokens": 50,
            "temperature": 0.1,
            "web_search_options": {"search_context_size": "low"},
        }
        try:
            response = await self._client.post(
                "/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError("Perplexity request timed out", cause=e).with_context(
                service="perplexity"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Perplexity request failed: {e}", cause=e).with_context(
                service="perplexity"
            ) from e

        if response.status_code == 429:
            raise RateLimitError("Perplexity returned 429").with_context(
                service="perplexity", http_status=429
            )
        if response.is_error:
            logger.error(
                "perplexity.http_error",
                status=response.status_code,
                body=response.text[:500],
            )
            raise UpstreamError(f"Perplexity returned {response.status_code}").with_context(
                service="perplexity", http_status=response.status_code
            )

        abv = parse_abv_reply(_reply_content(response))
        return AbvLookup(abv=abv) if abv is not None else None

    async def aclose(self) -> None:
        await self._client.aclose()


def _reply_content(response: httpx.Response) -> str | None:
    try:
        data: Any = response.json()
        choices = data["choices"]
        if not choices:
            return None
        return choices[0].get("message", {}).get("content")
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise MalformedResponseError("Perplexity response is not a chat completion", cause=e).with_context(
            service="perplexity"
        ) from e
