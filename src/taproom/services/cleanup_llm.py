"""Description cleanup via a hosted LLM, with validation of the result.

The model is asked to strip HTML artefacts and fix obvious typos only. Its
answer is not trusted blindly: :func:`validate_cleanup` keeps the original
text whenever the cleaned version lost an ABV the original had or changed
length by more than the artefact removal can explain.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from taproom.core.errors import MalformedResponseError, UpstreamError, UpstreamTimeoutError
from taproom.core.logging import get_logger
from taproom.core.settings import TaproomSettings
from taproom.services.abv import extract_abv

logger = get_logger(__name__)

MIN_LENGTH_RATIO = 0.7
MAX_LENGTH_RATIO = 1.1

CLEANUP_PROMPT = """Clean the text between <TEXT> and </TEXT>. Return ONLY the cleaned text, nothing else.

REMOVE only these HTML tags:
- <p>, </p>, <br>, <br />, <span>, </span>

DECODE HTML entities to normal characters:
- &amp; becomes &
- &nbsp; becomes space
- &lt; becomes <
- &gt; becomes >
- &#39; becomes '

DO NOT:
- Encode characters (never turn & into &amp;)
- Remove numbers from beer names
- Remove hashtags
- Change price indicators (keep $$$$ exactly as written)
- Rewrite sentences or change grammar (only fix obvious typos)

KEEP EXACTLY as written:
- All words, sentences, ABV values and prices
- All capitalization, punctuation and special characters

<TEXT>
"""

RESPONSE_PREFIXES = (
    "Here is the cleaned text:",
    "Here is the cleaned description:",
    "Here's the cleaned text:",
    "Cleaned text:",
    "Cleaned:",
)


class CleanupService(Protocol):
    async def clean(self, text: str) -> str: ...


@dataclass(frozen=True)
class CleanupResult:
    cleaned: str
    used_original: bool
    abv: float | None


def strip_response_prefixes(text: str) -> str:
    """Drop a leading model preamble such as ``Cleaned text:``."""
    result = text.strip()
    for prefix in RESPONSE_PREFIXES:
        if result.lower().startswith(prefix.lower()):
            result = result[len(prefix):]
            break
    return result.strip()


def validate_cleanup(original: str, cleaned: str) -> CleanupResult:
    """Accept ``cleaned`` only if it keeps the ABV and roughly the length."""
    original_abv = extract_abv(original)
    if not original:
        return CleanupResult(cleaned=original, used_original=True, abv=original_abv)

    cleaned_abv = extract_abv(cleaned)
    if original_abv is not None and cleaned_abv is None:
        logger.warning("cleanup.abv_lost", original_abv=original_abv)
        return CleanupResult(cleaned=original, used_original=True, abv=original_abv)

    ratio = len(cleaned) / len(original)
    if ratio < MIN_LENGTH_RATIO or ratio > MAX_LENGTH_RATIO:
        logger.warning("cleanup.length_changed", ratio=round(ratio, 2))
        return CleanupResult(cleaned=original, used_original=True, abv=original_abv)

    return CleanupResult(cleaned=cleaned, used_original=False, abv=cleaned_abv)


class LlmCleanupClient:
    """Calls a hosted text-generation model's ``/run/<model>`` endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        model: str = "@cf/meta/llama-3.2-3b-instruct",
        max_tokens: int = 700,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._model = model
        self._max_tokens = max_tokens
        self._timeout = timeout
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout, headers=headers)

    @classmethod
    def from_settings(cls, settings: TaproomSettings) -> LlmCleanupClient:
        return cls(
            settings.cleanup_llm_base_url,
            api_key=settings.cleanup_llm_api_key,
            model=settings.cleanup_llm_model,
            timeout=settings.cleanup_timeout_seconds,
        )

    async def clean(self, text: str) -> str:
        """Return the model's cleaned text with any preamble stripped.

        Raises:
            UpstreamTimeoutError, UpstreamError: the call failed.
            MalformedResponseError: the reply carried no text.
        """
        try:
            response = await self._client.post(
                f"/run/{self._model}",
                json={"prompt": f"{CLEANUP_PROMPT}{text}\n</TEXT>", "max_tokens": self._max_tokens},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError("Cleanup model timed out", cause=e).with_context(
                service="cleanup-llm"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Cleanup model request failed: {e}", cause=e).with_context(
                service="cleanup-llm"
            ) from e

        if response.is_error:
            raise UpstreamError(f"Cleanup model returned {response.status_code}").with_context(
                service="cleanup-llm", http_status=response.status_code
            )

        reply = _response_text(response)
        if not reply or not reply.strip():
            raise MalformedResponseError("Cleanup model response missing text").with_context(
                service="cleanup-llm"
            )
        return strip_response_prefixes(reply)

    async def aclose(self) -> None:
        await self._client.aclose()


def _response_text(response: httpx.Response) -> str | None:
    try:
        data: Any = response.json()
    except ValueError as e:
        raise MalformedResponseError("Cleanup model response is not JSON", cause=e) from e
    if not isinstance(data, dict):
        return None
    if isinstance(data.get("result"), dict):
        data = data["result"]
    reply = data.get("response")
    return reply if isinstance(reply, str) else None
