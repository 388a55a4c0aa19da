"""Tests for the cleanup model client and result validation."""

from __future__ import annotations

import json

import httpx
import pytest

from taproom.core.errors import MalformedResponseError, UpstreamError, UpstreamTimeoutError
from taproom.services.cleanup_llm import (
    LlmCleanupClient,
    strip_response_prefixes,
    validate_cleanup,
)

BASE_URL = "https://ai.example.test"
MODEL = "@cf/meta/llama-3.2-3b-instruct"


def _client(handler) -> LlmCleanupClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)
    return LlmCleanupClient(BASE_URL, client=http)


class TestStripPrefixes:
    @pytest.mark.parametrize(
        "reply, expected",
        [
            ("Here is the cleaned text: A hazy IPA.", "A hazy IPA."),
            ("cleaned text:\nA hazy IPA.", "A hazy IPA."),
            ("  A hazy IPA.  ", "A hazy IPA."),
            ("Cleaned: Cleaned: twice", "Cleaned: twice"),
        ],
    )
    def test_strip(self, reply, expected):
        assert strip_response_prefixes(reply) == expected


class TestValidateCleanup:
    def test_accepts_cleaned_text(self):
        result = validate_cleanup("<p>Hazy IPA, 6.5% ABV</p>", "Hazy IPA, 6.5% ABV")
        assert result.used_original is False
        assert result.cleaned == "Hazy IPA, 6.5% ABV"
        assert result.abv == 6.5

    def test_lost_abv_keeps_original(self):
        original = "Hazy IPA brewed in house, 6.5% ABV"
        result = validate_cleanup(original, "Hazy IPA brewed in house, strong")
        assert result.used_original is True
        assert result.cleaned == original
        assert result.abv == 6.5

    def test_too_short_keeps_original(self):
        original = "A long description of a crisp, clean lager brewed with pilsner malt"
        result = validate_cleanup(original, "A lager")
        assert result.used_original is True
        assert result.abv is None

    def test_too_long_keeps_original(self):
        original = "Crisp lager"
        result = validate_cleanup(original, "Crisp lager with an extra invented sentence")
        assert result.used_original is True

    def test_empty_original(self):
        result = validate_cleanup("", "anything")
        assert result.used_original is True
        assert result.cleaned == ""


class TestClean:
    @pytest.mark.asyncio
    async def test_posts_prompt_to_model(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"result": {"response": "Cleaned text: Hazy IPA"}})

        client = _client(handler)
        assert await client.clean("<p>Hazy IPA</p>") == "Hazy IPA"
        await client.aclose()
        assert seen["path"] == f"/run/{MODEL}"
        assert seen["body"]["prompt"].endswith("<p>Hazy IPA</p>\n</TEXT>")
        assert seen["body"]["max_tokens"] == 700

    @pytest.mark.asyncio
    async def test_flat_response_shape(self):
        client = _client(lambda r: httpx.Response(200, json={"response": "Hazy IPA"}))
        assert await client.clean("<p>Hazy IPA</p>") == "Hazy IPA"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"result": {}}, {"response": "   "}, {"response": 5}, []])
    async def test_missing_text(self, body):
        client = _client(lambda r: httpx.Response(200, json=body))
        with pytest.raises(MalformedResponseError):
            await client.clean("<p>Hazy IPA</p>")

    @pytest.mark.asyncio
    async def test_not_json(self):
        client = _client(lambda r: httpx.Response(200, text="oops"))
        with pytest.raises(MalformedResponseError):
            await client.clean("<p>Hazy IPA</p>")

    @pytest.mark.asyncio
    async def test_http_error(self):
        client = _client(lambda r: httpx.Response(500, text="boom"))
        with pytest.raises(UpstreamError) as exc_info:
            await client.clean("<p>Hazy IPA</p>")
        assert exc_info.value.context.http_status == 500

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(UpstreamTimeoutError):
            await _client(handler).clean("<p>Hazy IPA</p>")
