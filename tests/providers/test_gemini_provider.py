"""Tests for the Gemini provider."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
from google.genai import errors

from nomorize.ai import (
    CompletionGateway,
    CompletionRequest,
    ConversationalResponder,
    GroundingReference,
    InlineMedia,
    ProviderError,
    ToolCapability,
)
from nomorize.ai.responder import FALLBACK_RESPONSE
from nomorize.providers import GeminiProvider
from nomorize.providers.gemini import build_config, extract_grounding


def make_response(text, chunks=()):
    metadata = SimpleNamespace(grounding_chunks=list(chunks))
    return SimpleNamespace(text=text, candidates=[SimpleNamespace(grounding_metadata=metadata)])


def web_chunk(title, uri):
    return SimpleNamespace(web=SimpleNamespace(title=title, uri=uri), maps=None)


def maps_chunk(title, uri):
    return SimpleNamespace(web=None, maps=SimpleNamespace(title=title, uri=uri))


@pytest.fixture
def client() -> Mock:
    client = Mock()
    client.aio.models.generate_content = AsyncMock(return_value=make_response("hello"))
    return client


@pytest.fixture
def provider(client: Mock) -> GeminiProvider:
    provider = GeminiProvider()
    provider._clients["key"] = client
    return provider


class TestBuildConfig:
    """Tests for request to config translation."""

    def test_plain(self):
        config = build_config(CompletionRequest(parts=("x",)))

        assert config.tools is None
        assert config.response_mime_type is None
        assert config.thinking_config is None

    def test_tools(self):
        request = CompletionRequest(
            parts=("x",),
            tools=frozenset({ToolCapability.MAPS, ToolCapability.WEB_SEARCH}),
        )

        config = build_config(request)

        assert len(config.tools) == 2
        assert config.tools[0].google_search is not None
        assert config.tools[1].google_maps is not None

    def test_json_mode(self):
        config = build_config(CompletionRequest(parts=("x",), json_output=True))
        assert config.response_mime_type == "application/json"

    def test_reasoning_budget_and_system(self):
        config = build_config(
            CompletionRequest(parts=("x",), system_instruction="be nice", reasoning_budget=16000)
        )

        assert config.thinking_config.thinking_budget == 16000
        assert config.system_instruction == "be nice"


class TestExtractGrounding:
    """Tests for citation extraction."""

    def test_web_and_maps(self):
        response = make_response(
            "x",
            [web_chunk("Article", "https://a.example"), maps_chunk("Cafe", "https://maps.example/c")],
        )

        assert extract_grounding(response) == (
            GroundingReference("Web", "Article", "https://a.example"),
            GroundingReference("Map", "Cafe", "https://maps.example/c"),
        )

    def test_incomplete_chunks_skipped(self):
        response = make_response("x", [web_chunk(None, "https://a.example")])
        assert extract_grounding(response) == ()

    def test_no_candidates(self):
        assert extract_grounding(SimpleNamespace(candidates=None)) == ()

    def test_no_metadata(self):
        response = SimpleNamespace(candidates=[SimpleNamespace(grounding_metadata=None)])
        assert extract_grounding(response) == ()


class TestGeminiProviderComplete:
    """Tests for GeminiProvider.complete."""

    @pytest.mark.asyncio
    async def test_text_and_grounding(self, provider: GeminiProvider, client: Mock):
        client.aio.models.generate_content.return_value = make_response(
            "answer", [web_chunk("Doc", "https://d.example")]
        )

        completion = await provider.complete(
            CompletionRequest(parts=("question",), model="gemini-2.5-flash", api_key="key")
        )

        assert completion.text == "answer"
        assert completion.grounding == (GroundingReference("Web", "Doc", "https://d.example"),)
        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash"

    @pytest.mark.asyncio
    async def test_inline_media_part(self, provider: GeminiProvider, client: Mock):
        image = InlineMedia(data=b"\x89PNG", mime_type="image/png")

        await provider.complete(CompletionRequest(parts=(image, "describe"), api_key="key"))

        contents = client.aio.models.generate_content.call_args.kwargs["contents"]
        parts = contents[0].parts
        assert parts[0].inline_data.mime_type == "image/png"
        assert parts[0].inline_data.data == b"\x89PNG"
        assert parts[1].text == "describe"

    @pytest.mark.asyncio
    async def test_none_text(self, provider: GeminiProvider, client: Mock):
        client.aio.models.generate_content.return_value = make_response(None)

        completion = await provider.complete(CompletionRequest(parts=("q",), api_key="key"))

        assert completion.text == ""

    @pytest.mark.asyncio
    async def test_missing_key(self):
        with pytest.raises(ProviderError, match="No Gemini API key"):
            await GeminiProvider().complete(CompletionRequest(parts=("q",)))

    @pytest.mark.asyncio
    async def test_api_error_mapped(self, provider: GeminiProvider, client: Mock):
        client.aio.models.generate_content.side_effect = errors.APIError(
            429, {"error": {"code": 429, "message": "quota", "status": "RESOURCE_EXHAUSTED"}}
        )

        with pytest.raises(ProviderError, match="429"):
            await provider.complete(CompletionRequest(parts=("q",), api_key="key"))

    def test_client_cached_per_key(self, provider: GeminiProvider, client: Mock):
        assert provider._get_client("key") is client

    @pytest.mark.asyncio
    async def test_unreadable_response_mapped(self, provider: GeminiProvider, client: Mock):
        client.aio.models.generate_content.side_effect = errors.UnknownApiResponseError("bad body")

        with pytest.raises(ProviderError, match="bad body"):
            await provider.complete(CompletionRequest(parts=("q",), api_key="key"))

    @pytest.mark.asyncio
    async def test_unreadable_response_gives_chat_apology(self, provider: GeminiProvider, client: Mock):
        """An unreadable body reaches the responder as a provider failure."""
        client.aio.models.generate_content.side_effect = errors.UnknownApiResponseError("bad body")
        responder = ConversationalResponder(CompletionGateway(provider, default_api_key="key"))

        reply = await responder.generate_response("hi", [])

        assert reply.text == FALLBACK_RESPONSE
