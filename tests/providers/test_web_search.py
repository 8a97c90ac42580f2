"""Tests for Tavily web search."""

from unittest.mock import AsyncMock

import pytest

from nomorize.ai import GroundingReference
from nomorize.providers import WebSearch


class TestWebSearchInit:
    """Tests for WebSearch initialization."""

    def test_max_results_clamped_high(self):
        assert WebSearch("k", max_results=50)._max_results == 20

    def test_max_results_clamped_low(self):
        assert WebSearch("k", max_results=0)._max_results == 1

    def test_available(self):
        assert WebSearch("k").available
        assert not WebSearch(None).available
        assert WebSearch(None, client=AsyncMock()).available

    def test_schema(self):
        schema = WebSearch("k").get_schema()
        assert schema["function"]["name"] == "web_search"
        assert schema["function"]["parameters"]["required"] == ["query"]


class TestWebSearchFormatResults:
    """Tests for result formatting."""

    def test_format_with_answer(self):
        output = WebSearch("k")._format_results({"answer": "Sunny.", "results": []})
        assert "## Answer" in output
        assert "Sunny." in output

    def test_format_with_results(self):
        output = WebSearch("k")._format_results({
            "results": [
                {"title": "Test Title", "url": "https://example.com", "content": "Test content"}
            ]
        })
        assert "### 1. Test Title" in output
        assert "URL: https://example.com" in output
        assert "Test content" in output

    def test_format_empty(self):
        assert WebSearch("k")._format_results({}) == "No results found."


class TestWebSearchSearch:
    """Tests for WebSearch.search."""

    @pytest.mark.asyncio
    async def test_empty_query(self):
        result = await WebSearch("k", client=AsyncMock()).search("  ")
        assert result.error == "Search query cannot be empty"

    @pytest.mark.asyncio
    async def test_success(self):
        client = AsyncMock()
        client.search.return_value = {
            "answer": "42",
            "results": [
                {"title": "Guide", "url": "https://guide.example", "content": "..."},
                {"title": "", "url": "https://untitled.example", "content": "..."},
            ],
        }
        search = WebSearch("k", max_results=3, client=client)

        result = await search.search(" meaning of life ")

        assert result.error is None
        assert "42" in result.output
        assert result.references == (GroundingReference("Web", "Guide", "https://guide.example"),)
        client.search.assert_awaited_once_with(
            query="meaning of life",
            search_depth="basic",
            max_results=3,
            include_answer=True,
        )

    @pytest.mark.asyncio
    async def test_failure_reported(self):
        client = AsyncMock()
        client.search.side_effect = RuntimeError("rate limited")

        result = await WebSearch("k", client=client).search("x")

        assert result.error == "Search failed: rate limited"
        assert result.references == ()

    @pytest.mark.asyncio
    async def test_missing_key_reported(self):
        result = await WebSearch(None).search("x")
        assert result.error is not None
        assert "TAVILY_API_KEY" in result.error
