"""Web search backed by the Tavily API, for providers without native search."""

from dataclasses import dataclass
from typing import Any

from tavily import AsyncTavilyClient

from ..ai.gateway import GroundingReference

TOOL_NAME = "web_search"


@dataclass
class SearchResult:
    """Formatted search output plus the citations it is based on."""

    output: str
    references: tuple[GroundingReference, ...] = ()
    error: str | None = None


class WebSearch:
    """Search the web with Tavily.

    Tavily returns clean, relevant results instead of raw HTML, which
    makes them usable directly as model context.
    """

    def __init__(
        self,
        api_key: str | None,
        max_results: int = 5,
        search_depth: str = "basic",
        include_answer: bool = True,
        client: AsyncTavilyClient | None = None,
    ) -> None:
        """Initialize the web search.

        Args:
            api_key: Tavily API key.
            max_results: Maximum number of results to return (1-20).
            search_depth: "basic" for fast results, "advanced" for deeper search.
            include_answer: Whether to include an AI-generated answer summary.
            client: Optional pre-built client.
        """
        self._api_key = api_key
        self._client = client
        self._max_results = min(max(1, max_results), 20)
        self._search_depth = search_depth
        self._include_answer = include_answer

    @property
    def available(self) -> bool:
        """Whether searches can be made."""
        return self._client is not None or bool(self._api_key)

    def get_schema(self) -> dict[str, Any]:
        """Get the function-calling schema for the search tool."""
        return {
            "type": "function",
            "function": {
                "name": TOOL_NAME,
                "description": (
                    "Search the web for current information. Use this to "
                    "understand links, recent events, or facts not found in "
                    "the user's memories."
                ),
                "parameters": {
                    "type": "object",
                    "properties": {
                        "query": {
                            "type": "string",
                            "description": "The search query. Be specific for better results.",
                        },
                    },
                    "required": ["query"],
                },
            },
        }

    def _get_client(self) -> AsyncTavilyClient:
        if self._client is None:
            if not self._api_key:
                raise ValueError("TAVILY_API_KEY is required for web search")
            self._client = AsyncTavilyClient(api_key=self._api_key)
        return self._client

    def _format_results(self, response: dict[str, Any]) -> str:
        """Format Tavily response for LLM consumption."""
        lines = []

        if response.get("answer"):
            lines.append("## Answer")
            lines.append(response["answer"])
            lines.append("")

        results = response.get("results", [])
        if results:
            lines.append("## Search Results")
            lines.append("")

            for i, result in enumerate(results, 1):
                lines.append(f"### {i}. {result.get('title', 'No title')}")
                lines.append(f"URL: {result.get('url', '')}")
                lines.append(f"{result.get('content', 'No content')}")
                lines.append("")

        if not lines:
            return "No results found."

        return "\n".join(lines)

    async def search(self, query: str) -> SearchResult:
        """Run a search. Failures are reported in the result, not raised."""
        if not query or not query.strip():
            return SearchResult(output="", error="Search query cannot be empty")

        try:
            response = await self._get_client().search(
                query=query.strip(),
                search_depth=self._search_depth,
                max_results=self._max_results,
                include_answer=self._include_answer,
            )
        except Exception as e:
            return SearchResult(output="", error=f"Search failed: {e}")

        references = tuple(
            GroundingReference(label="Web", title=r["title"], uri=r["url"])
            for r in response.get("results", [])
            if r.get("title") and r.get("url")
        )
        return SearchResult(output=self._format_results(response), references=references)
