"""Groq completion provider with Tavily-backed web search."""

from __future__ import annotations

import json
import logging
from typing import Any

import groq
from groq import AsyncGroq

from ..ai.gateway import (
    Completion,
    CompletionRequest,
    GroundingReference,
    ProviderError,
    ToolCapability,
)
from .web_search import TOOL_NAME, WebSearch

logger = logging.getLogger(__name__)

DEFAULT_GROQ_MODEL = "llama-3.3-70b-versatile"
DEFAULT_VISION_MODEL = "meta-llama/llama-4-scout-17b-16e-instruct"
DEFAULT_REASONING_MODEL = "openai/gpt-oss-120b"


def _first_message(response: Any) -> Any:
    if not response.choices:
        raise ProviderError("Groq returned no choices")
    return response.choices[0].message


class GroqProvider:
    """CompletionProvider backed by Groq chat completions.

    Web search is offered to the model as a function tool and answered
    through Tavily; each search result becomes a Web grounding reference.
    Groq has no maps grounding, so that capability is skipped.
    """

    def __init__(
        self,
        web_search: WebSearch | None = None,
        model: str = DEFAULT_GROQ_MODEL,
        vision_model: str = DEFAULT_VISION_MODEL,
        reasoning_model: str = DEFAULT_REASONING_MODEL,
        max_tool_rounds: int = 3,
        client: AsyncGroq | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            web_search: Search backend for the web search capability.
            model: Model used for requests naming a non-Groq model.
            vision_model: Model used when the request carries images.
            reasoning_model: Model used when a reasoning budget is set.
            max_tool_rounds: Maximum search rounds before a final answer.
            client: Optional client used for every request (tests).
        """
        self.web_search = web_search
        self.model = model
        self.vision_model = vision_model
        self.reasoning_model = reasoning_model
        self.max_tool_rounds = max_tool_rounds
        self._client = client
        self._clients: dict[str, AsyncGroq] = {}

    def _get_client(self, api_key: str | None) -> AsyncGroq:
        if self._client is not None:
            return self._client
        if not api_key:
            raise ProviderError("No Groq API key configured")
        if api_key not in self._clients:
            self._clients[api_key] = AsyncGroq(api_key=api_key)
        return self._clients[api_key]

    def select_model(self, request: CompletionRequest) -> str:
        """Map the requested model onto a Groq model."""
        if request.media:
            return self.vision_model
        if request.reasoning_budget is not None:
            return self.reasoning_model
        if request.model.startswith("gemini"):
            return self.model
        return request.model

    def build_messages(self, request: CompletionRequest) -> list[dict[str, Any]]:
        """Build chat messages, images as data URLs."""
        messages: list[dict[str, Any]] = []

        if request.system_instruction:
            messages.append({"role": "system", "content": request.system_instruction})

        if request.media:
            content: Any = [
                {"type": "text", "text": p} if isinstance(p, str)
                else {"type": "image_url", "image_url": {"url": p.to_data_url()}}
                for p in request.parts
            ]
        else:
            content = request.text

        messages.append({"role": "user", "content": content})
        return messages

    def _search_enabled(self, request: CompletionRequest) -> bool:
        if ToolCapability.MAPS in request.tools:
            logger.debug("Maps grounding is not supported by Groq, skipping")
        return (
            ToolCapability.WEB_SEARCH in request.tools
            and self.web_search is not None
            and self.web_search.available
        )

    async def complete(self, request: CompletionRequest) -> Completion:
        """Answer a request, running web searches the model asks for."""
        client = self._get_client(request.api_key)
        messages = self.build_messages(request)
        kwargs: dict[str, Any] = {"model": self.select_model(request)}
        if request.json_output:
            kwargs["response_format"] = {"type": "json_object"}
        if request.reasoning_budget is not None:
            kwargs["reasoning_effort"] = "high"

        tool_kwargs: dict[str, Any] = {}
        if self._search_enabled(request):
            tool_kwargs = {"tools": [self.web_search.get_schema()], "tool_choice": "auto"}
        references: list[GroundingReference] = []

        try:
            for _ in range(self.max_tool_rounds):
                response = await client.chat.completions.create(
                    messages=messages, **tool_kwargs, **kwargs
                )
                message = _first_message(response)

                if not message.tool_calls:
                    return Completion(text=message.content or "", grounding=tuple(references))

                messages.append(message.model_dump(exclude_none=True))
                for tool_call in message.tool_calls:
                    output = await self._run_tool(tool_call, references)
                    messages.append({
                        "role": "tool",
                        "tool_call_id": tool_call.id,
                        "content": output,
                    })

            # Out of search rounds: ask for the answer without tools
            response = await client.chat.completions.create(messages=messages, **kwargs)
        except groq.APIError as e:
            raise ProviderError(f"Groq API error: {e}") from e

        return Completion(
            text=_first_message(response).content or "",
            grounding=tuple(references),
        )

    async def _run_tool(
        self,
        tool_call: Any,
        references: list[GroundingReference],
    ) -> str:
        name = tool_call.function.name
        if name != TOOL_NAME or self.web_search is None:
            return f"[{name}] Error: Unknown tool"

        try:
            args = json.loads(tool_call.function.arguments or "{}")
        except json.JSONDecodeError:
            args = {}

        result = await self.web_search.search(str(args.get("query", "")))
        if result.error:
            return f"[{name}] Error: {result.error}"

        references.extend(result.references)
        return f"[{name}] Success:\n{result.output}"
