"""Gemini completion provider using the google-genai SDK."""

import logging
from typing import Any

import httpx
from google import genai
from google.genai import errors
from google.genai import types

from ..ai.gateway import (
    Completion,
    CompletionRequest,
    GroundingReference,
    ProviderError,
    ToolCapability,
)

logger = logging.getLogger(__name__)


def _to_part(part: Any) -> types.Part:
    if isinstance(part, str):
        return types.Part(text=part)
    return types.Part.from_bytes(data=part.data, mime_type=part.mime_type)


def _tools(capabilities: frozenset[ToolCapability]) -> list[types.Tool] | None:
    tools = []
    # Stable order: search first, then maps
    if ToolCapability.WEB_SEARCH in capabilities:
        tools.append(types.Tool(google_search=types.GoogleSearch()))
    if ToolCapability.MAPS in capabilities:
        tools.append(types.Tool(google_maps=types.GoogleMaps()))
    return tools or None


def build_config(request: CompletionRequest) -> types.GenerateContentConfig:
    """Translate a completion request into a Gemini config."""
    config = types.GenerateContentConfig(
        system_instruction=request.system_instruction,
        tools=_tools(request.tools),
    )
    if request.json_output:
        config.response_mime_type = "application/json"
    if request.reasoning_budget is not None:
        config.thinking_config = types.ThinkingConfig(
            thinking_budget=request.reasoning_budget
        )
    return config


def extract_grounding(response: Any) -> tuple[GroundingReference, ...]:
    """Collect web and maps citations from the first candidate."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ()
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    references = []
    for chunk in chunks:
        for label, source in (("Web", getattr(chunk, "web", None)),
                              ("Map", getattr(chunk, "maps", None))):
            uri = getattr(source, "uri", None)
            title = getattr(source, "title", None)
            if uri and title:
                references.append(GroundingReference(label=label, title=title, uri=uri))
    return tuple(references)


class GeminiProvider:
    """CompletionProvider backed by Gemini.

    One SDK client is kept per API key; keys are supplied by the gateway
    on every request.
    """

    def __init__(self) -> None:
        self._clients: dict[str, genai.Client] = {}

    def _get_client(self, api_key: str | None) -> genai.Client:
        """Get or create the client for an API key."""
        if not api_key:
            raise ProviderError("No Gemini API key configured")
        if api_key not in self._clients:
            self._clients[api_key] = genai.Client(api_key=api_key)
        return self._clients[api_key]

    async def complete(self, request: CompletionRequest) -> Completion:
        """Answer a request with generate_content."""
        client = self._get_client(request.api_key)
        contents = [
            types.Content(role="user", parts=[_to_part(p) for p in request.parts])
        ]

        try:
            response = await client.aio.models.generate_content(
                model=request.model,
                contents=contents,
                config=build_config(request),
            )
        except errors.APIError as e:
            raise ProviderError(f"Gemini API error ({e.code}): {e.message}") from e
        except errors.UnknownApiResponseError as e:
            raise ProviderError(f"Unreadable Gemini response: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Gemini transport error: {e}") from e

        return Completion(
            text=response.text or "",
            grounding=extract_grounding(response),
        )
