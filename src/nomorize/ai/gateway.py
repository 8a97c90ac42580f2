"""Completion gateway: one entry point to the generative-AI provider.

The gateway hides which provider answers a request. Components describe
what they need with a CompletionRequest (content parts, model, system
instruction, tool capabilities, json mode, reasoning budget) and get a
Completion back: raw text plus any grounding references the provider
attached.

Credentials are explicit. A request may carry its own API key; otherwise
the gateway's configured default is used. Nothing in the pipeline reads
the environment.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Protocol, Sequence

from .attachments import InlineMedia

if TYPE_CHECKING:
    from ..logging import JSONLLogger

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
REASONING_MODEL = "gemini-3-pro-preview"
REASONING_BUDGET = 16000

ContentPart = str | InlineMedia


class ProviderError(Exception):
    """Transport, auth or quota failure from the completion provider."""


class ToolCapability(Enum):
    """Tool capabilities a provider can attach to a request."""

    WEB_SEARCH = "web_search"
    MAPS = "maps"


@dataclass(frozen=True)
class GroundingReference:
    """A citation the provider attached to its answer."""

    label: str
    title: str
    uri: str


@dataclass(frozen=True)
class CompletionRequest:
    """Everything a provider needs to answer one prompt.

    Attributes:
        parts: Text and inline media, in order.
        model: Model identifier.
        system_instruction: Optional system prompt.
        tools: Tool capabilities to enable.
        json_output: Ask the provider for strict JSON output.
        reasoning_budget: Optional thinking budget in tokens.
        api_key: Credential for this call, None for the gateway default.
    """

    parts: tuple[ContentPart, ...]
    model: str = DEFAULT_MODEL
    system_instruction: str | None = None
    tools: frozenset[ToolCapability] = field(default_factory=frozenset)
    json_output: bool = False
    reasoning_budget: int | None = None
    api_key: str | None = None

    def __post_init__(self) -> None:
        if not self.parts:
            raise ValueError("A completion request needs at least one part")
        if self.json_output and self.tools:
            raise ValueError("Strict JSON output cannot be combined with tools")

    @property
    def text(self) -> str:
        """All text parts joined together."""
        return "\n".join(p for p in self.parts if isinstance(p, str))

    @property
    def media(self) -> list[InlineMedia]:
        """Inline media parts."""
        return [p for p in self.parts if isinstance(p, InlineMedia)]


@dataclass(frozen=True)
class Completion:
    """Raw provider output."""

    text: str = ""
    grounding: tuple[GroundingReference, ...] = ()


class CompletionProvider(Protocol):
    """Protocol for generative-AI providers.

    Implementations raise ProviderError on transport, auth or quota
    failure and return an empty text when the model had nothing to say.
    """

    async def complete(self, request: CompletionRequest) -> Completion:
        """Answer a completion request."""
        ...


class CompletionGateway:
    """Single "complete" operation shared by all pipeline components."""

    def __init__(
        self,
        provider: CompletionProvider,
        default_api_key: str | None = None,
        event_log: JSONLLogger | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            provider: The provider that answers requests.
            default_api_key: Credential used when a call does not bring one.
            event_log: Optional structured event log.
        """
        self.provider = provider
        self.default_api_key = default_api_key
        self.event_log = event_log

    def resolve_api_key(self, api_key: str | None) -> str | None:
        """Pick the per-call key when it is not blank, else the default."""
        if api_key and api_key.strip():
            return api_key.strip()
        return self.default_api_key

    async def complete(
        self,
        parts: Sequence[ContentPart],
        *,
        model: str = DEFAULT_MODEL,
        system_instruction: str | None = None,
        tools: Sequence[ToolCapability] = (),
        json_output: bool = False,
        reasoning_budget: int | None = None,
        api_key: str | None = None,
        operation: str = "complete",
    ) -> Completion:
        """Run one completion.

        Args:
            parts: Text and inline media, in order.
            model: Model identifier.
            system_instruction: Optional system prompt.
            tools: Tool capabilities to enable.
            json_output: Request strict JSON output (not with tools).
            reasoning_budget: Optional thinking budget.
            api_key: Per-call credential override.
            operation: Name of the calling operation, for the event log.

        Returns:
            The provider's text (empty if none) and grounding references.

        Raises:
            ProviderError: On transport, auth or quota failure.
        """
        request = CompletionRequest(
            parts=tuple(parts),
            model=model,
            system_instruction=system_instruction,
            tools=frozenset(tools),
            json_output=json_output,
            reasoning_budget=reasoning_budget,
            api_key=self.resolve_api_key(api_key),
        )

        start = time.monotonic()
        error: str | None = None
        try:
            completion = await self.provider.complete(request)
        except ProviderError as e:
            error = str(e)
            logger.warning("%s failed: %s", operation, e)
            raise
        finally:
            self._log(request, operation, start, error)

        if completion.text is None:
            completion = replace(completion, text="")
        return completion

    def _log(
        self,
        request: CompletionRequest,
        operation: str,
        start: float,
        error: str | None,
    ) -> None:
        if self.event_log is None:
            return
        self.event_log.log_completion(
            operation,
            request.model,
            round((time.monotonic() - start) * 1000, 1),
            tools=sorted(t.value for t in request.tools),
            error=error,
        )
