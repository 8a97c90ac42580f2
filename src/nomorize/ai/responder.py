"""Cortex conversational responder."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from typing import Callable, Sequence

from ..models import ChatMessage, Memory, Sender
from .gateway import (
    DEFAULT_MODEL,
    REASONING_BUDGET,
    REASONING_MODEL,
    CompletionGateway,
    GroundingReference,
    ProviderError,
    ToolCapability,
)
from .prompts import (
    DEFAULT_TONE,
    RELATED_IDS_TAG,
    build_chat_system_prompt,
    build_scoped_prompt,
)

logger = logging.getLogger(__name__)

RELATED_IDS_PATTERN = re.compile(
    r"\s*\|\|" + RELATED_IDS_TAG + r":(\[.*?\])\|\|\s*", re.DOTALL
)

EMPTY_RESPONSE = "I couldn't generate a response."
FALLBACK_RESPONSE = (
    "I'm having trouble accessing my cognitive functions. Please check your "
    "API key in settings or network connection. If using the Thinking model, "
    "ensure you have quota."
)


def extract_related_ids(text: str) -> tuple[str, list[str]]:
    """Split the related-ids marker out of a reply.

    Returns:
        The reply without the marker and the ids it listed. Ids are empty
        when the marker is absent or its array is not valid JSON.
    """
    match = RELATED_IDS_PATTERN.search(text)
    if match is None:
        return text.strip(), []

    visible = (text[:match.start()] + " " + text[match.end():]).strip()
    try:
        parsed = json.loads(match.group(1))
    except json.JSONDecodeError:
        logger.warning("Failed to parse related ids: %s", match.group(1))
        return visible, []

    if not isinstance(parsed, list):
        return visible, []
    return visible, list(dict.fromkeys(i for i in parsed if isinstance(i, str)))


def format_sources(grounding: Sequence[GroundingReference]) -> str:
    """Render grounding references as a Sources block, web first."""
    ordered = sorted(grounding, key=lambda ref: ref.label != "Web")
    lines = dict.fromkeys(
        f"• [{ref.label}] {ref.title}: {ref.uri}"
        for ref in ordered
        if ref.title and ref.uri
    )
    if not lines:
        return ""
    return "\n\n**Sources:**\n" + "\n".join(lines)


class ConversationalResponder:
    """Answers user questions against their memories.

    The whole memory set goes into the system instruction. A scoped
    question narrows the user prompt only. Web search and maps grounding
    are always available so general questions get answered too.
    """

    def __init__(
        self,
        gateway: CompletionGateway,
        reasoning_model: str = REASONING_MODEL,
        reasoning_budget: int = REASONING_BUDGET,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.gateway = gateway
        self.reasoning_model = reasoning_model
        self.reasoning_budget = reasoning_budget
        self.clock = clock

    async def generate_response(
        self,
        query: str,
        memories: Sequence[Memory],
        context_memory_ids: Sequence[str] | None = None,
        api_key: str | None = None,
        user_name: str | None = None,
        tone: str = DEFAULT_TONE,
        model: str = DEFAULT_MODEL,
    ) -> ChatMessage:
        """Generate Cortex's reply to a user utterance.

        Args:
            query: The user's question.
            memories: The memory collection to ground answers in.
            context_memory_ids: Optional ids to focus the question on.
            api_key: Optional per-call credential.
            user_name: Optional display name.
            tone: Persona tone, unknown values fall back to friendly.
            model: Model identifier.

        Returns:
            The assistant message, or a fixed apology on provider failure.
        """
        memories = list(memories)
        prompt = query
        if context_memory_ids:
            wanted = set(context_memory_ids)
            scoped = [m for m in memories if m.id in wanted]
            if scoped:
                prompt = build_scoped_prompt(query, scoped)

        reasoning_budget = self.reasoning_budget if model == self.reasoning_model else None

        try:
            completion = await self.gateway.complete(
                [prompt],
                model=model,
                system_instruction=build_chat_system_prompt(memories, tone, user_name),
                tools=[ToolCapability.WEB_SEARCH, ToolCapability.MAPS],
                reasoning_budget=reasoning_budget,
                api_key=api_key,
                operation="generate_response",
            )
        except ProviderError as e:
            logger.error(f"Cortex response failed: {e}")
            return ChatMessage(
                sender=Sender.ASSISTANT,
                text=FALLBACK_RESPONSE,
                created_at=self.clock(),
            )

        text, related_ids = extract_related_ids(completion.text)
        # A reply made only of the marker still carries its ids
        if not text and not related_ids:
            text = EMPTY_RESPONSE
        text += format_sources(completion.grounding)

        return ChatMessage(
            sender=Sender.ASSISTANT,
            text=text,
            created_at=self.clock(),
            related_memory_ids=tuple(related_ids),
        )
