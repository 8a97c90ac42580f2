"""Reminder briefings that recall past experience."""

import logging
from typing import Sequence

from ..models import Memory
from .gateway import DEFAULT_MODEL, CompletionGateway, ProviderError
from .prompts import RECALL_MARKER, build_briefing_prompt

logger = logging.getLogger(__name__)


def has_recall(briefing: str) -> bool:
    """Check whether a briefing found relevant history."""
    return briefing.lstrip().startswith(RECALL_MARKER)


def fallback_briefing(target: Memory) -> str:
    """The bare reminder text used when no briefing can be generated."""
    return "Reminder: " + target.content


class BriefingGenerator:
    """Generates a briefing when a memory's reminder fires."""

    def __init__(self, gateway: CompletionGateway, model: str = DEFAULT_MODEL) -> None:
        self.gateway = gateway
        self.model = model

    async def generate_briefing(
        self,
        target: Memory,
        memories: Sequence[Memory],
        api_key: str | None = None,
        user_name: str | None = None,
    ) -> str:
        """Generate a briefing for a fired reminder.

        The result starts with RECALL_FOUND when prior related experience
        was found in the other memories.
        """
        others = [m for m in memories if m.id != target.id]
        prompt = build_briefing_prompt(target, others, user_name)

        try:
            completion = await self.gateway.complete(
                [prompt],
                model=self.model,
                api_key=api_key,
                operation="generate_briefing",
            )
        except ProviderError as e:
            logger.warning(f"Briefing failed for {target.id}: {e}")
            return fallback_briefing(target)

        return completion.text.strip() or fallback_briefing(target)
