"""Proactive link detection between a new memory and existing ones."""

import json
import logging
from typing import Sequence

from ..models import Memory
from .gateway import DEFAULT_MODEL, CompletionGateway, ProviderError
from .prompts import build_connections_prompt

logger = logging.getLogger(__name__)


class ConnectionFinder:
    """Finds existing memories strongly related to a candidate.

    Suggestions are returned to the caller for confirmation; nothing is
    linked here.
    """

    def __init__(
        self,
        gateway: CompletionGateway,
        model: str = DEFAULT_MODEL,
        min_existing: int = 3,
        preview_chars: int = 100,
    ) -> None:
        self.gateway = gateway
        self.model = model
        self.min_existing = min_existing
        self.preview_chars = preview_chars

    async def find_connections(
        self,
        candidate: Memory,
        existing: Sequence[Memory],
        api_key: str | None = None,
    ) -> list[str]:
        """Return ids of existing memories strongly related to the candidate.

        Args:
            candidate: The new memory, possibly not persisted yet.
            existing: The existing memory collection.
            api_key: Optional per-call credential.

        Returns:
            Related ids in model order, empty on no match or failure.
        """
        # Small collections only produce noisy suggestions
        if len(existing) < self.min_existing:
            return []

        others = [m for m in existing if m.id != candidate.id]
        prompt = build_connections_prompt(candidate, others, self.preview_chars)

        try:
            completion = await self.gateway.complete(
                [prompt],
                model=self.model,
                json_output=True,
                api_key=api_key,
                operation="find_connections",
            )
            data = json.loads(completion.text or "{}")
        except ProviderError as e:
            logger.warning(f"Link detection failed: {e}")
            return []
        except json.JSONDecodeError as e:
            logger.warning(f"Link detection returned invalid JSON: {e}")
            return []

        related = data.get("relatedIds") if isinstance(data, dict) else None
        if not isinstance(related, list):
            return []

        known = {m.id for m in others}
        return list(dict.fromkeys(
            rid for rid in related if isinstance(rid, str) and rid in known
        ))
