"""Content analysis: raw text and images to summary, tags and reminder."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from ..models import AnalysisResult
from .attachments import InlineMedia
from .gateway import DEFAULT_MODEL, CompletionGateway, ContentPart, ProviderError, ToolCapability
from .parsing import MalformedOutput, extract_json_object, parse_instant, string_list
from .prompts import build_analysis_prompt

if TYPE_CHECKING:
    from ..logging import JSONLLogger

logger = logging.getLogger(__name__)


class ContentAnalyzer:
    """Turns unstructured input into an AnalysisResult.

    Web search stays enabled so links can be resolved, which rules out
    strict JSON mode; the JSON object is recovered from free text instead.
    Analysis is best-effort: any failure yields the input text untouched.
    """

    def __init__(
        self,
        gateway: CompletionGateway,
        model: str = DEFAULT_MODEL,
        clock: Callable[[], datetime] = datetime.now,
        event_log: JSONLLogger | None = None,
    ) -> None:
        """Initialize the analyzer.

        Args:
            gateway: The completion gateway.
            model: The model to use for analysis.
            clock: Source of the current time (for the assumed year).
            event_log: Optional structured event log.
        """
        self.gateway = gateway
        self.model = model
        self.clock = clock
        self.event_log = event_log

    async def analyze(
        self,
        text: str,
        image: InlineMedia | None = None,
        api_key: str | None = None,
    ) -> AnalysisResult:
        """Analyze text and/or an image.

        Args:
            text: The input text, may be empty when an image is given.
            image: Optional image payload.
            api_key: Optional per-call credential.

        Returns:
            The analysis, or the degraded result on any failure.
        """
        if not text.strip() and image is None:
            return self._degraded(text, "nothing to analyze")

        parts: list[ContentPart] = []
        if image is not None:
            parts.append(image)
        parts.append(build_analysis_prompt(text, self.clock().year))

        try:
            completion = await self.gateway.complete(
                parts,
                model=self.model,
                tools=[ToolCapability.WEB_SEARCH],
                api_key=api_key,
                operation="analyze",
            )
            data = extract_json_object(completion.text)
        except (ProviderError, MalformedOutput) as e:
            logger.warning(f"Analysis failed: {e}")
            return self._degraded(text, str(e))

        summary = data.get("analysis")
        if not isinstance(summary, str) or not summary.strip():
            summary = text

        return AnalysisResult(
            summary=summary.strip(),
            tags=string_list(data.get("tags")),
            reminder_at=parse_instant(data.get("reminderISO")),
        )

    def _degraded(self, text: str, reason: str) -> AnalysisResult:
        if self.event_log is not None:
            self.event_log.log_degraded("analyze", reason)
        return AnalysisResult(summary=text, tags=(), reminder_at=None)
