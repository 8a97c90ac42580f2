"""AI-assisted memory curation pipeline."""

from .analyzer import ContentAnalyzer
from .attachments import AttachmentReadError, InlineMedia, load_attachment
from .briefing import BriefingGenerator, has_recall
from .connections import ConnectionFinder
from .gateway import (
    DEFAULT_MODEL,
    REASONING_MODEL,
    Completion,
    CompletionGateway,
    CompletionProvider,
    CompletionRequest,
    GroundingReference,
    ProviderError,
    ToolCapability,
)
from .responder import ConversationalResponder

__all__ = [
    "AttachmentReadError",
    "BriefingGenerator",
    "Completion",
    "CompletionGateway",
    "CompletionProvider",
    "CompletionRequest",
    "ConnectionFinder",
    "ContentAnalyzer",
    "ConversationalResponder",
    "DEFAULT_MODEL",
    "GroundingReference",
    "InlineMedia",
    "ProviderError",
    "REASONING_MODEL",
    "ToolCapability",
    "has_recall",
    "load_attachment",
]
