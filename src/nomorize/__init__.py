"""Nomorize: personal memory journaling with an AI curation pipeline."""

from .models import AnalysisResult, ChatMessage, Memory, MemoryKind, Sender, merge_tags

__version__ = "0.1.0"

__all__ = ["AnalysisResult", "ChatMessage", "Memory", "MemoryKind", "Sender", "merge_tags"]
