"""Completion provider implementations."""

from .gemini import GeminiProvider
from .groq import GroqProvider
from .web_search import WebSearch

__all__ = ["GeminiProvider", "GroqProvider", "WebSearch"]
