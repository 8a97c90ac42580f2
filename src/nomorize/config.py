"""Configuration: process settings from the environment, user settings.

NomorizeConfig holds deployment settings read from environment variables
(a .env file is loaded by the entry point). AppSettings holds what the
user edits at runtime; it is persisted in the store.
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .ai.gateway import DEFAULT_MODEL
from .ai.prompts import DEFAULT_TONE, resolve_tone

PROVIDERS = ("gemini", "groq")
DEFAULT_HOME = Path.home() / ".nomorize"


@dataclass
class NomorizeConfig:
    """Deployment configuration.

    Attributes:
        provider: Completion provider name, 'gemini' or 'groq'.
        gemini_api_key: Default Gemini credential.
        groq_api_key: Default Groq credential.
        groq_model: Groq model used in place of Gemini model names.
        tavily_api_key: Tavily credential for web search with Groq.
        db_path: SQLite database path.
        log_dir: Directory for the JSONL event log.
    """

    provider: str = "gemini"
    gemini_api_key: str | None = None
    groq_api_key: str | None = None
    groq_model: str | None = None
    tavily_api_key: str | None = None
    db_path: Path = field(default_factory=lambda: DEFAULT_HOME / "nomorize.db")
    log_dir: Path = field(default_factory=lambda: DEFAULT_HOME / "logs")

    def __post_init__(self) -> None:
        if self.provider not in PROVIDERS:
            raise ValueError(
                f"Unknown provider '{self.provider}', expected one of {', '.join(PROVIDERS)}"
            )

    @property
    def default_api_key(self) -> str | None:
        """Credential for the selected provider."""
        if self.provider == "groq":
            return self.groq_api_key
        return self.gemini_api_key

    @classmethod
    def from_env(cls) -> "NomorizeConfig":
        """Load configuration from environment variables."""
        db_path = os.getenv("NOMORIZE_DB_PATH")
        log_dir = os.getenv("NOMORIZE_LOG_DIR")
        return cls(
            provider=os.getenv("NOMORIZE_PROVIDER", "gemini").strip().lower(),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY"),
            groq_api_key=os.getenv("GROQ_API_KEY"),
            groq_model=os.getenv("GROQ_MODEL"),
            tavily_api_key=os.getenv("TAVILY_API_KEY"),
            db_path=Path(db_path).expanduser() if db_path else DEFAULT_HOME / "nomorize.db",
            log_dir=Path(log_dir).expanduser() if log_dir else DEFAULT_HOME / "logs",
        )


@dataclass
class AppSettings:
    """User-editable settings.

    Attributes:
        user_name: Display name used in prompts.
        api_key: Per-user credential override, blank for the default.
        ai_model: Model for conversations.
        ai_tone: Persona tone of the assistant.
        enable_reminders: Whether due reminders produce briefings.
        enable_background_analysis: Whether new memories are analyzed.
    """

    user_name: str = ""
    api_key: str = ""
    ai_model: str = DEFAULT_MODEL
    ai_tone: str = DEFAULT_TONE
    enable_reminders: bool = True
    enable_background_analysis: bool = True

    def __post_init__(self) -> None:
        self.ai_tone = resolve_tone(self.ai_tone)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppSettings":
        """Create from a dict, ignoring unknown keys."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)
