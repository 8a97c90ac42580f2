"""Data models for memories and the Cortex conversation."""

import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

ANALYSIS_DELIMITER = "--- Cortex Analysis ---"

# Fields fixed at creation time
IMMUTABLE_FIELDS = frozenset({"id", "kind", "created_at"})


class MemoryKind(Enum):
    """How a memory was captured."""

    TEXT = "TEXT"
    VOICE = "VOICE"
    IMAGE = "IMAGE"
    VIDEO_DESC = "VIDEO_DESC"
    OCR = "OCR"


class Sender(Enum):
    """Author of a chat message."""

    USER = "user"
    ASSISTANT = "cortex"


def new_id() -> str:
    """Generate an opaque identifier."""
    return uuid.uuid4().hex


def merge_tags(existing: Iterable[str], new: Iterable[str]) -> tuple[str, ...]:
    """Merge two tag collections, dropping duplicates (case-sensitive).

    Order of first appearance is kept, existing tags first.
    """
    return tuple(dict.fromkeys([*existing, *new]))


def append_analysis(content: str, summary: str) -> str:
    """Attach an analysis summary to a memory body.

    The summary goes under the analysis delimiter; a previous analysis
    section is replaced, the user's own text is kept.
    """
    if not summary:
        return content
    if ANALYSIS_DELIMITER in content:
        original = content.split(ANALYSIS_DELIMITER)[0].strip()
        return f"{original}\n\n{ANALYSIS_DELIMITER}\n{summary}"
    if content.strip() and summary not in content:
        return f"{content}\n\n{ANALYSIS_DELIMITER}\n{summary}"
    if content.strip():
        return content
    return summary


@dataclass(frozen=True)
class Memory:
    """A captured unit of personal information.

    Attributes:
        kind: How the memory was captured, fixed at creation.
        content: Text body, analysis results are appended to it.
        id: Opaque identifier, generated when omitted.
        created_at: Creation instant.
        tags: Short labels, deduplicated case-sensitively.
        attachment_ref: Path or URL of an attached image.
        reminder_at: When the user wants to be reminded.
        linked_memory_ids: Ids of memories the user confirmed as related.
        is_analyzing: True only while an analysis is in flight.
        is_pinned: User-toggled pin.
    """

    kind: MemoryKind
    content: str
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)
    tags: tuple[str, ...] = ()
    attachment_ref: str | None = None
    reminder_at: datetime | None = None
    linked_memory_ids: tuple[str, ...] = ()
    is_analyzing: bool = False
    is_pinned: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", merge_tags(self.tags, ()))
        object.__setattr__(
            self, "linked_memory_ids", merge_tags(self.linked_memory_ids, ())
        )

    def evolve(self, **changes: Any) -> "Memory":
        """Return a copy with the given fields changed.

        Raises:
            ValueError: If an immutable field would change.
        """
        for name in IMMUTABLE_FIELDS & changes.keys():
            if changes[name] != getattr(self, name):
                raise ValueError(f"Memory field '{name}' cannot be changed")
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dict."""
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, Enum):
                value = value.value
            elif isinstance(value, tuple):
                value = list(value)
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Memory":
        """Create from a dict produced by to_dict."""
        reminder = data.get("reminder_at")
        return cls(
            id=str(data["id"]),
            kind=MemoryKind(data["kind"]),
            content=data.get("content", ""),
            created_at=datetime.fromisoformat(data["created_at"]),
            tags=tuple(data.get("tags") or ()),
            attachment_ref=data.get("attachment_ref"),
            reminder_at=datetime.fromisoformat(reminder) if reminder else None,
            linked_memory_ids=tuple(data.get("linked_memory_ids") or ()),
            is_analyzing=bool(data.get("is_analyzing", False)),
            is_pinned=bool(data.get("is_pinned", False)),
        )


@dataclass(frozen=True)
class ChatMessage:
    """One turn of the Cortex conversation."""

    sender: Sender
    text: str
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)
    related_memory_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class AnalysisResult:
    """Structured result of analyzing raw content."""

    summary: str
    tags: tuple[str, ...] = ()
    reminder_at: datetime | None = None
