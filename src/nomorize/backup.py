"""JSON backup export and import of memories."""

import json
import logging
import time
from pathlib import Path
from typing import Iterable

from .models import Memory

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1.0"


class BackupFormatError(ValueError):
    """Raised when a file is not a valid memory backup."""


def backup_filename(today: str) -> str:
    """Default file name for a backup taken on a given ISO date."""
    return f"nomorize_backup_{today}.json"


def export_memories(memories: Iterable[Memory], path: Path) -> int:
    """Write memories to a JSON backup file.

    Returns:
        Number of memories written.
    """
    items = [m.to_dict() for m in memories]
    data = {
        "version": BACKUP_VERSION,
        "timestamp": int(time.time() * 1000),
        "memories": items,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    return len(items)


def import_memories(path: Path) -> list[Memory]:
    """Read memories from a JSON backup file.

    Entries that cannot be read are skipped with a warning. Transient
    analysis state is never imported.

    Raises:
        BackupFormatError: If the file is not valid JSON or has no memory list.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise BackupFormatError(f"Failed to parse {path}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("memories"), list):
        raise BackupFormatError(f"Invalid backup file format: {path}")

    memories = []
    for item in data["memories"]:
        try:
            memory = Memory.from_dict(item)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping invalid backup entry: {e}")
            continue
        memories.append(memory.evolve(is_analyzing=False))
    return memories
