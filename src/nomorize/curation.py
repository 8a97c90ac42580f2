"""Memory curation workflow: capture, analysis, linking, reminders, chat.

MemoryCurator is the caller side of the AI pipeline. The AI components
never touch storage; the curator fetches the memory set, invokes them and
writes the results back. Analyses may run concurrently, so every write
goes through one lock and re-reads the record it changes.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, AsyncIterator, Callable, Iterable, Sequence

from .ai.analyzer import ContentAnalyzer
from .ai.attachments import AttachmentReadError, InlineMedia, load_attachment
from .ai.briefing import BriefingGenerator, has_recall
from .ai.connections import ConnectionFinder
from .ai.responder import ConversationalResponder
from .backup import export_memories, import_memories
from .config import AppSettings
from .models import (
    ANALYSIS_DELIMITER,
    ChatMessage,
    Memory,
    MemoryKind,
    Sender,
    append_analysis,
    merge_tags,
)
from .store import MemoryNotFoundError, MemoryStore

if TYPE_CHECKING:
    from .logging import JSONLLogger

logger = logging.getLogger(__name__)

FEEDBACK_TAG = "feedback"
DRAFT_ID = "temp"


def user_text(content: str) -> str:
    """The user's own text, without a previous analysis section."""
    return content.split(ANALYSIS_DELIMITER)[0].strip()


@dataclass
class MemoryDraft:
    """Capture-form state for a memory that is not saved yet."""

    kind: MemoryKind = MemoryKind.TEXT
    content: str = ""
    tags: list[str] = field(default_factory=list)
    attachment_ref: str | None = None
    reminder_at: datetime | None = None
    suggested_link_ids: list[str] = field(default_factory=list)
    confirmed_link_ids: list[str] = field(default_factory=list)
    is_analyzing: bool = False

    def to_memory(self, memory_id: str | None = None) -> Memory:
        """Build a Memory from the draft, with confirmed links only."""
        extra = {"id": memory_id} if memory_id is not None else {}
        return Memory(
            kind=self.kind,
            content=self.content,
            tags=tuple(self.tags),
            attachment_ref=self.attachment_ref,
            reminder_at=self.reminder_at,
            linked_memory_ids=tuple(self.confirmed_link_ids),
            **extra,
        )


class MemoryCurator:
    """Orchestrates the AI pipeline around the memory store."""

    def __init__(
        self,
        store: MemoryStore,
        analyzer: ContentAnalyzer,
        finder: ConnectionFinder,
        briefer: BriefingGenerator,
        responder: ConversationalResponder,
        event_log: JSONLLogger | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.analyzer = analyzer
        self.finder = finder
        self.briefer = briefer
        self.responder = responder
        self.event_log = event_log
        self.clock = clock
        self._write_lock = asyncio.Lock()
        self._pending_links: dict[str, list[str]] = {}
        self._last_reminder_check = clock()

    # -- helpers --

    def settings(self) -> AppSettings:
        """Saved settings, or defaults."""
        return self.store.get_settings() or AppSettings()

    def _require(self, memory_id: str) -> Memory:
        memory = self.store.get_memory(memory_id)
        if memory is None:
            raise MemoryNotFoundError(memory_id)
        return memory

    async def _update(self, memory_id: str, **changes) -> Memory:
        async with self._write_lock:
            return self.store.update_memory(memory_id, **changes)

    async def _load_image(self, ref: str | None) -> InlineMedia | None:
        """Load an attachment, None (text only) when it can't be read."""
        if not ref:
            return None
        try:
            return await asyncio.to_thread(load_attachment, ref)
        except AttachmentReadError as e:
            logger.warning(f"Proceeding without image: {e}")
            return None

    @asynccontextmanager
    async def analyzing(self, memory_id: str) -> AsyncIterator[Memory]:
        """Mark a memory as being analyzed for the duration of the block.

        The flag is cleared on every exit path.
        """
        memory = await self._update(memory_id, is_analyzing=True)
        try:
            yield memory
        finally:
            # Deleted while in flight: nothing left to clear
            with suppress(MemoryNotFoundError):
                await self._update(memory_id, is_analyzing=False)

    # -- drafts --

    async def analyze_draft(self, draft: MemoryDraft) -> MemoryDraft:
        """Analyze a draft in place.

        The summary is appended under the analysis delimiter, tags are
        merged and a detected reminder is set. Only a detected reminder
        triggers the search for related memories; suggestions start out
        confirmed and the user can deselect them.
        """
        text = user_text(draft.content)
        if not text and not draft.attachment_ref:
            return draft

        settings = self.settings()
        draft.is_analyzing = True
        draft.suggested_link_ids = []
        draft.confirmed_link_ids = []
        try:
            image = await self._load_image(draft.attachment_ref)
            result = await self.analyzer.analyze(text, image, settings.api_key)

            draft.content = append_analysis(draft.content, result.summary)
            draft.tags = list(merge_tags(draft.tags, result.tags))

            if result.reminder_at is not None:
                draft.reminder_at = result.reminder_at
                existing = self.store.list_memories(limit=None)
                if existing:
                    links = await self.finder.find_connections(
                        draft.to_memory(DRAFT_ID), existing, settings.api_key
                    )
                    draft.suggested_link_ids = list(links)
                    draft.confirmed_link_ids = list(links)
        finally:
            draft.is_analyzing = False
        return draft

    def toggle_link(self, draft: MemoryDraft, memory_id: str) -> None:
        """Select or deselect a suggested link."""
        if memory_id in draft.confirmed_link_ids:
            draft.confirmed_link_ids.remove(memory_id)
        elif memory_id in draft.suggested_link_ids:
            draft.confirmed_link_ids.append(memory_id)

    def clear_draft_reminder(self, draft: MemoryDraft) -> None:
        """Remove the draft's reminder and the suggestions tied to it."""
        draft.reminder_at = None
        draft.suggested_link_ids = []
        draft.confirmed_link_ids = []

    def add_feedback_tag(self, draft: MemoryDraft) -> None:
        """Mark a draft as feedback, recalled by reminder briefings."""
        draft.tags = list(merge_tags(draft.tags, [FEEDBACK_TAG]))

    async def save_draft(self, draft: MemoryDraft) -> Memory:
        """Persist a draft with only its confirmed links."""
        if not draft.content.strip() and not draft.attachment_ref:
            raise ValueError("A memory needs content or an attachment")
        memory = draft.to_memory()
        async with self._write_lock:
            return self.store.create_memory(memory)

    # -- stored memories --

    async def capture(
        self,
        kind: MemoryKind,
        content: str,
        tags: Iterable[str] = (),
        attachment_ref: str | None = None,
        reminder_at: datetime | None = None,
    ) -> Memory:
        """Save a new memory and analyze it when background analysis is on."""
        draft = MemoryDraft(
            kind=kind,
            content=content,
            tags=list(tags),
            attachment_ref=attachment_ref,
            reminder_at=reminder_at,
        )
        memory = await self.save_draft(draft)
        if self.settings().enable_background_analysis:
            memory = await self.analyze_memory(memory.id)
        return memory

    async def analyze_memory(self, memory_id: str) -> Memory:
        """Analyze a stored memory and merge the result into it.

        When a reminder is detected, related memories are looked up and
        kept as pending suggestions until confirmed.
        """
        settings = self.settings()
        async with self.analyzing(memory_id) as memory:
            image = await self._load_image(memory.attachment_ref)
            result = await self.analyzer.analyze(
                user_text(memory.content), image, settings.api_key
            )

            async with self._write_lock:
                current = self._require(memory_id)
                updated = self.store.update_memory(
                    memory_id,
                    content=append_analysis(current.content, result.summary),
                    tags=merge_tags(current.tags, result.tags),
                    reminder_at=result.reminder_at or current.reminder_at,
                )

            if result.reminder_at is not None:
                others = [
                    m for m in self.store.list_memories(limit=None) if m.id != memory_id
                ]
                links = await self.finder.find_connections(
                    updated, others, settings.api_key
                )
                if links:
                    self._pending_links[memory_id] = links

        return self._require(memory_id)

    def pending_links(self, memory_id: str) -> list[str]:
        """Suggested links awaiting confirmation."""
        return list(self._pending_links.get(memory_id, []))

    async def confirm_links(
        self,
        memory_id: str,
        accepted: Sequence[str] | None = None,
    ) -> Memory:
        """Link the accepted suggestions (all of them when None)."""
        pending = self._pending_links.pop(memory_id, [])
        chosen = pending if accepted is None else [i for i in accepted if i in pending]
        async with self._write_lock:
            current = self._require(memory_id)
            return self.store.update_memory(
                memory_id,
                linked_memory_ids=merge_tags(current.linked_memory_ids, chosen),
            )

    async def link_memories(self, memory_id: str, other_id: str) -> Memory:
        """Manually link two memories in both directions."""
        if memory_id == other_id:
            raise ValueError("A memory cannot be linked to itself")
        async with self._write_lock:
            first = self._require(memory_id)
            second = self._require(other_id)
            self.store.update_memory(
                other_id,
                linked_memory_ids=merge_tags(second.linked_memory_ids, [memory_id]),
            )
            return self.store.update_memory(
                memory_id,
                linked_memory_ids=merge_tags(first.linked_memory_ids, [other_id]),
            )

    async def set_reminder(self, memory_id: str, when: datetime) -> Memory:
        """Set a memory's reminder."""
        return await self._update(memory_id, reminder_at=when)

    async def clear_reminder(self, memory_id: str) -> Memory:
        """Clear a memory's reminder and its pending suggestions."""
        self._pending_links.pop(memory_id, None)
        return await self._update(memory_id, reminder_at=None)

    async def toggle_pin(self, memory_id: str) -> Memory:
        """Pin or unpin a memory."""
        async with self._write_lock:
            current = self._require(memory_id)
            return self.store.update_memory(memory_id, is_pinned=not current.is_pinned)

    async def delete(self, memory_id: str) -> bool:
        """Delete a memory."""
        self._pending_links.pop(memory_id, None)
        async with self._write_lock:
            return self.store.delete_memory(memory_id)

    async def import_images(self, paths: Iterable[Path | str]) -> list[Memory]:
        """Bulk-import images as memories and analyze them concurrently.

        A failed analysis does not stop the others. Returns the imported
        memories still present once every analysis has finished.
        """
        created = []
        async with self._write_lock:
            for path in paths:
                memory = Memory(kind=MemoryKind.IMAGE, content="", attachment_ref=str(path))
                created.append(self.store.create_memory(memory))

        if not self.settings().enable_background_analysis:
            return created

        results = await asyncio.gather(
            *(self.analyze_memory(m.id) for m in created), return_exceptions=True
        )
        for memory, result in zip(created, results):
            if isinstance(result, Exception):
                logger.warning(f"Analysis of imported image {memory.id} failed: {result}")

        current = (self.store.get_memory(m.id) for m in created)
        return [m for m in current if m is not None]

    # -- backup --

    def export_backup(self, path: Path) -> int:
        """Export all memories to a JSON backup."""
        return export_memories(self.store.list_memories(limit=None), path)

    async def import_backup(self, path: Path) -> int:
        """Import memories from a backup, keeping existing ones.

        Returns:
            Number of memories added.
        """
        added = 0
        async with self._write_lock:
            for memory in import_memories(path):
                if self.store.get_memory(memory.id) is None:
                    self.store.create_memory(memory)
                    added += 1
        return added

    # -- conversation --

    async def ask(
        self,
        question: str,
        context_memory_ids: Sequence[str] | None = None,
    ) -> ChatMessage:
        """Ask Cortex a question and record both turns."""
        settings = self.settings()
        self.store.add_chat_message(
            ChatMessage(sender=Sender.USER, text=question, created_at=self.clock())
        )
        reply = await self.responder.generate_response(
            question,
            self.store.list_memories(limit=None),
            context_memory_ids=context_memory_ids,
            api_key=settings.api_key,
            user_name=settings.user_name or None,
            tone=settings.ai_tone,
            model=settings.ai_model,
        )
        return self.store.add_chat_message(reply)

    async def summarize_selection(self, memory_ids: Sequence[str]) -> ChatMessage:
        """Ask Cortex for a consolidated summary of selected memories."""
        if len(memory_ids) == 1:
            question = "Summarize this specific memory for me."
        else:
            question = f"Summarize these {len(memory_ids)} selected memories for me."
        return await self.ask(question, context_memory_ids=memory_ids)

    # -- reminders --

    def due_reminders(self, now: datetime | None = None) -> list[Memory]:
        """Memories whose reminder fell due since the last check."""
        now = now or self.clock()
        since = self._last_reminder_check
        return [
            m for m in self.store.list_memories(limit=None)
            if m.reminder_at is not None and since < m.reminder_at <= now
        ]

    async def check_reminders(
        self,
        now: datetime | None = None,
    ) -> list[tuple[Memory, str]]:
        """Generate briefings for reminders that fell due since the last check."""
        settings = self.settings()
        now = now or self.clock()
        due = self.due_reminders(now)
        self._last_reminder_check = now
        if not settings.enable_reminders or not due:
            return []

        memories = self.store.list_memories(limit=None)
        briefings = await asyncio.gather(*(
            self.briefer.generate_briefing(
                m, memories, settings.api_key, settings.user_name or None
            )
            for m in due
        ))

        if self.event_log is not None:
            for memory, text in zip(due, briefings):
                self.event_log.log_reminder_fired(memory.id, has_recall(text))
        return list(zip(due, briefings))
