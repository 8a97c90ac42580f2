"""Tests for memory data models."""

from datetime import datetime

import pytest

from nomorize.models import (
    ANALYSIS_DELIMITER,
    ChatMessage,
    Memory,
    MemoryKind,
    Sender,
    append_analysis,
    merge_tags,
)


class TestMergeTags:
    """Tests for tag merging."""

    def test_union_keeps_order(self):
        assert merge_tags(["a", "b"], ["b", "c"]) == ("a", "b", "c")

    def test_case_sensitive(self):
        assert merge_tags(["Work"], ["work"]) == ("Work", "work")

    def test_duplicates_within_input(self):
        assert merge_tags(["x", "x"], ["x"]) == ("x",)

    def test_empty(self):
        assert merge_tags([], []) == ()


class TestAppendAnalysis:
    """Tests for attaching analysis summaries to content."""

    def test_appends_under_delimiter(self):
        result = append_analysis("Buy milk", "Shopping reminder")
        assert result == f"Buy milk\n\n{ANALYSIS_DELIMITER}\nShopping reminder"

    def test_replaces_previous_analysis(self):
        content = f"Buy milk\n\n{ANALYSIS_DELIMITER}\nOld summary"
        result = append_analysis(content, "New summary")
        assert result == f"Buy milk\n\n{ANALYSIS_DELIMITER}\nNew summary"

    def test_empty_content_becomes_summary(self):
        assert append_analysis("", "A sunset photo") == "A sunset photo"

    def test_empty_summary_keeps_content(self):
        assert append_analysis("Buy milk", "") == "Buy milk"

    def test_degraded_summary_not_duplicated(self):
        """A summary equal to the content itself is not appended again."""
        assert append_analysis("Buy milk", "Buy milk") == "Buy milk"


class TestMemory:
    """Tests for the Memory record."""

    def test_defaults(self):
        memory = Memory(kind=MemoryKind.TEXT, content="hello")

        assert len(memory.id) == 32
        assert isinstance(memory.created_at, datetime)
        assert memory.tags == ()
        assert memory.is_analyzing is False
        assert memory.is_pinned is False

    def test_ids_are_unique(self):
        assert Memory(MemoryKind.TEXT, "a").id != Memory(MemoryKind.TEXT, "a").id

    def test_tags_and_links_deduplicated(self):
        memory = Memory(
            kind=MemoryKind.TEXT,
            content="x",
            tags=("a", "b", "a"),
            linked_memory_ids=("m1", "m1"),
        )
        assert memory.tags == ("a", "b")
        assert memory.linked_memory_ids == ("m1",)

    def test_evolve(self):
        memory = Memory(kind=MemoryKind.TEXT, content="x")

        pinned = memory.evolve(is_pinned=True, tags=("t",))

        assert pinned.is_pinned is True
        assert pinned.tags == ("t",)
        assert pinned.id == memory.id
        assert memory.is_pinned is False

    @pytest.mark.parametrize("field_name, value", [
        ("id", "other"),
        ("kind", MemoryKind.IMAGE),
        ("created_at", datetime(2000, 1, 1)),
    ])
    def test_evolve_rejects_immutable_fields(self, field_name, value):
        memory = Memory(kind=MemoryKind.TEXT, content="x")

        with pytest.raises(ValueError, match=field_name):
            memory.evolve(**{field_name: value})

    def test_evolve_allows_unchanged_immutable_value(self):
        memory = Memory(kind=MemoryKind.TEXT, content="x")
        assert memory.evolve(id=memory.id, content="y").content == "y"

    def test_dict_roundtrip(self):
        memory = Memory(
            kind=MemoryKind.OCR,
            content="receipt",
            created_at=datetime(2025, 3, 1, 10, 0),
            tags=("money",),
            attachment_ref="/tmp/r.png",
            reminder_at=datetime(2025, 3, 5, 9, 0),
            linked_memory_ids=("m1",),
            is_pinned=True,
        )

        data = memory.to_dict()

        assert data["kind"] == "OCR"
        assert data["created_at"] == "2025-03-01T10:00:00"
        assert data["tags"] == ["money"]
        assert Memory.from_dict(data) == memory

    def test_from_dict_minimal(self):
        memory = Memory.from_dict(
            {"id": "m1", "kind": "VOICE", "created_at": "2025-03-01T10:00:00"}
        )
        assert memory.content == ""
        assert memory.reminder_at is None
        assert memory.kind == MemoryKind.VOICE

    def test_from_dict_unknown_kind(self):
        with pytest.raises(ValueError):
            Memory.from_dict({"id": "m1", "kind": "SMELL", "created_at": "2025-03-01"})


def test_chat_message_defaults():
    message = ChatMessage(sender=Sender.ASSISTANT, text="hi")
    assert message.sender.value == "cortex"
    assert message.related_memory_ids == ()
