"""Tests for the Cortex conversational responder."""

from datetime import datetime

import pytest

from conftest import FakeProvider, make_memory
from nomorize.ai import (
    Completion,
    CompletionGateway,
    ConversationalResponder,
    GroundingReference,
    ProviderError,
    ToolCapability,
)
from nomorize.ai.prompts import TONE_INSTRUCTIONS
from nomorize.ai.responder import FALLBACK_RESPONSE, extract_related_ids, format_sources
from nomorize.models import Sender


def make_responder(*responses) -> tuple[ConversationalResponder, FakeProvider]:
    provider = FakeProvider(*responses)
    gateway = CompletionGateway(provider, default_api_key="key")
    return ConversationalResponder(gateway, clock=lambda: datetime(2025, 3, 1, 12, 0)), provider


@pytest.fixture
def memories():
    return [
        make_memory("Burger place on 5th street", memory_id="a1", tags=("food",)),
        make_memory("Flight to Lisbon", memory_id="b2", reminder_at=datetime(2025, 4, 2, 8, 15)),
    ]


class TestExtractRelatedIds:
    """Tests for the related-ids sideband marker."""

    def test_marker_removed_and_parsed(self):
        text, ids = extract_related_ids('You saved a burger place. ||RELATED_IDS:["a1"]||')
        assert text == "You saved a burger place."
        assert ids == ["a1"]

    def test_no_marker(self):
        text, ids = extract_related_ids("  Hello there.  ")
        assert text == "Hello there."
        assert ids == []

    def test_malformed_marker_still_removed(self):
        text, ids = extract_related_ids("Answer. ||RELATED_IDS:[a1, b2]||")
        assert text == "Answer."
        assert ids == []

    def test_marker_in_the_middle(self):
        text, ids = extract_related_ids('Before ||RELATED_IDS:["a1", "b2"]|| after')
        assert text == "Before after"
        assert ids == ["a1", "b2"]

    def test_duplicates_and_non_strings_dropped(self):
        _, ids = extract_related_ids('x ||RELATED_IDS:["a1", 2, "a1"]||')
        assert ids == ["a1"]


class TestFormatSources:
    """Tests for the Sources block."""

    def test_empty(self):
        assert format_sources([]) == ""

    def test_web_before_map_and_deduplicated(self):
        grounding = [
            GroundingReference("Map", "Burger Joint", "https://maps.example/1"),
            GroundingReference("Web", "Review", "https://example.com/review"),
            GroundingReference("Web", "Review", "https://example.com/review"),
        ]

        block = format_sources(grounding)

        assert block == (
            "\n\n**Sources:**\n"
            "• [Web] Review: https://example.com/review\n"
            "• [Map] Burger Joint: https://maps.example/1"
        )

    def test_incomplete_references_skipped(self):
        assert format_sources([GroundingReference("Web", "", "https://x")]) == ""


class TestGenerateResponse:
    """Tests for ConversationalResponder.generate_response."""

    @pytest.mark.asyncio
    async def test_reply_with_related_ids(self, memories):
        """The marker becomes related ids and is hidden from the text."""
        responder, _ = make_responder('Try the burger place! ||RELATED_IDS:["a1"]||')

        reply = await responder.generate_response("Where should I eat?", memories)

        assert reply.sender == Sender.ASSISTANT
        assert reply.text == "Try the burger place!"
        assert reply.related_memory_ids == ("a1",)
        assert reply.created_at == datetime(2025, 3, 1, 12, 0)

    @pytest.mark.asyncio
    async def test_sources_appended(self, memories):
        completion = Completion(
            text="It opens at 11.",
            grounding=(GroundingReference("Web", "Hours", "https://example.com"),),
        )
        responder, _ = make_responder(completion)

        reply = await responder.generate_response("When does it open?", memories)

        assert reply.text == "It opens at 11.\n\n**Sources:**\n• [Web] Hours: https://example.com"

    @pytest.mark.asyncio
    async def test_system_instruction_carries_memories(self, memories):
        responder, provider = make_responder("ok")

        await responder.generate_response("hi", memories, user_name="Lucas", tone="concise")

        system = provider.requests[0].system_instruction
        assert "ID: a1 | Type: TEXT | Date: 2025-03-01 12:00 | Tags: food" in system
        assert "REMINDER SET FOR: 2025-04-02 08:15" in system
        assert "The user's name is Lucas." in system
        assert TONE_INSTRUCTIONS["concise"] in system

    @pytest.mark.asyncio
    async def test_empty_memories_placeholder(self):
        responder, provider = make_responder("ok")

        await responder.generate_response("hi", [])

        assert "No memories recorded yet." in provider.requests[0].system_instruction

    @pytest.mark.asyncio
    async def test_unknown_tone_falls_back_to_friendly(self, memories):
        responder, provider = make_responder("ok")

        await responder.generate_response("hi", memories, tone="sarcastic")

        assert TONE_INSTRUCTIONS["friendly"] in provider.requests[0].system_instruction

    @pytest.mark.asyncio
    async def test_search_and_maps_enabled(self, memories):
        responder, provider = make_responder("ok")

        await responder.generate_response("hi", memories)

        request = provider.requests[0]
        assert request.tools == frozenset({ToolCapability.WEB_SEARCH, ToolCapability.MAPS})
        assert request.json_output is False

    @pytest.mark.asyncio
    async def test_scoped_question(self, memories):
        """Context ids narrow the user prompt but not the system context."""
        responder, provider = make_responder("Lisbon trip.")

        await responder.generate_response("Summarize this", memories, context_memory_ids=["b2"])

        request = provider.requests[0]
        assert request.text.startswith("I am asking specifically about these memories:")
        assert '[ID: b2] Content: "Flight to Lisbon"' in request.text
        assert "[ID: a1]" not in request.text
        assert request.text.endswith("User Question: Summarize this")
        assert "ID: a1" in request.system_instruction

    @pytest.mark.asyncio
    async def test_unknown_context_ids_ignored(self, memories):
        responder, provider = make_responder("ok")

        await responder.generate_response("Summarize this", memories, context_memory_ids=["zz"])

        assert provider.requests[0].text == "Summarize this"

    @pytest.mark.asyncio
    async def test_reasoning_budget_only_for_reasoning_model(self, memories):
        responder, provider = make_responder("a", "b")

        await responder.generate_response("hi", memories, model="gemini-2.5-flash")
        await responder.generate_response("hi", memories, model="gemini-3-pro-preview")

        assert provider.requests[0].reasoning_budget is None
        assert provider.requests[1].reasoning_budget == 16000
        assert provider.requests[1].model == "gemini-3-pro-preview"

    @pytest.mark.asyncio
    async def test_provider_failure_returns_apology(self, memories):
        responder, _ = make_responder(ProviderError("403"))

        reply = await responder.generate_response("hi", memories)

        assert reply.sender == Sender.ASSISTANT
        assert reply.text == FALLBACK_RESPONSE
        assert reply.related_memory_ids == ()

    @pytest.mark.asyncio
    async def test_empty_reply(self, memories):
        responder, _ = make_responder("")

        reply = await responder.generate_response("hi", memories)

        assert reply.text == "I couldn't generate a response."

    @pytest.mark.asyncio
    async def test_marker_only_reply_keeps_ids(self, memories):
        responder, _ = make_responder('||RELATED_IDS:["a1"]||')

        reply = await responder.generate_response("which one?", memories)

        assert reply.text == ""
        assert reply.related_memory_ids == ("a1",)
