"""Prompt builders for Cortex."""

from typing import Iterable

from ..models import Memory

RECALL_MARKER = "RECALL_FOUND"
RELATED_IDS_TAG = "RELATED_IDS"

ANALYSIS_PROMPT = """Analyze the following input.
Input Text: "{text}"

If an image is provided, analyze the visual content (OCR text, scene description).
If the text contains a URL (like a YouTube link, news article, or social post), try to understand what the content is about using Google Search.

YOUR TASKS:
1. Create a detailed but concise summary/description of the content. If it is a URL, summarize the linked page/video.
2. Extract 3-5 relevant tags.
3. CRITICAL: Detect if there is a specific UPCOMING event, deadline, or time-sensitive task mentioned (e.g., in a screenshot of an email, calendar invite, or poster).
   If found, extract the date and time in ISO 8601 format (YYYY-MM-DDTHH:mm:ss).
   Assume the current year is {year} if not specified.

OUTPUT FORMAT:
Return ONLY a raw JSON object (no markdown formatting) with this structure:
{{
  "analysis": "The detailed description...",
  "tags": ["tag1", "tag2"],
  "reminderISO": "{year}-10-25T14:00:00" (or null if no event found)
}}"""

CONNECTIONS_PROMPT = """Analyze the relationship between a NEW memory and EXISTING memories.

NEW MEMORY:
{content} [Tags: {tags}]

EXISTING MEMORIES:
{existing}

TASK:
Identify existing memories that are STRONGLY related to the new one (same topic, same person, or logical continuation).
Ignore weak connections.

OUTPUT:
Return a JSON object with an array of IDs:
{{ "relatedIds": ["id_1", "id_2"] }}
Return empty array if no strong matches."""

BRIEFING_PROMPT = """You are a highly efficient Personal Memory Assistant for {user}.

CURRENT SCENARIO:
The user has a reminder now for:
"{content}"

YOUR GOAL:
Check if the user has done this before (met this person, visited this place, done this task) and recall their FEEDBACK from previous experiences.

AVAILABLE MEMORY BANK:
{memory_bank}

INSTRUCTIONS:
1. **Search for Recursion**: Look for memories with similar keywords (names, places) or tags like #feedback.
2. **Detect Sentiment**: If found, what was the user's experience last time? Good? Bad? Frustrating?
3. **Output**:
   - If you find relevant past feedback/experience, start your response with "{marker}".
   - Provide a "Briefing" that specifically quotes their past self. e.g. "Last time you met John, you noted: 'He hates being interrupted'."
   - If no past history is found, provide a standard motivating summary.

OUTPUT FORMAT (Markdown):
(If history found):
{marker}
### ⚠️ Past Experience Detected
**Last time:** [Summary of past feedback]
**Advice for today:** [Actionable tip based on past feedback]

(If no history):
### 📅 Event Briefing
[Standard summary]"""

TONE_INSTRUCTIONS = {
    "friendly": "Be warm, encouraging, and conversational.",
    "professional": "Be formal, efficient, and business-like.",
    "concise": "Be extremely brief and to the point. Use bullet points where possible.",
    "enthusiastic": "Be high energy, positive, and motivating!",
    "explanatory": "Be detailed and educational, explaining context thoroughly.",
}
DEFAULT_TONE = "friendly"

CHAT_SYSTEM_PROMPT = """You are Cortex, an intelligent personal memory assistant.
{user_line}
PERSONALITY:
{tone}

CONTEXT:
You have access to the user's memories:
---
{memory_context}
---

INSTRUCTIONS:
1. Answer the user's questions naturally according to your personality.
2. You can discuss ANY topic.
3. USE GOOGLE SEARCH if the user asks about current events, facts, general knowledge, or if the answer requires external information not found in their memories.
4. USE GOOGLE MAPS if the user asks about a location, place, directions, or geography (e.g. "Where is that restaurant I mentioned?").
5. If the user asks about their memories, answer based strictly on the provided context.

6. **CRITICAL: PROACTIVE SUGGESTIONS & TYPES**
   - Even if the user doesn't explicitly ask "find X", if you see other memories that are relevant to the current topic (e.g., talking about "food" and you have a photo of a "burger" saved), include their IDs.
   - If the user asks for specific types (e.g., "show images"), find all matching IDs.

7. At the very end of your response, output a JSON array of the relevant Memory IDs in this exact format:
   ||{tag}:["id_1", "id_2"]||
   (Do not output this tag if no specific memories are relevant)."""

NO_MEMORIES = "No memories recorded yet."


def _format_instant(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M")


def resolve_tone(tone: str | None) -> str:
    """Normalize a tone selector, unknown values become the default."""
    if tone in TONE_INSTRUCTIONS:
        return tone
    return DEFAULT_TONE


def build_analysis_prompt(text: str, year: int) -> str:
    """Build the content analysis instruction."""
    return ANALYSIS_PROMPT.format(text=text, year=year)


def build_connections_prompt(
    candidate: Memory,
    existing: Iterable[Memory],
    preview_chars: int = 100,
) -> str:
    """Build the link detection prompt from condensed memories."""
    existing_block = "\n".join(
        f"ID:{m.id} | {m.content[:preview_chars]}... | Tags: {','.join(m.tags)}"
        for m in existing
    )
    return CONNECTIONS_PROMPT.format(
        content=candidate.content,
        tags=", ".join(candidate.tags),
        existing=existing_block,
    )


def build_briefing_prompt(
    target: Memory,
    others: Iterable[Memory],
    user_name: str | None = None,
) -> str:
    """Build the reminder briefing prompt."""
    memory_bank = "\n".join(
        f"[ID:{m.id}] ({m.kind.value}): {m.content} | Tags: {','.join(m.tags)}"
        for m in others
    )
    return BRIEFING_PROMPT.format(
        user=user_name or "the user",
        content=target.content,
        memory_bank=memory_bank,
        marker=RECALL_MARKER,
    )


def format_memory_line(memory: Memory) -> str:
    """Serialize a memory as one context line."""
    line = (
        f"ID: {memory.id} | Type: {memory.kind.value} | "
        f"Date: {_format_instant(memory.created_at)} | "
        f"Tags: {','.join(memory.tags)} | Content: {memory.content}"
    )
    if memory.reminder_at:
        line += f" | REMINDER SET FOR: {_format_instant(memory.reminder_at)}"
    return line


def build_chat_system_prompt(
    memories: list[Memory],
    tone: str = DEFAULT_TONE,
    user_name: str | None = None,
) -> str:
    """Build the Cortex system instruction with the memory context."""
    if memories:
        memory_context = "\n".join(format_memory_line(m) for m in memories)
    else:
        memory_context = NO_MEMORIES

    user_line = f"The user's name is {user_name}.\n" if user_name else ""

    return CHAT_SYSTEM_PROMPT.format(
        user_line=user_line,
        tone=TONE_INSTRUCTIONS[resolve_tone(tone)],
        memory_context=memory_context,
        tag=RELATED_IDS_TAG,
    )


def build_scoped_prompt(query: str, scoped: list[Memory]) -> str:
    """Rewrite the user prompt to focus on specific memories."""
    context = "\n".join(f'[ID: {m.id}] Content: "{m.content}"' for m in scoped)
    return f"""I am asking specifically about these memories:
{context}

User Question: {query}"""
