"""
Prompt Assembler - renders an ActivitySnapshot plus past reactions into the
plain-text document sent to the personal insights agent.

Section order and truncation limits are fixed; the only branching is the
placeholder line printed when a section has nothing to show.
"""
import json
from datetime import datetime
from typing import Any, Iterable, List, Optional, Sequence

from app.services.activity_aggregator import ActivitySnapshot
from app.services.feedback_scorer import category_scores, partition_reactions

CONTEXT_PREVIEW_CHARS = 200
NOTE_PREVIEW_CHARS = 200
MESSAGE_PREVIEW_CHARS = 300
MESSAGES_SHOWN = 3
HELPFUL_SHOWN = 15
NOT_HELPFUL_SHOWN = 15
DISMISSED_SHOWN = 10

INSTRUCTIONS = """Generate 5-10 insights as a JSON array. Each insight must have: title (string), summary (string, 1-2 sentences), full_content (string, detailed paragraph), category (one of: growth_opportunity, learning_pattern, strength, connection, goal_alignment, recommendation), confidence (high, medium, or low).

IMPORTANT — Reaction-Aware Generation Rules:
1. Strongly favor categories with high preference scores (>0.7). Generate MORE insights in these categories.
2. Avoid repeating the exact topics or framing of insights marked "not helpful" or "dismissed".
3. For categories with low scores (<0.4), only include if you have HIGH confidence evidence.
4. Learn from HELPFUL insights: match that level of specificity, actionability, and tone.
5. If a user liked observational insights but disliked prescriptive ones, adjust accordingly."""

NOVELTY_RULES = """

CRITICAL — Novelty Requirement:
6. Each insight MUST present a substantially different observation, pattern, or recommendation than the PREVIOUS INSIGHTS listed above.
7. Look for new angles: different data connections, underexplored patterns, emerging trends, fresh actionable recommendations.
8. Do NOT restate the same insight with different wording. If the previous insights covered a topic, either skip it entirely or find a genuinely new dimension of that topic.
9. Prioritize insights the user has NOT seen before — surprising connections, overlooked strengths, or new patterns from recent activity."""

CLOSING = "\n\nReturn ONLY the JSON array, no extra text."


def preview(content: Any, limit: int) -> str:
    """First `limit` characters of a string, or of the compact JSON of anything else."""
    if isinstance(content, str):
        return content[:limit]
    return json.dumps(content, separators=(",", ":"), default=str)[:limit]


def _stamp(value: Optional[datetime], missing: str = "unknown") -> str:
    return value.isoformat() if value else missing


def _profile_section(snapshot: ActivitySnapshot) -> List[str]:
    lines = ["=== USER PROFILE & CONTEXT ==="]
    if snapshot.context_items:
        for item in snapshot.context_items:
            lines.append(f"- [{item.type}] {item.title}: {preview(item.content, CONTEXT_PREVIEW_CHARS)}")
    else:
        lines.append("No context items set.")
    lines.append("")
    return lines


def _learning_section(snapshot: ActivitySnapshot) -> List[str]:
    lines = ["=== LEARNING ACTIVITY ==="]
    if snapshot.in_progress_courses:
        lines.append("Courses In Progress:")
        for course in snapshot.in_progress_courses:
            lines.append(
                f"  - {course.title} ({course.percent_complete}% complete, "
                f"last accessed {_stamp(course.last_accessed)})"
            )
    if snapshot.completed_courses:
        lines.append("Courses Completed:")
        for course in snapshot.completed_courses:
            lines.append(f"  - {course.title} (completed {_stamp(course.issued_at)})")

    hours, minutes = snapshot.watch_time
    lines.append(f"Total Watch Time: {hours}h {minutes}m")
    lines.append(f"Credits Earned: {snapshot.total_credits} total")
    lines.append(f"Certificates: {snapshot.certificate_count} earned")
    lines.append("")
    return lines


def _conversation_section(snapshot: ActivitySnapshot) -> List[str]:
    lines = ["=== CONVERSATION HISTORY (Last 50) ==="]
    if snapshot.conversations:
        for conv in snapshot.conversations:
            lines.append(f"- {conv.title} | {len(conv.messages)} messages | {_stamp(conv.created_at, '')}")
            for role, content in conv.messages[-MESSAGES_SHOWN:]:
                lines.append(f"    [{role}]: {content[:MESSAGE_PREVIEW_CHARS]}")
    else:
        lines.append("No conversations.")
    lines.append("")
    return lines


def _ai_section(snapshot: ActivitySnapshot) -> List[str]:
    lines = [
        "=== AI INTERACTION PATTERNS ===",
        f"Total interactions: {snapshot.ai_interaction_count}",
    ]
    usage = ", ".join(f"{agent}: {count}" for agent, count in snapshot.agent_usage.items())
    lines.append(f"Agent usage: {usage or 'none'}")
    if snapshot.active_period:
        earliest, latest = snapshot.active_period
        lines.append(f"Most active period: {_stamp(earliest)} to {_stamp(latest)}")
    lines.append("")
    return lines


def _notes_section(snapshot: ActivitySnapshot) -> List[str]:
    lines = ["=== NOTES ==="]
    if snapshot.notes:
        for note in snapshot.notes:
            lines.append(
                f"- {note.title} | {preview(note.content, NOTE_PREVIEW_CHARS)} | {_stamp(note.created_at, '')}"
            )
    else:
        lines.append("No notes.")
    lines.append("")
    return lines


def _reactions_section(past_reactions: Sequence[Any]) -> List[str]:
    lines = ["=== PAST INSIGHT REACTIONS ==="]
    reacted = [r for r in past_reactions if r.reaction or r.status == "dismissed"]
    if not reacted:
        lines.append("No past reactions yet (first generation).")
        lines.append("")
        return lines

    lines.append("The user has reacted to previous insights. Use this to understand their preferences:\n")
    helpful, not_helpful, dismissed = partition_reactions(reacted)

    if helpful:
        lines.append("INSIGHTS THE USER FOUND HELPFUL:")
        for r in helpful[:HELPFUL_SHOWN]:
            lines.append(f'  + [{r.category}] "{r.title}" — {r.summary}')
    if not_helpful:
        lines.append("\nINSIGHTS THE USER DID NOT FIND HELPFUL:")
        for r in not_helpful[:NOT_HELPFUL_SHOWN]:
            lines.append(f'  - [{r.category}] "{r.title}" — {r.summary}')
    if dismissed:
        lines.append("\nINSIGHTS THE USER DISMISSED:")
        for r in dismissed[:DISMISSED_SHOWN]:
            lines.append(f'  x [{r.category}] "{r.title}"')

    scores = category_scores(reacted)
    if scores:
        lines.append("\nCATEGORY PREFERENCE SCORES (0-1, higher = more valued):")
        for category, score in scores.items():
            lines.append(f"  {category}: {score:.2f}")
    lines.append("")
    return lines


def _previous_insights_section(previous: Iterable[Any]) -> List[str]:
    previous = list(previous)
    if not previous:
        return []
    lines = [
        "=== PREVIOUS INSIGHTS (DO NOT REPEAT) ===",
        "The user has already seen these insights. You MUST generate substantially different insights.\n",
    ]
    for insight in previous:
        lines.append(f'  - [{insight.category}] "{insight.title}" — {insight.summary}')
    lines.append("")
    return lines


def build_insights_prompt(
    snapshot: ActivitySnapshot,
    past_reactions: Sequence[Any],
    previous_insights: Optional[Iterable[Any]] = None,
    novelty_mode: bool = False,
) -> str:
    sections: List[str] = ["Analyze the following user data and generate personalized insights.\n"]
    sections += _profile_section(snapshot)
    sections += _learning_section(snapshot)
    sections += _conversation_section(snapshot)
    sections += _ai_section(snapshot)
    sections += _notes_section(snapshot)
    sections += _reactions_section(past_reactions)
    if novelty_mode:
        sections += _previous_insights_section(previous_insights or [])
    sections.append(INSTRUCTIONS + (NOVELTY_RULES if novelty_mode else "") + CLOSING)
    return "\n".join(sections)
