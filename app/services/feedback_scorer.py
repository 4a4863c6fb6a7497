"""Scores past insight reactions per category and mines topics from insight titles.

Used in two places: the generation prompt (last 50 reacted insights) and the
preference profile (full history). Rows are ``PersonalInsight`` instances or
anything exposing ``title``, ``category``, ``reaction`` and ``status``.
"""
import math
import re
from collections import Counter
from typing import Any, Dict, Iterable, List, Tuple

NEUTRAL_SCORE = 0.5
TOPIC_LIMIT = 8

STOP_WORDS = frozenset({
    "the", "a", "an", "is", "are", "was", "your", "you", "in", "of", "to", "and",
    "for", "on", "with", "has", "have", "it", "its", "this", "that", "be", "been",
    "being", "do", "does", "did", "will", "would", "could", "should", "may",
    "might", "can", "from", "by", "at", "or", "not", "no", "but", "so", "if",
    "than", "too", "very", "just", "about", "over", "more", "also", "how", "what",
    "when", "where", "why", "all", "each", "every", "both", "few", "some", "any",
    "most", "into", "through",
})

_NON_LETTERS = re.compile(r"[^a-z\s]")


def round_half_up(value: float, digits: int = 0) -> float:
    """Half-up rounding; the built-in round() goes half-to-even."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def partition_reactions(rows: Iterable[Any]) -> Tuple[List[Any], List[Any], List[Any]]:
    """Split into (helpful, not_helpful, dismissed without a reaction)."""
    helpful, not_helpful, dismissed = [], [], []
    for row in rows:
        if row.reaction == "helpful":
            helpful.append(row)
        elif row.reaction == "not_helpful":
            not_helpful.append(row)
        elif row.status == "dismissed":
            dismissed.append(row)
    return helpful, not_helpful, dismissed


def compute_category_preferences(rows: Iterable[Any]) -> Dict[str, Dict[str, float]]:
    """Per-category {helpful, not_helpful, dismissed, score}.

    score = helpful / (helpful + not_helpful + dismissed), or 0.5 when a
    category only has saved rows. A not-helpful insight that was also
    dismissed counts on both sides.
    """
    prefs: Dict[str, Dict[str, float]] = {}
    for row in rows:
        entry = prefs.setdefault(
            row.category, {"helpful": 0, "not_helpful": 0, "dismissed": 0, "score": 0.0}
        )
        if row.reaction == "helpful":
            entry["helpful"] += 1
        if row.reaction == "not_helpful":
            entry["not_helpful"] += 1
        if row.status == "dismissed":
            entry["dismissed"] += 1

    for entry in prefs.values():
        total = entry["helpful"] + entry["not_helpful"] + entry["dismissed"]
        entry["score"] = entry["helpful"] / total if total > 0 else NEUTRAL_SCORE
    return prefs


def category_scores(rows: Iterable[Any]) -> Dict[str, float]:
    return {cat: data["score"] for cat, data in compute_category_preferences(rows).items()}


def _title_tokens(title: str) -> List[str]:
    words = _NON_LETTERS.sub("", (title or "").lower()).split()
    return [w for w in words if len(w) > 3 and w not in STOP_WORDS]


def extract_topics(titles: Iterable[str], limit: int = TOPIC_LIMIT) -> List[str]:
    """Most frequent unigrams and adjacent bigrams across titles.

    Sorted by count only; equal counts keep first-seen order (bigrams of a
    title are counted before its unigrams).
    """
    counts: Counter = Counter()
    for title in titles:
        words = _title_tokens(title)
        for first, second in zip(words, words[1:]):
            counts[f"{first} {second}"] += 1
        for word in words:
            counts[word] += 1

    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [token for token, _ in ranked[:limit]]
