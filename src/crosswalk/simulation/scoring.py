"""Scoring helpers for the end-of-session summary."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict

from .state import StateSnapshot


@dataclass(frozen=True)
class ScoreGrade:
    label: str
    min_score: int
    color: str


SCORE_GRADES: tuple[ScoreGrade, ...] = (
    ScoreGrade("S", 2000, "#fbbf24"),
    ScoreGrade("A", 1200, "#22c55e"),
    ScoreGrade("B", 700, "#3b82f6"),
    ScoreGrade("C", 400, "#8b5cf6"),
    ScoreGrade("D", 200, "#f97316"),
    ScoreGrade("F", 0, "#ef4444"),
)


def score_grade(score: int) -> ScoreGrade:
    for grade in SCORE_GRADES:
        if score >= grade.min_score:
            return grade
    return SCORE_GRADES[-1]


def sign_rating_label(quality: float) -> str:
    if quality >= 0.8:
        return "POWERFUL"
    if quality >= 0.6:
        return "STRONG"
    if quality >= 0.4:
        return "DECENT"
    return "BASIC"


def sign_rating_stars(quality: float) -> str:
    if quality >= 0.8:
        return "★★★"
    if quality >= 0.6:
        return "★★☆"
    if quality >= 0.4:
        return "★☆☆"
    return "☆☆☆"


def format_time(seconds: float) -> str:
    """``m:ss``, e.g. ``format_time(95) == "1:35"``."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


# -- Message quality ------------------------------------------------------------

QUALITY_KEYWORDS = (
    "honk", "democracy", "vote", "rights", "freedom", "peace", "justice",
    "truth", "hope", "change", "resist", "unite", "power", "people",
    "love", "future", "equal", "fair", "speak", "stand",
    "beep", "toot", "hey", "yo", "wow", "yes", "no",
)

BONUS_PHRASES = (
    "honk for democracy",
    "honk if you",
    "i can't believe",
    "this is fine",
    "we the people",
    "land of the free",
    "no justice no peace",
)


def score_message_quality(message: str) -> float:
    """Heuristic 0.1-1.0 quality score for a sign message.

    Length sweet spot, keyword hits, one bonus phrase, punctuation, and
    all-caps enthusiasm all add up.  A blank sign scores the minimum.
    """
    stripped = (message or "").strip()
    if not stripped:
        return 0.1
    text = stripped.lower()
    score = 0.0

    n = len(text)
    if 3 <= n <= 8:
        score += 0.15
    elif 9 <= n <= 25:
        score += 0.3
    elif 26 <= n <= 40:
        score += 0.2
    elif n > 40:
        score += 0.1
    else:
        score += 0.05

    hits = sum(1 for kw in QUALITY_KEYWORDS if kw in text)
    score += min(hits * 0.1, 0.35)

    if any(phrase in text for phrase in BONUS_PHRASES):
        score += 0.2
    if "!" in text or "?" in text:
        score += 0.1
    if stripped == stripped.upper() and len(stripped) > 2:
        score += 0.05

    return min(max(score, 0.1), 1.0)


# -- Summary --------------------------------------------------------------------

class SessionSummary(BaseModel):
    """Final, immutable result handed to the summary/share collaborator."""

    model_config = ConfigDict(frozen=True)

    final: StateSnapshot
    grade: str
    grade_color: str
    reach_rate: float  # reached / (reached + missed)
    sign_rating: str
    sign_stars: str
    time_survived: str

    @classmethod
    def from_snapshot(cls, snapshot: StateSnapshot, quality: float) -> SessionSummary:
        grade = score_grade(snapshot.score)
        seen = snapshot.cars_reached + snapshot.cars_missed
        return cls(
            final=snapshot,
            grade=grade.label,
            grade_color=grade.color,
            reach_rate=snapshot.cars_reached / seen if seen else 0.0,
            sign_rating=sign_rating_label(quality),
            sign_stars=sign_rating_stars(quality),
            time_survived=format_time(snapshot.elapsed),
        )
