"""Reactions — the outcome table and the weighted resolver.

Each reached car rolls one ``ReactionType``.  The ten-entry table is
immutable; per-session tuning never edits it.  Instead the resolver builds
an *effective* weight table once:

    effective[r] = r.weight * multiplier[r.sentiment]     (then normalised)

The sentiment multipliers start from the difficulty's reaction weights and
are shifted by the sign's message quality.  While it rains the shift also
pushes weight from positive to negative.  The table is rebuilt only when
the weather changes.

Resolution is a single cumulative roll in table order; the first entry
whose running total meets the draw wins.  If float drift leaves the draw
above the final total, ``nothing`` is returned.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


@dataclass(frozen=True)
class ReactionType:
    id: str
    label: str
    emoji: str
    score_value: int
    weight: float  # base weight; the table sums to 1.0
    sentiment: Sentiment
    color: str


REACTION_TYPES: tuple[ReactionType, ...] = (
    # Positive (~60% base)
    ReactionType("wave",       "Wave",          "👋", 5,   0.25, Sentiment.POSITIVE, "#22c55e"),
    ReactionType("honk",       "Honk!",         "📯", 10,  0.20, Sentiment.POSITIVE, "#22c55e"),
    ReactionType("bananas",    "Go Bananas!",   "🤩", 25,  0.05, Sentiment.POSITIVE, "#fbbf24"),
    ReactionType("peace",      "Peace Sign",    "😊", 8,   0.10, Sentiment.POSITIVE, "#22c55e"),
    # Neutral (~25% base)
    ReactionType("nothing",    "Nothing",       "",   0,   0.15, Sentiment.NEUTRAL,  "#6b7280"),
    ReactionType("stare",      "Stare",         "👀", 0,   0.10, Sentiment.NEUTRAL,  "#6b7280"),
    # Negative (~15% base)
    ReactionType("thumbsdown", "Thumbs Down",   "👎", -5,  0.05, Sentiment.NEGATIVE, "#ef4444"),
    ReactionType("finger",     "Middle Finger", "🖕", -10, 0.05, Sentiment.NEGATIVE, "#ef4444"),
    ReactionType("yell",       "Yelled At",     "🤬", -15, 0.03, Sentiment.NEGATIVE, "#ef4444"),
    ReactionType("coalroller", "Coal Roller",   "💨", -20, 0.02, Sentiment.NEGATIVE, "#7f1d1d"),
)

REACTION_IDS: tuple[str, ...] = tuple(r.id for r in REACTION_TYPES)

_BY_ID = {r.id: r for r in REACTION_TYPES}
FALLBACK_REACTION = _BY_ID["nothing"]


def get_reaction(reaction_id: str) -> ReactionType:
    return _BY_ID[reaction_id]


# Clamp ranges for the sentiment multipliers: (positive, neutral, negative)
_CLEAR_CLAMPS = ((0.2, 0.9), (0.05, 0.4), (0.05, 0.4))
_RAIN_CLAMPS = ((0.15, 0.85), (0.05, 0.4), (0.05, 0.45))


def _clamp(value: float, bounds: tuple[float, float]) -> float:
    lo, hi = bounds
    return min(max(value, lo), hi)


def sentiment_multipliers(
    positive: float,
    neutral: float,
    negative: float,
    quality: float,
    rain_shift: float = 0.0,
) -> dict[Sentiment, float]:
    """Per-sentiment multipliers after quality (and rain) adjustment.

    ``neutral`` is accepted for symmetry with the difficulty table but is
    recomputed as whatever positive and negative leave over.
    """
    offset = (quality - 0.5) * 0.6
    pos = positive + offset - rain_shift
    neg = negative - offset * 0.5 + rain_shift
    neu = 1.0 - pos - neg
    clamps = _RAIN_CLAMPS if rain_shift else _CLEAR_CLAMPS
    return {
        Sentiment.POSITIVE: _clamp(pos, clamps[0]),
        Sentiment.NEUTRAL: _clamp(neu, clamps[1]),
        Sentiment.NEGATIVE: _clamp(neg, clamps[2]),
    }


def effective_weights(
    multipliers: dict[Sentiment, float],
    table: tuple[ReactionType, ...] = REACTION_TYPES,
) -> list[tuple[ReactionType, float]]:
    """Normalised ``(reaction, weight)`` pairs in table order."""
    raw = [(r, r.weight * multipliers.get(r.sentiment, 1.0)) for r in table]
    total = sum(w for _, w in raw)
    if total <= 0:
        logger.warning("[reactions] effective weights sum to {}, using base weights", total)
        raw = [(r, r.weight) for r in table]
        total = sum(w for _, w in raw)
    return [(r, w / total) for r, w in raw]


class ReactionResolver:
    """Rolls a reaction for each reached car.  No side effects."""

    def __init__(
        self,
        positive_weight: float,
        neutral_weight: float,
        negative_weight: float,
        quality: float,
        rain_negative_shift: float = 0.1,
        rng: random.Random | None = None,
    ) -> None:
        self._base = (positive_weight, neutral_weight, negative_weight)
        self._quality = quality
        self._rain_shift = rain_negative_shift
        self._rng = rng or random
        self._raining = False
        self._table: list[tuple[ReactionType, float]] = []
        self.rebuild(raining=False)

    @property
    def raining(self) -> bool:
        return self._raining

    def rebuild(self, raining: bool) -> None:
        self._raining = raining
        multipliers = sentiment_multipliers(
            *self._base,
            quality=self._quality,
            rain_shift=self._rain_shift if raining else 0.0,
        )
        self._table = effective_weights(multipliers)
        logger.debug(
            "Reaction table rebuilt (rain={}): {}",
            raining,
            {s.value: round(m, 3) for s, m in multipliers.items()},
        )

    def set_raining(self, raining: bool) -> None:
        """Rebuild the table if the weather mode actually changed."""
        if raining != self._raining:
            self.rebuild(raining)

    def weights(self) -> dict[str, float]:
        return {r.id: w for r, w in self._table}

    def resolve(self, car: Any = None) -> ReactionType:
        """Roll one reaction.  *car* is accepted for callers' convenience only."""
        draw = self._rng.random()
        cumulative = 0.0
        for reaction, weight in self._table:
            cumulative += weight
            if draw <= cumulative:
                return reaction
        return FALLBACK_REACTION
