"""StandingSystem — the confidence meter.

Reaction values become standing deltas (``score_value * multiplier``).
With no nonzero outcome for longer than the grace period, standing drains
toward a floor of ``group_size * group_size_floor_bonus``; passive drain
never crosses that floor, but direct hits (negative reactions, rain,
scripted events) can take standing all the way to zero.

Reaching zero ends the session, but not from here: the engine checks
termination once per tick, after every system has applied its changes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .tuning import ConfidenceConfig

if TYPE_CHECKING:
    from .state import SessionState


class StandingSystem:
    def __init__(self, state: SessionState, config: ConfidenceConfig | None = None) -> None:
        self._state = state
        self._config = config or ConfidenceConfig()

    @property
    def config(self) -> ConfidenceConfig:
        return self._config

    def floor(self) -> float:
        return self._state.group_size * self._config.group_size_floor_bonus

    def on_outcome(self, score_value: float, multiplier: float | None = None) -> float:
        """Apply one outcome.  Returns the standing delta actually applied.

        Zero-valued outcomes change nothing, not even the grace timer.
        """
        if score_value == 0 or self._state.terminated:
            return 0.0
        if multiplier is None:
            multiplier = self._config.reaction_to_confidence_multiplier
        before = self._state.standing
        self._state.set_standing(before + score_value * multiplier)
        self._state.mark_outcome()
        return self._state.standing - before

    def adjust(self, delta: float) -> float:
        """Direct change that does not count as an outcome (e.g. rain)."""
        if delta == 0 or self._state.terminated:
            return 0.0
        before = self._state.standing
        self._state.set_standing(before + delta)
        return self._state.standing - before

    def tick(self, dt: float) -> None:
        if self._state.terminated or dt <= 0:
            return
        if self._state.time_since_last_outcome() <= self._config.no_drain_grace_period:
            return
        floor = self.floor()
        current = self._state.standing
        if current <= floor:
            return
        drained = max(floor, current - self._config.no_reaction_drain_rate * dt)
        self._state.set_standing(drained)
