"""StaminaSystem — arm fatigue, the raise mechanic, and recovery actions.

Stamina here counts *fatigue*: 0 is fresh, 100 is exhausted.  Each tick:

  - resting:  fatigue recovers at ``rest_recovery_rate``
  - raised:   fatigue grows at ``(base + raise) * material * difficulty``
  - otherwise fatigue grows at ``base * material * difficulty``

Player actions:
  press_raise / release_raise
      A press raises the sign.  Released within ``hold_threshold`` it is a
      tap: the sign stays up for ``tap_raise_duration`` and then lowers
      itself (counted down in ``tick``).  Released later it is a hold and
      the sign lowers on release.
  try_switch_arm
      Swap arms for an immediate recovery and a short cooldown indicator.
  toggle_rest
      Lower the sign and recover, at the cost of visibility.

Feedback to the cone: ``cone_width()`` stays at the fresh width up to the
shrink threshold, then narrows linearly to the exhausted width at 100.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from .reactions import ReactionType, Sentiment
from .tuning import FatigueConfig

if TYPE_CHECKING:
    from .standing import StandingSystem
    from .state import SessionState


class StaminaSystem:
    def __init__(
        self,
        state: SessionState,
        config: FatigueConfig | None = None,
        material_multiplier: float = 1.0,
        difficulty_multiplier: float = 1.0,
        standing: StandingSystem | None = None,
    ) -> None:
        self._state = state
        self._config = config or FatigueConfig()
        self._material = material_multiplier
        self._difficulty = difficulty_multiplier
        self._standing = standing
        self._clock = 0.0
        self._switch_cooldown = 0.0
        self._press_time: float | None = None
        self._tap_timer = 0.0

    @property
    def config(self) -> FatigueConfig:
        return self._config

    # -- Tick -------------------------------------------------------------------

    def drain_rate(self) -> float:
        """Fatigue change per second in the current posture (negative = recovery)."""
        cfg = self._config
        if self._state.resting:
            return -cfg.rest_recovery_rate
        rate = cfg.base_drain_rate
        if self._state.raised:
            rate += cfg.raise_drain_rate
        return rate * self._material * self._difficulty

    def tick(self, dt: float) -> None:
        if self._state.terminated or dt <= 0:
            return
        self._clock += dt
        if self._switch_cooldown > 0:
            self._switch_cooldown = max(0.0, self._switch_cooldown - dt)

        self._state.set_stamina(self._state.stamina + self.drain_rate() * dt)

        if self._tap_timer > 0:
            self._tap_timer -= dt
            if self._tap_timer <= 0:
                self._tap_timer = 0.0
                self._state.set_raised(False)

    # -- Raise ------------------------------------------------------------------

    def set_raised(self, raised: bool) -> bool:
        """Raise or lower the sign.  Raising is refused while resting."""
        if raised and self._state.resting:
            return False
        self._state.set_raised(raised)
        return self._state.raised == raised

    def press_raise(self) -> bool:
        if not self.set_raised(True):
            return False
        self._press_time = self._clock
        self._tap_timer = 0.0
        return True

    def release_raise(self) -> None:
        if self._press_time is None:
            return
        held = self._clock - self._press_time
        self._press_time = None
        if held < self._config.hold_threshold:
            self._tap_timer = self._config.tap_raise_duration
        else:
            self._state.set_raised(False)

    @property
    def tap_time_remaining(self) -> float:
        return self._tap_timer

    def apply_raise(self, reaction: ReactionType, raised: bool) -> tuple[int, bool, bool]:
        """Adjust a reaction's value for the raise state.

        Returns ``(final_value, boosted, deflected)``.  A deflect also grants
        the deflect standing bonus.
        """
        value = reaction.score_value
        if not raised:
            return value, False, False
        cfg = self._config
        if reaction.sentiment is Sentiment.POSITIVE and value > 0:
            return round(value * cfg.raise_positive_bonus), True, False
        if reaction.sentiment is Sentiment.NEGATIVE and value < 0:
            if self._standing is not None:
                self._standing.adjust(cfg.deflect_confidence_bonus)
            return cfg.deflect_score_value, False, True
        return value, False, False

    # -- Recovery actions -------------------------------------------------------

    def can_switch_arm(self) -> bool:
        return self._switch_cooldown <= 0

    @property
    def switch_cooldown_remaining(self) -> float:
        return self._switch_cooldown

    def try_switch_arm(self) -> bool:
        if self._state.terminated:
            return False
        if self._config.enforce_switch_cooldown and not self.can_switch_arm():
            return False
        self._state.switch_arm()
        self._state.set_stamina(self._state.stamina - self._config.switch_arm_recovery)
        self._switch_cooldown = self._config.switch_arm_cooldown
        logger.debug("Switched to {} arm, stamina {:.1f}", self._state.active_arm.value, self._state.stamina)
        return True

    def toggle_rest(self) -> bool:
        """Flip the resting flag.  Resting lowers the sign.  Returns the new flag."""
        resting = not self._state.resting
        if resting:
            self._press_time = None
            self._tap_timer = 0.0
            self._state.set_raised(False)
        self._state.set_resting(resting)
        return self._state.resting

    # -- Feedback ---------------------------------------------------------------

    def visibility_factor(self) -> float:
        return self._config.rest_visibility_factor if self._state.resting else 1.0

    def cone_width(self) -> float:
        cfg = self._config
        fatigue = self._state.stamina
        if fatigue <= cfg.cone_shrink_threshold:
            return cfg.cone_width_fresh
        span = cfg.max_fatigue - cfg.cone_shrink_threshold
        t = min(1.0, (fatigue - cfg.cone_shrink_threshold) / span) if span > 0 else 1.0
        width = cfg.cone_width_fresh + (cfg.cone_width_exhausted - cfg.cone_width_fresh) * t
        # Never wider than fresh, even with an inverted config
        return min(cfg.cone_width_fresh, width)
