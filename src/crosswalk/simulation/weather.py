"""WeatherSystem — rain showers and their effects.

Rain is started by the interruption scheduler and stops on its own after
a random duration.  While it rains, every tick:

  - the sign degrades at ``rain_sign_drain_rate / effective_durability``
    percent per second (capped at ``max_sign_degradation``), where
    effective durability is material durability times the difficulty's
    weather multiplier
  - standing drains at ``rain_confidence_drain`` per second
  - once the leave cooldown has expired, a protester may give up and go
    home (the group never shrinks below ``min_npc_count``)

Weather changes are pushed to the reaction resolver so its table picks up
the rain shift.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from loguru import logger

from .state import WeatherMode
from .tuning import WeatherConfig

if TYPE_CHECKING:
    from .reactions import ReactionResolver
    from .standing import StandingSystem
    from .state import SessionState


class WeatherSystem:
    def __init__(
        self,
        state: SessionState,
        standing: StandingSystem,
        config: WeatherConfig | None = None,
        material_durability: float = 1.0,
        difficulty_multiplier: float = 1.0,
        resolver: ReactionResolver | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._state = state
        self._standing = standing
        self._config = config or WeatherConfig()
        self._durability = material_durability
        self._difficulty = difficulty_multiplier
        self._resolver = resolver
        self._rng = rng or random
        self._rain_remaining = 0.0
        self._leave_cooldown = 0.0

    @property
    def raining(self) -> bool:
        return self._state.weather is WeatherMode.RAIN

    @property
    def rain_remaining(self) -> float:
        return self._rain_remaining

    def degradation_rate(self) -> float:
        """Sign degradation per second while raining (0-1 scale)."""
        effective = self._durability * self._difficulty
        return self._config.rain_sign_drain_rate / max(effective, 0.1) / 100

    def start_rain(self, duration: float | None = None) -> None:
        if self.raining or self._state.terminated:
            return
        cfg = self._config
        if duration is None:
            duration = self._rng.uniform(cfg.rain_duration_min, cfg.rain_duration_max)
        self._rain_remaining = duration
        self._state.set_weather(WeatherMode.RAIN)
        if self._resolver is not None:
            self._resolver.set_raining(True)
        logger.info("Rain started, {:.0f}s", duration)

    def stop_rain(self) -> None:
        if not self.raining:
            return
        self._rain_remaining = 0.0
        self._state.set_weather(WeatherMode.CLEAR)
        if self._resolver is not None:
            self._resolver.set_raining(False)
        logger.info("Rain stopped")

    def tick(self, dt: float) -> None:
        if not self.raining or self._state.terminated or dt <= 0:
            return
        self._rain_remaining -= dt
        if self._rain_remaining <= 0:
            self.stop_rain()
            return

        cfg = self._config
        degradation = min(
            cfg.max_sign_degradation,
            self._state.sign_degradation + self.degradation_rate() * dt,
        )
        self._state.set_sign_degradation(degradation)
        self._standing.adjust(-cfg.rain_confidence_drain * dt)
        self._update_group(dt)

    def _update_group(self, dt: float) -> None:
        self._leave_cooldown -= dt
        if self._leave_cooldown > 0:
            return
        size = self._state.group_size
        if size <= self._config.min_npc_count:
            return
        if self._rng.random() < self._config.npc_leave_chance_per_second * dt:
            self._state.set_group_size(size - 1)
            self._leave_cooldown = self._config.npc_leave_cooldown
            logger.info("A protester left in the rain, group size {}", size - 1)
