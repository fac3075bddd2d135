"""SessionEngine — wires every system together and runs the tick.

Architecture
------------
One engine is one session.  It builds every system from a single
``SessionTuning``, handing each only the numbers it uses, and shares one
``SessionState`` and one ``EventBus`` between them.  Nothing is global:
two engines in one process are fully independent.

Tick order (fixed; reordering changes behaviour):

  1. SignalController.advance      phase timer
  2. TrafficManager.tick           spawn, queue, move, recycle
  3. StaminaSystem.tick            fatigue, tap timer; cone width updated
  4. interception                  contained, un-reached cars are resolved
                                   and applied to score and standing
  5. StandingSystem.tick           passive drain toward the floor
  6. InterruptionScheduler.tick    trigger or advance an event
     WeatherSystem.tick            rain effects
  7. SessionState                  clock advance, then termination check

The raised flag is sampled once at the start of step 4, so input that
lands between ticks applies to every car resolved in the next tick.
While resting, each contained car is caught only with probability
``visibility_factor``; a car skipped that way stays un-reached and may be
caught on a later tick.

The engine is single-threaded and cooperative: the host calls
``tick(dt)`` once per frame.  ``run()`` does that in a loop for headless
sessions.
"""

from __future__ import annotations

import random
from typing import Callable

from loguru import logger

from crosswalk.comms.event_bus import EventBus

from .cone import InterceptionCone
from .interruptions import CopDialogueOption, InterruptionScheduler
from .reactions import REACTION_IDS, ReactionResolver
from .scoring import SessionSummary
from .signals import SignalController
from .stamina import StaminaSystem
from .standing import StandingSystem
from .state import SessionState, StateSnapshot
from .traffic import TrafficManager
from .tuning import SessionTuning
from .weather import WeatherSystem


class SessionEngine:
    """Owns and ticks every system for one session."""

    def __init__(
        self,
        tuning: SessionTuning | None = None,
        event_bus: EventBus | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.tuning = tuning or SessionTuning()
        self.event_bus = event_bus or EventBus()
        self._rng = rng or random.Random()
        self.tick_count = 0

        t = self.tuning
        diff = t.difficulty
        material = t.sign.material
        ix = t.intersection

        self.state = SessionState(
            self.event_bus,
            duration=ix.session_duration,
            starting_standing=t.confidence.starting_confidence,
            group_size=t.confidence.default_group_size,
            reaction_ids=REACTION_IDS,
        )
        self.signals = SignalController(
            ix.light_cycle, diff.light_cycle_duration_multiplier, self.event_bus,
        )
        self.traffic = TrafficManager(
            ix,
            self.signals,
            self.state,
            speed_multiplier=diff.traffic_speed_multiplier,
            density_multiplier=diff.traffic_density_multiplier,
            rng=self._rng,
        )
        self.cone = InterceptionCone(
            ix.player_position,
            radius=t.cone.radius,
            width_degrees=t.cone.width_degrees,
            direction=t.cone.initial_direction,
            min_radius=t.cone.min_radius,
        )
        self.resolver = ReactionResolver(
            diff.positive_reaction_weight,
            diff.neutral_reaction_weight,
            diff.negative_reaction_weight,
            quality=t.sign.quality_score,
            rain_negative_shift=t.weather.rain_negative_shift,
            rng=self._rng,
        )
        self.standing = StandingSystem(self.state, t.confidence)
        self.stamina = StaminaSystem(
            self.state,
            t.fatigue,
            material_multiplier=material.fatigue_multiplier,
            difficulty_multiplier=diff.fatigue_drain_multiplier,
            standing=self.standing,
        )
        self.weather = WeatherSystem(
            self.state,
            self.standing,
            t.weather,
            material_durability=material.durability,
            difficulty_multiplier=diff.weather_durability_multiplier,
            resolver=self.resolver,
            rng=self._rng,
        )
        self.scheduler = InterruptionScheduler(
            self.state,
            self.standing,
            self.weather,
            t.schedule,
            frequency_multiplier=diff.event_frequency_multiplier,
            intensity_multiplier=diff.event_intensity_multiplier,
            event_bus=self.event_bus,
            rng=self._rng,
        )

        logger.info(
            "Session started: difficulty={} material={} quality={:.2f} duration={:.0f}s",
            diff.label, material.id, t.sign.quality_score, ix.session_duration,
        )

    # -- Tick -------------------------------------------------------------------

    def tick(self, dt: float) -> None:
        if self.state.terminated or dt <= 0:
            return
        self.tick_count += 1

        self.signals.advance(dt)
        self.traffic.tick(dt)
        self.stamina.tick(dt)
        self.cone.set_width(self.stamina.cone_width())
        self._resolve_interceptions()
        self.standing.tick(dt)
        self.scheduler.tick(dt)
        self.weather.tick(dt)

        self.state.advance_clock(dt)
        self.state.check_termination()

    def _resolve_interceptions(self) -> int:
        raised = self.state.raised
        visibility = self.stamina.visibility_factor()
        resolved = 0
        for car in self.traffic.cars():
            if not car.active or car.reached:
                continue
            if not self.cone.contains(car.x, car.y):
                continue
            if visibility < 1.0 and self._rng.random() > visibility:
                continue
            car.reached = True
            reaction = self.resolver.resolve(car)
            value, boosted, deflected = self.stamina.apply_raise(reaction, raised)
            self.state.record_reaction(reaction.id, value, boosted=boosted, deflected=deflected)
            self.standing.on_outcome(value)
            resolved += 1
        return resolved

    def run(
        self,
        dt: float = 1 / 60,
        max_ticks: int | None = None,
        before_tick: Callable[[SessionEngine], None] | None = None,
    ) -> SessionSummary:
        """Tick until the session ends (or *max_ticks*), then summarise."""
        if dt <= 0:
            logger.warning("Session run needs a positive dt, got {}; not ticking", dt)
            return self.summary()
        ticks = 0
        while self.state.active and (max_ticks is None or ticks < max_ticks):
            if before_tick is not None:
                before_tick(self)
            self.tick(dt)
            ticks += 1
        return self.summary()

    # -- Player input -----------------------------------------------------------

    def aim(self, radians: float) -> None:
        self.cone.set_direction(radians)

    def aim_at(self, x: float, y: float) -> None:
        self.cone.aim_at(x, y)

    def press_raise(self) -> bool:
        return self.stamina.press_raise()

    def release_raise(self) -> None:
        self.stamina.release_raise()

    def switch_arm(self) -> bool:
        return self.stamina.try_switch_arm()

    def toggle_rest(self) -> bool:
        return self.stamina.toggle_rest()

    def choose_option(self, index: int) -> CopDialogueOption | None:
        return self.scheduler.choose_option(index)

    def force_event(self, type_id: str) -> bool:
        return self.scheduler.force_trigger(type_id)

    # -- Output -----------------------------------------------------------------

    def snapshot(self) -> StateSnapshot:
        return self.state.snapshot()

    def summary(self) -> SessionSummary:
        return SessionSummary.from_snapshot(self.state.snapshot(), self.tuning.sign.quality_score)

    def destroy(self) -> None:
        """Return every car to the pool."""
        self.traffic.destroy()
