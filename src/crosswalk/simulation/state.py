"""SessionState — the single authoritative record of one session.

Architecture
------------
SessionState holds every field the HUD, audio, and summary collaborators
read: score, clock, the two meters, player flags, the reaction tally,
car counters, weather, and termination.  It contains no game logic.
Systems mutate it through methods; each method publishes a change
notification on the EventBus *after* the mutation, so subscribers always
observe the new value.

Ownership (one writer per field):
  - standing:                       StandingSystem
  - stamina / raised / resting / arm: StaminaSystem
  - weather / degradation / group size: WeatherSystem
  - score / tally / clock / termination: SessionEngine (and scripted events)

Termination is one-way.  Once ``terminate()`` has run, every mutator is a
no-op, so a late tick or a stray callback can never change the final
snapshot.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger
from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from crosswalk.comms.event_bus import EventBus


class TerminationReason(str, Enum):
    NONE = "none"
    TIME_EXPIRED = "time_expired"
    STANDING_DEPLETED = "standing_depleted"


class Arm(str, Enum):
    LEFT = "left"
    RIGHT = "right"


class WeatherMode(str, Enum):
    CLEAR = "clear"
    RAIN = "rain"


class StateSnapshot(BaseModel):
    """Read-only copy of the session state at one instant."""

    model_config = ConfigDict(frozen=True)

    score: int
    elapsed: float
    remaining: float
    duration: float
    standing: float
    stamina: float
    active_arm: Arm
    resting: bool
    raised: bool
    tally: dict[str, int]
    cars_reached: int
    cars_missed: int
    termination_reason: TerminationReason
    weather: WeatherMode
    sign_degradation: float
    group_size: int
    events_triggered: tuple[str, ...]
    last_outcome_time: float

    @property
    def active(self) -> bool:
        return self.termination_reason is TerminationReason.NONE


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


class SessionState:
    """Mutable session record with change notifications."""

    METER_MIN = 0.0
    METER_MAX = 100.0

    def __init__(
        self,
        event_bus: EventBus,
        duration: float = 180.0,
        starting_standing: float = 30.0,
        group_size: int = 3,
        reaction_ids: tuple[str, ...] = (),
    ) -> None:
        self._bus = event_bus
        self._duration = duration
        self._elapsed = 0.0
        self._score = 0
        self._standing = _clamp(starting_standing, self.METER_MIN, self.METER_MAX)
        self._stamina = 0.0
        self._arm = Arm.RIGHT
        self._resting = False
        self._raised = False
        self._tally: dict[str, int] = {rid: 0 for rid in reaction_ids}
        self._cars_reached = 0
        self._cars_missed = 0
        self._reason = TerminationReason.NONE
        self._weather = WeatherMode.CLEAR
        self._sign_degradation = 0.0
        self._group_size = group_size
        self._events: list[str] = []
        self._last_outcome_time = 0.0

    # -- Getters ----------------------------------------------------------------

    @property
    def score(self) -> int:
        return self._score

    @property
    def elapsed(self) -> float:
        return self._elapsed

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def remaining(self) -> float:
        return max(0.0, self._duration - self._elapsed)

    @property
    def standing(self) -> float:
        return self._standing

    @property
    def stamina(self) -> float:
        return self._stamina

    @property
    def active_arm(self) -> Arm:
        return self._arm

    @property
    def resting(self) -> bool:
        return self._resting

    @property
    def raised(self) -> bool:
        return self._raised

    @property
    def tally(self) -> dict[str, int]:
        return dict(self._tally)

    @property
    def cars_reached(self) -> int:
        return self._cars_reached

    @property
    def cars_missed(self) -> int:
        return self._cars_missed

    @property
    def termination_reason(self) -> TerminationReason:
        return self._reason

    @property
    def active(self) -> bool:
        return self._reason is TerminationReason.NONE

    @property
    def terminated(self) -> bool:
        return not self.active

    @property
    def weather(self) -> WeatherMode:
        return self._weather

    @property
    def sign_degradation(self) -> float:
        return self._sign_degradation

    @property
    def group_size(self) -> int:
        return self._group_size

    @property
    def events_triggered(self) -> tuple[str, ...]:
        return tuple(self._events)

    @property
    def last_outcome_time(self) -> float:
        return self._last_outcome_time

    def time_since_last_outcome(self) -> float:
        return self._elapsed - self._last_outcome_time

    # -- Score and tally --------------------------------------------------------

    def add_score(self, delta: int) -> None:
        """Add *delta* to the score.  The score never drops below zero."""
        if self.terminated or delta == 0:
            return
        prev = self._score
        self._score = max(0, self._score + int(delta))
        if self._score != prev:
            self._bus.publish("score_changed", {
                "score": self._score,
                "delta": self._score - prev,
            })

    def record_reaction(
        self,
        reaction_id: str,
        score_value: int,
        *,
        boosted: bool = False,
        deflected: bool = False,
    ) -> None:
        """Count a resolved car and apply its (already raise-adjusted) value."""
        if self.terminated:
            return
        self._tally[reaction_id] = self._tally.get(reaction_id, 0) + 1
        self._cars_reached += 1
        self.add_score(score_value)
        self._bus.publish("reaction", {
            "reaction_id": reaction_id,
            "score_value": score_value,
            "boosted": boosted,
            "deflected": deflected,
        })

    def record_miss(self) -> None:
        if self.terminated:
            return
        self._cars_missed += 1
        self._bus.publish("car_missed", {"cars_missed": self._cars_missed})

    # -- Meters -----------------------------------------------------------------

    def set_standing(self, value: float) -> None:
        if self.terminated:
            return
        prev = self._standing
        self._standing = _clamp(value, self.METER_MIN, self.METER_MAX)
        if self._standing != prev:
            self._bus.publish("standing_changed", {
                "standing": self._standing,
                "delta": self._standing - prev,
            })

    def mark_outcome(self) -> None:
        """Stamp the current clock as the time of the last nonzero outcome."""
        if self.terminated:
            return
        self._last_outcome_time = self._elapsed

    def set_stamina(self, value: float) -> None:
        if self.terminated:
            return
        prev = self._stamina
        self._stamina = _clamp(value, self.METER_MIN, self.METER_MAX)
        if self._stamina != prev:
            self._bus.publish("stamina_changed", {"stamina": self._stamina})

    # -- Player flags -----------------------------------------------------------

    def set_raised(self, raised: bool) -> None:
        if self.terminated or raised == self._raised:
            return
        self._raised = raised
        self._bus.publish("raise_changed", {"raised": raised})

    def set_resting(self, resting: bool) -> None:
        if self.terminated or resting == self._resting:
            return
        self._resting = resting
        self._bus.publish("rest_changed", {"resting": resting})

    def switch_arm(self) -> Arm:
        if self.terminated:
            return self._arm
        self._arm = Arm.LEFT if self._arm is Arm.RIGHT else Arm.RIGHT
        self._bus.publish("arm_switched", {"arm": self._arm.value})
        return self._arm

    # -- Weather and group ------------------------------------------------------

    def set_weather(self, mode: WeatherMode) -> None:
        if self.terminated or mode is self._weather:
            return
        self._weather = mode
        self._bus.publish("weather_changed", {"weather": mode.value})

    def set_sign_degradation(self, value: float) -> None:
        if self.terminated:
            return
        value = _clamp(value, 0.0, 1.0)
        if value == self._sign_degradation:
            return
        self._sign_degradation = value
        self._bus.publish("sign_degradation_changed", {"sign_degradation": value})

    def set_group_size(self, size: int) -> None:
        if self.terminated:
            return
        size = max(0, size)
        if size == self._group_size:
            return
        self._group_size = size
        self._bus.publish("group_size_changed", {"group_size": size})

    def record_event(self, event_id: str) -> None:
        if self.terminated:
            return
        self._events.append(event_id)

    # -- Clock and termination --------------------------------------------------

    def advance_clock(self, dt: float) -> None:
        if self.terminated or dt <= 0:
            return
        self._elapsed = min(self._duration, self._elapsed + dt)

    def check_termination(self) -> TerminationReason:
        """Terminate if standing is gone or time is up.  Returns the reason."""
        if self.terminated:
            return self._reason
        if self._standing <= self.METER_MIN:
            self.terminate(TerminationReason.STANDING_DEPLETED)
        elif self.remaining <= 0:
            self.terminate(TerminationReason.TIME_EXPIRED)
        return self._reason

    def terminate(self, reason: TerminationReason) -> None:
        """End the session.  Idempotent: only the first call has any effect."""
        if self.terminated or reason is TerminationReason.NONE:
            return
        self._reason = reason
        logger.info(
            "Session ended ({}) at {:.1f}s, score={}",
            reason.value, self._elapsed, self._score,
        )
        self._bus.publish("session_ended", self.snapshot().model_dump(mode="json"))

    # -- Snapshot ---------------------------------------------------------------

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            score=self._score,
            elapsed=self._elapsed,
            remaining=self.remaining,
            duration=self._duration,
            standing=self._standing,
            stamina=self._stamina,
            active_arm=self._arm,
            resting=self._resting,
            raised=self._raised,
            tally=dict(self._tally),
            cars_reached=self._cars_reached,
            cars_missed=self._cars_missed,
            termination_reason=self._reason,
            weather=self._weather,
            sign_degradation=self._sign_degradation,
            group_size=self._group_size,
            events_triggered=tuple(self._events),
            last_outcome_time=self._last_outcome_time,
        )
