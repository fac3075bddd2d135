"""SignalController — data-driven traffic light cycle.

The cycle is a fixed list of phases, each naming the approaches that have
right-of-way and a duration.  The only state is the phase index and the
time spent in the current phase, so the phase sequence is a pure function
of the dt stream: two controllers fed the same dts always agree.

Leftover time carries across phase boundaries; one large ``advance`` can
move through several phases and publishes ``phase_changed`` for each.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

from loguru import logger

from .tuning import Approach, LightColor, SignalPhaseConfig

if TYPE_CHECKING:
    from crosswalk.comms.event_bus import EventBus

# Green turns yellow for the last 20% of the phase
_YELLOW_FRACTION = 0.2


@dataclass(frozen=True)
class SignalState:
    phase_index: int
    phase_name: str
    time_in_phase: float
    phase_duration: float
    green: tuple[Approach, ...]

    @property
    def progress(self) -> float:
        if self.phase_duration <= 0:
            return 1.0
        return min(1.0, self.time_in_phase / self.phase_duration)


class SignalController:
    """Cycles through light phases and answers right-of-way queries."""

    def __init__(
        self,
        phases: Sequence[SignalPhaseConfig],
        duration_multiplier: float = 1.0,
        event_bus: EventBus | None = None,
    ) -> None:
        self._phases = tuple(phases)
        self._multiplier = duration_multiplier
        self._bus = event_bus
        self._index = 0
        self._time_in_phase = 0.0
        self._cycle_length = sum(self._duration(i) for i in range(len(self._phases)))

    def _duration(self, index: int) -> float:
        return self._phases[index].duration * self._multiplier

    def advance(self, dt: float) -> None:
        if not self._phases or dt <= 0:
            return
        self._time_in_phase += dt
        if self._cycle_length <= 0:
            # Degenerate cycle: nothing can ever complete
            return
        while self._time_in_phase >= self._duration(self._index):
            self._time_in_phase -= self._duration(self._index)
            self._index = (self._index + 1) % len(self._phases)
            phase = self._phases[self._index]
            logger.debug("Signal phase -> {} ({})", phase.name, self._index)
            if self._bus is not None:
                self._bus.publish("phase_changed", {
                    "phase_index": self._index,
                    "phase": phase.name,
                    "green": [a.value for a in phase.green],
                })

    def current_phase(self) -> SignalPhaseConfig | None:
        if not self._phases:
            return None
        return self._phases[self._index]

    @property
    def phase_index(self) -> int:
        return self._index

    @property
    def time_in_phase(self) -> float:
        return self._time_in_phase

    @property
    def cycle_length(self) -> float:
        return self._cycle_length

    def is_go_for(self, approach: Approach) -> bool:
        """True while *approach* has right-of-way (green or yellow)."""
        phase = self.current_phase()
        return phase is not None and approach in phase.green

    def light_color(self, approach: Approach) -> LightColor:
        if not self.is_go_for(approach):
            return LightColor.RED
        duration = self._duration(self._index)
        if self._time_in_phase >= duration * (1.0 - _YELLOW_FRACTION):
            return LightColor.YELLOW
        return LightColor.GREEN

    def green_approaches(self) -> tuple[Approach, ...]:
        phase = self.current_phase()
        return phase.green if phase is not None else ()

    def state(self) -> SignalState:
        phase = self.current_phase()
        return SignalState(
            phase_index=self._index,
            phase_name=phase.name if phase else "",
            time_in_phase=self._time_in_phase,
            phase_duration=self._duration(self._index) if phase else 0.0,
            green=phase.green if phase else (),
        )
