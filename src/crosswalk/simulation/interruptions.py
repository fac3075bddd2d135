"""InterruptionScheduler — scripted mid-session events.

Architecture
------------
The scheduler is a small state machine:

  idle -> triggered(type) -> resolving -> idle

While idle, ``tick`` decides whether to fire, in priority order:

  1. nothing before the first-event time (drawn once, in a window)
  2. at the per-session cap, only the guaranteed urgency check may fire
  3. nothing within ``min_event_spacing`` of the previous event
  4. under ``urgency_threshold`` seconds left, force a guaranteed type
     that has not fired yet (if it is eligible)
  5. otherwise roll ``base_chance * frequency * dt`` and pick a weighted
     type among the eligible ones

While an event is active, ``tick`` advances its payload instead.

Event types
-----------
``cop_check``   A police officer questions the protester.  The player picks
                one of three replies (``choose_option``); each carries a
                standing change, a score change, and how long the reply
                takes.  No answer within 15 s counts as freezing up.
``weather``     Starts a rain shower and resolves at once.  One per session.
``karma``       A four-beat sequence: an aggressive truck, a burnout, then
                a police cruiser pulls it over.  One per session, and not
                before ``karma_min_time``.

Scripted standing changes go through ``StandingSystem.on_outcome`` with a
multiplier of 1.0.  Negative ones are first scaled by the difficulty's
event intensity.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

from loguru import logger

from .tuning import ScheduleConfig

if TYPE_CHECKING:
    from crosswalk.comms.event_bus import EventBus
    from .standing import StandingSystem
    from .state import SessionState
    from .weather import WeatherSystem


class SchedulerPhase(str, Enum):
    IDLE = "idle"
    TRIGGERED = "triggered"
    RESOLVING = "resolving"


# ---------------------------------------------------------------------------
# Scripted content
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CopDialogueOption:
    text: str
    is_correct: bool
    confidence_change: float
    score_change: int
    cop_reply: str
    time_penalty: float  # seconds the exchange takes


@dataclass(frozen=True)
class CopScenario:
    opening_line: str
    description: str
    options: tuple[CopDialogueOption, ...]
    auto_resolve_time: float = 15.0
    auto_resolve_penalty: float = -10.0


COP_CHECK_SCENARIOS: tuple[CopScenario, ...] = (
    CopScenario(
        opening_line='"Excuse me. You need a permit to be out here."',
        description="A police officer approaches you.",
        options=(
            CopDialogueOption(
                '"The First Amendment protects my right to protest in public '
                'spaces without a permit."',
                True, 15, 50, '"...Alright. Just keep the sidewalk clear."', 3,
            ),
            CopDialogueOption(
                "\"Oh, sorry officer. I'll pack up.\"",
                False, -20, -10, '"Appreciate the cooperation."', 8,
            ),
            CopDialogueOption(
                "\"Am I being detained? I'd like your badge number.\"",
                False, 5, 10, "\"Nobody's being detained. Just checking in.\"", 6,
            ),
        ),
    ),
    CopScenario(
        opening_line="\"We've gotten some complaints about you blocking traffic.\"",
        description="A police officer walks over, arms crossed.",
        options=(
            CopDialogueOption(
                "\"I'm on the sidewalk, which is a traditional public forum. "
                'I have a constitutional right to be here."',
                True, 15, 50, '"...Fair enough. Stay on the sidewalk."', 3,
            ),
            CopDialogueOption(
                "\"I didn't mean to cause trouble. I'll move.\"",
                False, -15, -10, '"Probably for the best."', 8,
            ),
            CopDialogueOption(
                "\"I'm not blocking anything. People just don't like my sign.\"",
                False, 0, 5, '"Well... keep it peaceful."', 5,
            ),
        ),
    ),
    CopScenario(
        opening_line='"I need to see some ID. What organization are you with?"',
        description="An officer pulls up in a cruiser.",
        options=(
            CopDialogueOption(
                "\"I'm not required to show ID for exercising my First Amendment "
                "rights. I'm an individual citizen.\"",
                True, 15, 50, '"...Okay. Carry on."', 3,
            ),
            CopDialogueOption(
                '"Sure, here you go..." *hands over ID*',
                False, -10, 0, '"Alright, everything checks out. Have a good one."', 10,
            ),
            CopDialogueOption(
                "\"I'm with the Constitution of the United States.\"",
                False, 10, 15, '*sighs* "...Just stay out of the road."', 4,
            ),
        ),
    ),
)


def froze_up_option(penalty: float) -> CopDialogueOption:
    return CopDialogueOption(
        "(You froze up)", False, penalty, 0,
        "\"...I'll be back.\" The officer walks away.", 3,
    )


@dataclass(frozen=True)
class KarmaPhase:
    description: str
    duration: float
    banner: str
    confidence_change: float
    score_change: int


KARMA_PHASES: tuple[KarmaPhase, ...] = (
    KarmaPhase(
        "A lifted truck with flags peels around the corner", 3,
        "*SCREEEECH* A lifted truck with flags tears around the corner...", -5, 0,
    ),
    KarmaPhase(
        "The truck does a burnout in the intersection, honking aggressively", 3,
        "The truck does a BURNOUT in the intersection! Smoke everywhere!", -10, -20,
    ),
    KarmaPhase(
        "A police cruiser lights up behind the truck", 2,
        "...Wait. Red and blue lights behind them.", 5, 0,
    ),
    KarmaPhase(
        "The cop pulls the truck over. The crowd erupts in cheers.", 4,
        "COP PULLS THEM OVER! The crowd goes WILD!", 30, 100,
    ),
)
KARMA_TOTAL_BOOST = 20.0


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

class EventPayload:
    """Base class for a running interruption."""

    event_id = ""

    def __init__(self, scheduler: InterruptionScheduler) -> None:
        self.scheduler = scheduler
        self.phase = SchedulerPhase.TRIGGERED
        self.finished = False
        self.result: dict = {}

    def start(self) -> None:
        pass

    def tick(self, dt: float) -> None:
        pass

    def finish(self) -> None:
        self.finished = True


class CopCheck(EventPayload):
    event_id = "cop_check"

    def __init__(self, scheduler: InterruptionScheduler, scenario: CopScenario) -> None:
        super().__init__(scheduler)
        self.scenario = scenario
        self.time_left = scenario.auto_resolve_time
        self.chosen: CopDialogueOption | None = None
        self.reply_time_left = 0.0

    def choose_option(self, index: int) -> CopDialogueOption | None:
        if self.phase is not SchedulerPhase.TRIGGERED:
            return None
        if not 0 <= index < len(self.scenario.options):
            logger.warning("Cop check: no option {}", index)
            return None
        self._resolve(self.scenario.options[index])
        return self.chosen

    def _resolve(self, option: CopDialogueOption) -> None:
        self.chosen = option
        self.scheduler.apply_effects(option.confidence_change, option.score_change)
        self.phase = SchedulerPhase.RESOLVING
        self.reply_time_left = option.time_penalty
        self.result = {"option": option.text, "correct": option.is_correct}
        if self.reply_time_left <= 0:
            self.finish()

    def tick(self, dt: float) -> None:
        if self.phase is SchedulerPhase.TRIGGERED:
            self.time_left -= dt
            if self.time_left <= 0:
                logger.info("Cop check auto-resolved: no answer")
                self._resolve(froze_up_option(self.scenario.auto_resolve_penalty))
        else:
            self.reply_time_left -= dt
            if self.reply_time_left <= 0:
                self.finish()


class RainShower(EventPayload):
    event_id = "weather"

    def start(self) -> None:
        self.scheduler.weather.start_rain()
        self.finish()


class KarmaMoment(EventPayload):
    event_id = "karma"

    def __init__(self, scheduler: InterruptionScheduler) -> None:
        super().__init__(scheduler)
        self.phase_index = -1
        self.phase_time_left = 0.0

    def start(self) -> None:
        self.phase = SchedulerPhase.RESOLVING
        self._play(0)

    def _play(self, index: int) -> None:
        self.phase_index = index
        if index >= len(KARMA_PHASES):
            self.scheduler.apply_effects(KARMA_TOTAL_BOOST, 0)
            self.finish()
            return
        beat = KARMA_PHASES[index]
        self.phase_time_left = beat.duration
        self.scheduler.apply_effects(beat.confidence_change, beat.score_change)
        self.result = {"banner": beat.banner}

    def tick(self, dt: float) -> None:
        self.phase_time_left -= dt
        while not self.finished and self.phase_time_left <= 0:
            carry = self.phase_time_left
            self._play(self.phase_index + 1)
            self.phase_time_left += carry


# ---------------------------------------------------------------------------
# Types and scheduler
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InterruptionType:
    id: str
    weight: float
    one_shot: bool
    guaranteed: bool
    eligible: Callable[[InterruptionScheduler], bool]
    factory: Callable[[InterruptionScheduler], EventPayload]


class InterruptionScheduler:
    def __init__(
        self,
        state: SessionState,
        standing: StandingSystem,
        weather: WeatherSystem,
        config: ScheduleConfig | None = None,
        frequency_multiplier: float = 1.0,
        intensity_multiplier: float = 1.0,
        event_bus: EventBus | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._state = state
        self._standing = standing
        self.weather = weather
        self._config = config or ScheduleConfig()
        self._frequency = frequency_multiplier
        self._intensity = intensity_multiplier
        self._bus = event_bus
        self._rng = rng or random

        cfg = self._config
        self.first_event_time = self._rng.uniform(cfg.first_event_min_time, cfg.first_event_max_time)
        self._fired: list[str] = []
        self._last_event_time: float | None = None
        self._active: EventPayload | None = None
        self.types: dict[str, InterruptionType] = self._build_types()
        for name in cfg.event_weights:
            if name not in self.types:
                logger.warning("[config] ignoring weight for unknown event type {!r}", name)
        logger.info("Interruptions: first event window opens at {:.1f}s", self.first_event_time)

    def _build_types(self) -> dict[str, InterruptionType]:
        cfg = self._config
        defs = (
            ("cop_check", False, lambda s: s._state.standing >= cfg.cop_check_min_confidence,
             lambda s: CopCheck(s, s._rng.choice(COP_CHECK_SCENARIOS))),
            ("weather", True, lambda s: not s.has_fired("weather") and not s.weather.raining,
             lambda s: RainShower(s)),
            ("karma", True,
             lambda s: s._state.elapsed >= cfg.karma_min_time and not s.has_fired("karma"),
             lambda s: KarmaMoment(s)),
        )
        return {
            type_id: InterruptionType(
                id=type_id,
                weight=cfg.event_weights.get(type_id, 0.0),
                one_shot=one_shot,
                guaranteed=type_id in cfg.guaranteed_events,
                eligible=eligible,
                factory=factory,
            )
            for type_id, one_shot, eligible, factory in defs
        }

    # -- Queries ----------------------------------------------------------------

    @property
    def phase(self) -> SchedulerPhase:
        return self._active.phase if self._active is not None else SchedulerPhase.IDLE

    @property
    def active_event(self) -> EventPayload | None:
        return self._active

    @property
    def fired(self) -> tuple[str, ...]:
        return tuple(self._fired)

    def has_fired(self, type_id: str) -> bool:
        return type_id in self._fired

    def is_eligible(self, type_id: str) -> bool:
        itype = self.types.get(type_id)
        if itype is None:
            return False
        if itype.one_shot and self.has_fired(type_id):
            return False
        return itype.eligible(self)

    # -- Tick -------------------------------------------------------------------

    def tick(self, dt: float) -> None:
        if self._state.terminated:
            return
        if self._active is not None:
            self._active.tick(dt)
            if self._active.finished:
                self._end()
            return
        self._check_trigger(dt)

    def _check_trigger(self, dt: float) -> None:
        cfg = self._config
        elapsed = self._state.elapsed
        if elapsed < self.first_event_time:
            return
        if len(self._fired) >= cfg.max_events_per_session:
            self._fire_guaranteed()
            return
        if self._last_event_time is not None and elapsed - self._last_event_time < cfg.min_event_spacing:
            return
        if self._fire_guaranteed():
            return
        chance = cfg.base_trigger_chance_per_second * self._frequency * dt
        if self._rng.random() < chance:
            type_id = self.pick_type()
            if type_id is not None:
                self._trigger(type_id)

    def _fire_guaranteed(self) -> bool:
        """Urgency override: force an unfired guaranteed type near the end."""
        if self._state.remaining >= self._config.urgency_threshold:
            return False
        for type_id in self._config.guaranteed_events:
            if not self.has_fired(type_id) and self.is_eligible(type_id):
                self._trigger(type_id)
                return True
        return False

    def pick_type(self) -> str | None:
        eligible = [t for t in self.types.values() if t.weight > 0 and self.is_eligible(t.id)]
        if not eligible:
            return None
        roll = self._rng.random() * sum(t.weight for t in eligible)
        for itype in eligible:
            roll -= itype.weight
            if roll <= 0:
                return itype.id
        return eligible[-1].id

    # -- Trigger / end ----------------------------------------------------------

    def force_trigger(self, type_id: str) -> bool:
        """Fire *type_id* now, ending any active event.  Bypasses every rule."""
        if type_id not in self.types:
            logger.warning("force_trigger: unknown event type {!r}", type_id)
            return False
        if self._state.terminated:
            return False
        if self._active is not None:
            self._end()
        self._trigger(type_id)
        return True

    def _trigger(self, type_id: str) -> None:
        self._fired.append(type_id)
        self._last_event_time = self._state.elapsed
        self._state.record_event(type_id)
        logger.info("Event triggered: {} at {:.1f}s", type_id, self._last_event_time)
        if self._bus is not None:
            self._bus.publish("event_started", {"event": type_id, "elapsed": self._last_event_time})
        payload = self.types[type_id].factory(self)
        self._active = payload
        payload.start()
        if payload.finished:
            self._end()

    def _end(self) -> None:
        payload = self._active
        if payload is None:
            return
        self._active = None
        logger.debug("Event ended: {}", payload.event_id)
        if self._bus is not None:
            self._bus.publish("event_ended", {"event": payload.event_id, **payload.result})

    # -- Player input -----------------------------------------------------------

    def choose_option(self, index: int) -> CopDialogueOption | None:
        """Answer the active cop check.  Ignored if none is waiting."""
        if not isinstance(self._active, CopCheck):
            return None
        option = self._active.choose_option(index)
        if self._active.finished:
            self._end()
        return option

    # -- Effects ----------------------------------------------------------------

    def apply_effects(self, confidence_change: float, score_change: int) -> None:
        if confidence_change < 0:
            confidence_change *= self._intensity
        if confidence_change:
            self._standing.on_outcome(confidence_change, multiplier=1.0)
        if score_change:
            self._state.add_score(score_change)
