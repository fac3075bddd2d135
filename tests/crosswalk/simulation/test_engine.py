"""Tests for SessionEngine: wiring, tick order, interception, termination."""

from __future__ import annotations

import math
import random

import pytest

from crosswalk.simulation.engine import SessionEngine
from crosswalk.simulation.reactions import ReactionResolver
from crosswalk.simulation.state import TerminationReason
from crosswalk.simulation.traffic import get_car_type
from crosswalk.simulation.tuning import (
    Approach,
    FatigueConfig,
    IntersectionConfig,
    SessionTuning,
    get_difficulty,
)


class _FixedDraw:
    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


def _tuning(duration: float = 30.0, **updates) -> SessionTuning:
    return SessionTuning(intersection=IntersectionConfig(session_duration=duration), **updates)


def _park_in_cone(engine: SessionEngine, distance: float = 100.0):
    """Spawn a car and put it straight up the cone's aim line."""
    lane = next(
        lane for lane in engine.tuning.intersection.lanes if lane.approach is Approach.EAST
    )
    car = engine.traffic.spawn_car(lane, get_car_type("sedan"), speed=0.0)
    ox, oy = engine.cone.origin
    car.x = ox + math.cos(engine.cone.direction) * distance
    car.y = oy + math.sin(engine.cone.direction) * distance
    return car


@pytest.fixture
def engine(bus) -> SessionEngine:
    return SessionEngine(_tuning(), event_bus=bus, rng=random.Random(11))


@pytest.mark.unit
class TestWiring:
    def test_systems_share_one_state_and_bus(self, engine):
        assert engine.traffic._state is engine.state
        assert engine.scheduler.weather is engine.weather
        assert engine.state.duration == 30.0
        assert engine.state.standing == 30.0

    def test_difficulty_reaches_systems(self):
        tuning = _tuning(difficulty=get_difficulty("hard"))
        engine = SessionEngine(tuning, rng=random.Random(1))
        assert engine.signals.cycle_length == pytest.approx(25.0 * 0.7)

    def test_engines_are_independent(self):
        a = SessionEngine(_tuning(), rng=random.Random(1))
        b = SessionEngine(_tuning(), rng=random.Random(1))
        a.state.add_score(10)
        assert b.state.score == 0
        assert a.event_bus is not b.event_bus

    def test_external_bus_receives_events(self, bus, recorder):
        engine = SessionEngine(_tuning(), event_bus=bus, rng=random.Random(2))
        engine.force_event("weather")
        assert "event_started" in recorder.types()
        assert "weather_changed" in recorder.types()


@pytest.mark.unit
class TestInterception:
    def test_contained_car_resolved_once(self, engine):
        car = _park_in_cone(engine)
        assert engine._resolve_interceptions() == 1
        assert car.reached
        assert engine._resolve_interceptions() == 0
        assert engine.state.cars_reached == 1
        assert sum(engine.state.tally.values()) == 1

    def test_car_outside_cone_untouched(self, engine):
        car = _park_in_cone(engine, distance=400.0)
        assert engine._resolve_interceptions() == 0
        assert not car.reached

    def test_raised_sign_boosts_positive(self, engine):
        engine.resolver = ReactionResolver(0.6, 0.25, 0.15, 0.5, rng=_FixedDraw(0.0))
        _park_in_cone(engine)
        engine.press_raise()
        engine._resolve_interceptions()
        # wave: 5 * 1.5 rounds to 8
        assert engine.state.score == 8
        assert engine.state.standing == pytest.approx(30.0 + 8 * 0.8)

    def test_resting_can_miss_contained_cars(self):
        tuning = _tuning(fatigue=FatigueConfig(rest_visibility_factor=0.0))
        engine = SessionEngine(tuning, rng=random.Random(4))
        car = _park_in_cone(engine)
        engine.toggle_rest()
        assert engine._resolve_interceptions() == 0
        assert not car.reached
        engine.toggle_rest()
        assert engine._resolve_interceptions() == 1

    def test_full_visibility_while_resting(self):
        tuning = _tuning(fatigue=FatigueConfig(rest_visibility_factor=1.0))
        engine = SessionEngine(tuning, rng=random.Random(4))
        _park_in_cone(engine)
        engine.toggle_rest()
        assert engine._resolve_interceptions() == 1

    def test_aim_moves_cone(self, engine):
        car = _park_in_cone(engine)
        engine.aim(engine.cone.direction + math.pi)
        assert engine._resolve_interceptions() == 0
        engine.aim_at(car.x, car.y)
        assert engine._resolve_interceptions() == 1


@pytest.mark.unit
class TestTick:
    def test_clock_advances(self, engine):
        engine.tick(0.5)
        engine.tick(0.5)
        assert engine.state.elapsed == pytest.approx(1.0)
        assert engine.tick_count == 2

    def test_non_positive_dt_ignored(self, engine):
        engine.tick(0.0)
        assert engine.tick_count == 0

    def test_cone_narrows_with_fatigue(self, engine):
        engine.state.set_stamina(100.0)
        engine.tick(0.1)
        assert engine.cone.width_degrees == pytest.approx(30.0)

    def test_weather_event_shifts_reactions(self, engine):
        engine.force_event("weather")
        assert engine.resolver.raining

    def test_cop_check_answer(self, engine):
        engine.force_event("cop_check")
        option = engine.choose_option(0)
        assert option.is_correct
        assert engine.state.score == 50

    def test_switch_arm(self, engine):
        engine.state.set_stamina(40.0)
        assert engine.switch_arm()
        assert engine.state.stamina == pytest.approx(15.0)


@pytest.mark.unit
class TestTermination:
    def test_standing_depleted_at_end_of_tick(self, engine):
        engine.standing.adjust(-30.0)
        assert engine.state.active
        engine.tick(0.1)
        assert engine.state.termination_reason is TerminationReason.STANDING_DEPLETED

    def test_standing_checked_before_time(self):
        engine = SessionEngine(_tuning(duration=1.0), rng=random.Random(3))
        engine.standing.adjust(-30.0)
        engine.tick(1.0)
        assert engine.state.termination_reason is TerminationReason.STANDING_DEPLETED

    def test_ticks_after_termination_are_noops(self, engine, recorder):
        engine.standing.adjust(-30.0)
        engine.tick(0.1)
        before = engine.snapshot()
        count = engine.tick_count
        for _ in range(10):
            engine.tick(0.1)
        assert engine.snapshot() == before
        assert engine.tick_count == count
        assert len(recorder.of("session_ended")) == 1

    def test_input_after_termination_changes_nothing(self, engine):
        engine.state.terminate(TerminationReason.TIME_EXPIRED)
        before = engine.snapshot()
        engine.press_raise()
        engine.switch_arm()
        engine.toggle_rest()
        engine.force_event("weather")
        assert engine.snapshot() == before

    @pytest.mark.parametrize("dt", [0.0, -0.5])
    def test_run_with_non_positive_dt_returns_at_once(self, engine, dt, log_messages):
        summary = engine.run(dt=dt)
        assert engine.tick_count == 0
        assert summary.final.elapsed == 0.0
        assert any("positive dt" in m and "WARNING" in m for m in log_messages)

    def test_run_respects_max_ticks(self, engine):
        engine.run(dt=0.1, max_ticks=5)
        assert engine.tick_count == 5
        assert engine.state.active

    def test_destroy_returns_cars(self, engine):
        engine.run(dt=0.1, max_ticks=100)
        engine.destroy()
        assert engine.traffic.cars() == []


@pytest.mark.integration
class TestFullSession:
    def test_bounds_hold_every_tick(self, bus, recorder):
        engine = SessionEngine(_tuning(duration=180.0), event_bus=bus, rng=random.Random(2024))
        violations = []

        def check(e: SessionEngine) -> None:
            s = e.state
            if not 0.0 <= s.standing <= 100.0:
                violations.append(("standing", s.standing))
            if not 0.0 <= s.stamina <= 100.0:
                violations.append(("stamina", s.stamina))
            if s.score < 0:
                violations.append(("score", s.score))
            if not 0.0 <= s.sign_degradation <= 0.8 + 1e-9:
                violations.append(("degradation", s.sign_degradation))
            if s.elapsed > s.duration:
                violations.append(("elapsed", s.elapsed))
            if len(e.scheduler.fired) > 4 + 1:
                violations.append(("events", e.scheduler.fired))

        summary = engine.run(dt=1 / 30, before_tick=check)
        assert violations == []
        assert engine.state.terminated
        final = summary.final
        assert final.termination_reason in (
            TerminationReason.TIME_EXPIRED, TerminationReason.STANDING_DEPLETED,
        )
        assert final.cars_reached == sum(final.tally.values())
        assert final.cars_reached == len(recorder.of("reaction"))
        assert len(recorder.of("session_ended")) == 1

    def test_same_seed_same_session(self):
        def play(seed: int):
            engine = SessionEngine(_tuning(duration=60.0), rng=random.Random(seed))
            return engine.run(dt=1 / 30).final

        assert play(77) == play(77)

    def test_time_expires_without_traffic(self):
        # No lanes: only passive drain, which stops at the group floor
        tuning = SessionTuning(intersection=IntersectionConfig(lanes=(), session_duration=20.0))
        engine = SessionEngine(tuning, rng=random.Random(5))
        summary = engine.run(dt=0.05)
        assert summary.final.termination_reason is TerminationReason.TIME_EXPIRED
        assert summary.final.elapsed == pytest.approx(20.0)
        assert summary.final.standing == pytest.approx(9.0)
        assert summary.final.cars_reached == 0
