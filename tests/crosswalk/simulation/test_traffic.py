"""Unit tests for the car pool, spawners, and queueing."""

from __future__ import annotations

import random

import pytest

from crosswalk.simulation.signals import SignalController
from crosswalk.simulation.traffic import (
    CAR_TYPES,
    CYCLIST_FACES,
    Car,
    CarPool,
    TrafficManager,
    get_car_type,
    pick_car_type,
)
from crosswalk.simulation.tuning import Approach, IntersectionConfig

pytestmark = pytest.mark.unit


def _lane(config: IntersectionConfig, approach: Approach):
    return next(lane for lane in config.lanes if lane.approach is approach)


@pytest.fixture
def config() -> IntersectionConfig:
    return IntersectionConfig()


@pytest.fixture
def signals(config) -> SignalController:
    # Phase 0: north/south green
    return SignalController(config.light_cycle)


@pytest.fixture
def traffic(config, signals, state, rng) -> TrafficManager:
    return TrafficManager(config, signals, state, rng=rng)


class TestCarTypes:
    def test_weights_sum_to_one(self):
        assert sum(t.weight for t in CAR_TYPES) == pytest.approx(1.0)

    def test_pick_is_weighted(self):
        rng = random.Random(7)
        picks = [pick_car_type(rng).id for _ in range(5000)]
        assert picks.count("sedan") > picks.count("truck") > 0

    def test_two_wheelers_never_carry_passengers(self, config, rng):
        car = Car(slot=0)
        lane = _lane(config, Approach.EAST)
        for _ in range(200):
            car.reset(lane, 100.0, get_car_type("bicycle"), rng)
            assert car.passenger is None
            assert car.driver_face in CYCLIST_FACES


class TestCarGeometry:
    def test_distance_to_stop_line_is_signed(self, config):
        car = Car(slot=0)
        car.reset(_lane(config, Approach.NORTH), 100.0, get_car_type("sedan"))
        # Northbound spawn y=1330, stop line y=750
        assert car.distance_to_stop_line() == pytest.approx(580.0)
        car.move(600.0)
        assert car.distance_to_stop_line() == pytest.approx(-20.0)
        assert car.is_past_stop_line()

    def test_move_follows_approach_direction(self, config):
        car = Car(slot=0)
        car.reset(_lane(config, Approach.WEST), 100.0, get_car_type("sedan"))
        x0, y0 = car.position
        car.move(50.0)
        assert car.position == (x0 - 50.0, y0)


class TestCarPool:
    def test_acquire_hands_out_lowest_slot_first(self):
        pool = CarPool(capacity=4)
        assert pool.acquire().slot == 0
        assert pool.acquire().slot == 1
        assert pool.active_count == 2
        assert pool.free_count == 2

    def test_recycled_slot_is_fully_reset(self, config, rng):
        pool = CarPool(capacity=1)
        car = pool.acquire()
        car.reset(_lane(config, Approach.NORTH), 200.0, get_car_type("truck"), rng)
        car.reached = True
        car.passed = True
        car.stopped = True
        car.move(300.0)
        pool.release(car)
        assert not car.active

        again = pool.acquire()
        assert again is car
        east = _lane(config, Approach.EAST)
        again.reset(east, 150.0, get_car_type("compact"), rng)
        assert again.active
        assert again.approach is Approach.EAST
        assert again.position == east.spawn
        assert again.speed == 150.0
        assert again.car_type.id == "compact"
        assert not again.reached
        assert not again.passed
        assert not again.stopped

    def test_pool_grows_when_exhausted(self, log_messages):
        pool = CarPool(capacity=2)
        cars = [pool.acquire() for _ in range(3)]
        assert pool.capacity == 10
        assert len({c.slot for c in cars}) == 3
        assert any("pool grew" in m for m in log_messages)

    def test_release_is_idempotent(self):
        pool = CarPool(capacity=2)
        car = pool.acquire()
        pool.release(car)
        pool.release(car)
        assert pool.free_count == 2
        assert pool.active_count == 0

    def test_clear_releases_everything(self):
        pool = CarPool(capacity=4)
        for _ in range(3):
            pool.acquire()
        pool.clear()
        assert pool.active_count == 0
        assert list(pool) == []


class TestSpawning:
    def test_spawn_point_blocked_suppresses(self, traffic, config):
        north = _lane(config, Approach.NORTH)
        assert traffic.spawn_car(north) is not None
        assert traffic.spawn_car(north) is None
        assert traffic.stats.suppressed == 1
        assert len(traffic.cars()) == 1

    def test_other_approaches_are_not_blocked(self, traffic, config):
        for approach in Approach:
            assert traffic.spawn_car(_lane(config, approach)) is not None
        assert len(traffic.cars()) == 4

    def test_clearance_uses_blocking_car_length(self, traffic, config):
        north = _lane(config, Approach.NORTH)
        compact = traffic.spawn_car(north, get_car_type("compact"), speed=0.0)
        compact.move(84.0)
        # 65 + 20 = 85 clearance
        assert traffic.spawn_car(north) is None
        compact.move(1.0)
        assert traffic.spawn_car(north) is not None

    def test_spawns_on_green(self, traffic):
        traffic.update_spawning(10.0)
        approaches = {c.approach for c in traffic.cars()}
        assert {Approach.NORTH, Approach.SOUTH} <= approaches

    def test_red_approaches_skip_without_residual_chance(self, config, state, rng):
        config = config.model_copy(update={"off_phase_spawn_chance": 0.0})
        signals = SignalController(config.light_cycle)
        signals.advance(10.0)  # all stop
        traffic = TrafficManager(config, signals, state, rng=rng)
        traffic.update_spawning(10.0)
        assert traffic.cars() == []
        assert traffic.stats.skipped_on_red == 4

    def test_residual_chance_spawns_on_red(self, config, state, rng):
        config = config.model_copy(update={"off_phase_spawn_chance": 1.0})
        signals = SignalController(config.light_cycle)
        signals.advance(10.0)
        traffic = TrafficManager(config, signals, state, rng=rng)
        traffic.update_spawning(10.0)
        assert len(traffic.cars()) == 4

    def test_timers_rearm_within_interval(self, traffic):
        traffic.update_spawning(10.0)
        for timer in traffic.spawn_timers().values():
            assert 1.2 <= timer <= 2.8

    def test_density_shortens_intervals(self, config, signals, state, rng):
        traffic = TrafficManager(config, signals, state, density_multiplier=2.0, rng=rng)
        for timer in traffic.spawn_timers().values():
            assert 0.6 <= timer <= 1.4

    def test_speed_multiplier(self, config, signals, state, rng):
        traffic = TrafficManager(config, signals, state, speed_multiplier=2.0, rng=rng)
        car = traffic.spawn_car(_lane(config, Approach.NORTH))
        assert 300.0 <= car.speed <= 500.0


class TestQueueing:
    def test_find_car_ahead_is_direction_aware(self, traffic, config):
        north = _lane(config, Approach.NORTH)
        front = traffic.spawn_car(north, speed=0.0)
        front.move(300.0)
        back = traffic.spawn_car(north, speed=0.0)
        assert traffic.find_car_ahead(back) is front
        assert traffic.find_car_ahead(front) is None

    def test_blocked_gap_stops_car_on_first_tick(self, traffic, config):
        north = _lane(config, Approach.NORTH)
        compact = traffic.spawn_car(north, get_car_type("compact"), speed=0.0)
        compact.move(90.0)
        compact.stopped = True

        truck = traffic.spawn_car(north, get_car_type("truck"), speed=200.0)
        assert truck is not None
        start = truck.position

        traffic.update_cars(0.016)
        # (155 + 65) / 2 + 12 = 122 > 90
        assert truck.stopped
        assert truck.position == start

    def test_gap_applies_past_the_stop_line(self, traffic, config):
        north = _lane(config, Approach.NORTH)
        front = traffic.spawn_car(north, get_car_type("sedan"), speed=0.0)
        front.move(700.0)
        back = traffic.spawn_car(north, get_car_type("sedan"), speed=200.0)
        back.move(620.0)
        assert back.is_past_stop_line()
        traffic.update_cars(0.016)
        assert back.stopped

    def test_queue_releases_when_leader_moves_on(self, traffic, config):
        north = _lane(config, Approach.NORTH)
        front = traffic.spawn_car(north, get_car_type("compact"), speed=0.0)
        front.move(95.0)
        back = traffic.spawn_car(north, get_car_type("truck"), speed=200.0)
        traffic.update_cars(0.016)
        assert back.stopped
        front.move(200.0)
        traffic.update_cars(0.016)
        assert not back.stopped


class TestSignalCompliance:
    def test_stops_in_stop_zone_on_red(self, traffic, signals, config):
        signals.advance(10.0)  # all stop
        car = traffic.spawn_car(_lane(config, Approach.NORTH), get_car_type("sedan"), speed=200.0)
        car.move(530.0)  # 50 from the line
        start = car.position
        traffic.update_cars(0.016)
        assert car.stopped
        assert car.position == start

    def test_does_not_overshoot_on_large_step(self, traffic, signals, config):
        signals.advance(10.0)
        car = traffic.spawn_car(_lane(config, Approach.NORTH), get_car_type("sedan"), speed=2000.0)
        car.move(430.0)  # 150 from the line, step 200
        traffic.update_cars(0.1)
        assert car.stopped
        assert not car.is_past_stop_line()

    def test_keeps_driving_far_from_line_on_red(self, traffic, signals, config):
        signals.advance(10.0)
        car = traffic.spawn_car(_lane(config, Approach.NORTH), get_car_type("sedan"), speed=200.0)
        traffic.update_cars(0.1)
        assert not car.stopped
        assert car.distance_to_stop_line() == pytest.approx(560.0)

    def test_clear_of_line_ignores_red(self, traffic, signals, config):
        signals.advance(10.0)
        car = traffic.spawn_car(_lane(config, Approach.NORTH), get_car_type("sedan"), speed=200.0)
        car.move(600.0)  # 20 past the line
        traffic.update_cars(0.1)
        assert not car.stopped

    def test_just_past_line_keeps_going_on_red(self, traffic, signals, config):
        car = traffic.spawn_car(_lane(config, Approach.NORTH), get_car_type("sedan"), speed=200.0)
        car.move(585.0)  # 5 past the line
        signals.advance(10.0)  # all stop
        for _ in range(10):
            traffic.update_cars(0.01)
        assert not car.stopped
        assert car.distance_to_stop_line() == pytest.approx(-25.0)

    def test_green_light_drives_through(self, traffic, config):
        car = traffic.spawn_car(_lane(config, Approach.NORTH), get_car_type("sedan"), speed=200.0)
        car.move(530.0)
        traffic.update_cars(0.1)
        assert not car.stopped
        assert car.distance_to_stop_line() == pytest.approx(30.0)

    def test_resumes_when_light_turns_green(self, traffic, signals, config):
        signals.advance(10.0)
        car = traffic.spawn_car(_lane(config, Approach.EAST), get_car_type("sedan"), speed=200.0)
        car.move(car.distance_to_stop_line() - 40.0)
        traffic.update_cars(0.016)
        assert car.stopped
        signals.advance(2.5)  # east/west go
        traffic.update_cars(0.016)
        assert not car.stopped


class TestRecycling:
    def test_unreached_car_counts_as_missed(self, traffic, state, recorder, config):
        car = traffic.spawn_car(_lane(config, Approach.NORTH), speed=0.0)
        car.y = -250.0
        traffic.update_cars(0.016)
        assert not car.active
        assert state.cars_missed == 1
        assert traffic.stats.missed == 1
        assert recorder.of("car_missed")

    def test_reached_car_is_not_missed(self, traffic, state, config):
        car = traffic.spawn_car(_lane(config, Approach.NORTH), speed=0.0)
        car.reached = True
        car.y = -250.0
        traffic.update_cars(0.016)
        assert state.cars_missed == 0
        assert traffic.stats.recycled == 1

    def test_slot_returns_to_pool(self, traffic, config):
        car = traffic.spawn_car(_lane(config, Approach.WEST), speed=0.0)
        car.x = -400.0
        traffic.update_cars(0.016)
        assert traffic.pool.active_count == 0
        assert traffic.spawn_car(_lane(config, Approach.WEST)) is car

    def test_destroy_empties_the_pool(self, traffic, config):
        for approach in Approach:
            traffic.spawn_car(_lane(config, approach))
        traffic.destroy()
        assert traffic.cars() == []
