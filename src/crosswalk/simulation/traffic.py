"""Traffic — car pool, lane spawners, and queueing.

Architecture
------------
CarPool is an arena of pre-allocated ``Car`` slots with a free list of
slot indices.  ``acquire()`` hands out a slot, ``release()`` returns it.
Every transient field is rewritten by ``Car.reset()`` on acquire, so a
recycled slot never carries a flag, position, or cosmetic from its last
life.  When the free list runs dry the arena grows.

TrafficManager owns the pool exclusively.  Per tick it:

  1. Counts down one spawn timer per (approach, lane).  On expiry it
     suppresses the spawn if a car on that approach is still near the
     spawn point, otherwise spawns when the approach has right-of-way
     (or, on red, with a small residual chance: cars that were already
     on their way when the light changed).
  2. Updates every active car in one pass:
       - nearest same-lane car ahead, by direction-aware scan
       - gap check: stop if centre distance < (len_a + len_b) / 2 + buffer
       - signal check: before the stop line, on red, inside the stop zone
         (or about to cross the line this tick), stop
       - otherwise move at its assigned speed
     The stop decision and the move happen in the same pass, so a car
     sees a blocked gap on the tick it first appears.
  3. Recycles cars that leave the world (plus margin).  A car that leaves
     without ever being reached is reported to the state store as missed.

Car types are cosmetic; they only change length and width.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator

from loguru import logger

from .tuning import Approach, IntersectionConfig, LaneConfig

if TYPE_CHECKING:
    from .signals import SignalController
    from .state import SessionState


# Unit vector of travel per approach (screen coordinates, +y is down)
DIRECTION_VECTORS: dict[Approach, tuple[float, float]] = {
    Approach.NORTH: (0.0, -1.0),
    Approach.SOUTH: (0.0, 1.0),
    Approach.EAST: (1.0, 0.0),
    Approach.WEST: (-1.0, 0.0),
}


# -- Car types ------------------------------------------------------------------

@dataclass(frozen=True)
class CarType:
    id: str
    weight: float
    width: float
    length: float
    two_wheeler: bool = False


CAR_TYPES: tuple[CarType, ...] = (
    CarType("sedan",       0.30, 50, 90),
    CarType("suv",         0.18, 56, 100),
    CarType("compact",     0.15, 40, 65),
    CarType("pickup",      0.12, 52, 110),
    CarType("truck",       0.08, 48, 155),
    CarType("coal_roller", 0.07, 55, 100),
    CarType("motorcycle",  0.05, 24, 54, two_wheeler=True),
    CarType("bicycle",     0.05, 18, 46, two_wheeler=True),
)

_CAR_TYPES_BY_ID = {t.id: t for t in CAR_TYPES}

DRIVER_FACES = ("😐", "😊", "😤", "😠", "🙂", "😑")
CYCLIST_FACES = ("🚴", "😊", "🙂", "😐")
PASSENGER_EMOJIS = ("👤", "👦", "👧", "👩", "👨", "🧒")
DOG_EMOJIS = ("🐕", "🐶", "🐩")
PASSENGER_CHANCE = 0.3
DOG_PASSENGER_CHANCE = 0.1


def get_car_type(type_id: str) -> CarType:
    return _CAR_TYPES_BY_ID[type_id]


def pick_car_type(rng: random.Random | None = None) -> CarType:
    """Weighted pick from ``CAR_TYPES``; falls back to sedan."""
    r = (rng or random).random()
    cumulative = 0.0
    for car_type in CAR_TYPES:
        cumulative += car_type.weight
        if r <= cumulative:
            return car_type
    return CAR_TYPES[0]


# -- Car ------------------------------------------------------------------------

@dataclass
class Car:
    """One pooled vehicle slot."""

    slot: int
    active: bool = False
    approach: Approach = Approach.NORTH
    lane_index: int = 0
    lane: LaneConfig | None = None
    x: float = 0.0
    y: float = 0.0
    speed: float = 0.0
    car_type: CarType = CAR_TYPES[0]
    reached: bool = False
    passed: bool = False
    stopped: bool = False
    # Cosmetic state for the renderer
    driver_face: str = ""
    passenger: str | None = None
    wobble_phase: float = 0.0

    @property
    def length(self) -> float:
        return self.car_type.length

    @property
    def width(self) -> float:
        return self.car_type.width

    @property
    def position(self) -> tuple[float, float]:
        return (self.x, self.y)

    def reset(
        self,
        lane: LaneConfig,
        speed: float,
        car_type: CarType,
        rng: random.Random | None = None,
    ) -> None:
        """Rewrite every transient field for a fresh life on *lane*."""
        rng = rng or random
        self.active = True
        self.approach = lane.approach
        self.lane_index = lane.lane_index
        self.lane = lane
        self.x, self.y = lane.spawn
        self.speed = speed
        self.car_type = car_type
        self.reached = False
        self.passed = False
        self.stopped = False
        faces = CYCLIST_FACES if car_type.id == "bicycle" else DRIVER_FACES
        self.driver_face = rng.choice(faces)
        self.passenger = None
        if not car_type.two_wheeler and rng.random() < PASSENGER_CHANCE:
            pool = DOG_EMOJIS if rng.random() < DOG_PASSENGER_CHANCE else PASSENGER_EMOJIS
            self.passenger = rng.choice(pool)
        self.wobble_phase = rng.random() * math.pi * 2

    def clear(self) -> None:
        """Deactivate.  Fields are left for ``reset`` to overwrite."""
        self.active = False
        self.stopped = False

    # -- Geometry along the direction of travel --

    def distance_to_stop_line(self) -> float:
        """Signed distance ahead to the stop line; negative once past it."""
        if self.lane is None:
            return 0.0
        dx, dy = DIRECTION_VECTORS[self.approach]
        sx, sy = self.lane.stop
        return (sx - self.x) * dx + (sy - self.y) * dy

    def is_past_stop_line(self) -> bool:
        return self.distance_to_stop_line() < 0

    def is_ahead_of(self, other: Car) -> bool:
        """True if this car is further along the travel direction than *other*."""
        dx, dy = DIRECTION_VECTORS[other.approach]
        return (self.x - other.x) * dx + (self.y - other.y) * dy > 0

    def distance_to(self, other: Car) -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def move(self, distance: float) -> None:
        dx, dy = DIRECTION_VECTORS[self.approach]
        self.x += dx * distance
        self.y += dy * distance

    def is_off_world(self, width: float, height: float, margin: float) -> bool:
        return (
            self.x < -margin
            or self.x > width + margin
            or self.y < -margin
            or self.y > height + margin
        )


# -- Pool -----------------------------------------------------------------------

class CarPool:
    """Arena of car slots indexed by a free list."""

    def __init__(self, capacity: int = 32) -> None:
        self._slots: list[Car] = [Car(slot=i) for i in range(capacity)]
        # Pop from the end; lowest slot indices are handed out first
        self._free: list[int] = list(range(capacity - 1, -1, -1))
        self._active: list[int] = []

    @property
    def capacity(self) -> int:
        return len(self._slots)

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def free_count(self) -> int:
        return len(self._free)

    def acquire(self) -> Car:
        """Take a free slot (growing the arena if needed) and mark it active.

        The caller must ``reset()`` the car before use.
        """
        if not self._free:
            grow_by = max(8, len(self._slots))
            start = len(self._slots)
            self._slots.extend(Car(slot=i) for i in range(start, start + grow_by))
            self._free.extend(range(start + grow_by - 1, start - 1, -1))
            logger.debug("Car pool grew to {} slots", len(self._slots))
        index = self._free.pop()
        self._active.append(index)
        car = self._slots[index]
        car.active = True
        return car

    def release(self, car: Car) -> None:
        if not car.active or car.slot not in self._active:
            return
        car.clear()
        self._active.remove(car.slot)
        self._free.append(car.slot)

    def active_cars(self) -> list[Car]:
        """Active cars in spawn order (a snapshot list, safe to release from)."""
        return [self._slots[i] for i in self._active]

    def __iter__(self) -> Iterator[Car]:
        return iter(self.active_cars())

    def clear(self) -> None:
        """Release every active car."""
        for car in self.active_cars():
            self.release(car)


# -- Manager --------------------------------------------------------------------

@dataclass
class _LaneSpawner:
    lane: LaneConfig
    timer: float = 0.0
    spawned: int = 0
    suppressed: int = 0
    skipped: int = 0


@dataclass
class TrafficStats:
    spawned: int = 0
    suppressed: int = 0
    skipped_on_red: int = 0
    recycled: int = 0
    missed: int = 0
    by_type: dict[str, int] = field(default_factory=dict)


class TrafficManager:
    """Spawns, queues, moves, and recycles cars for one intersection."""

    def __init__(
        self,
        config: IntersectionConfig,
        signals: SignalController,
        state: SessionState,
        speed_multiplier: float = 1.0,
        density_multiplier: float = 1.0,
        rng: random.Random | None = None,
        pool: CarPool | None = None,
    ) -> None:
        self._config = config
        self._signals = signals
        self._state = state
        self._speed_multiplier = speed_multiplier
        self._density_multiplier = density_multiplier
        self._rng = rng or random.Random()
        self._pool = pool or CarPool()
        self.stats = TrafficStats()
        self._spawners: dict[str, _LaneSpawner] = {}
        for lane in config.lanes:
            self._spawners[lane.key] = _LaneSpawner(lane=lane, timer=self._spawn_delay())

    @property
    def pool(self) -> CarPool:
        return self._pool

    def cars(self) -> list[Car]:
        return self._pool.active_cars()

    def spawn_timers(self) -> dict[str, float]:
        return {key: s.timer for key, s in self._spawners.items()}

    # -- Random draws --

    def _spawn_delay(self) -> float:
        lo, hi = self._config.spawn_interval
        density = self._density_multiplier if self._density_multiplier > 0 else 1.0
        return self._rng.uniform(lo, hi) / density

    def _car_speed(self) -> float:
        lo, hi = self._config.car_speed
        return self._rng.uniform(lo, hi) * self._speed_multiplier

    # -- Tick --

    def tick(self, dt: float) -> None:
        self.update_spawning(dt)
        self.update_cars(dt)

    def update_spawning(self, dt: float) -> None:
        for spawner in self._spawners.values():
            spawner.timer -= dt
            if spawner.timer > 0:
                continue
            lane = spawner.lane
            go = self._signals.is_go_for(lane.approach)
            if go or self._rng.random() < self._config.off_phase_spawn_chance:
                if self.spawn_car(lane) is None:
                    spawner.suppressed += 1
                else:
                    spawner.spawned += 1
            else:
                spawner.skipped += 1
                self.stats.skipped_on_red += 1
            spawner.timer = self._spawn_delay()

    def spawn_car(
        self,
        lane: LaneConfig,
        car_type: CarType | None = None,
        speed: float | None = None,
    ) -> Car | None:
        """Spawn a car at the head of *lane* unless the spawn point is blocked."""
        sx, sy = lane.spawn
        for other in self._pool.active_cars():
            if other.approach is not lane.approach:
                continue
            if math.hypot(other.x - sx, other.y - sy) < other.length + self._config.spawn_clearance:
                self.stats.suppressed += 1
                return None

        car_type = car_type or pick_car_type(self._rng)
        car = self._pool.acquire()
        car.reset(
            lane,
            speed if speed is not None else self._car_speed(),
            car_type,
            self._rng,
        )
        self.stats.spawned += 1
        self.stats.by_type[car_type.id] = self.stats.by_type.get(car_type.id, 0) + 1
        logger.debug(
            "Spawned {} on {} (slot {}, speed {:.0f})",
            car_type.id, lane.key, car.slot, car.speed,
        )
        return car

    def find_car_ahead(self, car: Car, cars: list[Car] | None = None) -> Car | None:
        """Nearest active car in the same lane further along the direction of travel."""
        closest: Car | None = None
        closest_dist = math.inf
        for other in cars if cars is not None else self._pool.active_cars():
            if other is car or not other.active:
                continue
            if other.approach is not car.approach or other.lane_index != car.lane_index:
                continue
            if not other.is_ahead_of(car):
                continue
            dist = car.distance_to(other)
            if dist < closest_dist:
                closest_dist = dist
                closest = other
        return closest

    def min_gap(self, a: Car, b: Car) -> float:
        return (a.length + b.length) / 2 + self._config.gap_buffer

    def _should_stop_for_signal(self, car: Car, step: float) -> bool:
        if self._signals.is_go_for(car.approach):
            return False
        if car.is_past_stop_line():
            return False
        to_line = car.distance_to_stop_line()
        # Inside the stop zone, or this step would carry it over the line
        return to_line < car.length or step > to_line

    def update_cars(self, dt: float) -> None:
        cars = self._pool.active_cars()
        cfg = self._config
        for car in cars:
            if not car.active:
                continue
            step = car.speed * dt

            ahead = self.find_car_ahead(car, cars)
            if ahead is not None and car.distance_to(ahead) < self.min_gap(car, ahead):
                car.stopped = True
            elif self._should_stop_for_signal(car, step):
                car.stopped = True
            else:
                car.stopped = False

            if not car.stopped:
                car.move(step)

            if car.is_off_world(cfg.world_width, cfg.world_height, cfg.offscreen_margin):
                self._recycle(car)

    def _recycle(self, car: Car) -> None:
        if not car.reached and not car.passed:
            car.passed = True
            self.stats.missed += 1
            self._state.record_miss()
        self.stats.recycled += 1
        self._pool.release(car)

    def destroy(self) -> None:
        """Return every car to the pool (session teardown)."""
        self._pool.clear()
