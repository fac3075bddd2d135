"""Session tuning — immutable, validated configuration for every system.

All gameplay numbers live here as frozen pydantic models.  A session is
built from one ``SessionTuning`` and never mutates it; to try different
numbers, build a new tuning (``tuning.model_copy(update=...)``) before
starting the next session.

Range problems (negative rates, reaction weights that do not sum to ~1.0,
zero-length phases) are *not* errors: validators log a warning and the
session proceeds with the value as given.  Only type errors (a string where
a float belongs) raise ``ValidationError`` at load time.

Usage:
    tuning = SessionTuning(difficulty=get_difficulty("hard"))
    tuning = load_tuning("tuning/rush_hour.json")
"""

from __future__ import annotations

import json
import math
from enum import Enum
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, model_validator


def _warn(model: BaseModel, message: str) -> None:
    logger.warning("[config] {}: {}", type(model).__name__, message)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class Approach(str, Enum):
    """Compass direction a car travels in (and the approach it arrives on)."""
    NORTH = "north"
    SOUTH = "south"
    EAST = "east"
    WEST = "west"


class LightColor(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


# ---------------------------------------------------------------------------
# Difficulty
# ---------------------------------------------------------------------------

class DifficultyConfig(_Frozen):
    """Named multipliers.  Each system is handed only the value it uses."""

    label: str = "Regular"
    vibe: str = ""

    traffic_speed_multiplier: float = 1.0
    traffic_density_multiplier: float = 1.0
    light_cycle_duration_multiplier: float = 1.0

    positive_reaction_weight: float = 0.60
    neutral_reaction_weight: float = 0.25
    negative_reaction_weight: float = 0.15

    event_frequency_multiplier: float = 1.0
    event_intensity_multiplier: float = 1.0
    fatigue_drain_multiplier: float = 1.0
    weather_durability_multiplier: float = 1.0

    @model_validator(mode="after")
    def _check_ranges(self) -> "DifficultyConfig":
        for name in (
            "traffic_speed_multiplier",
            "traffic_density_multiplier",
            "light_cycle_duration_multiplier",
            "event_intensity_multiplier",
            "fatigue_drain_multiplier",
            "weather_durability_multiplier",
        ):
            if getattr(self, name) <= 0:
                _warn(self, f"{name}={getattr(self, name)} should be positive")
        total = (
            self.positive_reaction_weight
            + self.neutral_reaction_weight
            + self.negative_reaction_weight
        )
        if abs(total - 1.0) > 0.05:
            _warn(self, f"reaction weights sum to {total:.3f}, expected ~1.0")
        if not 0.1 <= self.event_frequency_multiplier <= 5.0:
            _warn(
                self,
                f"event_frequency_multiplier {self.event_frequency_multiplier} "
                "outside sane range (0.1-5.0)",
            )
        return self


DIFFICULTY_EASY = DifficultyConfig(
    label="First Time Out",
    vibe="Your first protest. Manageable.",
    traffic_speed_multiplier=0.7,
    traffic_density_multiplier=0.6,
    light_cycle_duration_multiplier=1.3,
    positive_reaction_weight=0.70,
    neutral_reaction_weight=0.20,
    negative_reaction_weight=0.10,
    event_frequency_multiplier=0.5,
    event_intensity_multiplier=0.6,
    fatigue_drain_multiplier=0.6,
    weather_durability_multiplier=1.4,
)

DIFFICULTY_MEDIUM = DifficultyConfig(
    label="Regular",
    vibe="The real experience. Balanced.",
)

DIFFICULTY_HARD = DifficultyConfig(
    label="Rush Hour",
    vibe="Sunday 4-6 PM on the overpass. Chaos.",
    traffic_speed_multiplier=1.4,
    traffic_density_multiplier=1.6,
    light_cycle_duration_multiplier=0.7,
    positive_reaction_weight=0.45,
    neutral_reaction_weight=0.25,
    negative_reaction_weight=0.30,
    event_frequency_multiplier=1.5,
    event_intensity_multiplier=1.4,
    fatigue_drain_multiplier=1.5,
    weather_durability_multiplier=0.7,
)

DIFFICULTY_PRESETS: dict[str, DifficultyConfig] = {
    "easy": DIFFICULTY_EASY,
    "medium": DIFFICULTY_MEDIUM,
    "hard": DIFFICULTY_HARD,
}


def get_difficulty(tier: str) -> DifficultyConfig:
    """Return the preset for *tier*, falling back to medium."""
    preset = DIFFICULTY_PRESETS.get(tier.lower())
    if preset is None:
        logger.warning("[config] unknown difficulty tier {!r}, using medium", tier)
        return DIFFICULTY_MEDIUM
    return preset


# ---------------------------------------------------------------------------
# Sign (supplied by the customization tool)
# ---------------------------------------------------------------------------

class SignMaterial(_Frozen):
    id: str
    label: str
    description: str = ""
    fatigue_multiplier: float = 1.0  # weight: scales stamina drain
    durability: float = 1.0          # higher = slower rain degradation

    @model_validator(mode="after")
    def _check_ranges(self) -> "SignMaterial":
        if self.fatigue_multiplier <= 0:
            _warn(self, f"{self.id}: fatigue_multiplier should be positive")
        if self.durability <= 0:
            _warn(self, f"{self.id}: durability should be positive")
        return self


SIGN_MATERIALS: tuple[SignMaterial, ...] = (
    SignMaterial(
        id="cardboard", label="Cardboard",
        description="Light but fragile. Classic protest energy.",
        fatigue_multiplier=0.8, durability=0.6,
    ),
    SignMaterial(
        id="posterboard", label="Posterboard",
        description="Clean and balanced. The sensible choice.",
        fatigue_multiplier=1.0, durability=1.0,
    ),
    SignMaterial(
        id="foamboard", label="Foam Board",
        description="Heavy but tough. Built to last.",
        fatigue_multiplier=1.4, durability=1.6,
    ),
    SignMaterial(
        id="wood", label="Wood Plank",
        description="Very heavy, very durable. Serious business.",
        fatigue_multiplier=1.8, durability=2.0,
    ),
)


def get_sign_material(material_id: str) -> SignMaterial:
    for material in SIGN_MATERIALS:
        if material.id == material_id:
            return material
    logger.warning("[config] unknown sign material {!r}, using cardboard", material_id)
    return SIGN_MATERIALS[0]


class SignProfile(_Frozen):
    """What the customization tool hands to the session."""

    material: SignMaterial = SIGN_MATERIALS[0]
    message: str = "HONK!"
    quality_score: float = 0.4  # 0-1

    @model_validator(mode="after")
    def _check_ranges(self) -> "SignProfile":
        if not 0.0 <= self.quality_score <= 1.0:
            _warn(self, f"quality_score {self.quality_score} outside 0-1")
        return self


# ---------------------------------------------------------------------------
# Intersection geometry, lanes and light cycle
# ---------------------------------------------------------------------------

class SignalPhaseConfig(_Frozen):
    name: str
    green: tuple[Approach, ...] = ()
    duration: float  # seconds, before the light-cycle multiplier
    color: LightColor = LightColor.GREEN

    @model_validator(mode="after")
    def _check_ranges(self) -> "SignalPhaseConfig":
        if self.duration <= 0:
            _warn(self, f"phase {self.name!r} duration {self.duration} should be positive")
        return self


class LaneConfig(_Frozen):
    approach: Approach
    lane_index: int = 0  # 0 = right lane
    spawn: tuple[float, float]
    despawn: tuple[float, float]
    stop: tuple[float, float]  # stop line position

    @property
    def key(self) -> str:
        return f"{self.approach.value}-{self.lane_index}"


_WORLD_W = 1920.0
_WORLD_H = 1280.0
_CENTER_X = _WORLD_W / 2
_CENTER_Y = _WORLD_H / 2
_ROAD_WIDTH = 160.0
_LANE_WIDTH = 80.0
# Stop lines sit just outside the intersection box
_STOP_OFFSET = _ROAD_WIDTH / 2 + 30


def _default_light_cycle() -> tuple[SignalPhaseConfig, ...]:
    return (
        SignalPhaseConfig(
            name="north_south_go", green=(Approach.NORTH, Approach.SOUTH), duration=10.0,
        ),
        SignalPhaseConfig(name="all_stop", duration=2.5, color=LightColor.RED),
        SignalPhaseConfig(
            name="east_west_go", green=(Approach.EAST, Approach.WEST), duration=10.0,
        ),
        SignalPhaseConfig(name="all_stop", duration=2.5, color=LightColor.RED),
    )


def _default_lanes() -> tuple[LaneConfig, ...]:
    half_lane = _LANE_WIDTH / 2
    return (
        # Northbound: right side of the vertical road, driving up
        LaneConfig(
            approach=Approach.NORTH,
            spawn=(_CENTER_X + half_lane, _WORLD_H + 50),
            despawn=(_CENTER_X + half_lane, -50.0),
            stop=(_CENTER_X + half_lane, _CENTER_Y + _STOP_OFFSET),
        ),
        # Southbound: left side of the vertical road, driving down
        LaneConfig(
            approach=Approach.SOUTH,
            spawn=(_CENTER_X - half_lane, -50.0),
            despawn=(_CENTER_X - half_lane, _WORLD_H + 50),
            stop=(_CENTER_X - half_lane, _CENTER_Y - _STOP_OFFSET),
        ),
        # Eastbound: bottom of the horizontal road, driving right
        LaneConfig(
            approach=Approach.EAST,
            spawn=(-50.0, _CENTER_Y + half_lane),
            despawn=(_WORLD_W + 50, _CENTER_Y + half_lane),
            stop=(_CENTER_X - _STOP_OFFSET, _CENTER_Y + half_lane),
        ),
        # Westbound: top of the horizontal road, driving left
        LaneConfig(
            approach=Approach.WEST,
            spawn=(_WORLD_W + 50, _CENTER_Y - half_lane),
            despawn=(-50.0, _CENTER_Y - half_lane),
            stop=(_CENTER_X + _STOP_OFFSET, _CENTER_Y - half_lane),
        ),
    )


class IntersectionConfig(_Frozen):
    """Map data for one junction.  Same engine, different data per map."""

    world_width: float = _WORLD_W
    world_height: float = _WORLD_H
    center: tuple[float, float] = (_CENTER_X, _CENTER_Y)
    road_width: float = _ROAD_WIDTH
    lane_width: float = _LANE_WIDTH

    light_cycle: tuple[SignalPhaseConfig, ...] = Field(default_factory=_default_light_cycle)
    lanes: tuple[LaneConfig, ...] = Field(default_factory=_default_lanes)

    spawn_interval: tuple[float, float] = (1.2, 2.8)  # seconds
    car_speed: tuple[float, float] = (150.0, 250.0)   # world units per second
    off_phase_spawn_chance: float = 0.3  # spawn chance on red (cars already approaching)
    spawn_clearance: float = 20.0        # added to the blocking car's length
    gap_buffer: float = 12.0             # added to half the summed car lengths
    offscreen_margin: float = 200.0

    # Player stands at the bottom-right corner of the junction
    player_position: tuple[float, float] = (
        _CENTER_X + _ROAD_WIDTH / 2 + 60,
        _CENTER_Y + _ROAD_WIDTH / 2 + 60,
    )
    session_duration: float = 180.0

    @model_validator(mode="after")
    def _check_ranges(self) -> "IntersectionConfig":
        if not self.light_cycle:
            _warn(self, "light_cycle is empty; every approach will stay red")
        if not self.lanes:
            _warn(self, "no lanes configured; no traffic will spawn")
        lo, hi = self.spawn_interval
        if lo <= 0 or hi < lo:
            _warn(self, f"spawn_interval {self.spawn_interval} is not a positive range")
        lo, hi = self.car_speed
        if lo < 0 or hi < lo:
            _warn(self, f"car_speed {self.car_speed} is not a valid range")
        if not 0.0 <= self.off_phase_spawn_chance <= 1.0:
            _warn(self, f"off_phase_spawn_chance {self.off_phase_spawn_chance} outside 0-1")
        if self.session_duration <= 0:
            _warn(self, f"session_duration {self.session_duration} should be positive")
        return self


class ConeConfig(_Frozen):
    radius: float = 280.0
    min_radius: float = 10.0
    width_degrees: float = 60.0
    initial_direction: float = -math.pi / 2  # pointing up the screen

    @model_validator(mode="after")
    def _check_ranges(self) -> "ConeConfig":
        if self.radius <= self.min_radius:
            _warn(self, f"radius {self.radius} should exceed min_radius {self.min_radius}")
        if not 0 < self.width_degrees <= 360:
            _warn(self, f"width_degrees {self.width_degrees} outside (0, 360]")
        return self


# ---------------------------------------------------------------------------
# Meters
# ---------------------------------------------------------------------------

class ConfidenceConfig(_Frozen):
    """Standing meter.  Hitting zero ends the session early."""

    starting_confidence: float = 30.0
    minimum: float = 0.0
    maximum: float = 100.0
    # e.g. honk (+10) * 0.8 = +8 standing
    reaction_to_confidence_multiplier: float = 0.8
    no_drain_grace_period: float = 5.0   # seconds without a reaction before drain
    no_reaction_drain_rate: float = 1.5  # points per second
    # group_size * group_size_floor_bonus = floor passive drain never crosses
    group_size_floor_bonus: float = 3.0
    default_group_size: int = 3

    @model_validator(mode="after")
    def _check_ranges(self) -> "ConfidenceConfig":
        if self.no_reaction_drain_rate < 0:
            _warn(self, f"no_reaction_drain_rate {self.no_reaction_drain_rate} is negative")
        if self.no_drain_grace_period < 0:
            _warn(self, f"no_drain_grace_period {self.no_drain_grace_period} is negative")
        if not self.minimum <= self.starting_confidence <= self.maximum:
            _warn(self, f"starting_confidence {self.starting_confidence} outside meter range")
        if self.default_group_size < 0:
            _warn(self, f"default_group_size {self.default_group_size} is negative")
        return self


class FatigueConfig(_Frozen):
    """Stamina meter: 0 = fresh, 100 = exhausted."""

    base_drain_rate: float = 2.0
    max_fatigue: float = 100.0
    switch_arm_recovery: float = 25.0
    switch_arm_cooldown: float = 3.0
    enforce_switch_cooldown: bool = False
    rest_recovery_rate: float = 8.0
    rest_visibility_factor: float = 0.3  # chance a contained car is still caught

    raise_drain_rate: float = 6.0        # extra drain per second while raised
    raise_positive_bonus: float = 1.5
    deflect_score_value: int = 2
    deflect_confidence_bonus: float = 5.0
    hold_threshold: float = 0.2          # seconds; shorter press = tap
    tap_raise_duration: float = 0.8      # seconds the sign stays up after a tap

    cone_width_fresh: float = 60.0       # degrees at 0 fatigue
    cone_width_exhausted: float = 30.0   # degrees at 100 fatigue
    cone_shrink_threshold: float = 40.0

    @model_validator(mode="after")
    def _check_ranges(self) -> "FatigueConfig":
        for name in ("base_drain_rate", "raise_drain_rate", "rest_recovery_rate"):
            if getattr(self, name) < 0:
                _warn(self, f"{name}={getattr(self, name)} is negative")
        if not 0.0 <= self.rest_visibility_factor <= 1.0:
            _warn(self, f"rest_visibility_factor {self.rest_visibility_factor} outside 0-1")
        if self.cone_width_exhausted > self.cone_width_fresh:
            _warn(self, "cone_width_exhausted wider than cone_width_fresh")
        if not 0.0 <= self.cone_shrink_threshold < self.max_fatigue:
            _warn(self, f"cone_shrink_threshold {self.cone_shrink_threshold} outside meter range")
        return self


# ---------------------------------------------------------------------------
# Interruptions and weather
# ---------------------------------------------------------------------------

def _default_event_weights() -> dict[str, float]:
    return {"cop_check": 0.4, "weather": 0.35, "karma": 0.25}


class ScheduleConfig(_Frozen):
    first_event_min_time: float = 25.0
    first_event_max_time: float = 50.0
    min_event_spacing: float = 25.0
    max_events_per_session: int = 4
    base_trigger_chance_per_second: float = 0.04
    event_weights: dict[str, float] = Field(default_factory=_default_event_weights)
    guaranteed_events: tuple[str, ...] = ("cop_check",)
    urgency_threshold: float = 30.0  # seconds remaining
    cop_check_min_confidence: float = 20.0
    karma_min_time: float = 60.0

    @model_validator(mode="after")
    def _check_ranges(self) -> "ScheduleConfig":
        if self.min_event_spacing <= 0:
            _warn(self, "min_event_spacing should be positive")
        if self.max_events_per_session < 1:
            _warn(self, "max_events_per_session should be >= 1")
        if self.first_event_max_time < self.first_event_min_time:
            _warn(self, "first_event_max_time is earlier than first_event_min_time")
        if any(w < 0 for w in self.event_weights.values()):
            _warn(self, "event_weights contain a negative weight")
        return self


class WeatherConfig(_Frozen):
    rain_sign_drain_rate: float = 3.0
    max_sign_degradation: float = 0.8
    rain_negative_shift: float = 0.1
    npc_leave_chance_per_second: float = 0.08
    npc_leave_cooldown: float = 3.0
    min_npc_count: int = 1
    rain_duration_min: float = 20.0
    rain_duration_max: float = 40.0
    rain_confidence_drain: float = 0.5

    @model_validator(mode="after")
    def _check_ranges(self) -> "WeatherConfig":
        if self.rain_duration_max < self.rain_duration_min:
            _warn(self, "rain_duration_max is shorter than rain_duration_min")
        if not 0.0 <= self.max_sign_degradation <= 1.0:
            _warn(self, f"max_sign_degradation {self.max_sign_degradation} outside 0-1")
        if self.rain_sign_drain_rate < 0:
            _warn(self, "rain_sign_drain_rate is negative")
        return self


# ---------------------------------------------------------------------------
# Session bundle
# ---------------------------------------------------------------------------

class SessionTuning(_Frozen):
    """Everything a session needs, validated once at startup."""

    difficulty: DifficultyConfig = DIFFICULTY_MEDIUM
    sign: SignProfile = Field(default_factory=SignProfile)
    intersection: IntersectionConfig = Field(default_factory=IntersectionConfig)
    cone: ConeConfig = Field(default_factory=ConeConfig)
    confidence: ConfidenceConfig = Field(default_factory=ConfidenceConfig)
    fatigue: FatigueConfig = Field(default_factory=FatigueConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    weather: WeatherConfig = Field(default_factory=WeatherConfig)


def load_tuning(path: str | Path) -> SessionTuning:
    """Load a ``SessionTuning`` from a JSON file.

    Missing sections fall back to defaults.  A ``"difficulty"`` value may be
    a preset name (``"hard"``) instead of a full table.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)

    difficulty = raw.get("difficulty")
    if isinstance(difficulty, str):
        raw["difficulty"] = get_difficulty(difficulty).model_dump()
    material = raw.get("sign", {}).get("material")
    if isinstance(material, str):
        raw["sign"]["material"] = get_sign_material(material).model_dump()

    tuning = SessionTuning.model_validate(raw)
    logger.info("[config] loaded tuning from {}", path)
    return tuning
