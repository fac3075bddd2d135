"""Simulation core: signals, traffic, cone, reactions, meters, interruptions."""

from .cone import InterceptionCone
from .engine import SessionEngine
from .interruptions import InterruptionScheduler, SchedulerPhase
from .reactions import REACTION_TYPES, ReactionResolver, ReactionType, Sentiment
from .scoring import SessionSummary, score_grade, score_message_quality
from .signals import SignalController
from .stamina import StaminaSystem
from .standing import StandingSystem
from .state import Arm, SessionState, StateSnapshot, TerminationReason, WeatherMode
from .traffic import Car, CarPool, TrafficManager
from .tuning import (
    Approach,
    DifficultyConfig,
    SessionTuning,
    SignProfile,
    get_difficulty,
    get_sign_material,
    load_tuning,
)
from .weather import WeatherSystem
