"""Configuration management using Pydantic settings."""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from crosswalk.simulation.scoring import score_message_quality
from crosswalk.simulation.tuning import (
    SessionTuning,
    SignProfile,
    get_difficulty,
    get_sign_material,
    load_tuning,
)


class Settings(BaseSettings):
    """Session settings loaded from ``CROSSWALK_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CROSSWALK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Session
    difficulty: str = "medium"           # easy | medium | hard
    session_duration: float = 180.0      # seconds
    tick_dt: float = 1 / 60              # seconds per headless tick

    # Sign (normally supplied by the customization tool)
    sign_material: str = "cardboard"
    sign_message: str = "HONK!"
    sign_quality: Optional[float] = None  # None = score the message

    # Full tuning override (JSON); difficulty/sign fields above still apply
    tuning_path: Optional[Path] = None

    # Logging
    log_level: str = "INFO"

    def build_tuning(self) -> SessionTuning:
        """Assemble the session tuning these settings describe."""
        base = load_tuning(self.tuning_path) if self.tuning_path else SessionTuning()
        quality = self.sign_quality
        if quality is None:
            quality = score_message_quality(self.sign_message)
        sign = SignProfile(
            material=get_sign_material(self.sign_material),
            message=self.sign_message,
            quality_score=quality,
        )
        intersection = base.intersection.model_copy(
            update={"session_duration": self.session_duration},
        )
        return base.model_copy(update={
            "difficulty": get_difficulty(self.difficulty),
            "sign": sign,
            "intersection": intersection,
        })
