"""Run a headless session and report the result.

Usage:
    python -m crosswalk
    python -m crosswalk --difficulty hard --seed 7 --auto-raise
    python -m crosswalk --message "HONK FOR DEMOCRACY!" --material wood --json

Defaults come from ``CROSSWALK_*`` environment variables (see
``crosswalk.config.Settings``); command-line flags override them.

The autopilot aims at the nearest un-reached car in range, answers any
police check with the chosen option, rests when exhausted, and switches
arms when tired.  With ``--auto-raise`` it also taps the sign up whenever
a car is inside the cone.
"""

from __future__ import annotations

import argparse
import json
import math
import random
import sys

from loguru import logger

from crosswalk.config import Settings
from crosswalk.simulation.engine import SessionEngine
from crosswalk.simulation.interruptions import CopCheck, SchedulerPhase
from crosswalk.simulation.scoring import SessionSummary

# Autopilot stamina thresholds (fatigue, 0-100)
_REST_AT = 85.0
_RESUME_AT = 30.0
_SWITCH_AT = 60.0


class Autopilot:
    """Scripted player used by the headless runner."""

    def __init__(self, auto_raise: bool = False, cop_answer: int = 0) -> None:
        self.auto_raise = auto_raise
        self.cop_answer = cop_answer

    def __call__(self, engine: SessionEngine) -> None:
        self._aim(engine)
        self._manage_stamina(engine)
        self._answer_cop(engine)

    def _aim(self, engine: SessionEngine) -> None:
        cone = engine.cone
        ox, oy = cone.origin
        best = None
        best_dist = math.inf
        for car in engine.traffic.cars():
            if car.reached:
                continue
            dist = math.hypot(car.x - ox, car.y - oy)
            if cone.min_radius <= dist <= cone.radius and dist < best_dist:
                best, best_dist = car, dist
        if best is None:
            return
        engine.aim_at(best.x, best.y)
        if self.auto_raise and not engine.state.raised and cone.contains(best.x, best.y):
            if engine.press_raise():
                engine.release_raise()

    def _manage_stamina(self, engine: SessionEngine) -> None:
        stamina = engine.state.stamina
        if engine.state.resting:
            if stamina <= _RESUME_AT:
                engine.toggle_rest()
        elif stamina >= _REST_AT:
            engine.toggle_rest()
        elif stamina >= _SWITCH_AT and engine.stamina.can_switch_arm():
            engine.switch_arm()

    def _answer_cop(self, engine: SessionEngine) -> None:
        event = engine.scheduler.active_event
        if isinstance(event, CopCheck) and event.phase is SchedulerPhase.TRIGGERED:
            engine.choose_option(self.cop_answer)


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> <level>{level: <7}</level> {message}",
    )


def format_summary(summary: SessionSummary) -> str:
    final = summary.final
    lines = [
        f"Grade:        {summary.grade}  (score {final.score})",
        f"Ended:        {final.termination_reason.value} at {summary.time_survived}",
        f"Standing:     {final.standing:.1f}",
        f"Stamina:      {final.stamina:.1f}",
        f"Cars reached: {final.cars_reached}  missed: {final.cars_missed}"
        f"  ({summary.reach_rate:.0%})",
        f"Sign:         {summary.sign_stars} {summary.sign_rating}"
        f"  degradation {final.sign_degradation:.2f}",
        f"Group size:   {final.group_size}",
        f"Events:       {', '.join(final.events_triggered) or 'none'}",
        "Reactions:",
    ]
    for reaction_id, count in final.tally.items():
        if count:
            lines.append(f"  {reaction_id:<11s} {count}")
    return "\n".join(lines)


def build_parser(defaults: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crosswalk",
        description="Run a headless crosswalk session",
    )
    parser.add_argument("--difficulty", default=defaults.difficulty,
                        choices=["easy", "medium", "hard"])
    parser.add_argument("--duration", type=float, default=defaults.session_duration,
                        help="Session length in seconds")
    parser.add_argument("--dt", type=float, default=defaults.tick_dt,
                        help="Seconds per tick")
    parser.add_argument("--material", default=defaults.sign_material,
                        help="cardboard | posterboard | foamboard | wood")
    parser.add_argument("--message", default=defaults.sign_message,
                        help="Sign message (scored for quality unless --quality is set)")
    parser.add_argument("--quality", type=float, default=defaults.sign_quality,
                        help="Message quality 0-1")
    parser.add_argument("--tuning", default=defaults.tuning_path,
                        help="JSON tuning file")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--auto-raise", action="store_true",
                        help="Tap the sign up whenever a car is in the cone")
    parser.add_argument("--cop-answer", type=int, default=0,
                        help="Option index the autopilot picks in a police check")
    parser.add_argument("--json", action="store_true", help="Print the summary as JSON")
    parser.add_argument("--log-level", default=defaults.log_level)
    return parser


def main(argv: list[str] | None = None) -> int:
    defaults = Settings()
    args = build_parser(defaults).parse_args(argv)
    configure_logging(args.log_level)

    settings = defaults.model_copy(update={
        "difficulty": args.difficulty,
        "session_duration": args.duration,
        "sign_material": args.material,
        "sign_message": args.message,
        "sign_quality": args.quality,
        "tuning_path": args.tuning,
    })
    tuning = settings.build_tuning()
    rng = random.Random(args.seed)
    engine = SessionEngine(tuning, rng=rng)

    pilot = Autopilot(auto_raise=args.auto_raise, cop_answer=args.cop_answer)
    summary = engine.run(dt=args.dt, before_tick=pilot)
    engine.destroy()

    if args.json:
        print(json.dumps(summary.model_dump(mode="json"), indent=2, ensure_ascii=False))
    else:
        print(format_summary(summary))
    return 0


if __name__ == "__main__":
    sys.exit(main())
