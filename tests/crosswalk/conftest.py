"""Shared fixtures for crosswalk tests."""

from __future__ import annotations

import random

import pytest
from loguru import logger

from crosswalk.comms.event_bus import EventBus
from crosswalk.simulation.reactions import REACTION_IDS
from crosswalk.simulation.state import SessionState


class Recorder:
    """Bus listener that keeps every (event_type, data) pair it sees."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[tuple[str, dict]] = []
        bus.add_listener(None, self)

    def __call__(self, event_type: str, data: dict) -> None:
        self.events.append((event_type, data))

    def of(self, event_type: str) -> list[dict]:
        return [d for t, d in self.events if t == event_type]

    def types(self) -> list[str]:
        return [t for t, _ in self.events]


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus: EventBus) -> Recorder:
    return Recorder(bus)


@pytest.fixture
def state(bus: EventBus) -> SessionState:
    return SessionState(bus, duration=180.0, starting_standing=30.0,
                        group_size=3, reaction_ids=REACTION_IDS)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def log_messages():
    """Capture loguru output as a list of formatted strings."""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(str(m)), level="DEBUG",
                            format="{level} {message}")
    yield messages
    logger.remove(handler_id)
