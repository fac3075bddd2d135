"""Internal messaging for the simulation core."""
from .event_bus import EventBus
