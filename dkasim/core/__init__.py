"""
Core package for the DKA simulator backend.
"""

from .config import Config, SimulationSettings
from .event_bus import EventBus, EventPublisher, get_event_bus
from .exceptions import DKASimError, NotFoundError, SessionNotFoundError, ConfigNotFoundError
from .random_source import RandomSource, SeededRandom
from .scheduler import TickScheduler, AsyncioTickScheduler
from .state_manager import SimulationRepository, StateManager, get_state_manager

__all__ = [
    "Config",
    "SimulationSettings",
    "EventBus",
    "EventPublisher",
    "get_event_bus",
    "DKASimError",
    "NotFoundError",
    "SessionNotFoundError",
    "ConfigNotFoundError",
    "RandomSource",
    "SeededRandom",
    "TickScheduler",
    "AsyncioTickScheduler",
    "SimulationRepository",
    "StateManager",
    "get_state_manager"
]
