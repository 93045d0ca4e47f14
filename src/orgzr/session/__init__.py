"""Session management: engine startup, lifetime, and shutdown."""
from __future__ import annotations

from orgzr.session.context import (
    EngineContext,
    EngineStartupError,
    EngineState,
    ShutdownFailure,
    ShutdownReport,
    create_engine,
    dispatch,
    shutdown,
    start,
)

__all__ = [
    "EngineContext",
    "EngineStartupError",
    "EngineState",
    "ShutdownFailure",
    "ShutdownReport",
    "create_engine",
    "dispatch",
    "shutdown",
    "start",
]
