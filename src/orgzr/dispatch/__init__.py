"""Command dispatch: request validation and routing to plugs."""
from __future__ import annotations

from orgzr.dispatch.dispatcher import Dispatcher, Request
from orgzr.dispatch.errors import (
    ArgumentError,
    DispatchCancelled,
    DispatchError,
    EngineNotReady,
    MissingArgument,
    TypeMismatch,
    UnexpectedArgument,
    UnknownCommand,
    UnknownPlug,
)
from orgzr.dispatch.validation import validate_arguments

__all__ = [
    "ArgumentError",
    "DispatchCancelled",
    "DispatchError",
    "Dispatcher",
    "EngineNotReady",
    "MissingArgument",
    "Request",
    "TypeMismatch",
    "UnexpectedArgument",
    "UnknownCommand",
    "UnknownPlug",
    "validate_arguments",
]
