"""Dispatch error taxonomy.

Every error in this module is raised *before* plug code runs: the
request is rejected at the dispatcher boundary and the engine stays
``Ready``.  Errors carry a stable ``code`` and a ``to_dict`` method so
scripting clients can branch on them without parsing messages.

======================  ========================  =======================
Class                   ``code``                  Raised when
======================  ========================  =======================
``UnknownPlug``         ``unknown_plug``          plug id not registered
``UnknownCommand``      ``unknown_command``       command not declared
``UnexpectedArgument``  ``unexpected_argument``   undeclared argument key
``MissingArgument``     ``missing_argument``      required argument absent
``TypeMismatch``        ``type_mismatch``         value has the wrong type
``EngineNotReady``      ``engine_not_ready``      engine is not ``Ready``
``DispatchCancelled``   ``cancelled``             caller gave up waiting
======================  ========================  =======================
"""
from __future__ import annotations

from typing import Any

from orgzr.errors import OrgzrError


class DispatchError(OrgzrError):
    """Base class for requests rejected by the dispatcher."""

    code = "dispatch_error"

    def __init__(self, message: str, **details: Any) -> None:
        self.message = message
        self.details: dict[str, Any] = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-compatible representation of this error."""
        return {"ok": False, "code": self.code, "message": self.message, "details": self.details}


class UnknownPlug(DispatchError):
    """The request names a plug that is not in the registry."""

    code = "unknown_plug"

    def __init__(self, plug_id: str, available: tuple[str, ...] = ()) -> None:
        self.plug_id = plug_id
        super().__init__(
            f"Unknown plug {plug_id!r}. Available plugs: {', '.join(available) or '(none)'}",
            plug_id=plug_id,
            available=list(available),
        )


class UnknownCommand(DispatchError):
    """The plug exists but does not declare the requested command."""

    code = "unknown_command"

    def __init__(self, plug_id: str, command: str, available: tuple[str, ...] = ()) -> None:
        self.plug_id = plug_id
        self.command = command
        super().__init__(
            f"Plug {plug_id!r} has no command {command!r}. "
            f"Available commands: {', '.join(available) or '(none)'}",
            plug_id=plug_id,
            command=command,
            available=list(available),
        )


class ArgumentError(DispatchError):
    """Base class for errors about one argument of a valid command."""

    def __init__(self, message: str, plug_id: str, command: str, argument: str, **details: Any) -> None:
        self.plug_id = plug_id
        self.command = command
        self.argument = argument
        super().__init__(message, plug_id=plug_id, command=command, argument=argument, **details)


class MissingArgument(ArgumentError):
    """A required argument was not supplied."""

    code = "missing_argument"

    def __init__(self, plug_id: str, command: str, argument: str) -> None:
        super().__init__(
            f"{plug_id} {command}: missing required argument {argument!r}",
            plug_id,
            command,
            argument,
        )


class UnexpectedArgument(ArgumentError):
    """An argument was supplied that the command does not declare."""

    code = "unexpected_argument"

    def __init__(self, plug_id: str, command: str, argument: str, accepted: tuple[str, ...] = ()) -> None:
        super().__init__(
            f"{plug_id} {command}: unexpected argument {argument!r}. "
            f"Accepted arguments: {', '.join(accepted) or '(none)'}",
            plug_id,
            command,
            argument,
            accepted=list(accepted),
        )


class TypeMismatch(ArgumentError):
    """An argument value does not satisfy its declared type."""

    code = "type_mismatch"

    def __init__(self, plug_id: str, command: str, argument: str, expected: str, value: Any) -> None:
        self.expected = expected
        super().__init__(
            f"{plug_id} {command}: argument {argument!r} expects {expected}, "
            f"got {type(value).__name__} {value!r}",
            plug_id,
            command,
            argument,
            expected=expected,
            found=type(value).__name__,
        )


class EngineNotReady(DispatchError):
    """The engine is not in the ``Ready`` state."""

    code = "engine_not_ready"

    def __init__(self, state: str) -> None:
        self.state = state
        super().__init__(f"Engine is not ready (state: {state})", state=state)


class DispatchCancelled(DispatchError):
    """The caller abandoned the request before the plug started executing."""

    code = "cancelled"

    def __init__(self, plug_id: str, command: str) -> None:
        super().__init__(
            f"{plug_id} {command}: cancelled before execution", plug_id=plug_id, command=command
        )
