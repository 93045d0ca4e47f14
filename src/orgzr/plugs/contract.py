"""The plug contract: the shape every orgzr module must satisfy.

A *plug* is an independently developed functional module (a task list,
a meal planner, a budget ledger...).  The core never knows what a plug
does; it only knows the plug's static ``PlugDescriptor`` and the four
lifecycle calls defined by :class:`Plug`:

``descriptor()``
    Pure metadata, callable before initialization.
``init(namespace)``
    Called exactly once per engine lifetime with an exclusive handle to
    the plug's persisted namespace.  Returns the plug's live state.
``execute(state, command, arguments)``
    Called by the dispatcher after the arguments have been validated
    against the matching ``CommandSpec``.
``shutdown(state)``
    Called exactly once, in registry order, when the engine closes.
    Must durably flush anything buffered.

Plugs report failures by raising the exception types defined here
(``InitError``, ``ExecError`` and its subclasses, ``FlushError``).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from orgzr.errors import OrgzrError

if TYPE_CHECKING:
    from orgzr.storage.substrate import NamespaceHandle


# ---------------------------------------------------------------------------
# Parameter and result typing
# ---------------------------------------------------------------------------


class ParamType(Enum):
    """Semantic type of a command parameter."""

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    STRING_LIST = "string_list"
    MAPPING = "mapping"

    def accepts(self, value: Any) -> bool:
        """Return True if ``value`` is a valid instance of this type.

        ``bool`` is a subclass of ``int`` in Python but is never accepted
        as an INTEGER or NUMBER.
        """
        if self is ParamType.STRING:
            return isinstance(value, str)
        if self is ParamType.INTEGER:
            return isinstance(value, int) and not isinstance(value, bool)
        if self is ParamType.NUMBER:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        if self is ParamType.BOOLEAN:
            return isinstance(value, bool)
        if self is ParamType.STRING_LIST:
            return (
                isinstance(value, (list, tuple))
                and all(isinstance(item, str) for item in value)
            )
        return isinstance(value, Mapping)


class ResultShape(Enum):
    """Declared shape of a command's success payload."""

    MAPPING = "mapping"
    SEQUENCE = "sequence"
    EMPTY = "empty"

    def matches(self, payload: Any) -> bool:
        """Return True if ``payload`` has this shape."""
        if self is ResultShape.MAPPING:
            return isinstance(payload, Mapping)
        if self is ResultShape.SEQUENCE:
            return isinstance(payload, Sequence) and not isinstance(payload, (str, bytes))
        return payload is None or payload == {} or payload == []


@dataclass(frozen=True)
class ParamSpec:
    """One declared parameter of a command.

    Parameters
    ----------
    name:
        Argument key clients use in the request mapping.
    type:
        The semantic type the value must satisfy.
    required:
        When ``True`` the argument must be supplied by the client.
    default:
        Value applied by the dispatcher when an optional argument is
        omitted.  Mutable defaults are copied per request.
    choices:
        Optional closed set of allowed values for STRING parameters.
    description:
        Human-readable help text, shown by clients.
    """

    name: str
    type: ParamType
    required: bool = True
    default: Any = field(default=None, hash=False, compare=False)
    choices: tuple[str, ...] = ()
    description: str = ""

    def accepts(self, value: Any) -> bool:
        """Return True if ``value`` satisfies this parameter's constraints."""
        if value is None and not self.required and self.default is None:
            return True
        if not self.type.accepts(value):
            return False
        if self.choices and value not in self.choices:
            return False
        return True

    def describe_type(self) -> str:
        """Return a short human-readable type label, e.g. ``"string{any,all}"``."""
        label = self.type.value
        if self.choices:
            label += "{" + ",".join(self.choices) + "}"
        return label


@dataclass(frozen=True)
class CommandSpec:
    """Declared schema of one plug command.

    Parameters
    ----------
    name:
        Command name, unique within its plug.
    params:
        Ordered parameter declarations.
    result:
        Declared shape of the success payload.
    description:
        Human-readable summary.
    """

    name: str
    params: tuple[ParamSpec, ...] = ()
    result: ResultShape = ResultShape.MAPPING
    description: str = ""

    def param(self, name: str) -> ParamSpec | None:
        """Return the parameter called ``name``, or ``None``."""
        for spec in self.params:
            if spec.name == name:
                return spec
        return None

    @property
    def param_names(self) -> tuple[str, ...]:
        """Return the declared parameter names in declaration order."""
        return tuple(p.name for p in self.params)


@dataclass(frozen=True)
class PlugDescriptor:
    """Static metadata describing a plug.

    Created once when the registry is built and immutable for the
    lifetime of the process.

    Parameters
    ----------
    id:
        Stable unique identifier; also the plug's namespace key.
    name:
        Human-readable display name.
    commands:
        Ordered command declarations.
    description:
        One-sentence summary of the plug's purpose.
    version:
        Version string of the plug's command schema.
    """

    id: str
    name: str
    commands: tuple[CommandSpec, ...] = ()
    description: str = ""
    version: str = "1.0"

    def command(self, name: str) -> CommandSpec | None:
        """Return the command called ``name``, or ``None`` if undeclared."""
        for spec in self.commands:
            if spec.name == name:
                return spec
        return None

    @property
    def command_names(self) -> tuple[str, ...]:
        """Return the declared command names in declaration order."""
        return tuple(c.name for c in self.commands)


@dataclass(frozen=True)
class Response:
    """Structured success result of one dispatched command.

    Parameters
    ----------
    payload:
        A mapping or ordered sequence of plain values (or ``None`` for
        commands declared with ``ResultShape.EMPTY``).
    warnings:
        Non-fatal notes produced while executing the command.
    """

    payload: Any = None
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-compatible representation of this response."""
        return {"ok": True, "payload": self.payload, "warnings": list(self.warnings)}


# ---------------------------------------------------------------------------
# Plug-raised errors
# ---------------------------------------------------------------------------


class InitError(OrgzrError):
    """Raised by ``Plug.init`` when its namespace is corrupt beyond repair."""


class FlushError(OrgzrError):
    """Raised by ``Plug.shutdown`` when buffered state cannot be made durable."""


class ExecError(OrgzrError):
    """Raised by ``Plug.execute`` for a failed command.

    Execution errors are surfaced verbatim to the client and never stop
    the engine.

    Parameters
    ----------
    message:
        Human-readable description of the failure.
    details:
        Optional structured data for scripting clients.
    """

    code = "exec_error"

    def __init__(self, message: str, details: Mapping[str, Any] | None = None) -> None:
        self.message = message
        self.details: dict[str, Any] = dict(details or {})
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-compatible representation of this error."""
        return {"ok": False, "code": self.code, "message": self.message, "details": self.details}


class NotFoundError(ExecError):
    """Raised when a command references a record that does not exist."""

    code = "not_found"


class ConstraintError(ExecError):
    """Raised when a command's arguments violate a domain rule."""

    code = "constraint"


class PlugCrashedError(ExecError):
    """Wraps an unexpected exception that escaped ``Plug.execute``."""

    code = "plug_crashed"


# ---------------------------------------------------------------------------
# The contract
# ---------------------------------------------------------------------------


class Plug(ABC):
    """Capability interface every orgzr plug implements.

    Subclasses are instantiated once, at registry build time.  All live
    state belongs in the object returned from :meth:`init`, not on the
    plug instance itself, so that one plug object can serve several
    independent engines (as tests do).
    """

    @abstractmethod
    def descriptor(self) -> PlugDescriptor:
        """Return this plug's static descriptor.

        Must be pure: repeated calls return equal values and have no
        side effects.
        """

    @abstractmethod
    def init(self, namespace: "NamespaceHandle") -> Any:
        """Load or create this plug's state from its namespace.

        Raises
        ------
        InitError
            If the namespace holds data that cannot be repaired.
        """

    @abstractmethod
    def execute(self, state: Any, command: str, arguments: dict[str, Any]) -> Response:
        """Run ``command`` with already-validated ``arguments``.

        Raises
        ------
        ExecError
            For any domain failure.
        """

    @abstractmethod
    def shutdown(self, state: Any) -> None:
        """Durably flush ``state`` and release it.

        Raises
        ------
        FlushError
            If buffered data could not be persisted.
        """

    @property
    def id(self) -> str:
        """Shortcut for ``self.descriptor().id``."""
        return self.descriptor().id

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"
