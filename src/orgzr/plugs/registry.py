"""The plug registry: the fixed, ordered catalog of every plug in a build.

The set of plugs is known when the program is written, not discovered
at runtime.  A registry is built once from an ordered iterable of plug
instances, validated eagerly, and is read-only afterwards: there is no
``register``/``deregister`` after construction.  Any structural problem
(duplicate id, duplicate command name, malformed parameter declaration)
is a configuration error raised at build time, never at dispatch time.

Example
-------
Build the default catalog::

    from orgzr.plugs.registry import build_registry

    registry = build_registry()
    registry.ids()          # ('mealz', 'taskz', 'budgetz')
    registry.get("mealz")   # the MealzPlug instance

Build a custom catalog, e.g. in tests::

    registry = build_registry([MyPlug(), OtherPlug()])
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from orgzr.errors import ConfigError
from orgzr.plugs.contract import ParamType, Plug, PlugDescriptor
from orgzr.storage.substrate import NAMESPACE_ID_PATTERN

logger = logging.getLogger(__name__)


class RegistryError(ConfigError):
    """Base class for registry construction errors."""


class DuplicatePlugError(RegistryError):
    """Raised when two plugs in one registry declare the same id."""

    def __init__(self, plug_id: str) -> None:
        self.plug_id = plug_id
        super().__init__(
            f"Plug id {plug_id!r} is declared more than once. "
            "Every plug in a registry must have a unique id."
        )


class InvalidPlugError(RegistryError):
    """Raised when a plug or its descriptor breaks the plug contract."""

    def __init__(self, plug_id: str | None, reason: str) -> None:
        self.plug_id = plug_id
        self.reason = reason
        where = f"Plug {plug_id!r}" if plug_id is not None else "Plug"
        super().__init__(f"{where} is invalid: {reason}")


class PlugNotFoundError(KeyError):
    """Raised by :meth:`PlugRegistry.get` for an unknown plug id."""

    def __init__(self, plug_id: str, available: tuple[str, ...]) -> None:
        self.plug_id = plug_id
        self.available = available
        super().__init__(
            f"Plug {plug_id!r} is not registered. "
            f"Available plugs: {', '.join(available) or '(none)'}"
        )


def _check_descriptor(plug: object) -> PlugDescriptor:
    """Validate ``plug`` against the contract and return its descriptor."""
    if not isinstance(plug, Plug):
        raise InvalidPlugError(None, f"{plug!r} does not implement the Plug contract")
    descriptor = plug.descriptor()
    if not isinstance(descriptor, PlugDescriptor):
        raise InvalidPlugError(None, f"{type(plug).__name__}.descriptor() must return a PlugDescriptor")
    plug_id = descriptor.id
    if not isinstance(plug_id, str) or not NAMESPACE_ID_PATTERN.match(plug_id):
        raise InvalidPlugError(
            None, f"id {plug_id!r} must match {NAMESPACE_ID_PATTERN.pattern}"
        )

    seen_commands: set[str] = set()
    for command in descriptor.commands:
        if command.name in seen_commands:
            raise InvalidPlugError(plug_id, f"command {command.name!r} is declared more than once")
        seen_commands.add(command.name)

        seen_params: set[str] = set()
        for param in command.params:
            where = f"command {command.name!r}, parameter {param.name!r}"
            if param.name in seen_params:
                raise InvalidPlugError(plug_id, f"{where} is declared more than once")
            seen_params.add(param.name)
            if param.required and param.default is not None:
                raise InvalidPlugError(plug_id, f"{where} is required but declares a default")
            if param.choices and param.type is not ParamType.STRING:
                raise InvalidPlugError(plug_id, f"{where} declares choices but is not a string")
            if not param.required and param.default is not None and not param.accepts(param.default):
                raise InvalidPlugError(
                    plug_id, f"{where} default {param.default!r} is not a valid {param.describe_type()}"
                )
    return descriptor


class PlugRegistry:
    """Immutable, ordered catalog of plug instances.

    Parameters
    ----------
    plugs:
        Plug instances in the order they should be initialized and shut
        down.

    Raises
    ------
    DuplicatePlugError
        If two plugs share an id.
    InvalidPlugError
        If a plug or its descriptor is malformed.
    """

    def __init__(self, plugs: Iterable[Plug]) -> None:
        ordered: list[Plug] = []
        by_id: dict[str, Plug] = {}
        descriptors: dict[str, PlugDescriptor] = {}
        for plug in plugs:
            descriptor = _check_descriptor(plug)
            if descriptor.id in by_id:
                raise DuplicatePlugError(descriptor.id)
            by_id[descriptor.id] = plug
            descriptors[descriptor.id] = descriptor
            ordered.append(plug)
            logger.debug("Registered plug %r (%s)", descriptor.id, type(plug).__qualname__)
        self._plugs: tuple[Plug, ...] = tuple(ordered)
        self._by_id = by_id
        self._descriptors = descriptors

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, plug_id: str) -> Plug:
        """Return the plug registered under ``plug_id``.

        Raises
        ------
        PlugNotFoundError
            If no such plug exists.
        """
        try:
            return self._by_id[plug_id]
        except KeyError:
            raise PlugNotFoundError(plug_id, self.ids()) from None

    def find(self, plug_id: str) -> Plug | None:
        """Return the plug registered under ``plug_id``, or ``None``."""
        return self._by_id.get(plug_id)

    def descriptor(self, plug_id: str) -> PlugDescriptor:
        """Return the descriptor captured for ``plug_id`` at build time."""
        try:
            return self._descriptors[plug_id]
        except KeyError:
            raise PlugNotFoundError(plug_id, self.ids()) from None

    def descriptors(self) -> tuple[PlugDescriptor, ...]:
        """Return every descriptor, in registry order."""
        return tuple(self._descriptors.values())

    def ids(self) -> tuple[str, ...]:
        """Return every plug id, in registry order."""
        return tuple(self._descriptors)

    def __iter__(self) -> Iterator[Plug]:
        return iter(self._plugs)

    def __contains__(self, plug_id: object) -> bool:
        return plug_id in self._by_id

    def __len__(self) -> int:
        return len(self._plugs)

    def __repr__(self) -> str:
        return f"PlugRegistry(plugs={list(self.ids())})"


def builtin_plugs() -> list[Plug]:
    """Return fresh instances of the plugs shipped with orgzr, in order."""
    from orgzr.plugs.builtin import BUILTIN_PLUG_TYPES

    return [plug_type() for plug_type in BUILTIN_PLUG_TYPES]


def build_registry(plugs: Iterable[Plug] | None = None) -> PlugRegistry:
    """Build a registry from ``plugs``, or from the built-in plugs.

    Construction is deterministic: the same plugs in the same order
    always produce the same catalog.
    """
    registry = PlugRegistry(builtin_plugs() if plugs is None else plugs)
    logger.info("Built plug registry: %s", ", ".join(registry.ids()) or "(empty)")
    return registry
