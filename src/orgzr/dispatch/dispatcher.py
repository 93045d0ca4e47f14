"""The command dispatcher: the single entry point for client requests.

A request is the triple ``(plug_id, command, arguments)``.  Dispatching
it follows a fixed sequence:

1. resolve the plug (``UnknownPlug``);
2. resolve the command in the plug's descriptor (``UnknownCommand``);
3. validate and default the arguments (see :mod:`orgzr.dispatch.validation`);
4. call ``execute`` on exactly that plug and return its ``Response``.

Steps 1-3 never run plug code or touch storage.  Step 4 is serialized
per plug: at most one ``execute`` call per plug is in flight at any
time, while calls to different plugs may run on different threads.

Errors raised by the plug (``ExecError`` and storage errors) propagate
unchanged.  Any other exception escaping ``execute`` is logged and
re-raised as ``PlugCrashedError`` so that a plug bug never takes the
engine down.

Usage
-----
::

    dispatcher = Dispatcher(registry, states, ready_check)
    response = dispatcher.dispatch("taskz", "add", {"title": "Buy milk"})
    response.payload["id"]
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from orgzr.dispatch.errors import DispatchCancelled, UnknownCommand, UnknownPlug
from orgzr.dispatch.validation import validate_arguments
from orgzr.plugs.contract import ExecError, PlugCrashedError, Response
from orgzr.plugs.registry import PlugRegistry
from orgzr.storage.substrate import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Request:
    """A client-issued command.

    Parameters
    ----------
    plug_id:
        Target plug.
    command:
        Command name declared by that plug.
    arguments:
        Parameter name to value.
    """

    plug_id: str
    command: str
    arguments: Mapping[str, Any] = field(default_factory=dict)


def _no_check() -> None:
    return None


class Dispatcher:
    """Routes validated requests to plugs.

    Parameters
    ----------
    registry:
        The plug catalog.
    states:
        Live plug state keyed by plug id, as returned by each plug's
        ``init``.
    ready_check:
        Called before every dispatch and again right before ``execute``;
        raises ``EngineNotReady`` when the owning engine is not ready.
    """

    def __init__(
        self,
        registry: PlugRegistry,
        states: Mapping[str, Any],
        ready_check: Callable[[], None] = _no_check,
    ) -> None:
        self._registry = registry
        self._states = states
        self._ready_check = ready_check
        self._locks: dict[str, threading.Lock] = {plug_id: threading.Lock() for plug_id in registry.ids()}

    def plug_lock(self, plug_id: str) -> threading.Lock:
        """Return the lock serializing calls into ``plug_id``.

        The session manager holds it while shutting a plug down so that
        shutdown never overlaps an in-flight ``execute``.
        """
        return self._locks[plug_id]

    def dispatch(self, plug_id: str, command: str, arguments: Mapping[str, Any] | None = None) -> Response:
        """Validate and execute one request.

        Raises
        ------
        DispatchError
            If the request is rejected before reaching the plug.
        ExecError
            If the plug reports a failure.
        StorageError
            If the plug could not persist its namespace.
        """
        return self._dispatch(plug_id, command, arguments, None)

    def dispatch_request(self, request: Request) -> Response:
        """Dispatch a :class:`Request` object."""
        return self.dispatch(request.plug_id, request.command, request.arguments)

    async def dispatch_async(
        self, plug_id: str, command: str, arguments: Mapping[str, Any] | None = None
    ) -> Response:
        """Dispatch on a worker thread without blocking the event loop.

        Cancelling the awaiting task before the plug starts executing
        abandons the request; once ``execute`` has started it runs to
        completion.
        """
        cancelled = threading.Event()
        try:
            return await asyncio.to_thread(self._dispatch, plug_id, command, arguments, cancelled)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    def _dispatch(
        self,
        plug_id: str,
        command: str,
        arguments: Mapping[str, Any] | None,
        cancelled: threading.Event | None,
    ) -> Response:
        self._ready_check()

        plug = self._registry.find(plug_id)
        if plug is None:
            raise UnknownPlug(plug_id, self._registry.ids())
        descriptor = self._registry.descriptor(plug_id)
        spec = descriptor.command(command)
        if spec is None:
            raise UnknownCommand(plug_id, command, descriptor.command_names)
        resolved = validate_arguments(plug_id, spec, arguments)

        with self._locks[plug_id]:
            if cancelled is not None and cancelled.is_set():
                raise DispatchCancelled(plug_id, command)
            self._ready_check()
            logger.debug("Dispatching %s.%s", plug_id, command)
            try:
                response = plug.execute(self._states[plug_id], command, resolved)
            except (ExecError, StorageError) as exc:
                logger.info("%s.%s failed: %s", plug_id, command, exc)
                raise
            except Exception as exc:
                logger.exception("Plug %r crashed while executing %r", plug_id, command)
                raise PlugCrashedError(
                    f"Plug {plug_id!r} crashed while executing {command!r}: {exc}",
                    {"plug_id": plug_id, "command": command, "exception": type(exc).__name__},
                ) from exc

        if not isinstance(response, Response):
            raise PlugCrashedError(
                f"Plug {plug_id!r} returned {type(response).__name__} from {command!r}, "
                "expected a Response",
                {"plug_id": plug_id, "command": command},
            )
        if not spec.result.matches(response.payload):
            logger.warning(
                "%s.%s returned a payload that does not match its declared %s shape",
                plug_id,
                command,
                spec.result.value,
            )
        return response
