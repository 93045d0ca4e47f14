"""Session/context manager: the lifetime of one engine instance.

An :class:`EngineContext` owns the persistence substrate, the live state
of every plug, and the dispatcher.  It moves through a strict state
machine::

    UNINITIALIZED -> INITIALIZING -> READY -> SHUTTING_DOWN -> CLOSED

Startup mounts the substrate and calls each plug's ``init`` in registry
order.  If any plug fails, the plugs already initialized are shut down
again, the substrate is released, and ``EngineStartupError`` names the
offending plug: the engine never serves requests half-initialized.

Shutdown calls every plug's ``shutdown`` in registry order.  A failing
plug does not stop the others; its error is recorded in the returned
:class:`ShutdownReport`.

Usage
-----
::

    import orgzr

    with orgzr.start() as engine:
        engine.dispatch("taskz", "add", {"title": "Buy milk"})

    # or, without a with-block
    engine = orgzr.start()
    try:
        ...
    finally:
        report = orgzr.shutdown(engine)
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import TracebackType
from typing import Any

from orgzr.config import EngineConfig, load_config
from orgzr.dispatch.dispatcher import Dispatcher
from orgzr.dispatch.errors import EngineNotReady
from orgzr.errors import OrgzrError
from orgzr.plugs.contract import PlugDescriptor, Response
from orgzr.plugs.registry import PlugRegistry, build_registry
from orgzr.storage.substrate import StorageError, Substrate

logger = logging.getLogger(__name__)


class EngineState(Enum):
    """Lifecycle states of an :class:`EngineContext`."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


@dataclass(frozen=True)
class ShutdownFailure:
    """One error recorded while shutting down.

    Parameters
    ----------
    plug_id:
        The plug whose ``shutdown`` failed, or ``None`` for the substrate.
    error:
        The exception that was raised.
    """

    plug_id: str | None
    error: BaseException

    def __str__(self) -> str:
        where = self.plug_id if self.plug_id is not None else "substrate"
        return f"{where}: {type(self.error).__name__}: {self.error}"


@dataclass
class ShutdownReport:
    """Outcome of shutting an engine down.

    Parameters
    ----------
    closed:
        Ids of the plugs that shut down cleanly, in registry order.
    failures:
        Errors recorded along the way.
    """

    closed: list[str] = field(default_factory=list)
    failures: list[ShutdownFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Return True if nothing failed."""
        return not self.failures

    @property
    def failed_ids(self) -> list[str | None]:
        """Return the ids of the plugs (``None`` for the substrate) that failed."""
        return [f.plug_id for f in self.failures]

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-compatible representation of this report."""
        return {
            "ok": self.ok,
            "closed": list(self.closed),
            "failures": [
                {"plug_id": f.plug_id, "error": type(f.error).__name__, "message": str(f.error)}
                for f in self.failures
            ],
        }


class EngineStartupError(OrgzrError):
    """Raised when an engine cannot reach ``READY``.

    Parameters
    ----------
    plug_id:
        The plug whose ``init`` failed, or ``None`` if the substrate
        could not be opened.
    cause:
        The underlying exception.
    rollback_failures:
        Errors raised while shutting down already-initialized plugs.
    """

    def __init__(
        self,
        plug_id: str | None,
        cause: BaseException,
        rollback_failures: list[ShutdownFailure] | None = None,
    ) -> None:
        self.plug_id = plug_id
        self.cause = cause
        self.rollback_failures = list(rollback_failures or [])
        if plug_id is None:
            message = f"Engine startup failed: cannot open storage: {cause}"
        else:
            message = f"Engine startup failed in plug {plug_id!r}: {cause}"
        super().__init__(message)


class EngineContext:
    """Live, owning handle for one running engine.

    Parameters
    ----------
    registry:
        The plug catalog to serve.
    substrate:
        The storage the plugs persist into.  The context mounts it on
        start and closes it on shutdown.
    """

    def __init__(self, registry: PlugRegistry, substrate: Substrate) -> None:
        self._registry = registry
        self._substrate = substrate
        self._state = EngineState.UNINITIALIZED
        self._plug_states: dict[str, Any] = {}
        self._dispatcher: Dispatcher | None = None
        self._report: ShutdownReport | None = None
        self._lifecycle = threading.Lock()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        """The current lifecycle state."""
        return self._state

    @property
    def registry(self) -> PlugRegistry:
        """The plug catalog this engine serves."""
        return self._registry

    @property
    def substrate(self) -> Substrate:
        """The storage this engine owns."""
        return self._substrate

    def describe(self) -> tuple[PlugDescriptor, ...]:
        """Return the descriptors of every plug, in registry order."""
        return self._registry.descriptors()

    def __repr__(self) -> str:
        return f"EngineContext(state={self._state.value}, plugs={list(self._registry.ids())})"

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def start(self) -> "EngineContext":
        """Mount storage and initialize every plug, in registry order.

        Returns
        -------
        EngineContext
            ``self``, now ``READY``.

        Raises
        ------
        EngineStartupError
            If storage cannot be opened or any plug fails to initialize.
            The context is ``CLOSED`` afterwards.
        RuntimeError
            If the context was already started.
        """
        with self._lifecycle:
            if self._state is not EngineState.UNINITIALIZED:
                raise RuntimeError(f"Engine cannot start from state {self._state.value!r}")
            self._state = EngineState.INITIALIZING

        try:
            self._substrate.mount()
        except StorageError as exc:
            self._state = EngineState.CLOSED
            logger.error("Cannot open storage at %s: %s", self._substrate.root, exc)
            raise EngineStartupError(None, exc) from exc

        initialized: list[str] = []
        for plug_id, plug in zip(self._registry.ids(), self._registry):
            try:
                handle = self._substrate.open(plug_id)
                self._plug_states[plug_id] = plug.init(handle)
            except Exception as exc:
                logger.error("Plug %r failed to initialize: %s", plug_id, exc)
                failures = self._rollback(initialized)
                raise EngineStartupError(plug_id, exc, failures) from exc
            initialized.append(plug_id)
            logger.debug("Initialized plug %r", plug_id)

        self._dispatcher = Dispatcher(self._registry, self._plug_states, self._check_ready)
        self._state = EngineState.READY
        logger.info("Engine ready with %d plug(s)", len(initialized))
        return self

    def _rollback(self, initialized: list[str]) -> list[ShutdownFailure]:
        failures: list[ShutdownFailure] = []
        for plug_id in initialized:
            try:
                self._registry.get(plug_id).shutdown(self._plug_states[plug_id])
            except Exception as exc:
                logger.warning("Rollback of plug %r failed: %s", plug_id, exc)
                failures.append(ShutdownFailure(plug_id, exc))
        self._plug_states.clear()
        self._substrate.close()
        self._state = EngineState.CLOSED
        return failures

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _check_ready(self) -> None:
        if self._state is not EngineState.READY:
            raise EngineNotReady(self._state.value)

    def dispatch(self, plug_id: str, command: str, arguments: Mapping[str, Any] | None = None) -> Response:
        """Dispatch one request.  See :meth:`Dispatcher.dispatch`."""
        self._check_ready()
        assert self._dispatcher is not None
        return self._dispatcher.dispatch(plug_id, command, arguments)

    async def dispatch_async(
        self, plug_id: str, command: str, arguments: Mapping[str, Any] | None = None
    ) -> Response:
        """Dispatch one request on a worker thread.  See :meth:`Dispatcher.dispatch_async`."""
        self._check_ready()
        assert self._dispatcher is not None
        return await self._dispatcher.dispatch_async(plug_id, command, arguments)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self) -> ShutdownReport:
        """Shut every plug down, in registry order, and release storage.

        Never raises for plug failures; they are collected in the report.
        Calling ``shutdown`` again returns the same report.
        """
        with self._lifecycle:
            if self._report is not None:
                return self._report
            if self._state is not EngineState.READY:
                self._state = EngineState.CLOSED
                self._report = ShutdownReport()
                return self._report
            self._state = EngineState.SHUTTING_DOWN

        assert self._dispatcher is not None
        report = ShutdownReport()
        for plug_id, plug in zip(self._registry.ids(), self._registry):
            with self._dispatcher.plug_lock(plug_id):
                try:
                    plug.shutdown(self._plug_states[plug_id])
                except Exception as exc:
                    logger.error("Plug %r failed to shut down: %s", plug_id, exc)
                    report.failures.append(ShutdownFailure(plug_id, exc))
                else:
                    report.closed.append(plug_id)
                    logger.debug("Shut down plug %r", plug_id)

        self._plug_states.clear()
        try:
            self._substrate.close()
        except Exception as exc:
            logger.error("Failed to close storage: %s", exc)
            report.failures.append(ShutdownFailure(None, exc))

        self._state = EngineState.CLOSED
        self._report = report
        logger.info(
            "Engine closed: %d plug(s) closed, %d failure(s)", len(report.closed), len(report.failures)
        )
        return report

    def __enter__(self) -> "EngineContext":
        if self._state is EngineState.UNINITIALIZED:
            self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc is not None:
            logger.error("Shutting engine down after error: %s", exc)
        report = self.shutdown()
        for failure in report.failures:
            logger.warning("Shutdown failure: %s", failure)


# ---------------------------------------------------------------------------
# Engine API
# ---------------------------------------------------------------------------


def create_engine(
    config: EngineConfig | None = None,
    *,
    registry: PlugRegistry | None = None,
) -> EngineContext:
    """Build an unstarted engine from ``config`` and ``registry``.

    Defaults to :func:`orgzr.config.load_config` and the built-in plugs.
    """
    if config is None:
        config = load_config()
    substrate = Substrate(config.data_dir, fsync=config.fsync, lock=config.lock)
    return EngineContext(registry if registry is not None else build_registry(), substrate)


def start(
    config: EngineConfig | None = None,
    *,
    registry: PlugRegistry | None = None,
) -> EngineContext:
    """Create and start an engine.

    Raises
    ------
    EngineStartupError
        If the engine cannot reach ``READY``.
    """
    return create_engine(config, registry=registry).start()


def dispatch(
    engine: EngineContext,
    plug_id: str,
    command: str,
    arguments: Mapping[str, Any] | None = None,
) -> Response:
    """Dispatch one request to ``engine``."""
    return engine.dispatch(plug_id, command, arguments)


def shutdown(engine: EngineContext) -> ShutdownReport:
    """Shut ``engine`` down and return the report."""
    return engine.shutdown()
