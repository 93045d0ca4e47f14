"""orgzr: a headless engine hosting personal-organization plugs.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
::

    import orgzr

    engine = orgzr.start()
    try:
        card = orgzr.dispatch(engine, "mealz", "add", {"name": "Lasagna", "max_batch_size": 2})
        ideas = orgzr.dispatch(engine, "mealz", "plan", {"meals": 4})
    finally:
        report = orgzr.shutdown(engine)

    orgzr.__version__
    '0.1.0'
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

__version__: str = "0.1.0"

# Load the ``orgzr.dispatch`` subpackage up front so that the ``dispatch``
# function defined below is not later shadowed by the submodule attribute.
import orgzr.dispatch as _dispatch_package  # noqa: E402,F401

del _dispatch_package

if TYPE_CHECKING:
    from orgzr.config import EngineConfig
    from orgzr.plugs.contract import Response
    from orgzr.plugs.registry import PlugRegistry
    from orgzr.session.context import EngineContext, ShutdownReport


def start(
    config: "EngineConfig | None" = None,
    *,
    registry: "PlugRegistry | None" = None,
) -> "EngineContext":
    """Start an engine and return its live handle.

    Parameters
    ----------
    config:
        Engine settings.  Defaults to :func:`orgzr.config.load_config`.
    registry:
        The plug catalog.  Defaults to the built-in plugs.

    Returns
    -------
    EngineContext
        A ``READY`` engine.  Also usable as a context manager.

    Raises
    ------
    orgzr.session.EngineStartupError
        If storage cannot be opened or any plug fails to initialize.
    """
    from orgzr.session.context import start as _start

    return _start(config, registry=registry)


def dispatch(
    engine: "EngineContext",
    plug_id: str,
    command: str,
    arguments: Mapping[str, Any] | None = None,
) -> "Response":
    """Route one command to a plug and return its response.

    Parameters
    ----------
    engine:
        A handle returned by :func:`start`.
    plug_id:
        Target plug id, e.g. ``"taskz"``.
    command:
        Command declared by that plug, e.g. ``"add"``.
    arguments:
        Parameter name to value.

    Raises
    ------
    orgzr.dispatch.DispatchError
        If the request is rejected before reaching the plug.
    orgzr.plugs.ExecError
        If the plug reports a failure.
    orgzr.storage.StorageError
        If the plug could not persist its namespace.
    """
    from orgzr.session.context import dispatch as _dispatch

    return _dispatch(engine, plug_id, command, arguments)


def shutdown(engine: "EngineContext") -> "ShutdownReport":
    """Shut an engine down, returning a report of any failures.

    Never raises for plug failures.
    """
    from orgzr.session.context import shutdown as _shutdown

    return _shutdown(engine)


__all__ = [
    "__version__",
    "dispatch",
    "shutdown",
    "start",
]
