"""Shared test fixtures for orgzr.

Fixtures defined here are available to all tests in the suite without
needing an explicit import. Add project-wide fixtures here; keep
domain-specific fixtures close to the tests that use them.
"""
from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from orgzr.config import EngineConfig
from orgzr.plugs.contract import (
    CommandSpec,
    ExecError,
    FlushError,
    InitError,
    ParamSpec,
    ParamType,
    Plug,
    PlugDescriptor,
    Response,
    ResultShape,
)
from orgzr.session.context import EngineContext, start


class RecordingPlug(Plug):
    """Fake plug that records every lifecycle call into a shared list.

    Commands
    --------
    echo(text, times=1)
        Returns ``{"text": text, "times": times}``.
    bump()
        Increments a counter persisted in the namespace.
    fail()
        Raises ``ExecError``.
    crash()
        Raises ``RuntimeError``.
    """

    def __init__(
        self,
        plug_id: str,
        events: list[tuple[Any, ...]],
        *,
        fail_init: bool = False,
        fail_shutdown: bool = False,
    ) -> None:
        self._id = plug_id
        self.events = events
        self.fail_init = fail_init
        self.fail_shutdown = fail_shutdown

    def descriptor(self) -> PlugDescriptor:
        return PlugDescriptor(
            id=self._id,
            name=self._id.title(),
            commands=(
                CommandSpec(
                    "echo",
                    (
                        ParamSpec("text", ParamType.STRING),
                        ParamSpec("times", ParamType.INTEGER, required=False, default=1),
                    ),
                ),
                CommandSpec("bump"),
                CommandSpec("fail", result=ResultShape.EMPTY),
                CommandSpec("crash", result=ResultShape.EMPTY),
            ),
        )

    def init(self, namespace: Any) -> dict[str, Any]:
        self.events.append(("init", self._id))
        if self.fail_init:
            raise InitError(f"{self._id} namespace is corrupt")
        raw = namespace.read()
        return {"namespace": namespace, "count": int(raw or b"0")}

    def execute(self, state: dict[str, Any], command: str, arguments: dict[str, Any]) -> Response:
        self.events.append(("execute", self._id, command, dict(arguments)))
        if command == "echo":
            return Response(payload={"text": arguments["text"], "times": arguments["times"]})
        if command == "bump":
            new_count = state["count"] + 1
            state["namespace"].write(str(new_count).encode())
            state["count"] = new_count
            return Response(payload={"count": new_count})
        if command == "fail":
            raise ExecError("requested failure", {"plug": self._id})
        raise RuntimeError("boom")

    def shutdown(self, state: dict[str, Any]) -> None:
        self.events.append(("shutdown", self._id))
        if self.fail_shutdown:
            raise FlushError(f"{self._id} could not flush")
        state["namespace"].flush()


@pytest.fixture()
def package_name() -> str:
    """Return the importable package name for assertions."""
    return "orgzr"


@pytest.fixture()
def expected_version() -> str:
    """Return the current expected version string.

    Update this fixture when cutting a release so that the version
    test immediately catches stale ``__version__`` values.
    """
    return "0.1.0"


@pytest.fixture()
def data_dir(tmp_path: Path) -> Path:
    """Return a fresh, not-yet-created data directory."""
    return tmp_path / "data"


@pytest.fixture()
def config(data_dir: Path) -> EngineConfig:
    """Return an engine config pointing at ``data_dir`` with fsync disabled."""
    return EngineConfig(data_dir=data_dir, fsync=False)


@pytest.fixture()
def events() -> list[tuple[Any, ...]]:
    """Return the shared event log used by ``RecordingPlug`` instances."""
    return []


@pytest.fixture()
def make_plug(events: list[tuple[Any, ...]]):
    """Return a factory for ``RecordingPlug`` instances sharing ``events``."""

    def factory(plug_id: str, **kwargs: Any) -> RecordingPlug:
        return RecordingPlug(plug_id, events, **kwargs)

    return factory


@pytest.fixture()
def engine(config: EngineConfig) -> Iterator[EngineContext]:
    """Yield a started engine with the built-in plugs; shut it down afterwards."""
    ctx = start(config)
    yield ctx
    ctx.shutdown()
