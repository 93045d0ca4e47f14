"""Unit tests for orgzr.session.context: engine lifecycle, startup
rollback, shutdown reporting, and the module-level engine API.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest

from orgzr.config import EngineConfig
from orgzr.dispatch.errors import EngineNotReady
from orgzr.plugs.contract import FlushError, InitError
from orgzr.plugs.registry import PlugRegistry
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
from orgzr.storage.substrate import StorageError, Substrate, SubstrateLockedError


def _engine(data_dir: Path, *plugs) -> EngineContext:
    return EngineContext(PlugRegistry(plugs), Substrate(data_dir, fsync=False))


# ===========================================================================
# Startup
# ===========================================================================


class TestStartup:
    def test_initial_state(self, data_dir: Path, make_plug) -> None:
        engine = _engine(data_dir, make_plug("a"))
        assert engine.state is EngineState.UNINITIALIZED

    def test_start_reaches_ready(self, data_dir: Path, make_plug, events: list) -> None:
        engine = _engine(data_dir, make_plug("a"), make_plug("b"))
        assert engine.start() is engine
        assert engine.state is EngineState.READY
        assert events == [("init", "a"), ("init", "b")]
        engine.shutdown()

    def test_start_twice_raises(self, data_dir: Path, make_plug) -> None:
        engine = _engine(data_dir, make_plug("a")).start()
        try:
            with pytest.raises(RuntimeError):
                engine.start()
        finally:
            engine.shutdown()

    def test_failed_init_rolls_back_in_order(self, data_dir: Path, make_plug, events: list) -> None:
        engine = _engine(
            data_dir, make_plug("a"), make_plug("b"), make_plug("c", fail_init=True), make_plug("d")
        )
        with pytest.raises(EngineStartupError) as info:
            engine.start()
        assert info.value.plug_id == "c"
        assert isinstance(info.value.cause, InitError)
        assert "'c'" in str(info.value)
        assert events == [
            ("init", "a"),
            ("init", "b"),
            ("init", "c"),
            ("shutdown", "a"),
            ("shutdown", "b"),
        ]
        assert engine.state is EngineState.CLOSED
        assert not engine.substrate.mounted

    def test_rollback_failures_recorded(self, data_dir: Path, make_plug) -> None:
        engine = _engine(data_dir, make_plug("a", fail_shutdown=True), make_plug("b", fail_init=True))
        with pytest.raises(EngineStartupError) as info:
            engine.start()
        assert [f.plug_id for f in info.value.rollback_failures] == ["a"]

    def test_dispatch_after_failed_start_is_rejected(self, data_dir: Path, make_plug) -> None:
        engine = _engine(data_dir, make_plug("a", fail_init=True))
        with pytest.raises(EngineStartupError):
            engine.start()
        with pytest.raises(EngineNotReady):
            engine.dispatch("a", "echo", {"text": "x"})

    def test_locked_storage_is_startup_error(self, data_dir: Path, make_plug) -> None:
        holder = Substrate(data_dir, fsync=False)
        holder.mount()
        try:
            engine = _engine(data_dir, make_plug("a"))
            with pytest.raises(EngineStartupError) as info:
                engine.start()
            assert info.value.plug_id is None
            assert isinstance(info.value.cause, SubstrateLockedError)
            assert "cannot open storage" in str(info.value)
            assert engine.state is EngineState.CLOSED
        finally:
            holder.close()

    def test_failed_start_releases_lock(self, data_dir: Path, make_plug) -> None:
        with pytest.raises(EngineStartupError):
            _engine(data_dir, make_plug("a", fail_init=True)).start()
        engine = _engine(data_dir, make_plug("a")).start()
        assert engine.state is EngineState.READY
        engine.shutdown()

    def test_empty_registry_starts(self, data_dir: Path) -> None:
        engine = _engine(data_dir).start()
        assert engine.state is EngineState.READY
        assert engine.shutdown().ok


# ===========================================================================
# Dispatch through the context
# ===========================================================================


class TestContextDispatch:
    def test_dispatch_before_start_rejected(self, data_dir: Path, make_plug, events: list) -> None:
        engine = _engine(data_dir, make_plug("a"))
        with pytest.raises(EngineNotReady) as info:
            engine.dispatch("a", "echo", {"text": "x"})
        assert info.value.code == "engine_not_ready"
        assert events == []

    def test_dispatch_after_shutdown_rejected(self, data_dir: Path, make_plug) -> None:
        engine = _engine(data_dir, make_plug("a")).start()
        engine.shutdown()
        with pytest.raises(EngineNotReady):
            engine.dispatch("a", "echo", {"text": "x"})

    def test_dispatch_async(self, data_dir: Path, make_plug) -> None:
        engine = _engine(data_dir, make_plug("a")).start()
        try:
            response = asyncio.run(engine.dispatch_async("a", "echo", {"text": "x"}))
            assert response.payload["text"] == "x"
        finally:
            engine.shutdown()

    def test_describe_lists_descriptors(self, data_dir: Path, make_plug) -> None:
        engine = _engine(data_dir, make_plug("a"), make_plug("b"))
        assert [d.id for d in engine.describe()] == ["a", "b"]

    def test_repr(self, data_dir: Path, make_plug) -> None:
        assert "uninitialized" in repr(_engine(data_dir, make_plug("a")))


# ===========================================================================
# Shutdown
# ===========================================================================


class TestShutdown:
    def test_shutdown_in_registry_order(self, data_dir: Path, make_plug, events: list) -> None:
        engine = _engine(data_dir, make_plug("a"), make_plug("b")).start()
        events.clear()
        report = engine.shutdown()
        assert events == [("shutdown", "a"), ("shutdown", "b")]
        assert report.ok
        assert report.closed == ["a", "b"]
        assert engine.state is EngineState.CLOSED
        assert not engine.substrate.mounted

    def test_failing_plug_does_not_stop_others(self, data_dir: Path, make_plug, events: list) -> None:
        engine = _engine(
            data_dir, make_plug("a"), make_plug("b", fail_shutdown=True), make_plug("c")
        ).start()
        events.clear()
        report = engine.shutdown()
        assert events == [("shutdown", "a"), ("shutdown", "b"), ("shutdown", "c")]
        assert not report.ok
        assert report.failed_ids == ["b"]
        assert isinstance(report.failures[0].error, FlushError)
        assert report.closed == ["a", "c"]

    def test_shutdown_is_idempotent(self, data_dir: Path, make_plug, events: list) -> None:
        engine = _engine(data_dir, make_plug("a")).start()
        first = engine.shutdown()
        events.clear()
        assert engine.shutdown() is first
        assert events == []

    def test_shutdown_before_start(self, data_dir: Path, make_plug, events: list) -> None:
        engine = _engine(data_dir, make_plug("a"))
        report = engine.shutdown()
        assert report.ok
        assert report.closed == []
        assert engine.state is EngineState.CLOSED
        assert events == []

    def test_substrate_close_failure_recorded(self, data_dir: Path, make_plug) -> None:
        engine = _engine(data_dir, make_plug("a")).start()
        with patch.object(Substrate, "close", side_effect=StorageError("lock vanished")):
            report = engine.shutdown()
        assert report.failed_ids == [None]
        assert report.closed == ["a"]
        # release the real lock so tmp_path cleanup is not blocked
        Substrate.close(engine.substrate)

    def test_writes_survive_restart(self, data_dir: Path, make_plug) -> None:
        engine = _engine(data_dir, make_plug("a")).start()
        engine.dispatch("a", "bump")
        engine.dispatch("a", "bump")
        engine.shutdown()
        engine = _engine(data_dir, make_plug("a")).start()
        try:
            assert engine.dispatch("a", "bump").payload == {"count": 3}
        finally:
            engine.shutdown()


class TestShutdownReport:
    def test_to_dict(self) -> None:
        report = ShutdownReport(closed=["a"], failures=[ShutdownFailure("b", FlushError("disk"))])
        assert report.to_dict() == {
            "ok": False,
            "closed": ["a"],
            "failures": [{"plug_id": "b", "error": "FlushError", "message": "disk"}],
        }

    def test_failure_str_names_substrate(self) -> None:
        assert str(ShutdownFailure(None, StorageError("x"))).startswith("substrate:")


# ===========================================================================
# Context-manager form and module API
# ===========================================================================


class TestContextManager:
    def test_with_block_starts_and_shuts_down(self, data_dir: Path, make_plug, events: list) -> None:
        with _engine(data_dir, make_plug("a")) as engine:
            assert engine.state is EngineState.READY
        assert engine.state is EngineState.CLOSED
        assert events[-1] == ("shutdown", "a")

    def test_with_block_shuts_down_on_error(self, data_dir: Path, make_plug, events: list) -> None:
        with pytest.raises(ValueError):
            with _engine(data_dir, make_plug("a")) as engine:
                raise ValueError("client bug")
        assert engine.state is EngineState.CLOSED
        assert ("shutdown", "a") in events

    def test_with_block_accepts_started_engine(self, data_dir: Path, make_plug) -> None:
        engine = _engine(data_dir, make_plug("a")).start()
        with engine:
            assert engine.state is EngineState.READY
        assert engine.state is EngineState.CLOSED


class TestEngineApi:
    def test_start_dispatch_shutdown(self, config: EngineConfig, make_plug) -> None:
        engine = start(config, registry=PlugRegistry([make_plug("a")]))
        response = dispatch(engine, "a", "echo", {"text": "hello"})
        assert response.payload == {"text": "hello", "times": 1}
        assert shutdown(engine).ok

    def test_create_engine_uses_config(self, config: EngineConfig) -> None:
        engine = create_engine(config)
        assert engine.state is EngineState.UNINITIALIZED
        assert engine.substrate.root == config.data_dir
        assert engine.registry.ids() == ("mealz", "taskz", "budgetz")

    def test_create_engine_loads_config_by_default(self, config: EngineConfig) -> None:
        with patch("orgzr.session.context.load_config", return_value=config) as loader:
            engine = create_engine()
        loader.assert_called_once_with()
        assert engine.substrate.root == config.data_dir

    def test_top_level_wrappers(self, config: EngineConfig) -> None:
        import orgzr

        engine = orgzr.start(config)
        try:
            added = orgzr.dispatch(engine, "taskz", "add", {"title": "Buy milk"})
            assert added.payload["title"] == "Buy milk"
        finally:
            assert orgzr.shutdown(engine).ok
