#!/usr/bin/env python3
"""Example: Writing a plug (orgzr)

Defines a small habit tracker on top of ``DocumentPlug`` and serves it
next to the built-in plugs.

Usage:
    python examples/03_custom_plug.py

Requirements:
    pip install orgzr
"""
from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any

import orgzr
from orgzr.config import EngineConfig
from orgzr.plugs import (
    CommandSpec,
    DocumentPlug,
    ParamSpec,
    ParamType,
    PlugDescriptor,
    build_registry,
    builtin_plugs,
)


class HabitzPlug(DocumentPlug):
    """Counts how often each habit was done."""

    def descriptor(self) -> PlugDescriptor:
        return PlugDescriptor(
            id="habitz",
            name="Habitz",
            description="Tally daily habits.",
            commands=(
                CommandSpec("tick", (ParamSpec("habit", ParamType.STRING),)),
                CommandSpec("tally"),
            ),
        )

    def empty_document(self) -> dict[str, Any]:
        return {**super().empty_document(), "counts": {}}

    def do_tick(self, doc: dict[str, Any], *, habit: str) -> dict[str, Any]:
        doc["counts"][habit] = doc["counts"].get(habit, 0) + 1
        return {"habit": habit, "count": doc["counts"][habit]}

    def do_tally(self, doc: dict[str, Any]) -> dict[str, Any]:
        return dict(doc["counts"])


def main() -> None:
    registry = build_registry([*builtin_plugs(), HabitzPlug()])
    with tempfile.TemporaryDirectory() as tmp:
        config = EngineConfig(data_dir=Path(tmp))

        with orgzr.start(config, registry=registry) as engine:
            for habit in ("walk", "read", "walk"):
                orgzr.dispatch(engine, "habitz", "tick", {"habit": habit})

        # A fresh engine reads the tally back from disk
        with orgzr.start(config, registry=build_registry([HabitzPlug()])) as engine:
            print(orgzr.dispatch(engine, "habitz", "tally").payload)


if __name__ == "__main__":
    main()
