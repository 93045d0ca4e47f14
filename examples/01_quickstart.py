#!/usr/bin/env python3
"""Example: Quickstart (orgzr)

Minimal working example: start an engine, add a task and a meal card,
generate meal ideas, and shut down cleanly.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install orgzr
"""
from __future__ import annotations

import tempfile
from pathlib import Path

import orgzr
from orgzr.config import EngineConfig


def main() -> None:
    print(f"orgzr version: {orgzr.__version__}")

    with tempfile.TemporaryDirectory() as tmp:
        config = EngineConfig(data_dir=Path(tmp))

        # Step 1: Start the engine with the built-in plugs
        engine = orgzr.start(config)
        print(f"Plugs: {', '.join(d.id for d in engine.describe())}")

        try:
            # Step 2: Add a task
            task = orgzr.dispatch(engine, "taskz", "add", {"title": "Buy milk"})
            print(f"Added task #{task.payload['id']}: {task.payload['title']}")

            # Step 3: Add meal cards and ask for ideas
            orgzr.dispatch(engine, "mealz", "add", {"name": "Lasagna", "max_batch_size": 2})
            orgzr.dispatch(engine, "mealz", "add", {"name": "Tomato soup", "tags": ["quick"]})
            plan = orgzr.dispatch(engine, "mealz", "plan", {"meals": 3, "seed": 7})
            for idea in plan.payload["ideas"]:
                print(f"  idea: {idea['name']}")
            for warning in plan.warnings:
                print(f"  [warning] {warning}")
        finally:
            # Step 4: Shut down and check the report
            report = orgzr.shutdown(engine)
            print(f"Shutdown ok: {report.ok}")


if __name__ == "__main__":
    main()
