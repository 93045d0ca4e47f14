#!/usr/bin/env python3
"""Example: Error handling (orgzr)

Shows the errors a client can receive: requests rejected by the
dispatcher before any plug runs, and failures reported by a plug.

Usage:
    python examples/02_error_handling.py

Requirements:
    pip install orgzr
"""
from __future__ import annotations

import tempfile
from pathlib import Path

import orgzr
from orgzr.config import EngineConfig
from orgzr.dispatch import DispatchError
from orgzr.plugs import ExecError


def attempt(engine, plug_id: str, command: str, arguments: dict) -> None:
    try:
        response = orgzr.dispatch(engine, plug_id, command, arguments)
    except DispatchError as exc:
        print(f"{plug_id}.{command}: rejected [{exc.code}] {exc}")
    except ExecError as exc:
        print(f"{plug_id}.{command}: failed [{exc.code}] {exc}")
    else:
        print(f"{plug_id}.{command}: ok -> {response.payload}")


def main() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        with orgzr.start(EngineConfig(data_dir=Path(tmp))) as engine:
            attempt(engine, "calendarz", "add", {})
            attempt(engine, "taskz", "archive", {})
            attempt(engine, "taskz", "add", {})
            attempt(engine, "budgetz", "add", {"title": "Rent"})
            attempt(engine, "budgetz", "add", {"label": "Rent", "amount": "a lot"})
            attempt(engine, "taskz", "done", {"task_id": 42})
            attempt(engine, "mealz", "plan", {"meals": 3})
            attempt(engine, "budgetz", "add", {"label": "Rent", "amount": 950})


if __name__ == "__main__":
    main()
