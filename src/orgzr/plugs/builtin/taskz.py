"""Taskz: a flat to-do list."""
from __future__ import annotations

from typing import Any

from orgzr.plugs.contract import (
    CommandSpec,
    ConstraintError,
    NotFoundError,
    ParamSpec,
    ParamType,
    PlugDescriptor,
    ResultShape,
)
from orgzr.plugs.document import DocumentPlug

_TASK_ID = ParamSpec("task_id", ParamType.INTEGER, description="Id of the task")

_DESCRIPTOR = PlugDescriptor(
    id="taskz",
    name="Taskz",
    description="A simple task list.",
    commands=(
        CommandSpec(
            "add",
            (
                ParamSpec("title", ParamType.STRING, description="What needs doing"),
                ParamSpec("notes", ParamType.STRING, required=False, default=""),
            ),
            description="Add a task.",
        ),
        CommandSpec(
            "list",
            (ParamSpec("include_done", ParamType.BOOLEAN, required=False, default=True),),
            ResultShape.SEQUENCE,
            "List tasks in creation order.",
        ),
        CommandSpec("done", (_TASK_ID,), description="Mark a task as done."),
        CommandSpec("remove", (_TASK_ID,), description="Delete a task."),
    ),
)


class TaskzPlug(DocumentPlug):
    """Task list stored as ``{"tasks": [...], "next_id": n}``."""

    def descriptor(self) -> PlugDescriptor:
        return _DESCRIPTOR

    def empty_document(self) -> dict[str, Any]:
        return {**super().empty_document(), "tasks": [], "next_id": 1}

    def validate_document(self, document: dict[str, Any]) -> None:
        self.check_records(document, "tasks", {"title": str, "notes": str, "done": bool})

    def do_add(self, doc: dict[str, Any], *, title: str, notes: str) -> dict[str, Any]:
        if not title.strip():
            raise ConstraintError("Task title must not be empty")
        task = {"id": self.next_id(doc), "title": title.strip(), "notes": notes, "done": False}
        doc["tasks"].append(task)
        return dict(task)

    def do_list(self, doc: dict[str, Any], *, include_done: bool) -> list[dict[str, Any]]:
        return [dict(t) for t in doc["tasks"] if include_done or not t["done"]]

    def do_done(self, doc: dict[str, Any], *, task_id: int) -> dict[str, Any]:
        task = self._find(doc, task_id)
        task["done"] = True
        return dict(task)

    def do_remove(self, doc: dict[str, Any], *, task_id: int) -> dict[str, Any]:
        task = self._find(doc, task_id)
        doc["tasks"].remove(task)
        return task

    @staticmethod
    def _find(doc: dict[str, Any], task_id: int) -> dict[str, Any]:
        for task in doc["tasks"]:
            if task["id"] == task_id:
                return task
        raise NotFoundError(f"Task {task_id} not found", {"task_id": task_id})
