"""Budgetz: a ledger of spending entries grouped by category.

Amounts are stored as given (floats or ints); totals are rounded to
cents when reported.
"""
from __future__ import annotations

import math
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

DEFAULT_CATEGORY = "misc"

_CATEGORY_FILTER = ParamSpec(
    "category", ParamType.STRING, required=False, description="Only entries in this category"
)

_DESCRIPTOR = PlugDescriptor(
    id="budgetz",
    name="Budgetz",
    description="Track spending by category.",
    commands=(
        CommandSpec(
            "add",
            (
                ParamSpec("label", ParamType.STRING, description="What the money went to"),
                ParamSpec("amount", ParamType.NUMBER, description="Amount spent"),
                ParamSpec("category", ParamType.STRING, required=False, default=DEFAULT_CATEGORY),
            ),
            description="Record a spending entry.",
        ),
        CommandSpec("list", (_CATEGORY_FILTER,), ResultShape.SEQUENCE, "List entries."),
        CommandSpec("total", (_CATEGORY_FILTER,), description="Sum entries."),
        CommandSpec(
            "remove",
            (ParamSpec("entry_id", ParamType.INTEGER),),
            description="Delete an entry.",
        ),
    ),
)


class BudgetzPlug(DocumentPlug):
    """Ledger stored as ``{"entries": [...], "next_id": n}``."""

    def descriptor(self) -> PlugDescriptor:
        return _DESCRIPTOR

    def empty_document(self) -> dict[str, Any]:
        return {**super().empty_document(), "entries": [], "next_id": 1}

    def validate_document(self, document: dict[str, Any]) -> None:
        self.check_records(
            document, "entries", {"label": str, "amount": (int, float), "category": str}
        )

    def do_add(self, doc: dict[str, Any], *, label: str, amount: float, category: str) -> dict[str, Any]:
        if not label.strip():
            raise ConstraintError("Entry label must not be empty")
        try:
            finite = math.isfinite(amount)
        except OverflowError:
            raise ConstraintError("Amount is too large to record") from None
        if not finite:
            raise ConstraintError("Amount must be a finite number", {"amount": repr(amount)})
        entry = {
            "id": self.next_id(doc),
            "label": label.strip(),
            "amount": amount,
            "category": category.strip() or DEFAULT_CATEGORY,
        }
        doc["entries"].append(entry)
        return dict(entry)

    def do_list(self, doc: dict[str, Any], *, category: str | None) -> list[dict[str, Any]]:
        return [dict(e) for e in self._select(doc, category)]

    def do_total(self, doc: dict[str, Any], *, category: str | None) -> dict[str, Any]:
        entries = self._select(doc, category)
        return {
            "category": category,
            "total": round(math.fsum(e["amount"] for e in entries), 2),
            "count": len(entries),
        }

    def do_remove(self, doc: dict[str, Any], *, entry_id: int) -> dict[str, Any]:
        for entry in doc["entries"]:
            if entry["id"] == entry_id:
                doc["entries"].remove(entry)
                return entry
        raise NotFoundError(f"Entry {entry_id} not found", {"entry_id": entry_id})

    @staticmethod
    def _select(doc: dict[str, Any], category: str | None) -> list[dict[str, Any]]:
        if category is None:
            return list(doc["entries"])
        return [e for e in doc["entries"] if e["category"] == category]
