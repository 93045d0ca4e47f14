"""Mealz: a library of meal cards and a meal-plan idea generator.

A *card* is one meal the household knows how to cook, with free-form
tags, an ingredient set, and a ``max_batch_size``: how many meals one
cooking session yields.  ``plan`` draws a list of meal ideas from the
cards that pass a set of filters.

One tag has meaning to the planner:

``joker``
    A placeholder meal (leftovers, eating out).  Jokers can fill a plan
    slot but are never reported as ideas, and are excluded from the
    candidate set unless ``allow_jokers`` is set.

Plan generation is deterministic: the inventory is shuffled with a
``random.Random`` seeded from the ``seed`` argument, so the same
library and arguments always produce the same plan.
"""
from __future__ import annotations

import random
from typing import Any

from orgzr.plugs.contract import (
    CommandSpec,
    ConstraintError,
    NotFoundError,
    ParamSpec,
    ParamType,
    PlugDescriptor,
    Response,
    ResultShape,
)
from orgzr.plugs.document import DocumentPlug

JOKER_TAG = "joker"
MAX_BATCH_SIZE = 255
MAX_MEALS = 255

_MODES = ("any", "all")
_BATCH_MODES = ("allow", "only", "prevent")

_CARD_ID = ParamSpec("card_id", ParamType.INTEGER, description="Id of the card")

_DESCRIPTOR = PlugDescriptor(
    id="mealz",
    name="Mealz",
    description="Meal card library and meal plan generator.",
    commands=(
        CommandSpec(
            "add",
            (
                ParamSpec("name", ParamType.STRING, description="Name of the meal"),
                ParamSpec("tags", ParamType.STRING_LIST, required=False, default=[], description="Free-form tags"),
                ParamSpec("ingredients", ParamType.STRING_LIST, required=False, default=[], description="Ingredients used"),
                ParamSpec("max_batch_size", ParamType.INTEGER, required=False, default=1, description="Meals yielded by one cooking session"),
            ),
            description="Add a new meal card.",
        ),
        CommandSpec("list", (), ResultShape.SEQUENCE, "List all meal cards."),
        CommandSpec("get", (_CARD_ID,), description="Show one meal card."),
        CommandSpec(
            "update",
            (
                _CARD_ID,
                ParamSpec("name", ParamType.STRING, required=False),
                ParamSpec("tags", ParamType.STRING_LIST, required=False),
                ParamSpec("ingredients", ParamType.STRING_LIST, required=False),
                ParamSpec("max_batch_size", ParamType.INTEGER, required=False),
            ),
            description="Change some fields of a meal card.",
        ),
        CommandSpec("remove", (_CARD_ID,), description="Delete a meal card."),
        CommandSpec(
            "plan",
            (
                ParamSpec("meals", ParamType.INTEGER, description="Number of meal slots to fill"),
                ParamSpec("name_contains", ParamType.STRING, required=False, default=""),
                ParamSpec("tags", ParamType.STRING_LIST, required=False, default=[]),
                ParamSpec("tag_mode", ParamType.STRING, required=False, default="any", choices=_MODES),
                ParamSpec("ingredients", ParamType.STRING_LIST, required=False, default=[]),
                ParamSpec("ingredient_mode", ParamType.STRING, required=False, default="any", choices=_MODES),
                ParamSpec("allow_jokers", ParamType.BOOLEAN, required=False, default=False),
                ParamSpec("batch_mode", ParamType.STRING, required=False, default="allow", choices=_BATCH_MODES),
                ParamSpec("no_consecutive", ParamType.BOOLEAN, required=False, default=False),
                ParamSpec("max_repeats", ParamType.INTEGER, required=False, default=0, description="0 means unlimited"),
                ParamSpec("seed", ParamType.INTEGER, required=False, default=0, description="Shuffle seed"),
            ),
            description="Generate meal ideas from the cards matching the filters.",
        ),
    ),
)


def _clean_set(values: list[str]) -> list[str]:
    return sorted({v.strip() for v in values if v.strip()})


def _check_batch_size(value: int) -> int:
    if not 1 <= value <= MAX_BATCH_SIZE:
        raise ConstraintError(
            f"max_batch_size must be between 1 and {MAX_BATCH_SIZE}",
            {"max_batch_size": value},
        )
    return value


def _matches(wanted: set[str], have: set[str], mode: str) -> bool:
    if not wanted:
        return True
    if mode == "all":
        return wanted <= have
    return not wanted.isdisjoint(have)


class MealzPlug(DocumentPlug):
    """Meal card library stored as ``{"cards": [...], "next_id": n}``."""

    def descriptor(self) -> PlugDescriptor:
        return _DESCRIPTOR

    def empty_document(self) -> dict[str, Any]:
        return {**super().empty_document(), "cards": [], "next_id": 1}

    def validate_document(self, document: dict[str, Any]) -> None:
        self.check_records(
            document,
            "cards",
            {"name": str, "tags": list, "ingredients": list, "max_batch_size": int},
        )

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def do_add(
        self,
        doc: dict[str, Any],
        *,
        name: str,
        tags: list[str],
        ingredients: list[str],
        max_batch_size: int,
    ) -> dict[str, Any]:
        if not name.strip():
            raise ConstraintError("Card name must not be empty")
        card = {
            "id": self.next_id(doc),
            "name": name.strip(),
            "tags": _clean_set(tags),
            "ingredients": _clean_set(ingredients),
            "max_batch_size": _check_batch_size(max_batch_size),
        }
        doc["cards"].append(card)
        return dict(card)

    def do_list(self, doc: dict[str, Any]) -> list[dict[str, Any]]:
        return [dict(card) for card in doc["cards"]]

    def do_get(self, doc: dict[str, Any], *, card_id: int) -> dict[str, Any]:
        return dict(self._find(doc, card_id))

    def do_update(
        self,
        doc: dict[str, Any],
        *,
        card_id: int,
        name: str | None,
        tags: list[str] | None,
        ingredients: list[str] | None,
        max_batch_size: int | None,
    ) -> dict[str, Any]:
        card = self._find(doc, card_id)
        if name is not None:
            if not name.strip():
                raise ConstraintError("Card name must not be empty")
            card["name"] = name.strip()
        if tags is not None:
            card["tags"] = _clean_set(tags)
        if ingredients is not None:
            card["ingredients"] = _clean_set(ingredients)
        if max_batch_size is not None:
            card["max_batch_size"] = _check_batch_size(max_batch_size)
        return dict(card)

    def do_remove(self, doc: dict[str, Any], *, card_id: int) -> dict[str, Any]:
        card = self._find(doc, card_id)
        doc["cards"].remove(card)
        return card

    @staticmethod
    def _find(doc: dict[str, Any], card_id: int) -> dict[str, Any]:
        for card in doc["cards"]:
            if card["id"] == card_id:
                return card
        raise NotFoundError(f"Card {card_id} not found", {"card_id": card_id})

    # ------------------------------------------------------------------
    # Plan generation
    # ------------------------------------------------------------------

    def do_plan(
        self,
        doc: dict[str, Any],
        *,
        meals: int,
        name_contains: str,
        tags: list[str],
        tag_mode: str,
        ingredients: list[str],
        ingredient_mode: str,
        allow_jokers: bool,
        batch_mode: str,
        no_consecutive: bool,
        max_repeats: int,
        seed: int,
    ) -> Response:
        if not 1 <= meals <= MAX_MEALS:
            raise ConstraintError(f"meals must be between 1 and {MAX_MEALS}", {"meals": meals})
        if max_repeats < 0:
            raise ConstraintError("max_repeats must not be negative", {"max_repeats": max_repeats})

        needle = name_contains.lower()
        wanted_tags = set(tags)
        wanted_ingredients = set(ingredients)
        candidates = []
        for card in doc["cards"]:
            card_tags = set(card["tags"])
            if needle and needle not in card["name"].lower():
                continue
            if batch_mode == "only" and card["max_batch_size"] <= 1:
                continue
            if batch_mode == "prevent" and card["max_batch_size"] > 1:
                continue
            if not _matches(wanted_tags, card_tags, tag_mode):
                continue
            if not _matches(wanted_ingredients, set(card["ingredients"]), ingredient_mode):
                continue
            if not allow_jokers and JOKER_TAG in card_tags:
                continue
            candidates.append(card)

        if not candidates:
            raise ConstraintError("No cards match the specified filters.")

        schedule, warnings = self._build_schedule(
            candidates, meals, no_consecutive, max_repeats, random.Random(seed)
        )

        ideas: list[dict[str, Any]] = []
        seen: set[int] = set()
        for card in schedule:
            if JOKER_TAG in card["tags"] or card["id"] in seen:
                continue
            seen.add(card["id"])
            ideas.append(dict(card))
        if len(ideas) < len(schedule):
            warnings.append("Note: Jokers and duplicates have been removed from the final idea list.")

        return Response(payload={"ideas": ideas}, warnings=tuple(warnings))

    @staticmethod
    def _build_schedule(
        candidates: list[dict[str, Any]],
        meals: int,
        no_consecutive: bool,
        max_repeats: int,
        rng: random.Random,
    ) -> tuple[list[dict[str, Any]], list[str]]:
        """Fill up to ``meals`` slots from a shuffled portion inventory."""
        inventory = [card for card in candidates for _ in range(card["max_batch_size"])]
        rng.shuffle(inventory)

        schedule: list[dict[str, Any]] = []
        warnings: list[str] = []
        counts: dict[int, int] = {}

        def allowed(card: dict[str, Any]) -> bool:
            if no_consecutive and schedule and schedule[-1]["id"] == card["id"]:
                return False
            if max_repeats > 0 and counts.get(card["id"], 0) >= max_repeats:
                return False
            return True

        while len(schedule) < meals:
            if not inventory:
                warnings.append(f"Ran out of meal portions. Plan stopped at {len(schedule)} meals.")
                break
            index = next((i for i, card in enumerate(inventory) if allowed(card)), None)
            if index is None:
                warnings.append(
                    "Could not satisfy all constraints (e.g., repetition). "
                    "The remaining plan may have duplicates."
                )
                index = 0
            chosen = inventory.pop(index)
            counts[chosen["id"]] = counts.get(chosen["id"], 0) + 1
            schedule.append(chosen)
        return schedule, warnings
