"""Plugs shipped with orgzr.

``BUILTIN_PLUG_TYPES`` is the build-time plug list: the registry is
built from it, in this order, and startup and shutdown follow the same
order.  Adding a plug to orgzr means adding it here.
"""
from __future__ import annotations

from orgzr.plugs.builtin.budgetz import BudgetzPlug
from orgzr.plugs.builtin.mealz import MealzPlug
from orgzr.plugs.builtin.taskz import TaskzPlug

BUILTIN_PLUG_TYPES = (MealzPlug, TaskzPlug, BudgetzPlug)

__all__ = ["BUILTIN_PLUG_TYPES", "BudgetzPlug", "MealzPlug", "TaskzPlug"]
