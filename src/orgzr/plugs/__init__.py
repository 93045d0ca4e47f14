"""Plug subsystem: the plug contract, the registry, and the built-in plugs."""
from __future__ import annotations

from orgzr.plugs.contract import (
    CommandSpec,
    ConstraintError,
    ExecError,
    FlushError,
    InitError,
    NotFoundError,
    ParamSpec,
    ParamType,
    Plug,
    PlugCrashedError,
    PlugDescriptor,
    Response,
    ResultShape,
)
from orgzr.plugs.document import DocumentPlug, DocumentState
from orgzr.plugs.registry import (
    DuplicatePlugError,
    InvalidPlugError,
    PlugNotFoundError,
    PlugRegistry,
    RegistryError,
    build_registry,
    builtin_plugs,
)

__all__ = [
    "CommandSpec",
    "ConstraintError",
    "DocumentPlug",
    "DocumentState",
    "DuplicatePlugError",
    "ExecError",
    "FlushError",
    "InitError",
    "InvalidPlugError",
    "NotFoundError",
    "ParamSpec",
    "ParamType",
    "Plug",
    "PlugCrashedError",
    "PlugDescriptor",
    "PlugNotFoundError",
    "PlugRegistry",
    "RegistryError",
    "Response",
    "ResultShape",
    "build_registry",
    "builtin_plugs",
]
