"""Argument validation against a ``CommandSpec``.

Validation runs completely before any plug code: the plug's ``execute``
only ever sees a fresh, fully-populated argument dict whose keys are
exactly the command's declared parameter names.

Checks run in this order, and the first failure is raised:

1. every supplied key is declared (``UnexpectedArgument``);
2. every required parameter is supplied (``MissingArgument``);
3. every supplied value satisfies its type (``TypeMismatch``).

Defaults for omitted optional parameters are applied last.
"""
from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from orgzr.dispatch.errors import DispatchError, MissingArgument, TypeMismatch, UnexpectedArgument
from orgzr.plugs.contract import CommandSpec, ParamType


def validate_arguments(plug_id: str, spec: CommandSpec, arguments: Mapping[str, Any] | None) -> dict[str, Any]:
    """Check ``arguments`` against ``spec`` and return the resolved arguments.

    Parameters
    ----------
    plug_id:
        Id of the target plug, used in error messages.
    spec:
        The declared command schema.
    arguments:
        The client-supplied mapping.  ``None`` is treated as empty.  The
        mapping is never mutated.

    Returns
    -------
    dict[str, Any]
        A new dict containing one entry per declared parameter, in
        declaration order.  Values are deep copies of what the client
        passed (or of the declared default).

    Raises
    ------
    UnexpectedArgument, MissingArgument, TypeMismatch
        See the module docstring for the order in which they apply.
    """
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, Mapping):
        raise DispatchError(
            f"Arguments must be a mapping, not {type(arguments).__name__}",
            plug_id=plug_id,
            command=spec.name,
        )

    declared = spec.param_names
    for key in arguments:
        if key not in declared:
            raise UnexpectedArgument(plug_id, spec.name, str(key), declared)

    for param in spec.params:
        if param.required and param.name not in arguments:
            raise MissingArgument(plug_id, spec.name, param.name)

    for param in spec.params:
        if param.name in arguments and not param.accepts(arguments[param.name]):
            raise TypeMismatch(
                plug_id, spec.name, param.name, param.describe_type(), arguments[param.name]
            )

    resolved: dict[str, Any] = {}
    for param in spec.params:
        if param.name in arguments:
            value = copy.deepcopy(arguments[param.name])
            if param.type is ParamType.STRING_LIST and value is not None:
                value = list(value)
            resolved[param.name] = value
        else:
            resolved[param.name] = copy.deepcopy(param.default)
    return resolved
