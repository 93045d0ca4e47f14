"""CLI entry point for orgzr.

Invoked as::

    orgzr [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m orgzr.cli.main

Commands
--------
version     Show version information
plugs       List the plugs in this build
describe    Show the commands and parameters of one plug
run         Dispatch one command to a plug

The CLI is a plain client of the engine API: it translates argv into a
request, prints the response, and maps errors to exit codes.

Exit codes
----------
0   success
1   configuration error
2   request rejected by the dispatcher
3   plug execution or storage error
4   engine failed to start
5   engine shut down with errors
"""
from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

if TYPE_CHECKING:
    from orgzr.config import EngineConfig
    from orgzr.plugs.contract import ParamSpec, PlugDescriptor, Response
    from orgzr.session.context import EngineContext, ShutdownReport

console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_DISPATCH = 2
EXIT_EXEC = 3
EXIT_STARTUP = 4
EXIT_SHUTDOWN = 5

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _configure_logging(verbosity: int, configured_level: str) -> None:
    """Send library logs to stderr through Rich."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.getLevelName(configured_level)
    root = logging.getLogger("orgzr")
    root.handlers[:] = [RichHandler(console=err_console, show_path=False, rich_tracebacks=True)]
    root.setLevel(level)


def _load_config_or_exit(config_path: str | None, data_dir: str | None) -> "EngineConfig":
    from dataclasses import replace
    from pathlib import Path

    from orgzr.config import load_config
    from orgzr.errors import ConfigError

    try:
        config = load_config(config_path)
    except ConfigError as exc:
        err_console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(EXIT_CONFIG)
    if data_dir:
        config = replace(config, data_dir=Path(data_dir).expanduser())
    return config


def _start_or_exit(config: "EngineConfig") -> "EngineContext":
    from orgzr.errors import ConfigError
    from orgzr.session.context import EngineStartupError, start

    try:
        return start(config)
    except ConfigError as exc:
        err_console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(EXIT_CONFIG)
    except EngineStartupError as exc:
        err_console.print(f"[red]Startup failed:[/red] {exc}")
        sys.exit(EXIT_STARTUP)


def coerce_value(param: "ParamSpec | None", text: str) -> Any:
    """Convert a command-line string to the value ``param`` expects.

    Values that cannot be converted are returned unchanged so that the
    dispatcher reports the type mismatch.  Keys the command does not
    declare (``param`` is ``None``) stay strings.
    """
    from orgzr.plugs.contract import ParamType

    if param is None or param.type is ParamType.STRING:
        return text
    if param.type is ParamType.INTEGER:
        try:
            return int(text)
        except ValueError:
            return text
    if param.type is ParamType.NUMBER:
        for convert in (int, float):
            try:
                return convert(text)
            except ValueError:
                continue
        return text
    if param.type is ParamType.BOOLEAN:
        lowered = text.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        return text
    if param.type is ParamType.STRING_LIST:
        return [item.strip() for item in text.split(",") if item.strip()]
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return text
    return value if isinstance(value, dict) else text


def parse_assignments(
    pairs: Sequence[str], descriptor: "PlugDescriptor | None", command: str
) -> dict[str, Any]:
    """Turn ``KEY=VALUE`` strings into a typed argument mapping.

    Raises
    ------
    click.BadParameter
        If an item has no ``=``.
    """
    spec = descriptor.command(command) if descriptor is not None else None
    arguments: dict[str, Any] = {}
    for pair in pairs:
        key, sep, text = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="ARGS")
        arguments[key] = coerce_value(spec.param(key) if spec is not None else None, text)
    return arguments


def _cell(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, bool):
        return "yes" if value else "no"
    if value is None:
        return ""
    return str(value)


def _render_payload(payload: Any, title: str) -> None:
    if isinstance(payload, Mapping):
        nested = [k for k, v in payload.items() if isinstance(v, list) and v and isinstance(v[0], Mapping)]
        if len(nested) == 1 and len(payload) == 1:
            _render_payload(payload[nested[0]], f"{title} ({nested[0]})")
            return
        table = Table(title=title, show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        for key, value in payload.items():
            table.add_row(str(key), _cell(value))
        console.print(table)
    elif isinstance(payload, Sequence) and not isinstance(payload, str):
        if not payload:
            console.print("[dim]No entries.[/dim]")
            return
        columns: list[str] = []
        for row in payload:
            for key in row if isinstance(row, Mapping) else ("value",):
                if key not in columns:
                    columns.append(key)
        table = Table(title=title)
        for column in columns:
            table.add_column(str(column))
        for row in payload:
            if isinstance(row, Mapping):
                table.add_row(*(_cell(row.get(c)) for c in columns))
            else:
                table.add_row(_cell(row))
        console.print(table)
    elif payload is None:
        console.print("[green]OK[/green]")
    else:
        console.print(str(payload))


def _report_shutdown(report: "ShutdownReport", as_json: bool) -> None:
    for failure in report.failures:
        err_console.print(f"[red]Shutdown failure[/red] {failure}")
    if as_json and not report.ok:
        click.echo(json.dumps({"shutdown": report.to_dict()}, indent=2), err=True)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="orgzr")
@click.option("--config", "config_path", default=None, help="Path to a YAML config file")
@click.option("--data-dir", default=None, help="Directory holding plug data (overrides config)")
@click.option("-v", "--verbose", count=True, help="Log more (repeat for debug output)")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, data_dir: str | None, verbose: int) -> None:
    """A modular assistant to organize your daily chaos."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["data_dir"] = data_dir
    ctx.obj["verbose"] = verbose


# ---------------------------------------------------------------------------
# version command
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from orgzr import __version__

    table = Table(show_header=False, box=None)
    table.add_row("[bold]orgzr[/bold]", f"v{__version__}")
    table.add_row("Python", f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")
    table.add_row("Platform", sys.platform)
    console.print(table)


# ---------------------------------------------------------------------------
# plugs / describe commands
# ---------------------------------------------------------------------------


@cli.command(name="plugs")
def plugs_command() -> None:
    """List the plugs built into this orgzr, in registry order."""
    from orgzr.plugs.registry import build_registry

    table = Table(title="Plugs")
    table.add_column("Id", style="bold")
    table.add_column("Name")
    table.add_column("Commands")
    table.add_column("Description")
    for descriptor in build_registry().descriptors():
        table.add_row(
            descriptor.id,
            descriptor.name,
            ", ".join(descriptor.command_names),
            descriptor.description,
        )
    console.print(table)


@cli.command(name="describe")
@click.argument("plug_id")
def describe_command(plug_id: str) -> None:
    """Show the commands and parameters of one plug.

    PLUG_ID is the id shown by ``orgzr plugs``.
    """
    from orgzr.plugs.registry import build_registry

    registry = build_registry()
    if plug_id not in registry:
        err_console.print(
            f"[red]Error:[/red] Unknown plug {plug_id!r}. "
            f"Available: {', '.join(registry.ids())}"
        )
        sys.exit(EXIT_DISPATCH)

    descriptor = registry.descriptor(plug_id)
    console.print(f"[bold]{descriptor.name}[/bold] ({descriptor.id}) v{descriptor.version}")
    if descriptor.description:
        console.print(descriptor.description)
    for command in descriptor.commands:
        table = Table(title=f"{descriptor.id} {command.name}", caption=command.description or None)
        table.add_column("Parameter", style="bold")
        table.add_column("Type")
        table.add_column("Required")
        table.add_column("Default")
        for param in command.params:
            table.add_row(
                param.name,
                param.describe_type(),
                "yes" if param.required else "no",
                "" if param.required else json.dumps(param.default),
            )
        console.print(table)


# ---------------------------------------------------------------------------
# run command
# ---------------------------------------------------------------------------


@cli.command(name="run")
@click.argument("plug_id")
@click.argument("command")
@click.argument("args", nargs=-1)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the raw response as JSON")
@click.pass_context
def run_command(ctx: click.Context, plug_id: str, command: str, args: tuple[str, ...], as_json: bool) -> None:
    """Dispatch COMMAND to PLUG_ID with KEY=VALUE arguments.

    Examples:

    \b
        orgzr run taskz add title="Buy milk"
        orgzr run mealz add name=Lasagna tags=pasta,oven max_batch_size=2
        orgzr run mealz plan meals=5 no_consecutive=true --json
    """
    from orgzr.dispatch.errors import DispatchError
    from orgzr.plugs.contract import ExecError
    from orgzr.storage.substrate import StorageError

    obj = ctx.ensure_object(dict)
    config = _load_config_or_exit(obj.get("config_path"), obj.get("data_dir"))
    _configure_logging(obj.get("verbose", 0), config.log_level)

    engine = _start_or_exit(config)
    descriptor = engine.registry.descriptor(plug_id) if plug_id in engine.registry else None

    exit_code = EXIT_OK
    response: Response | None = None
    try:
        arguments = parse_assignments(args, descriptor, command)
        response = engine.dispatch(plug_id, command, arguments)
    except DispatchError as exc:
        exit_code = EXIT_DISPATCH
        error: dict[str, Any] = exc.to_dict()
    except ExecError as exc:
        exit_code = EXIT_EXEC
        error = exc.to_dict()
    except StorageError as exc:
        exit_code = EXIT_EXEC
        error = {"ok": False, "code": "storage", "message": str(exc), "details": {}}
    finally:
        report = engine.shutdown()

    if response is not None:
        if as_json:
            click.echo(json.dumps(response.to_dict(), indent=2, ensure_ascii=False))
        else:
            _render_payload(response.payload, f"{plug_id} {command}")
            for warning in response.warnings:
                err_console.print(f"[yellow]Warning:[/yellow] {warning}")
    elif as_json:
        click.echo(json.dumps(error, indent=2, ensure_ascii=False))
    else:
        err_console.print(f"[red]Error ({error['code']}):[/red] {error['message']}")

    _report_shutdown(report, as_json)
    if not report.ok and exit_code == EXIT_OK:
        exit_code = EXIT_SHUTDOWN
    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
