"""hookguard CLI — answer hook events, validate and dry-run policy bundles."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from hookguard import Hookguard, HookguardConfigError
from hookguard.audit import NullAuditSink
from hookguard.decisions import Action, Decision
from hookguard.dispatcher import DispatchOutcome
from hookguard.errors import UnknownEventKind
from hookguard.lifecycle import SessionLifecycle
from hookguard.storage import FileBackend, MemoryBackend
from hookguard.yaml_engine.loader import load_policy

# `hook` keeps stdout for the decision; diagnostics always go to stderr.
_console = Console(highlight=False)
_err_console = Console(stderr=True, highlight=False)

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

_ACTION_STYLES = {
    Action.ALLOW: "green bold",
    Action.CONTINUE: "green bold",
    Action.MODIFY: "cyan bold",
    Action.RETRY: "yellow bold",
    Action.BLOCK: "red bold",
}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _configure_logging(level: str) -> None:
    """Route the package's log records to stderr through rich."""
    pkg_logger = logging.getLogger("hookguard")
    for handler in list(pkg_logger.handlers):
        if isinstance(handler, RichHandler):
            pkg_logger.removeHandler(handler)
    pkg_logger.addHandler(RichHandler(console=_err_console, show_path=False, show_time=False))
    pkg_logger.setLevel(level.upper())


def _state_path() -> Path:
    """Where lifecycle state lives between hook processes."""
    base = os.environ.get("HOOKGUARD_STATE_DIR")
    if base:
        return Path(base) / "state.json"
    return Path.home() / ".cache" / "hookguard" / "state.json"


def _persist_lifecycle(guard: Hookguard) -> None:
    """Each hook runs in a fresh process, so in-memory lifecycle state is useless."""
    if guard.lifecycle is not None and isinstance(guard.backend, MemoryBackend):
        guard.backend = FileBackend(_state_path())
        guard.lifecycle = SessionLifecycle(guard.backend)


def _build_guard(policy: str | None, template: str | None, fail_mode: str | None) -> Hookguard:
    """Raises HookguardConfigError on an invalid bundle or unknown template."""
    if policy:
        return Hookguard.from_yaml(policy, fail_mode=fail_mode)
    if template:
        return Hookguard.from_template(template, fail_mode=fail_mode)
    return Hookguard(fail_mode=fail_mode or "closed")


def _parse_event(raw: str) -> Any:
    """Parse an --event option; usage error (exit 2) on invalid JSON."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        _err_console.print(f"[red]Invalid JSON in --event: {escape(str(e))}[/red]")
        sys.exit(2)


def _describe_policy(policy: dict) -> str:
    rules = policy.get("rules", [])
    counts: dict[str, int] = {}
    for r in rules:
        severity = r.get("severity", "block")
        counts[severity] = counts.get(severity, 0) + 1
    breakdown = ", ".join(f"{v} {k}" for k, v in sorted(counts.items()))
    summary = f"{len(rules)} rules" + (f" ({breakdown})" if breakdown else "")
    hooks = policy.get("hooks", {})
    if hooks:
        summary += f", {len(hooks)} hooks"
    return summary


def _print_outcome(outcome: DispatchOutcome) -> None:
    decision = outcome.decision
    style = _ACTION_STYLES[decision.action]

    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column("field", style="dim")
    table.add_column("value")
    if outcome.event is not None:
        table.add_row("Event", outcome.event.event_kind.value)
        if outcome.event.tool_name:
            table.add_row("Tool", escape(outcome.event.tool_name))
    table.add_row("Action", f"[{style}]{decision.action.value.upper()}[/{style}]")
    if decision.rule_id:
        table.add_row("Rule", f"[yellow]{escape(decision.rule_id)}[/yellow]")
    if decision.error:
        table.add_row("Error", f"[red]{escape(decision.error)}[/red]")
    if decision.message:
        table.add_row("Message", escape(decision.message))
    if decision.modified_payload is not None:
        table.add_row("Payload", escape(json.dumps(decision.modified_payload, default=str)))
    table.add_row("Duration", f"{outcome.duration_ms} ms")
    _console.print(table)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True)
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    envvar="HOOKGUARD_LOG_LEVEL",
    show_default=True,
    help="Log level for diagnostics written to stderr.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str) -> None:
    """hookguard — lifecycle hook validation for agent sessions."""
    _configure_logging(log_level)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command()
def version() -> None:
    """Show the installed hookguard version."""
    from hookguard import __version__

    click.echo(f"hookguard {__version__}")


# ---------------------------------------------------------------------------
# hook
# ---------------------------------------------------------------------------


async def _respond(guard: Hookguard, raw: str) -> DispatchOutcome:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        outcome = guard.dispatcher.fail(UnknownEventKind(f"stdin is not valid JSON: {e.msg}"))
    else:
        outcome = await guard.evaluate(payload)

    # Answer the host before any audit I/O.
    click.echo(outcome.decision.to_json())
    sys.stdout.flush()
    await guard.record(outcome)
    await guard.close()
    return outcome


@cli.command()
@click.option(
    "--policy",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    envvar="HOOKGUARD_POLICY",
    help="Policy bundle (YAML).",
)
@click.option("--template", default=None, help="Built-in policy template (default, strict).")
@click.option(
    "--fail-mode",
    type=click.Choice(["open", "closed"]),
    default=None,
    help="Override the policy's fail mode.",
)
def hook(policy: str | None, template: str | None, fail_mode: str | None) -> None:
    """Read one event from stdin and write one decision to stdout."""
    if policy and template:
        raise click.UsageError("--policy and --template are mutually exclusive.")

    try:
        guard = _build_guard(policy, template, fail_mode)
    except HookguardConfigError as e:
        _err_console.print(f"[red]Failed to load policy: {escape(str(e))}[/red]")
        click.echo(Decision.block(f"Hook policy could not be loaded: {e}").to_json())
        sys.exit(1)

    _persist_lifecycle(guard)
    raw = sys.stdin.read()
    outcome = asyncio.run(_respond(guard, raw))
    sys.exit(1 if outcome.failed else 0)


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path())
def validate(files: tuple[str, ...]) -> None:
    """Validate one or more policy bundle files."""
    from hookguard.yaml_engine.compiler import compile_policy

    has_errors = False

    for file_path in files:
        path = Path(file_path)
        if not path.exists():
            _err_console.print(f"[red]  {escape(str(path))} — file not found[/red]")
            has_errors = True
            continue

        try:
            policy, policy_hash = load_policy(path)
            compile_policy(policy)
        except HookguardConfigError as e:
            _err_console.print(f"[red]  {escape(path.name)} — {escape(str(e))}[/red]")
            has_errors = True
            continue

        _console.print(
            f"[green]  {escape(path.name)}[/green] — {_describe_policy(policy)} "
            f"[dim]({str(policy_hash)[:12]})[/dim]"
        )

    sys.exit(1 if has_errors else 0)


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--event", "event_json", required=True, help="Event payload as JSON.")
@click.option("--fail-mode", type=click.Choice(["open", "closed"]), default=None, help="Override the fail mode.")
@click.option("--json", "as_json", is_flag=True, help="Print the decision as JSON.")
def check(file: str, event_json: str, fail_mode: str | None, as_json: bool) -> None:
    """Dry-run one event against a policy bundle."""
    payload = _parse_event(event_json)

    try:
        guard = Hookguard.from_yaml(file, fail_mode=fail_mode, audit_sink=NullAuditSink())
    except HookguardConfigError as e:
        _err_console.print(f"[red]Failed to load policy: {escape(str(e))}[/red]")
        sys.exit(1)

    outcome = asyncio.run(guard.evaluate(payload))

    if as_json:
        click.echo(outcome.decision.to_json())
    else:
        _print_outcome(outcome)

    sys.exit(1 if outcome.decision.action == Action.BLOCK else 0)


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--event", "event_json", required=True, help="Event payload as JSON.")
def run(file: str, event_json: str) -> None:
    """Invoke the hook command the policy configures for an event."""
    payload = _parse_event(event_json)

    try:
        guard = Hookguard.from_yaml(file, audit_sink=NullAuditSink())
    except HookguardConfigError as e:
        _err_console.print(f"[red]Failed to load policy: {escape(str(e))}[/red]")
        sys.exit(1)

    outcome = asyncio.run(guard.runner().run(payload))
    if outcome.stderr:
        _err_console.print(f"[dim]{escape(outcome.stderr.rstrip())}[/dim]")
    click.echo(outcome.decision.to_json())
    sys.exit(1 if outcome.failed else 0)
