"""
Tabwatch CLI entry point.

Commands:
    tabwatch watch     — open the tabs and capture messages continuously
    tabwatch actions   — list / add / enable / disable actions
    tabwatch triggers  — list / add / enable / disable triggers
    tabwatch simulate  — push a message through the trigger pipeline
    tabwatch inspect   — evaluate every schedule at a point in time
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from tabwatch.automation.models import AutomationEvent
from tabwatch.automation.pipeline import PipelineResult
from tabwatch.automation.service import AutomationService
from tabwatch.core.config import TabwatchConfig
from tabwatch.core.errors import TabwatchError

app = typer.Typer(
    name="tabwatch",
    help="Tabwatch — capture messages from web app tabs and plan automations.",
    add_completion=False,
)
actions_app = typer.Typer(help="Manage actions.", add_completion=False)
triggers_app = typer.Typer(help="Manage triggers.", add_completion=False)
app.add_typer(actions_app, name="actions")
app.add_typer(triggers_app, name="triggers")

console = Console()

EVENT_STYLES = {
    "message-received": "cyan",
    "trigger-matched": "yellow",
    "action-planned": "bold green",
    "action-skipped": "red",
}


def get_tabwatch_home() -> Path:
    """Get the Tabwatch home directory."""
    return Path.home() / ".tabwatch"


def get_config_path() -> Path:
    return get_tabwatch_home() / "config.toml"


def _load_config() -> TabwatchConfig:
    try:
        return TabwatchConfig.load()
    except TabwatchError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def _with_service(work: Callable[[AutomationService], Any]) -> Any:
    """
    Run ``work`` against a hydrated service, then drain and close storage.

    ``work`` may return a plain value or an awaitable.
    """
    from tabwatch.llm.http import HttpCodeGenerator
    from tabwatch.store.sqlite import SQLiteStorage

    config = _load_config()

    async def run() -> Any:
        service = AutomationService(
            config,
            SQLiteStorage(config.get_db_path()),
            codegen=HttpCodeGenerator(config.codegen),
        )
        try:
            await service.hydrate()
            result = work(service)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        finally:
            await service.shutdown()

    try:
        return asyncio.run(run())
    except TabwatchError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


def _parse_at(at: str | None) -> Any:
    """CLI timestamps: unix seconds or any accepted datetime text."""
    if at is None:
        return None
    try:
        return float(at)
    except ValueError:
        return at


def _print_events(events: list[AutomationEvent]) -> None:
    for event in events:
        style = EVENT_STYLES.get(event.kind, "")
        detail = ", ".join(f"{k}={v!r}" for k, v in event.payload.items())
        console.print(f"[dim]{_fmt_ts(event.created_at)}[/dim] [{style}]{event.kind}[/{style}] {escape(detail)}")


# ━━━ Actions ━━━


@actions_app.command("list")
def actions_list() -> None:
    """List actions, newest first."""
    actions = _with_service(lambda s: s.list_actions())
    if not actions:
        console.print("[dim]No actions yet.[/dim]")
        return
    table = Table(title="Actions")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Kind")
    table.add_column("Schedule")
    table.add_column("Enabled")
    for action in actions:
        table.add_row(
            action.id,
            action.name,
            action.kind,
            action.schedule_text,
            "[green]yes[/green]" if action.enabled else "[red]no[/red]",
        )
    console.print(table)


@actions_app.command("add")
def actions_add(
    name: str = typer.Argument(..., help="Action name"),
    kind: str = typer.Option("custom", "--kind", "-k", help="Free-form classification tag"),
    instructions: str = typer.Option("", "--instructions", "-i", help="What the action should do"),
    schedule: str = typer.Option("always", "--schedule", "-s", help="Schedule text"),
    llm: bool = typer.Option(False, "--llm", help="Generate code with the configured provider"),
) -> None:
    """Create an action."""
    action = _with_service(
        lambda s: s.add_action(name, kind=kind, instructions=instructions, schedule_text=schedule, use_llm=llm)
    )
    console.print(f"[green]Action created:[/green] {action.name} [dim]({action.id})[/dim]")
    if not action.schedule.parseable:
        console.print(f"[yellow]Schedule not understood: {action.schedule.note}[/yellow]")


@actions_app.command("enable")
def actions_enable(action_id: str = typer.Argument(..., help="Action id")) -> None:
    """Enable an action."""
    _toggle("Action", action_id, True, lambda s: s.set_action_enabled(action_id, True))


@actions_app.command("disable")
def actions_disable(action_id: str = typer.Argument(..., help="Action id")) -> None:
    """Disable an action."""
    _toggle("Action", action_id, False, lambda s: s.set_action_enabled(action_id, False))


# ━━━ Triggers ━━━


@triggers_app.command("list")
def triggers_list() -> None:
    """List triggers, newest first."""
    triggers = _with_service(lambda s: s.list_triggers())
    if not triggers:
        console.print("[dim]No triggers yet.[/dim]")
        return
    table = Table(title="Triggers")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Tab")
    table.add_column("Match")
    table.add_column("Schedule")
    table.add_column("Actions")
    table.add_column("Enabled")
    for trigger in triggers:
        table.add_row(
            trigger.id,
            trigger.name,
            trigger.source_tab,
            trigger.match_text or "[dim](everything)[/dim]",
            trigger.schedule_text,
            str(len(trigger.action_ids)),
            "[green]yes[/green]" if trigger.enabled else "[red]no[/red]",
        )
    console.print(table)


@triggers_app.command("add")
def triggers_add(
    name: str = typer.Argument(..., help="Trigger name"),
    tab: str = typer.Option("any", "--tab", "-t", help="Source tab id or 'any'"),
    match: str = typer.Option("", "--match", "-m", help="Keywords, regex:<pattern> or /pattern/flags"),
    schedule: str = typer.Option("always", "--schedule", "-s", help="Schedule text"),
    action: Optional[list[str]] = typer.Option(None, "--action", "-a", help="Linked action id (repeatable)"),
    llm: bool = typer.Option(False, "--llm", help="Generate code with the configured provider"),
) -> None:
    """Create a trigger."""
    requested = list(action or [])
    trigger = _with_service(
        lambda s: s.add_trigger(
            name,
            source_tab=tab,
            match_text=match,
            schedule_text=schedule,
            action_ids=requested,
            use_llm=llm,
        )
    )
    console.print(f"[green]Trigger created:[/green] {trigger.name} [dim]({trigger.id})[/dim]")
    dropped = [a for a in requested if a not in trigger.action_ids]
    if dropped:
        console.print(f"[yellow]Unknown action id(s) ignored: {', '.join(dropped)}[/yellow]")
    if not trigger.schedule.parseable:
        console.print(f"[yellow]Schedule not understood: {trigger.schedule.note}[/yellow]")


@triggers_app.command("enable")
def triggers_enable(trigger_id: str = typer.Argument(..., help="Trigger id")) -> None:
    """Enable a trigger."""
    _toggle("Trigger", trigger_id, True, lambda s: s.set_trigger_enabled(trigger_id, True))


@triggers_app.command("disable")
def triggers_disable(trigger_id: str = typer.Argument(..., help="Trigger id")) -> None:
    """Disable a trigger."""
    _toggle("Trigger", trigger_id, False, lambda s: s.set_trigger_enabled(trigger_id, False))


def _toggle(label: str, entity_id: str, enabled: bool, op: Callable[[AutomationService], bool]) -> None:
    ok = _with_service(op)
    if not ok:
        console.print(f"[red]{label} not found: {entity_id}[/red]")
        raise typer.Exit(1)
    console.print(f"{label} {entity_id} {'enabled' if enabled else 'disabled'}")


# ━━━ Messages & events ━━━


@app.command()
def simulate(
    title: str = typer.Argument("", help="Message title"),
    tab: str = typer.Option("", "--tab", "-t", help="Tab id the message comes from"),
    body: str = typer.Option("", "--body", "-b", help="Message body"),
    at: Optional[str] = typer.Option(None, "--at", help="Message time (unix seconds or datetime)"),
) -> None:
    """Push a simulated message through the trigger pipeline."""
    created_at = _parse_at(at)

    async def work(service: AutomationService) -> PipelineResult:
        return service.simulate_message(tab, title, body, created_at=created_at)

    result = _with_service(work)
    _print_events(result.events)
    console.print(
        f"[dim]{len(result.evaluations)} trigger(s) evaluated, "
        f"{len(result.planned)} action(s) planned[/dim]"
    )


@app.command()
def events(limit: int = typer.Option(50, "--limit", "-n", help="Number of events")) -> None:
    """Show recent automation events, oldest of the batch first."""
    recent = _with_service(lambda s: s.recent_events(limit))
    if not recent:
        console.print("[dim]No events yet.[/dim]")
        return
    _print_events(list(reversed(recent)))


@app.command()
def messages(limit: int = typer.Option(50, "--limit", "-n", help="Number of messages")) -> None:
    """Show recent messages, newest first."""
    recent = _with_service(lambda s: s.list_messages(limit))
    if not recent:
        console.print("[dim]No messages yet.[/dim]")
        return
    table = Table(title="Messages")
    table.add_column("Time", style="dim")
    table.add_column("Tab")
    table.add_column("Source", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Body")
    for message in recent:
        table.add_row(
            _fmt_ts(message.created_at),
            message.tab_id,
            message.source,
            message.title,
            message.body[:80],
        )
    console.print(table)


@app.command()
def history(trigger_id: str = typer.Argument(..., help="Trigger id")) -> None:
    """Show how a trigger evaluated recent messages."""
    rows = _with_service(lambda s: s.trigger_history(trigger_id))
    if not rows:
        console.print(f"[dim]No evaluations for {trigger_id}.[/dim]")
        return
    table = Table(title=f"Trigger {trigger_id}")
    table.add_column("Time", style="dim")
    table.add_column("Matched")
    table.add_column("Reason")
    table.add_column("Message")
    for row in rows:
        message = row["message"]
        table.add_row(
            _fmt_ts(row["created_at"]),
            "[green]yes[/green]" if row["matched"] else "[red]no[/red]",
            row["reason"],
            message["title"] if message else "[dim](evicted)[/dim]",
        )
    console.print(table)


@app.command()
def inspect(
    at: Optional[str] = typer.Option(None, "--at", help="Evaluate at (unix seconds or datetime)"),
) -> None:
    """Evaluate every trigger and action schedule at a point in time."""
    requested = _parse_at(at)
    report = _with_service(lambda s: s.inspect_schedule(requested))
    if not report["ok"]:
        console.print(f"[red]{report['error']}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold]Schedules at {_fmt_ts(report['at'])}[/bold]")
    table = Table()
    table.add_column("Type")
    table.add_column("Name", style="bold")
    table.add_column("Schedule")
    table.add_column("Active")
    table.add_column("Reason", style="dim")
    for label, key in (("trigger", "triggers"), ("action", "actions")):
        for row in report[key]:
            active = row["state"]["active"]
            shown = {True: "[green]yes[/green]", False: "[red]no[/red]"}.get(active, "[yellow]unknown[/yellow]")
            table.add_row(label, row["name"], row["schedule_text"], shown, row["state"]["reason"])
    console.print(table)


@app.command("codegen-settings")
def codegen_settings(
    provider: Optional[str] = typer.Option(None, "--provider", help="openai, anthropic, gemini or openrouter"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="Provider API key"),
    model: Optional[str] = typer.Option(None, "--model", help="Model name"),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Endpoint override"),
) -> None:
    """Show or update code-generation settings."""

    async def work(service: AutomationService):
        if any(v is not None for v in (provider, api_key, model, endpoint)):
            return await service.set_codegen_settings(
                provider=provider, api_key=api_key, model=model, endpoint_override=endpoint
            )
        return service.get_codegen_settings()

    settings = _with_service(work)
    console.print(f"[bold]Provider:[/bold] {settings.provider}")
    console.print(f"[bold]Model:[/bold] {settings.model}")
    console.print(f"[bold]Endpoint:[/bold] {settings.endpoint_override or '(default)'}")
    console.print(f"[bold]API key:[/bold] {'set' if settings.configured else '[dim]not set[/dim]'}")


# ━━━ Watching ━━━


@app.command()
def watch(
    headless: Optional[bool] = typer.Option(None, "--headless/--headed", help="Run the browser headless"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Open the configured tabs and capture messages until Ctrl-C."""
    try:
        asyncio.run(_run_watch(headless, verbose))
    except KeyboardInterrupt:
        pass


async def _run_watch(headless: bool | None, verbose: bool) -> None:
    from tabwatch.capture.playwright_host import PlaywrightTabHost
    from tabwatch.core.bus import EventBus
    from tabwatch.core.events import Event
    from tabwatch.core.kernel import Kernel
    from tabwatch.middleware.logging import EventLogger, setup_logging

    setup_logging(
        log_dir=get_tabwatch_home() / "logs",
        console_level=logging.DEBUG if verbose else logging.WARNING,
    )
    logger = logging.getLogger("tabwatch")

    config = _load_config()
    if headless is not None:
        config.browser.headless = headless

    bus = EventBus()
    bus.use(EventLogger(log_dir=get_tabwatch_home() / "logs").middleware)
    kernel = Kernel(config=config, bus=bus)

    async def show(event: Event) -> None:
        kind = event.data.get("kind", "")
        style = EVENT_STYLES.get(kind, "")
        title = event.data.get("title") or event.data.get("message_title") or ""
        name = event.data.get("action_name") or event.data.get("trigger_name") or ""
        console.print(f"[{style}]{kind}[/{style}] {escape(name)} {escape(title)}".rstrip())

    kernel.on("automation:*", show)

    try:
        host = PlaywrightTabHost(config, bus, on_notification=kernel.service.handle_notification)
    except ImportError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    kernel.attach_host(host)

    try:
        await host.start()
        await kernel.start()
        console.print(
            Panel(
                f"Watching {len(config.tabs)} tab(s), polling every "
                f"{config.capture.poll_interval}s. Ctrl-C to stop.",
                border_style="cyan",
            )
        )
        await asyncio.Event().wait()
    except Exception as e:
        logger.exception(f"Error in watch session: {e}")
        raise
    finally:
        logger.info("Shutting down")
        await kernel.stop()
        await host.stop()


# ━━━ Housekeeping ━━━


@app.command()
def version() -> None:
    """Show Tabwatch version."""
    from tabwatch import __version__

    console.print(f"Tabwatch v{__version__}")


@app.command()
def logs(
    lines: int = typer.Option(50, "--lines", "-n", help="Number of lines to show"),
    events_log: bool = typer.Option(False, "--events", "-e", help="Show events log instead"),
) -> None:
    """Show recent logs."""
    log_dir = get_tabwatch_home() / "logs"
    if not log_dir.exists():
        console.print("[dim]No logs found.[/dim]")
        raise typer.Exit(0)

    date_str = datetime.now().strftime("%Y%m%d")
    if events_log:
        log_file = log_dir / f"events_{date_str}.jsonl"
    else:
        log_file = log_dir / f"tabwatch_{date_str}.log"

    if not log_file.exists():
        console.print(f"[dim]No log file for today: {log_file}[/dim]")
        raise typer.Exit(0)

    with open(log_file, "r", encoding="utf-8") as f:
        all_lines = f.readlines()
    for line in all_lines[-lines:]:
        console.print(line.rstrip(), markup=False)


@app.command()
def config() -> None:
    """Show the effective configuration."""
    config_path = get_config_path()
    console.print(Panel("[bold]Tabwatch Configuration[/bold]", border_style="cyan"))
    console.print(f"[bold]Config file:[/bold] {config_path}")
    if not config_path.exists():
        console.print("[dim]Not found; using defaults and TABWATCH_* variables.[/dim]")

    effective = _load_config().model_dump()
    if effective["codegen"]["api_key"]:
        effective["codegen"]["api_key"] = "***"
    console.print(Panel(json.dumps(effective, indent=2), title="effective", border_style="dim"))


if __name__ == "__main__":
    app()
