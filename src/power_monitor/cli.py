"""
CLI: entry point for Power Monitor.

Commands:
    power-monitor run            Run the polling daemon
    power-monitor check-config   Resolve and show the effective configuration
    power-monitor notify list    Show active notification channels
    power-monitor notify test    Send a test notification to every channel
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from power_monitor import __version__

console = Console()

_config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default="config.yaml",
    show_default=True,
    help="YAML configuration file",
)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _load(config_path: str):
    """Resolve configuration or exit 1."""
    from power_monitor.core.errors import ConfigError
    from power_monitor.core.resolver import resolve_config

    try:
        return resolve_config(config_path)
    except ConfigError as exc:
        console.print(f"[red]Configuration error: {escape(str(exc))}[/red]")
        sys.exit(1)


def _open_store(database_url: str):
    """Open and initialise the reading store, or return None if unusable."""
    from power_monitor.monitor.storage import ReadingStore, StorageError

    try:
        store = ReadingStore(database_url)
    except StorageError as exc:
        # Alerting still works without storage
        logging.getLogger(__name__).error("%s; readings will not be saved", exc)
        return None
    try:
        store.init()
    except StorageError as exc:
        logging.getLogger(__name__).error("%s", exc)
    return store


def _mask(value: str) -> str:
    if not value:
        return "[dim](unset)[/dim]"
    return value[:2] + "*" * max(len(value) - 2, 4)


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """Power Monitor: dormitory electricity balance alerts."""
    pass


# ---------------------------------------------------------------------------
# Daemon
# ---------------------------------------------------------------------------


@main.command()
@_config_option
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def run(config_path: str, verbose: bool) -> None:
    """Poll the portal forever, storing readings and sending alerts."""
    from power_monitor.monitor.client import PortalClient
    from power_monitor.monitor.scheduler import Scheduler
    from power_monitor.notifications.alerts import AlertStateMachine
    from power_monitor.notifications.dispatcher import build_dispatcher

    _setup_logging(verbose)
    config = _load(config_path)

    store = _open_store(config.database_url)

    client = PortalClient(
        config.service_url,
        username=config.username,
        login_type=config.login_type,
        cookie_file=config.cookie_file,
    )
    scheduler = Scheduler(
        config,
        client,
        store,
        AlertStateMachine(config.notify),
        build_dispatcher(config.notify),
    )

    async def _main() -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                pass  # Windows
        await scheduler.run(stop)

    try:
        asyncio.run(_main())
    finally:
        client.close()
        if store is not None:
            store.close()


@main.command(name="check-config")
@_config_option
def check_config(config_path: str) -> None:
    """Resolve configuration from file, secrets and environment."""
    config = _load(config_path)
    notif = config.notify

    console.print("\n[bold]Effective configuration[/bold]\n")
    console.print(f"  username          {config.username}")
    console.print(f"  password          {_mask(config.password)}")
    console.print(f"  service_url       {config.service_url}")
    console.print(f"  database_url      {_mask(config.database_url)}")
    console.print(f"  interval_seconds  {config.interval_seconds}")
    console.print(f"  login_type        {config.login_type}")
    console.print(f"  cookie_file       {config.cookie_file}")
    console.print(f"  notify.enabled    {notif.enabled}")
    if notif.enabled:
        console.print(f"  threshold         {notif.threshold:.2f} CNY")
        console.print(f"  cooldown          {notif.cooldown_minutes} min")
        hb = f"{notif.heartbeat_hour:02d}:00" if notif.heartbeat_enabled else "off"
        console.print(f"  heartbeat         {hb}")
        active = ", ".join(c.type for c in notif.channels) or "none"
        console.print(f"  channels          {active}")
    console.print()


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@main.group()
def notify() -> None:
    """Manage notification channels."""
    pass


@notify.command(name="list")
@_config_option
def notify_list(config_path: str) -> None:
    """Show requested notification channels and whether they are active."""
    config = _load(config_path)
    notif = config.notify

    if not notif.enabled:
        console.print("[dim]Notifications are disabled.[/dim]")
        console.print("[dim]Enable with notify.enabled or UPM_NOTIFY__ENABLED=true[/dim]")
        return

    console.print(
        f"\n[bold]Notification channels[/bold] (threshold {notif.threshold:.2f} CNY)\n"
    )
    active = {c.type for c in notif.channels}
    for kind in notif.selected_kinds():
        status = "[green]active[/green]" if kind in active else "[red]inactive[/red]"
        console.print(f"  [{status}] [bold]{kind}[/bold]")


@notify.command(name="test")
@_config_option
def notify_test(config_path: str) -> None:
    """Send a test notification to all active channels."""
    from power_monitor.notifications.dispatcher import build_dispatcher
    from power_monitor.notifications.events import EventType, NotificationEvent

    config = _load(config_path)
    if not config.notify.enabled:
        console.print("[red]Notifications are not enabled.[/red]")
        return

    async def _test():
        dispatcher = build_dispatcher(config.notify)
        await dispatcher.connect_all()
        event = NotificationEvent(
            event_type=EventType.HEARTBEAT,
            title="Power Monitor test notification",
            summary="If you see this, your notification channel is working!",
        )
        try:
            return await dispatcher.dispatch(event)
        finally:
            await dispatcher.disconnect_all()

    results = asyncio.run(_test())
    if not results:
        console.print("[yellow]No active channel to test.[/yellow]")
        return
    for result in results:
        if result.ok:
            console.print(f"[green]>[/green] {result.channel}: sent ({result.elapsed_seconds:.1f}s)")
        else:
            console.print(f"[red]x[/red] {result.channel}: {escape(result.error)}")


if __name__ == "__main__":
    main()
