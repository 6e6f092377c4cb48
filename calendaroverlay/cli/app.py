"""
Main CLI application using Typer.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Callable, Dict, List, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters.backoff import RetryPolicy
from ..adapters.google_client import GoogleCalendarClient
from ..adapters.graph_client import GraphClient
from ..adapters.identity import GoogleIdentityProvider, MsalIdentityProvider
from ..adapters.mock_client import MockCalendarAdapter, MockIdentityProvider
from ..adapters.storage import PersistentStore, SessionStore
from ..config import AppConfig, Preferences, SavedView, get_default_config_path
from ..domain.exceptions import AuthenticationError, CalendarAPIError, ConfigurationError
from ..domain.models import FetchMode, Source, ViewMode, WorkHours
from ..domain.periods import iso_week_number
from ..domain.slot_calculator import SlotCalculator
from ..services.aggregator import AvailabilityAggregator, AvailabilitySnapshot
from ..services.session_manager import InactivityWatchdog, ProviderSession, SessionManager

app = typer.Typer(
    name="calendaroverlay",
    help="Merged free/busy view of your Microsoft and Google calendars",
    add_completion=False,
)
views_app = typer.Typer(help="Manage saved views")
workhours_app = typer.Typer(help="Manage work hours per weekday")
colors_app = typer.Typer(help="Manage the colour of each provider")
app.add_typer(views_app, name="views")
app.add_typer(workhours_app, name="workhours")
app.add_typer(colors_app, name="colors")

console = Console()

WEEKDAYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]


@dataclass
class Runtime:
    """Everything one CLI invocation wires together."""
    config: AppConfig
    preferences: Preferences
    sessions: SessionManager
    aggregator: AvailabilityAggregator


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_config(config_file: Optional[Path], mock: bool = False) -> AppConfig:
    config_path = config_file or get_default_config_path()
    if mock and not config_path.exists():
        return AppConfig()
    return AppConfig.load_from_yaml(config_path)


def _build_runtime(config: AppConfig, mock: bool) -> Runtime:
    preferences = Preferences(PersistentStore(), config.defaults)
    retry_policy = RetryPolicy(
        base_seconds=config.retry.base_seconds,
        cap_seconds=config.retry.cap_seconds,
        max_retries=config.retry.max_retries,
    )

    if mock:
        sessions = SessionManager(
            [ProviderSession(source, MockIdentityProvider(source.value)) for source in Source]
        )
        adapters = [MockCalendarAdapter(source, config.timezone) for source in Source]
    else:
        session_store = SessionStore()
        provider_sessions: List[ProviderSession] = []
        adapters = []

        if config.is_configured(Source.MICROSOFT):
            provider_sessions.append(ProviderSession(
                Source.MICROSOFT,
                MsalIdentityProvider(config.microsoft.client_id, config.microsoft.tenant, store=session_store),
            ))
        if config.is_configured(Source.GOOGLE):
            provider_sessions.append(ProviderSession(
                Source.GOOGLE,
                GoogleIdentityProvider(config.google.client_id, config.google.client_secret),
            ))

        sessions = SessionManager(provider_sessions, session_stores=[session_store])

        if config.is_configured(Source.MICROSOFT):
            adapters.append(GraphClient(
                sessions.token_supplier(Source.MICROSOFT), config.timezone, retry_policy=retry_policy,
            ))
        if config.is_configured(Source.GOOGLE):
            adapters.append(GoogleCalendarClient(
                sessions.token_supplier(Source.GOOGLE), config.timezone, retry_policy=retry_policy,
            ))

    calculator = SlotCalculator(
        work_week=preferences.load_work_week(),
        min_gap_minutes=config.defaults.min_gap_minutes,
    )
    aggregator = AvailabilityAggregator(adapters, calculator, sessions, timezone=config.timezone)
    return Runtime(config=config, preferences=preferences, sessions=sessions, aggregator=aggregator)


def _parse_day(value: Optional[str], tz: str) -> pendulum.Date:
    if not value:
        return pendulum.now(tz).date()
    try:
        return pendulum.from_format(value, "YYYY-MM-DD").date()
    except ValueError as e:
        console.print(f"[red]Invalid date '{value}': {e}[/red]")
        raise typer.Exit(1)


def _render(snapshot: AvailabilitySnapshot, colors: Dict[Source, str]) -> None:
    period = snapshot.period

    if period.view == ViewMode.WEEK:
        console.print(
            f"\n[bold cyan]Week {iso_week_number(period.start)}[/bold cyan]: "
            f"{period.start.format('DD.MM.YYYY')} - {period.end.format('DD.MM.YYYY')}"
        )
    else:
        console.print(f"\n[bold cyan]{period.start.format('dddd DD.MM.YYYY')}[/bold cyan]")

    for source, message in snapshot.auth_errors.items():
        console.print(f"[yellow]⚠ {message} - {source.value} data is missing[/yellow]")

    busy_table = Table(title="Busy", show_header=True, header_style="bold cyan")
    busy_table.add_column("Source")
    busy_table.add_column("Time")
    for block in snapshot.busy:
        busy_table.add_row(f"[{colors[block.source]}]{block.source.value}[/]", str(block))
    console.print(busy_table)

    free_table = Table(title="Free slots", show_header=True, header_style="bold green")
    free_table.add_column("Day")
    free_table.add_column("Slot")
    free_table.add_column("Minutes", justify="right")
    for day, slots in snapshot.free_slots.items():
        if not slots:
            free_table.add_row(day, "[dim]none[/dim]", "")
        for slot in slots:
            free_table.add_row(
                day,
                f"{slot.start.format('HH:mm')} - {slot.end.format('HH:mm')}",
                str(int(slot.duration_minutes())),
            )
    console.print(free_table)

    if snapshot.mode == FetchMode.DETAILS:
        details_table = Table(title="Events", show_header=True, header_style="bold magenta")
        details_table.add_column("Source")
        details_table.add_column("Time")
        details_table.add_column("Title")
        details_table.add_column("Location")
        for event in snapshot.details:
            details_table.add_row(
                f"[{colors[event.source]}]{event.source.value}[/]",
                f"{event.start.format('DD.MM HH:mm')} - {event.end.format('HH:mm')}",
                event.title or "",
                event.location or "",
            )
        console.print(details_table)


def _find_view(preferences: Preferences, view_id: str) -> SavedView:
    for saved in preferences.list_views():
        if saved.id == view_id:
            return saved
    console.print(f"[bold red]Error:[/bold red] no saved view with id {view_id}")
    raise typer.Exit(1)


async def _fetch(runtime: Runtime, day, view: ViewMode, mode: FetchMode, connect: List[Source]):
    await runtime.sessions.restore()
    for source in connect:
        await runtime.sessions.connect(source)
    return await runtime.aggregator.update_view(day, view, mode)


@app.command()
def show(
    day: Annotated[Optional[str], typer.Argument(help="Day to show (YYYY-MM-DD), default today")] = None,
    week: Annotated[bool, typer.Option("--week", "-w", help="Show the Monday-Sunday week")] = False,
    details: Annotated[Optional[bool], typer.Option("--details/--free-busy", help="Include event titles")] = None,
    min_gap: Annotated[Optional[int], typer.Option("--min-gap", "-m", help="Minimum free slot in minutes")] = None,
    connect: Annotated[Optional[List[Source]], typer.Option("--connect", help="Sign in to a provider first")] = None,
    view_id: Annotated[Optional[str], typer.Option("--view", help="Open a saved view by its id")] = None,
    mock: Annotated[bool, typer.Option("--mock", help="Use mock data and skip authentication")] = False,
    config_file: ConfigOption = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
):
    """
    Show busy blocks and free slots for a day or a week.

    A saved view supplies date, view, details, minimum gap and work hours;
    --details and --min-gap still override it.

    Examples:

        calendaroverlay show --mock
        calendaroverlay show 2024-11-25 --week --connect google
        calendaroverlay show --details --min-gap 45
        calendaroverlay show --view 0c7d9e41b2a84f6f9d3e5a1b2c3d4e5f
    """
    _configure_logging(verbose)
    try:
        config = _load_config(config_file, mock)
        runtime = _build_runtime(config, mock)
        use_details = config.details_mode
        view = ViewMode.WEEK if week else ViewMode.DAY
        target_day = _parse_day(day, config.timezone)

        if view_id is not None:
            saved = _find_view(runtime.preferences, view_id)
            runtime.aggregator.set_work_week(saved.to_work_week())
            runtime.aggregator.set_min_gap(saved.min_gap_minutes)
            use_details = saved.details
            view = saved.view
            target_day = saved.date

        if min_gap is not None:
            runtime.aggregator.set_min_gap(min_gap)
        if details is not None:
            use_details = details

        mode = FetchMode.DETAILS if use_details else FetchMode.FREE_BUSY
        sources = list(connect or [])
        if mock:
            sources = list(Source)

        snapshot = asyncio.run(_fetch(runtime, target_day, view, mode, sources))
        _render(snapshot, runtime.preferences.colors())

    except CalendarAPIError as e:
        console.print(f"[bold red]Fetch failed:[/bold red] {e}")
        raise typer.Exit(1)

    except AuthenticationError as e:
        console.print(f"[bold red]Sign-in failed:[/bold red] {e}")
        raise typer.Exit(1)

    except (FileNotFoundError, ValueError, ConfigurationError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


async def _watch_loop(runtime: Runtime, day, view: ViewMode, mode: FetchMode) -> None:
    """
    Interactive session: every command counts as activity for the watchdog.
    """
    stop = asyncio.Event()

    async def on_inactive() -> None:
        await runtime.sessions.panic()
        console.print("\n[yellow]Session closed after inactivity. Press Enter to exit.[/yellow]")
        stop.set()

    watchdog = InactivityWatchdog(on_inactive, timeout=runtime.config.inactivity_timeout_minutes * 60)
    watchdog.start()
    await runtime.sessions.restore()

    try:
        while not stop.is_set():
            try:
                snapshot = await runtime.aggregator.update_view(day, view, mode)
                _render(snapshot, runtime.preferences.colors())
            except CalendarAPIError as e:
                console.print(f"[bold red]Fetch failed:[/bold red] {e}")

            console.print("[dim]n/p: next/prev, w: toggle week, d: toggle details, "
                          "c <source>: connect, r: refresh, x: panic, q: quit[/dim]")
            prompt = asyncio.ensure_future(asyncio.to_thread(input, "> "))
            stopped = asyncio.ensure_future(stop.wait())
            done, _ = await asyncio.wait({prompt, stopped}, return_when=asyncio.FIRST_COMPLETED)
            if stopped in done:
                break
            stopped.cancel()

            command = prompt.result().strip().split()
            watchdog.touch()
            if not command:
                continue

            step = 7 if view == ViewMode.WEEK else 1
            if command[0] == "q":
                break
            elif command[0] == "n":
                day = day.add(days=step)
            elif command[0] == "p":
                day = day.subtract(days=step)
            elif command[0] == "w":
                view = ViewMode.DAY if view == ViewMode.WEEK else ViewMode.WEEK
            elif command[0] == "d":
                mode = FetchMode.FREE_BUSY if mode == FetchMode.DETAILS else FetchMode.DETAILS
            elif command[0] == "r":
                runtime.aggregator.reset_all()
            elif command[0] == "x":
                await runtime.sessions.panic()
                console.print("[green]✓ All credentials revoked and state cleared.[/green]")
            elif command[0] == "c" and len(command) > 1:
                try:
                    await runtime.sessions.connect(Source(command[1]))
                except (ValueError, KeyError):
                    console.print(f"[yellow]Unknown provider: {command[1]}[/yellow]")
                except AuthenticationError as e:
                    console.print(f"[bold red]Sign-in failed:[/bold red] {e}")
    finally:
        watchdog.stop()


@app.command()
def watch(
    day: Annotated[Optional[str], typer.Argument(help="Start day (YYYY-MM-DD), default today")] = None,
    mock: Annotated[bool, typer.Option("--mock", help="Use mock data and skip authentication")] = False,
    config_file: ConfigOption = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
):
    """
    Interactive session with automatic teardown after inactivity.
    """
    _configure_logging(verbose)
    try:
        config = _load_config(config_file, mock)
        runtime = _build_runtime(config, mock)
        mode = FetchMode.DETAILS if config.details_mode else FetchMode.FREE_BUSY

        if mock:
            for source in Source:
                runtime.sessions.session(source).identity.acquire_token_interactive()

        asyncio.run(_watch_loop(runtime, _parse_day(day, config.timezone), ViewMode.DAY, mode))

    except (FileNotFoundError, ValueError, ConfigurationError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def connect(
    source: Annotated[Source, typer.Argument(help="Provider to sign in to")],
    config_file: ConfigOption = None,
):
    """
    Sign in to a provider and verify a token can be obtained.

    Google credentials are kept in memory only, so they end with this command.
    """
    _configure_logging(False)
    try:
        config = _load_config(config_file)
        if not config.is_configured(source):
            console.print(f"[bold red]Error:[/bold red] no client_id configured for {source.value}")
            raise typer.Exit(1)

        runtime = _build_runtime(config, mock=False)
        asyncio.run(runtime.sessions.connect(source))
        console.print(f"[green]✓ {source.value} connected[/green]")

    except AuthenticationError as e:
        console.print(f"[bold red]Sign-in failed:[/bold red] {e}")
        raise typer.Exit(1)

    except (FileNotFoundError, ValueError, ConfigurationError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def panic(config_file: ConfigOption = None):
    """
    Revoke all tokens and wipe every session credential.
    """
    _configure_logging(False)
    try:
        config = _load_config(config_file)
        runtime = _build_runtime(config, mock=False)

        async def run() -> None:
            await runtime.sessions.restore()
            await runtime.sessions.panic()

        asyncio.run(run())
        console.print("\n[green]✓ All credentials revoked and session data cleared.[/green]\n")

    except (FileNotFoundError, ValueError, ConfigurationError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@views_app.command("save")
def views_save(
    name: Annotated[str, typer.Argument(help="Name of the view")],
    day: Annotated[Optional[str], typer.Option("--day", help="Day (YYYY-MM-DD), default today")] = None,
    week: Annotated[bool, typer.Option("--week", "-w")] = False,
    details: Annotated[bool, typer.Option("--details")] = False,
    min_gap: Annotated[Optional[int], typer.Option("--min-gap", "-m")] = None,
    config_file: ConfigOption = None,
):
    """
    Save the current view configuration under a name.
    """
    config = _load_config(config_file, mock=True)
    preferences = Preferences(PersistentStore(), config.defaults)
    work_week = preferences.load_work_week()

    view = preferences.save_view(SavedView(
        name=name,
        date=_parse_day(day, config.timezone),
        view=ViewMode.WEEK if week else ViewMode.DAY,
        details=details,
        min_gap_minutes=min_gap if min_gap is not None else config.defaults.min_gap_minutes,
        work_week=[(h.start, h.end) for h in work_week.days],
    ))
    console.print(f"[green]✓ Saved view '{view.name}' ({view.id})[/green]")


@views_app.command("list")
def views_list(config_file: ConfigOption = None):
    """
    List all saved views.
    """
    config = _load_config(config_file, mock=True)
    views = Preferences(PersistentStore(), config.defaults).list_views()

    if not views:
        console.print("[yellow]No saved views.[/yellow]")
        return

    table = Table(title="Saved views", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold yellow")
    table.add_column("Date")
    table.add_column("View")
    table.add_column("Details")
    table.add_column("Min gap", justify="right")
    for view in views:
        table.add_row(
            view.id, view.name, view.date.isoformat(), view.view.value,
            "yes" if view.details else "no", str(view.min_gap_minutes),
        )

    console.print()
    console.print(table)
    console.print()


@views_app.command("delete")
def views_delete(
    view_id: Annotated[str, typer.Argument(help="ID of the view")],
    config_file: ConfigOption = None,
):
    """
    Delete a saved view.
    """
    config = _load_config(config_file, mock=True)
    if not Preferences(PersistentStore(), config.defaults).delete_view(view_id):
        console.print(f"[yellow]No saved view with id {view_id}[/yellow]")
        raise typer.Exit(1)
    console.print("[green]✓ View deleted[/green]")


@workhours_app.command("show")
def workhours_show(config_file: ConfigOption = None):
    """
    Show the work hours per weekday.
    """
    config = _load_config(config_file, mock=True)
    work_week = Preferences(PersistentStore(), config.defaults).load_work_week()

    table = Table(title="Work hours", show_header=True, header_style="bold cyan")
    table.add_column("Day")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    for name, hours in zip(WEEKDAYS, work_week.days):
        table.add_row(name, f"{hours.start:02d}:00", f"{hours.end:02d}:00")
    console.print(table)


def _weekday_targets(day: str) -> List[int]:
    if day == "all":
        return list(range(7))
    if day in WEEKDAYS:
        return [WEEKDAYS.index(day)]
    console.print(f"[bold red]Error:[/bold red] unknown weekday '{day}'")
    raise typer.Exit(1)


def _update_work_week(
    config_file: Optional[Path], day: str, change: Callable[[WorkHours], WorkHours]
) -> None:
    config = _load_config(config_file, mock=True)
    preferences = Preferences(PersistentStore(), config.defaults)
    work_week = preferences.load_work_week()

    for weekday in _weekday_targets(day):
        hours = change(work_week.days[weekday])
        work_week = work_week.replace_day(weekday, hours)
        console.print(
            f"[green]✓ {WEEKDAYS[weekday]}: {hours.start:02d}:00 - {hours.end:02d}:00[/green]"
        )
    preferences.save_work_week(work_week)


@workhours_app.command("set")
def workhours_set(
    day: Annotated[str, typer.Argument(help="Weekday (mon..sun) or 'all'")],
    start: Annotated[int, typer.Argument(help="Start hour 0-23")],
    end: Annotated[int, typer.Argument(help="End hour 0-23")],
    config_file: ConfigOption = None,
):
    """
    Set work hours; an end before the start snaps onto the start.
    """
    _update_work_week(config_file, day, lambda _: WorkHours(start=start, end=end))


@workhours_app.command("start")
def workhours_start(
    day: Annotated[str, typer.Argument(help="Weekday (mon..sun) or 'all'")],
    hour: Annotated[int, typer.Argument(help="Start hour 0-23")],
    config_file: ConfigOption = None,
):
    """
    Move the start of the workday; it never passes the current end.
    """
    _update_work_week(config_file, day, lambda hours: hours.with_start(hour))


@workhours_app.command("end")
def workhours_end(
    day: Annotated[str, typer.Argument(help="Weekday (mon..sun) or 'all'")],
    hour: Annotated[int, typer.Argument(help="End hour 0-23")],
    config_file: ConfigOption = None,
):
    """
    Move the end of the workday; it never moves before the current start.
    """
    _update_work_week(config_file, day, lambda hours: hours.with_end(hour))


@colors_app.command("show")
def colors_show(config_file: ConfigOption = None):
    """
    Show the colour used for each provider.
    """
    config = _load_config(config_file, mock=True)
    colors = Preferences(PersistentStore(), config.defaults).colors()

    table = Table(title="Colours", show_header=True, header_style="bold cyan")
    table.add_column("Source")
    table.add_column("Colour")
    for source, color in colors.items():
        table.add_row(f"[{color}]{source.value}[/]", color)
    console.print(table)


@colors_app.command("set")
def colors_set(
    source: Annotated[Source, typer.Argument(help="Provider")],
    color: Annotated[str, typer.Argument(help="Hex colour, e.g. #ff8800")],
    config_file: ConfigOption = None,
):
    """
    Set the colour of a provider's blocks and events.
    """
    config = _load_config(config_file, mock=True)
    try:
        Preferences(PersistentStore(), config.defaults).set_color(source, color)
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]✓ {source.value} colour set to {color}[/green]")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]calendaroverlay[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
