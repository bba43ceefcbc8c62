"""
Main CLI application using Typer.
"""

import asyncio
import json
import logging
from datetime import date, time
from pathlib import Path
from typing import Annotated, List, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.graph_authenticator import GraphAuthenticator
from ..adapters.graph_client import GraphClient
from ..adapters.mock_graph_client import MockGraphClient
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import AuthenticationError, CalendarAPIError, InvalidQuery, Unauthorized
from ..domain.models import AvailabilityQuery, AvailabilityResult, UnknownDayPolicy, parse_weekdays
from ..services.availability_service import AvailabilityService
from ..services.contracts import AvailabilityResponse

app = typer.Typer(
    name="availabilityfinder",
    help="Find multi-day availability windows in Microsoft 365 calendars",
    add_completion=False,
)

console = Console()

EXIT_INVALID = 1
EXIT_PROVIDER = 2


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    try:
        return AppConfig.load_from_yaml(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(EXIT_INVALID)


def _parse_date(value: str, option: str) -> date:
    try:
        return pendulum.from_format(value, "YYYY-MM-DD").date()
    except ValueError:
        console.print(f"[bold red]Error:[/bold red] {option} must be a date (YYYY-MM-DD), got '{value}'")
        raise typer.Exit(EXIT_INVALID)


def _parse_time(value: str, option: str) -> time:
    try:
        return pendulum.from_format(value, "HH:mm").time()
    except ValueError:
        console.print(f"[bold red]Error:[/bold red] {option} must be a time (HH:MM), got '{value}'")
        raise typer.Exit(EXIT_INVALID)


def _build_query(
    config: AppConfig,
    *,
    start: Optional[str],
    end: Optional[str],
    open_time: Optional[str],
    close_time: Optional[str],
    duration: Optional[int],
    days: Optional[int],
    weekdays: Optional[str],
    limit: Optional[int],
    unknown_busy: bool,
    no_skip_weekends: bool,
) -> AvailabilityQuery:
    """Merge CLI options over configured defaults into a query."""
    defaults = config.search
    today = pendulum.now(config.timezone).date()

    search_start = _parse_date(start, "--start") if start else today
    search_end = (
        _parse_date(end, "--end") if end
        else search_start.add(days=defaults.search_days - 1)
    )

    try:
        return AvailabilityQuery(
            search_range_start=search_start,
            search_range_end=search_end,
            daily_open_time=_parse_time(open_time, "--open") if open_time else defaults.open_time,
            daily_close_time=_parse_time(close_time, "--close") if close_time else defaults.close_time,
            min_duration_minutes=duration if duration is not None else defaults.duration_minutes,
            required_consecutive_days=days if days is not None else defaults.consecutive_days,
            allowed_weekdays=(
                parse_weekdays(weekdays.replace(",", " ").split()) if weekdays is not None
                else frozenset(defaults.allowed_weekdays)
            ),
            timezone=config.timezone,
            unknown_day_policy=UnknownDayPolicy.BUSY if unknown_busy else defaults.unknown_day_policy,
            skip_excluded_weekdays=False if no_skip_weekends else defaults.skip_excluded_weekdays,
            result_limit=limit if limit is not None else defaults.result_limit,
        )
    except InvalidQuery as e:
        console.print(f"[bold red]Invalid request:[/bold red] {e}")
        raise typer.Exit(EXIT_INVALID)


def _render_result(result: AvailabilityResult) -> None:
    if result.is_empty:
        console.print(
            "[yellow]⚠ No availability found.[/yellow]\n"
            "Try a longer search range, a shorter duration or fewer consecutive days."
        )
        return

    console.print(f"[bold green]✓ {len(result)} candidate window(s) found:[/bold green]\n")

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Days", style="bold yellow")
    table.add_column("Free blocks")

    for idx, run in enumerate(result, 1):
        blocks = "\n".join(
            f"{day.date:%a %d.%m.}  " + ", ".join(str(block) for block in day.blocks)
            for day in run.days
        )
        table.add_row(str(idx), run.format_display(), blocks)

    console.print(table)

    if result.rejected_intervals:
        console.print(
            f"[dim]{result.rejected_intervals} malformed calendar entr(y/ies) were ignored.[/dim]"
        )


@app.command()
def find(
    calendars: Annotated[Optional[List[str]], typer.Argument(help="Calendars to search (names, emails or 'me'). Defaults to all configured calendars.")] = None,
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="First day to search (YYYY-MM-DD)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="Last day to search (YYYY-MM-DD)")] = None,
    open_time: Annotated[Optional[str], typer.Option("--open", help="Daily window start (HH:MM)")] = None,
    close_time: Annotated[Optional[str], typer.Option("--close", help="Daily window end (HH:MM)")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Minimum free block per day in minutes")] = None,
    days: Annotated[Optional[int], typer.Option("--days", "-n", help="Required consecutive days")] = None,
    weekdays: Annotated[Optional[str], typer.Option("--weekdays", "-w", help="Allowed weekdays, e.g. 'mon,tue,wed' or '0,1,2'")] = None,
    limit: Annotated[Optional[int], typer.Option("--limit", "-l", help="Maximum number of candidates")] = None,
    unknown_busy: Annotated[bool, typer.Option("--unknown-busy", help="Treat days without calendar data as booked")] = False,
    no_skip_weekends: Annotated[bool, typer.Option("--no-skip-weekends", help="Excluded weekdays break a run instead of being skipped")] = False,
    mock: Annotated[bool, typer.Option("--mock", help="Use bundled mock data and skip authentication")] = False,
    mock_data: Annotated[Optional[Path], typer.Option("--mock-data", help="JSON file with mock events (implies --mock)")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the response as JSON")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
):
    """
    Find windows of consecutive days with enough free time each day.

    Examples:

        # 3 consecutive weekdays with a free 4-hour block between 9 and 17
        availabilityfinder find --days 3 --duration 240 --open 09:00 --close 17:00

        # Common availability of several calendars
        availabilityfinder find ich anna --start 2025-03-03 --end 2025-03-14

        # Mock data, JSON output
        availabilityfinder find --mock --start 2025-03-03 --end 2025-03-14 --json
    """
    _configure_logging(verbose)
    mock = mock or mock_data is not None
    config = _load_config(config_file)

    try:
        calendar_ids = config.resolve_calendars(calendars or [])
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(EXIT_INVALID)

    query = _build_query(
        config,
        start=start,
        end=end,
        open_time=open_time,
        close_time=close_time,
        duration=duration,
        days=days,
        weekdays=weekdays,
        limit=limit,
        unknown_busy=unknown_busy,
        no_skip_weekends=no_skip_weekends,
    )

    if not as_json:
        console.print("\n[bold cyan]📅 Availability search[/bold cyan]")
        console.print(f"   Calendars: {', '.join(calendar_ids)}")
        console.print(f"   Range: {query.search_range_start:%d.%m.%Y} - {query.search_range_end:%d.%m.%Y}")
        console.print(
            f"   Window: {query.daily_open_time:%H:%M} - {query.daily_close_time:%H:%M}, "
            f"min. {query.min_duration_minutes} min on {query.required_consecutive_days} consecutive day(s)"
        )
        if mock:
            console.print("[yellow]⚠  MOCK MODE: using bundled test data[/yellow]")
        console.print()

    try:
        if mock:
            client = MockGraphClient(
                data_file=mock_data,
                page_size=config.fetch.page_size,
                timezone=config.timezone,
            )
        else:
            authenticator = GraphAuthenticator(
                client_id=config.client_id,
                tenant_id=config.tenant_id,
                authority_url=config.get_authority_url(),
            )
            client = GraphClient(
                access_token=authenticator.get_access_token(),
                page_size=config.fetch.page_size,
                timeout=config.fetch.timeout_seconds,
            )

        service = AvailabilityService.from_config(client, config.fetch)
        result = asyncio.run(service.find_availability(calendar_ids=calendar_ids, query=query))

    except (AuthenticationError, Unauthorized) as e:
        console.print(f"[bold red]Could not check availability:[/bold red] not authorized ({e})")
        raise typer.Exit(EXIT_PROVIDER)
    except CalendarAPIError as e:
        console.print(f"[bold red]Could not check availability:[/bold red] {e}")
        raise typer.Exit(EXIT_PROVIDER)

    if as_json:
        typer.echo(json.dumps(AvailabilityResponse.from_result(result).to_json_data(), indent=2))
    else:
        _render_result(result)
        console.print()


@app.command()
def list_calendars(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to config file"
    )
):
    """
    List all configured calendars.
    """
    config = _load_config(config_file)

    if not config.calendars:
        console.print("[yellow]No calendars configured; searches use your own calendar ('me').[/yellow]")
        return

    table = Table(
        title="Configured calendars",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Name (alias)", style="bold yellow")
    table.add_column("Calendar", style="dim")

    for calendar in config.calendars:
        table.add_row(calendar.name, calendar.calendar_id)

    console.print()
    console.print(table)
    console.print()


@app.command()
def test_auth(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to config file"
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Force re-authentication"
    )
):
    """
    Test Microsoft Graph authentication.
    """
    config = _load_config(config_file)

    try:
        authenticator = GraphAuthenticator(
            client_id=config.client_id,
            tenant_id=config.tenant_id,
            authority_url=config.get_authority_url()
        )
        client = GraphClient(access_token=authenticator.get_access_token(force_refresh=force))
        user_info = client.test_connection()
    except (AuthenticationError, CalendarAPIError) as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}\n")
        raise typer.Exit(EXIT_PROVIDER)

    console.print(Panel.fit(
        f"[bold green]✓ Authentication successful![/bold green]\n\n"
        f"[bold]User:[/bold] {user_info.get('displayName', 'N/A')}\n"
        f"[bold]Email:[/bold] {user_info.get('mail') or user_info.get('userPrincipalName', 'N/A')}\n"
        f"[bold]Token cache:[/bold] {authenticator.cache_backend}",
        title="✓ Connection test"
    ))
    console.print()


@app.command()
def clear_cache(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to config file"
    )
):
    """
    Clear the authentication token cache.
    """
    config = _load_config(config_file)

    authenticator = GraphAuthenticator(
        client_id=config.client_id,
        tenant_id=config.tenant_id
    )
    authenticator.clear_cache()
    console.print("\n[green]✓ Token cache cleared.[/green]")
    console.print("You will need to sign in again on the next search.\n")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]availabilityfinder[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
