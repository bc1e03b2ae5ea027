"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, List, Optional

import pendulum
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.booking_client import BookingClient
from ..adapters.mock_booking_client import MockBookingClient
from ..adapters.token_provider import TokenProvider
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import BookableSlotsError
from ..domain.query import SlotQuery
from ..domain.response_builder import UnifiedResponse
from ..services.slot_aggregator import SlotAggregatorService

app = typer.Typer(
    name="bookableslots",
    help="Aggregate scheduling API availability into unified bookable slots",
    add_completion=False
)

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path], mock: bool) -> AppConfig:
    """
    Load the YAML config; in mock mode a missing file falls back to defaults.
    """
    config_path = config_file or get_default_config_path()
    if mock and not config_path.exists():
        return AppConfig.from_env()
    return AppConfig.load_from_yaml(config_path)


def _determine_time_range(
    *,
    tz: str,
    days_ahead: int,
    start_option: Optional[str],
    end_option: Optional[str]
):
    """
    Resolve the search window from explicit dates or the configured default.
    Returns (start_date, end_date).
    """
    if start_option:
        try:
            start_date = pendulum.from_format(start_option, "YYYY-MM-DD", tz=tz).start_of("day")
        except ValueError as e:
            console.print(f"[red]Could not parse start date: {e}[/red]")
            raise typer.Exit(1)
    else:
        start_date = pendulum.now(tz).start_of("day")

    if end_option:
        try:
            end_date = pendulum.from_format(end_option, "YYYY-MM-DD", tz=tz).end_of("day")
        except ValueError as e:
            console.print(f"[red]Could not parse end date: {e}[/red]")
            raise typer.Exit(1)
    else:
        end_date = start_date.add(days=days_ahead).end_of("day")

    return start_date, end_date


def _render_table(response: UnifiedResponse) -> None:
    table = Table(
        title=f"Bookable slots ({response.total} of {response.pagination.total_before_slice})",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Date", style="bold")
    table.add_column("Treatment", style="bold yellow")
    table.add_column("Staff")
    table.add_column("Location", style="dim")
    table.add_column("Start times")
    table.add_column("Offerings")

    for slot in response.slots:
        start = slot.availability.start_date_time
        offerings = "\n".join(
            f"{offering.name} ({offering.price:.2f})" if offering.price is not None else offering.name
            for offering in slot.offerings
        )
        table.add_row(
            start.format("ddd DD.MM.YYYY"),
            slot.treatment_name,
            slot.staff.full_name if slot.staff else str(slot.availability.staff_id),
            slot.location.name if slot.location else str(slot.availability.location_id),
            ", ".join(t.strftime("%H:%M") for t in slot.active_times) or "-",
            offerings or "[dim]price unknown[/dim]",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def find(
    session_types: Annotated[Optional[List[int]], typer.Option("--session-type", "-s", help="Session type id (repeatable)")] = None,
    program: Annotated[Optional[int], typer.Option("--program", "-p", help="Program id used to look up session types")] = None,
    locations: Annotated[Optional[List[int]], typer.Option("--location", "-l", help="Location id (repeatable)")] = None,
    staff: Annotated[Optional[List[int]], typer.Option("--staff", help="Staff id (repeatable)")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="End date (YYYY-MM-DD)")] = None,
    limit: Annotated[Optional[int], typer.Option("--limit", help="Maximum number of slots")] = None,
    offset: Annotated[int, typer.Option("--offset", help="Number of slots to skip")] = 0,
    json_output: Annotated[bool, typer.Option("--json", help="Print the response as JSON.")] = False,
    mock: Annotated[bool, typer.Option("--mock", help="Use bundled mock data and skip authentication.")] = False,
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
):
    """
    Find bookable slots with their start times and prices.

    Examples:

        bookableslots find --program 2 --start 2026-11-02 --end 2026-11-04

        bookableslots find -s 12 -s 15 --limit 10 --json

        bookableslots find --program 2 --mock
    """
    _configure_logging(verbose)

    try:
        config = _load_config(config_file, mock)
        tz = config.timezone

        start_date, end_date = _determine_time_range(
            tz=tz,
            days_ahead=config.defaults.days_ahead,
            start_option=start,
            end_option=end
        )

        query = SlotQuery(
            session_type_ids=session_types or [],
            program_id=program,
            start_date=start_date,
            end_date=end_date,
            location_ids=locations or [],
            staff_ids=staff or [],
            limit=limit if limit is not None else config.defaults.limit,
            offset=offset,
        )

        if mock:
            client = MockBookingClient(timezone=tz)
        else:
            client = BookingClient.from_config(config, TokenProvider.from_config(config))

        service = SlotAggregatorService(booking_client=client)
        response = asyncio.run(service.get_unified_bookable_slots(query))

    except (FileNotFoundError, ValueError, ValidationError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    except BookableSlotsError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if json_output:
        console.print_json(data=response.to_dict())
        return

    if not response.slots:
        console.print("[yellow]⚠ No bookable slots found.[/yellow]")
        return

    _render_table(response)


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
        help="Issue a new token even if one is cached"
    )
):
    """
    Test scheduling API authentication.
    """
    _configure_logging(False)

    try:
        config_path = config_file or get_default_config_path()
        config = AppConfig.load_from_yaml(config_path)

        console.print("\n[bold]Testing scheduling API authentication...[/bold]\n")

        token_provider = TokenProvider.from_config(config)
        access_token = token_provider.get_access_token(force_refresh=force)

        client = BookingClient.from_config(config, token_provider)
        site = client.test_connection(token=access_token)

        console.print(Panel.fit(
            f"[bold green]✓ Authentication successful![/bold green]\n\n"
            f"[bold]Site:[/bold] {site.get('Name', 'N/A')} ({site.get('Id', config.upstream.site_id)})\n"
            f"[bold]User:[/bold] {config.credentials.username}",
            title="✓ Connection test"
        ))
        console.print()

    except (FileNotFoundError, ValueError, BookableSlotsError) as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}\n")
        raise typer.Exit(1)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]bookableslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
