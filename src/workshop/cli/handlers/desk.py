from datetime import timedelta
from typing import List, Optional, Sequence

import yaml
from kubernetes import client
from rich.console import Console
from rich.table import Table

from ...crds.client import DeskClient
from ...crds.desk import DEFAULT_DESK_VERSION, Desk, DeskSpec
from ...utils.time import format_duration, format_timestamp, utcnow


def create_desk(
    name: str,
    owner: Optional[str] = None,
    version: Optional[str] = None,
    lifespan: Optional[timedelta] = None,
    desk_client: Optional[DeskClient] = None,
) -> bool:
    """
    Create a new Desk.

    The controller clamps the expiration to its maximum lifespan, so asking
    for more than that is not an error here.
    """
    desk_client = desk_client or DeskClient()
    console = Console()

    spec = DeskSpec(
        owner=owner or name,
        version=version or DEFAULT_DESK_VERSION,
        expiration_timestamp=utcnow() + lifespan if lifespan else None,
    )
    try:
        desk = desk_client.create(Desk(name=name, spec=spec))
    except client.ApiException as e:
        if e.status == 409:
            console.print(f"[red]Error: Desk '{name}' already exists.[/red]")
        else:
            console.print(f"[red]An error occurred: {e.reason}[/red]")
        return False

    console.print(f"[green]Desk '{desk.name}' created.[/green]")
    return True


def get_desks(
    name: Optional[str] = None,
    output: str = "table",
    desk_client: Optional[DeskClient] = None,
) -> bool:
    """Show one Desk, or all of them when no name is given."""
    desk_client = desk_client or DeskClient()
    console = Console()

    try:
        desks = [desk_client.get(name)] if name else desk_client.list()
    except client.ApiException as e:
        if e.status == 404:
            console.print(f"Error: Desk '{name}' not found.")
        else:
            console.print(f"An error occurred: {e.reason}")
        return False

    if not desks:
        console.print("No resources found.")
        return True

    if output == "yaml":
        console.print(yaml.safe_dump_all([desk.to_dict() for desk in desks], sort_keys=False))
        return True

    now = utcnow()
    table = Table(title="Desks")
    table.add_column("Name", style="cyan")
    table.add_column("State", style="green")
    table.add_column("Owner", style="magenta")
    table.add_column("Version", style="yellow")
    table.add_column("Expiration")
    table.add_column("Expires In", style="red")

    for desk in sorted(desks, key=lambda d: d.name):
        expiration = desk.spec.expiration_timestamp
        if expiration is None:
            expires_in = "-"
        elif expiration <= now:
            expires_in = "expired"
        else:
            expires_in = format_duration(expiration - now)
        table.add_row(
            desk.name,
            desk.state.value if desk.state else "Unknown",
            desk.spec.owner,
            desk.spec.version,
            format_timestamp(expiration) or "-",
            expires_in,
        )
    console.print(table)
    return True


def delete_desks(
    names: Sequence[str] = (),
    all_desks: bool = False,
    desk_client: Optional[DeskClient] = None,
) -> bool:
    """Delete the named Desks, or every Desk with ``all_desks``."""
    desk_client = desk_client or DeskClient()
    console = Console()

    targets: List[str] = list(names)
    if all_desks:
        try:
            targets = [desk.name for desk in desk_client.list()]
        except client.ApiException as e:
            console.print(f"An error occurred: {e.reason}")
            return False

    ok = True
    for name in targets:
        try:
            desk_client.delete(name)
        except client.ApiException as e:
            ok = False
            if e.status == 404:
                console.print(f"Error: Desk '{name}' not found.")
            else:
                console.print(f"An error occurred deleting '{name}': {e.reason}")
            continue
        console.print(f"Desk '{name}' deleted.")
    return ok
