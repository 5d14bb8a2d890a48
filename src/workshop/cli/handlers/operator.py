import asyncio
import logging
from typing import Optional

import kopf
from kubernetes import client
from rich.console import Console

from ...operator.desk.schema import SchemaManager
from ...operator.settings import ControllerSettings

logger = logging.getLogger(__name__)


def run_operator(
    settings: ControllerSettings,
    verbose: bool = False,
    debug: bool = False,
    quiet: bool = False,
) -> None:
    """Run the Desk controller cluster-wide until interrupted."""
    # Importing the package registers the handlers with kopf.
    from ... import operator  # noqa: F401

    kopf.configure(verbose=verbose, debug=debug, quiet=quiet)
    kopf.run(
        clusterwide=True,
        standalone=True,
        liveness_endpoint=f"http://0.0.0.0:{settings.healthz_port}/healthz",
        memo=kopf.Memo(settings=settings),
    )


def clean_schema(schema: Optional[SchemaManager] = None) -> bool:
    """Delete the Desk CRD, and with it every Desk in the cluster."""
    console = Console()
    schema = schema or SchemaManager(logger)
    try:
        asyncio.run(schema.teardown())
    except client.ApiException as e:
        if e.status == 404:
            console.print("[yellow]The Desk CRD is not installed.[/yellow]")
        else:
            console.print(f"[red]Failed to delete the Desk CRD: {e.reason}[/red]")
        return False
    console.print("[green]Desk CRD deleted.[/green]")
    return True
