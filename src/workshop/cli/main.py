import dataclasses
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from . import handlers
from ..crds.errors import KubeConfigError
from ..operator.settings import ControllerSettings
from ..utils.k8s import load_kube_config
from ..utils.time import parse_duration


class Duration(click.ParamType):
    """A duration such as ``14d``, ``1h30m`` or ``45s``."""

    name = "duration"

    def convert(self, value, param, ctx):
        if not isinstance(value, str):
            return value
        try:
            return parse_duration(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


DURATION = Duration()


def _connect(ctx: click.Context) -> None:
    try:
        load_kube_config(ctx.obj["KUBECONFIG"])
    except KubeConfigError as e:
        Console().print(f"[red]Error: {e}[/red]")
        ctx.exit(1)


@click.group()
@click.option(
    "--kubeconfig",
    type=click.Path(path_type=Path, dir_okay=False),
    envvar="WORKSHOP_KUBECONFIG",
    default=None,
    help="Path to a kubeconfig. Defaults to in-cluster config, then ~/.kube/config.",
)
@click.pass_context
def main(ctx, kubeconfig: Optional[Path]) -> None:
    """Run and manage the workshop Desk controller."""
    ctx.ensure_object(dict)
    ctx.obj["KUBECONFIG"] = str(kubeconfig) if kubeconfig else None


@main.command(help="Run the Desk controller.")
@click.option("--domain", type=str, default=None, help="Domain suffix for Desk ingresses.")
@click.option(
    "--expiration-interval",
    type=DURATION,
    default=None,
    help="How often to check for expired Desks.",
)
@click.option(
    "--initial-sync-timeout",
    type=DURATION,
    default=None,
    help="How long to wait for the initial Desk listing.",
)
@click.option("--healthz-port", type=int, default=None, help="Port of the /healthz endpoint.")
@click.option("--image", type=str, default=None, help="Image repository of the Desk shell.")
@click.option(
    "--terminate-expired",
    is_flag=True,
    help="Delete Desks once they have expired.",
)
@click.option("--verbose", is_flag=True, help="Log more.")
@click.option("--debug", is_flag=True, help="Log everything.")
@click.option("--quiet", is_flag=True, help="Log only warnings and errors.")
@click.pass_context
def run(
    ctx,
    domain,
    expiration_interval,
    initial_sync_timeout,
    healthz_port,
    image,
    terminate_expired,
    verbose: bool,
    debug: bool,
    quiet: bool,
) -> None:
    """Run the Desk controller."""
    overrides = {
        "kubeconfig": ctx.obj["KUBECONFIG"],
        "domain": domain,
        "expiration_interval": (
            expiration_interval.total_seconds() if expiration_interval else None
        ),
        "initial_sync_timeout": (
            initial_sync_timeout.total_seconds() if initial_sync_timeout else None
        ),
        "healthz_port": healthz_port,
        "kubeshell_image": image,
        "terminate_expired": terminate_expired or None,
    }
    settings = dataclasses.replace(
        ControllerSettings.from_env(),
        **{key: value for key, value in overrides.items() if value is not None},
    )
    handlers.run_operator(settings, verbose=verbose, debug=debug, quiet=quiet)


@main.command(help="Delete the Desk CRD and exit.")
@click.pass_context
def clean(ctx) -> None:
    """Delete the Desk CRD and exit."""
    _connect(ctx)
    if not handlers.clean_schema():
        ctx.exit(1)


@main.group()
@click.pass_context
def desk(ctx) -> None:
    """Manage Desks."""
    _connect(ctx)


@desk.command(name="create", help="Create a new Desk.")
@click.argument("name", type=str)
@click.option("--owner", type=str, default=None, help="Owner of the Desk. Defaults to NAME.")
@click.option("--version", type=str, default=None, help="Desk shell image tag.")
@click.option(
    "--expiration",
    "--lifespan",
    "lifespan",
    type=DURATION,
    default="14d",
    help="How long the Desk should live.",
)
@click.pass_context
def create_desk(ctx, name: str, owner: Optional[str], version: Optional[str], lifespan) -> None:
    """Create a new Desk."""
    if not handlers.create_desk(name=name, owner=owner, version=version, lifespan=lifespan):
        ctx.exit(1)


@desk.command(name="get", help="Show one Desk, or all Desks.")
@click.argument("name", type=str, required=False)
@click.option(
    "-o",
    "--output",
    type=click.Choice(["table", "yaml"]),
    default="table",
    help="Output format.",
)
@click.pass_context
def get_desk(ctx, name: Optional[str], output: str) -> None:
    """Show one Desk, or all Desks."""
    if not handlers.get_desks(name=name, output=output):
        ctx.exit(1)


@desk.command(name="delete", help="Delete Desks.")
@click.argument("names", nargs=-1, type=str)
@click.option("--all", "all_desks", is_flag=True, help="Delete every Desk.")
@click.pass_context
def delete_desk(ctx, names: tuple[str, ...], all_desks: bool) -> None:
    """Delete Desks."""
    if not names and not all_desks:
        raise click.UsageError("NAME or --all is required.")
    if not handlers.delete_desks(names=names, all_desks=all_desks):
        ctx.exit(1)


if __name__ == "__main__":
    main()
