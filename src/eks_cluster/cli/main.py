"""eks-cluster CLI: command-line interface for eks-cluster.

Commands:
    create            Create an EKS cluster and all supporting resources
    delete            Delete every resource recorded in an inventory file
    get-credentials   Print connection info and a token for a cluster
    inventory show    Print an inventory file
"""

from __future__ import annotations

import json
import logging
import signal
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import click

from eks_cluster import __version__
from eks_cluster.config import ConfigError, load_config
from eks_cluster.connection.info import get_connection_info
from eks_cluster.credentials.session import CredentialError, load_session
from eks_cluster.models import ResourceInventory
from eks_cluster.progress.observer import QueueObserver
from eks_cluster.resource.client import ResourceClient
from eks_cluster.resource.errors import ResourceError
from eks_cluster.resource.inventory import (
    DEFAULT_INVENTORY_FILE,
    InventoryError,
    read_inventory,
)
from eks_cluster.resource.orchestrator import ClusterOrchestrator

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _error_chain(exc: BaseException) -> list[str]:
    """Messages of *exc* and every exception it was raised from."""
    messages: list[str] = []
    current: BaseException | None = exc
    while current is not None:
        text = str(current) or type(current).__name__
        if text not in messages:
            messages.append(text)
        current = current.__cause__
    return messages


def _fail(exc: BaseException, prefix: str = "Error") -> None:
    chain = _error_chain(exc)
    click.echo(click.style(prefix, fg="red") + f": {chain[0]}", err=True)
    for cause in chain[1:]:
        click.echo(f"  caused by: {cause}", err=True)


def _raise_interrupt(signum: int, frame: Any) -> None:
    raise KeyboardInterrupt


@contextmanager
def _sigterm_as_interrupt() -> Iterator[None]:
    """Treat SIGTERM like Ctrl-C for the duration of the block."""
    previous = signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


_SESSION_OPTIONS = (
    click.option("--profile", default=None, help="AWS shared config profile"),
    click.option("--region", default=None, help="AWS region (overrides config and profile)"),
    click.option("--role-arn", default=None, help="IAM role to assume"),
    click.option("--external-id", default=None, help="External ID for the assumed role"),
    click.option(
        "--serial-number",
        default=None,
        help="MFA device serial number; prompts for a token code",
    ),
)


def session_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Add the shared AWS session flags to a command."""
    for option in reversed(_SESSION_OPTIONS):
        func = option(func)
    return func


def _session(
    profile: str | None,
    region: str | None,
    role_arn: str | None,
    external_id: str | None,
    serial_number: str | None,
) -> Any:
    try:
        return load_session(
            profile=profile,
            region=region,
            role_arn=role_arn,
            external_id=external_id,
            serial_number=serial_number,
        )
    except CredentialError as e:
        _fail(e)
        sys.exit(1)


def _echo_progress(text: str) -> None:
    click.echo(text)


# --- Root group ---


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity",
)
def cli(log_level: str) -> None:
    """eks-cluster: create and delete AWS EKS clusters."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# --- create command ---


@cli.command()
@click.option(
    "--config", "-c", "config_path",
    default=None,
    help="Cluster config file (default: built-in defaults)",
)
@click.option(
    "--inventory-file", "-i",
    default=DEFAULT_INVENTORY_FILE,
    show_default=True,
    help="Where to record created resources",
)
@click.option(
    "--no-cleanup", is_flag=True,
    help="Keep partially created resources when creation fails",
)
@session_options
def create(
    config_path: str | None,
    inventory_file: str,
    no_cleanup: bool,
    profile: str | None,
    region: str | None,
    role_arn: str | None,
    external_id: str | None,
    serial_number: str | None,
) -> None:
    """Create an EKS cluster.

    On failure or interrupt, everything created so far is deleted again
    unless --no-cleanup is given.
    """
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError, ConfigError) as e:
        _fail(e, "Error loading config")
        sys.exit(1)
    if region:
        config = config.model_copy(update={"region": region})

    session = _session(profile, region or config.region or None, role_arn, external_id,
                       serial_number)

    failure: BaseException | None = None
    with QueueObserver(on_message=_echo_progress) as observer:
        client = ResourceClient(session, observer=observer)
        orchestrator = ClusterOrchestrator(client, inventory_file)
        try:
            with _sigterm_as_interrupt():
                orchestrator.create(config)
        except (ResourceError, InventoryError) as e:
            failure = e
        except KeyboardInterrupt as e:
            failure = e

        if failure is not None and not no_cleanup:
            _fail(failure, "Cluster creation failed")
            click.echo("Deleting resources that were created...", err=True)
            try:
                orchestrator.delete(orchestrator.inventory)
            except (ResourceError, InventoryError) as e:
                _fail(e, "Cleanup failed")
                click.echo(
                    f"Remaining resources are recorded in {inventory_file}; "
                    f"run 'eks-cluster delete -i {inventory_file}' to retry.",
                    err=True,
                )

    if failure is not None:
        if no_cleanup:
            _fail(failure, "Cluster creation failed")
            click.echo(f"Created resources are recorded in {inventory_file}", err=True)
        sys.exit(1)

    click.echo(click.style("Cluster created", fg="green", bold=True) + f": {config.name}")
    click.echo(f"Inventory: {inventory_file}")


# --- delete command ---


@cli.command()
@click.option(
    "--inventory-file", "-i",
    default=DEFAULT_INVENTORY_FILE,
    show_default=True,
    help="Inventory of the resources to delete",
)
@session_options
def delete(
    inventory_file: str,
    profile: str | None,
    region: str | None,
    role_arn: str | None,
    external_id: str | None,
    serial_number: str | None,
) -> None:
    """Delete every resource recorded in an inventory file."""
    try:
        inventory = read_inventory(inventory_file)
    except InventoryError as e:
        _fail(e)
        sys.exit(1)

    if inventory.is_empty():
        click.echo("Inventory is empty, nothing to delete.")
        return

    session = _session(profile, region or inventory.region or None, role_arn,
                       external_id, serial_number)

    failure: BaseException | None = None
    with QueueObserver(on_message=_echo_progress) as observer:
        client = ResourceClient(session, observer=observer)
        orchestrator = ClusterOrchestrator(client, inventory_file)
        try:
            orchestrator.delete(inventory)
        except (ResourceError, InventoryError) as e:
            failure = e

    if failure is not None:
        _fail(failure, "Delete failed")
        click.echo(f"Remaining resources are recorded in {inventory_file}", err=True)
        sys.exit(1)

    click.echo(click.style("All resources deleted", fg="green", bold=True))


# --- get-credentials command ---


@cli.command("get-credentials")
@click.option("--cluster-name", "-n", required=True, help="EKS cluster name")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@session_options
def get_credentials(
    cluster_name: str,
    json_output: bool,
    profile: str | None,
    region: str | None,
    role_arn: str | None,
    external_id: str | None,
    serial_number: str | None,
) -> None:
    """Print the API endpoint, CA certificate and a bearer token."""
    session = _session(profile, region, role_arn, external_id, serial_number)
    try:
        info = get_connection_info(session, cluster_name, region)
    except ResourceError as e:
        _fail(e)
        sys.exit(1)

    if json_output:
        click.echo(json.dumps(info.model_dump(mode="json"), indent=2))
        return

    click.echo(f"cluster:    {info.cluster_name}")
    click.echo(f"endpoint:   {info.api_endpoint}")
    click.echo(f"expires:    {info.token_expiration.isoformat()}")
    click.echo(f"token:      {info.token}")
    click.echo("ca certificate:")
    click.echo(info.ca_certificate)


# --- inventory commands ---


@cli.group()
def inventory() -> None:
    """Inspect inventory files."""


@inventory.command("show")
@click.option(
    "--inventory-file", "-i",
    default=DEFAULT_INVENTORY_FILE,
    show_default=True,
    help="Inventory file to print",
)
def inventory_show(inventory_file: str) -> None:
    """Print an inventory file as JSON."""
    try:
        inv: ResourceInventory = read_inventory(inventory_file)
    except InventoryError as e:
        _fail(e)
        sys.exit(1)
    click.echo(json.dumps(inv.model_dump(mode="json"), indent=2))
