"""Main CLI entry point for the control plane endpoint manager."""

import logging
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from endpoint_manager.exceptions import EndpointManagerError
from endpoint_manager.logging_config import get_logger, set_console_level, setup_logging
from endpoint_manager.services import UpdateMode

app = typer.Typer(
    name="cp-endpoint-mgr",
    help="Keep the Kubernetes control plane elastic IP on a healthy node",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "endpoint-manager.yml"


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Global options for all commands."""
    log_path = Path(log_file) if log_file else None
    setup_logging(verbose=verbose, log_file=log_path)
    logger.debug("Logging initialized")


def _print_error(e: EndpointManagerError) -> None:
    console.print(f"[red]Error:[/red] {e.message}")
    if e.details:
        console.print(f"\n{e.details}")


def _load_config(config_path: str):
    from endpoint_manager.models.config import EndpointConfig

    path = Path(config_path)
    if not path.exists():
        console.print(f"[red]Error:[/red] Configuration file not found: {path}")
        console.print(f"\nCreate one with: cp-endpoint-mgr init --project-id <id> --config {path}")
        raise typer.Exit(code=1)
    try:
        return EndpointConfig.load(str(path))
    except Exception as e:
        console.print(f"[red]Error:[/red] Invalid configuration in {path}: {e}")
        raise typer.Exit(code=1)


def _core_api():
    """CoreV1Api from the in-cluster service account, falling back to kubeconfig."""
    from kubernetes import client, config

    try:
        config.load_incluster_config()
        logger.info("Using in-cluster config")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.info("Using local kubeconfig")
        except Exception as e:
            console.print(f"[red]Error:[/red] Failed to load kubeconfig: {e}")
            console.print("\nRun inside the cluster or make sure ~/.kube/config is available")
            raise typer.Exit(code=1)
    return client.CoreV1Api()


def _build_manager(config_path: str):
    from endpoint_manager.manager import ControlPlaneEndpointManager

    cfg = _load_config(config_path)
    try:
        return ControlPlaneEndpointManager.from_config(cfg, _core_api())
    except EndpointManagerError as e:
        _print_error(e)
        raise typer.Exit(code=1)


def _print_report(report) -> None:
    table = Table(title="Reconciliation")
    table.add_column("Reconciler", style="cyan")
    table.add_column("Outcome", style="green")
    table.add_row("services", report.service_outcome.value if report.service_outcome else "[red]failed[/red]")
    table.add_row("nodes", report.node_outcome.value if report.node_outcome else "[red]failed[/red]")
    console.print(table)
    for e in report.errors:
        _print_error(e)


@app.command()
def version() -> None:
    """Show version information."""
    from endpoint_manager import __version__

    typer.echo(f"cp-endpoint-manager version {__version__}")


@app.command()
def init(
    project_id: str = typer.Option(..., "--project-id", "-p", help="Equinix Metal project ID"),
    eip_tag: str = typer.Option(..., "--eip-tag", "-t", help="Tag of the control plane elastic IP"),
    api_server_port: int = typer.Option(
        0, "--api-server-port", help="Port published on the elastic IP (0: use the API server port)"
    ),
    config_path: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Where to write the file"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Write a configuration file.

    The Metal API key is not written; export METAL_AUTH_TOKEN instead.
    """
    from endpoint_manager.models.config import EndpointConfig

    path = Path(config_path)
    if path.exists() and not force:
        console.print(f"[red]Error:[/red] {path} already exists (use --force to overwrite)")
        raise typer.Exit(code=1)
    try:
        cfg = EndpointConfig(project_id=project_id, eip_tag=eip_tag, api_server_port=api_server_port)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    cfg.save(str(path))
    console.print(f"[green]✓[/green] Wrote {path}")


@app.command()
def status(
    config_path: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Configuration file"),
    port: int = typer.Option(0, "--port", help="Port to health check (default: configured port, else 6443)"),
) -> None:
    """Show the control plane elastic IP, its assignment and its health."""
    from endpoint_manager.health import HealthProbe, healthz_url
    from endpoint_manager.metal import MetalClient
    from endpoint_manager.reservations import ReservationResolver

    cfg = _load_config(config_path)
    api_key = cfg.resolved_api_key()
    if not api_key:
        console.print("[red]Error:[/red] No Metal API key; set api_key or export METAL_AUTH_TOKEN")
        raise typer.Exit(code=1)

    resolver = ReservationResolver(
        MetalClient(api_key, api_url=cfg.api_url, timeout_s=cfg.api_timeout_s), cfg.project_id
    )
    try:
        reservation = resolver.resolve([cfg.eip_tag])
    except EndpointManagerError as e:
        _print_error(e)
        raise typer.Exit(code=1)

    if reservation is None:
        console.print(f"[yellow]No elastic IP tagged '{cfg.eip_tag}' in project {cfg.project_id}[/yellow]")
        raise typer.Exit(code=1)

    check_port = port or cfg.api_server_port or 6443
    result = HealthProbe(timeout_s=cfg.probe_timeout_s).probe(reservation.address, check_port)

    table = Table(title="Control Plane Elastic IP")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Reservation", reservation.id)
    table.add_row("Address", reservation.address)
    table.add_row("Tags", ", ".join(reservation.tags))
    if not reservation.assignments:
        table.add_row("Assigned to", "[yellow]nothing[/yellow]")
    for assignment in reservation.assignments:
        table.add_row("Assigned to", assignment.device_id or assignment.id)
    table.add_row("Health check", healthz_url(reservation.address, check_port))
    if result.healthy:
        table.add_row("Health", "[green]✓ Healthy[/green]")
    elif result.status_code is not None:
        table.add_row("Health", f"[red]✗ HTTP {result.status_code}[/red]")
    else:
        table.add_row("Health", f"[red]✗ {result.error}[/red]")
    console.print(table)

    if len(reservation.assignments) > 1:
        console.print("\n[red]⚠ More than one device is assigned; unassign all but one manually[/red]")
        raise typer.Exit(code=1)


@app.command()
def reconcile(
    config_path: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Configuration file"),
    mode: UpdateMode = typer.Option(UpdateMode.SYNC, "--mode", "-m", help="Service update mode"),
) -> None:
    """Run one pass of the service and node reconcilers."""
    manager = _build_manager(config_path)
    report = manager.sync(mode)
    _print_report(report)
    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def run(
    config_path: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Configuration file"),
    interval: int | None = typer.Option(
        None, "--interval", "-i", help="Seconds between passes (default: reconcile_interval_s)"
    ),
) -> None:
    """
    Reconcile continuously.

    Every interval the services are mirrored and the elastic IP is health
    checked, moving it to a healthy control plane node when needed. Errors are
    logged and retried on the next pass.
    """
    # Failovers and adopted ports are INFO; a controller should show them
    set_console_level(logging.INFO)
    manager = _build_manager(config_path)
    period = interval or manager.config.reconcile_interval_s
    console.print(f"[bold cyan]Reconciling every {period}s[/bold cyan] (Ctrl-C to stop)")

    try:
        while True:
            report = manager.sync()
            if not report.ok:
                for e in report.errors:
                    logger.warning(f"Reconciliation error, will retry in {period}s: {e.message}")
            time.sleep(period)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped by user[/yellow]")
        raise typer.Exit(code=130)


if __name__ == "__main__":
    app()
