"""Main CLI entry point."""

import signal
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from fastly_deploy import __version__
from fastly_deploy.builder import Binary, Builder
from fastly_deploy.config import DEFAULT_CONFIG_FILE, Config, FastlySettings
from fastly_deploy.context import OperationContext
from fastly_deploy.platform import PARTIAL_DEPLOYMENT, Deployment, Platform
from fastly_deploy.registry import Artifact, Registry
from fastly_deploy.release import Release, ReleaseManager
from fastly_deploy.resources import DeclaredResources, ResourceHealth, StatusReport
from fastly_deploy.state import RecordStore
from fastly_deploy.utils.errors import DeploymentError, error_handler
from fastly_deploy.utils.logging import get_logger, setup_logging
from fastly_deploy.utils.terminal import ConsoleUI

console = Console()
logger = get_logger(__name__)

HEALTH_STYLES = {
    ResourceHealth.READY: "green",
    ResourceHealth.ALIVE: "green",
    ResourceHealth.PARTIAL: "yellow",
    ResourceHealth.DOWN: "red",
    ResourceHealth.MISSING: "red",
    ResourceHealth.UNKNOWN: "dim",
}


@click.group()
@click.option('--config', 'config_path', default=DEFAULT_CONFIG_FILE, help='Path to configuration file')
@click.option('--log-level', default='info', type=click.Choice(['debug', 'info', 'warning', 'error']))
@click.version_option(__version__, prog_name='fastly-deploy')
@click.pass_context
def cli(ctx, config_path, log_level):
    """Build, deploy and release Fastly Compute applications."""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['log_level'] = log_level

    # Setup logging
    setup_logging(log_level)


def load_config(config_path: str) -> Config:
    """Load and validate configuration file.

    A missing file is treated as an empty configuration; sections with
    required fields then fail when a command asks for them.
    """
    config = Config(config_path)
    if not Path(config_path).exists():
        logger.debug(f"Configuration file not found, using defaults: {config_path}")
        return config
    return config.load()


def operation_context() -> OperationContext:
    """Create the context for one command, cancelled by Ctrl-C."""
    op_ctx = OperationContext(ui=ConsoleUI())

    def _cancel(signum, frame):
        logger.warning("Interrupt received, cancelling")
        op_ctx.cancel()

    signal.signal(signal.SIGINT, _cancel)
    return op_ctx


def fail(error: Exception) -> None:
    """Print an error and exit non-zero."""
    error = error_handler.handle_exception(error)
    error_handler.log_error(error)
    console.print(error.to_user_message(), style="red", markup=False, highlight=False)
    sys.exit(1)


def print_declared(declared: DeclaredResources) -> None:
    table = Table(title="Declared Resources")
    table.add_column("Name", style="cyan")
    table.add_column("Kind")
    table.add_column("Category")
    table.add_column("State", style="dim")
    for resource in declared.resources:
        state = ", ".join(f"{k}={v}" for k, v in resource.state.items())
        table.add_row(resource.name, resource.kind, resource.category.value, state)
    console.print(table)


def print_status(report: StatusReport, title: str) -> None:
    table = Table(title=title)
    table.add_column("Resource", style="cyan")
    table.add_column("Kind")
    table.add_column("Health")
    table.add_column("Message")
    for status in report.resources:
        style = HEALTH_STYLES.get(status.health, "")
        table.add_row(status.name, status.kind, f"[{style}]{status.health.value}[/{style}]", status.message)
    console.print(table)

    style = HEALTH_STYLES.get(report.health, "")
    console.print(Panel.fit(
        f"[bold]{report.health.value}[/bold]\n{report.health_message}",
        title="Overall Health",
        border_style=style or "white"
    ))


def save_partial_deployment(error: DeploymentError, output: str) -> None:
    """Write the record of a failed deploy so its resources can be destroyed."""
    partial = (error.context.additional_info or {}).get(PARTIAL_DEPLOYMENT)
    if not partial or not (partial.get("resource_state") or {}).get("entries"):
        return
    RecordStore(output).save(Deployment.model_validate(partial))
    console.print(f"[yellow]Partial deployment recorded in {output}; run destroy to clean up[/yellow]")


def confirm_destroy(what: str, yes: bool) -> bool:
    if yes:
        return True
    return click.confirm(f"Are you sure you want to destroy {what}?", default=False)


@cli.command()
@click.option('--output', '-o', default='binary.json', help='Where to write the binary record')
@click.pass_context
def build(ctx, output):
    """Build the application in a scratch copy of the source tree."""
    try:
        cfg = load_config(ctx.obj['config_path'])
        builder = Builder(cfg.require('build'))

        binary = builder.build(operation_context())
        RecordStore(output).save(binary)

        console.print(Panel.fit(
            f"[green]✓ Build successful[/green]\n\n"
            f"Build: {binary.build_id}\n"
            f"Output: {binary.location}\n"
            f"Record: {output}",
            title="Build Complete",
            border_style="green"
        ))
    except DeploymentError as e:
        fail(e)


@cli.command()
@click.argument('binary_json', type=click.Path(exists=True, dir_okay=False))
@click.option('--output', '-o', default='artifact.json', help='Where to write the artifact record')
@click.pass_context
def push(ctx, binary_json, output):
    """Package a built binary into the registry."""
    try:
        cfg = load_config(ctx.obj['config_path'])
        registry = Registry(cfg.require('registry'))

        binary = RecordStore(binary_json).load(Binary)
        artifact = registry.push(operation_context(), binary)
        RecordStore(output).save(artifact)

        console.print(f"[green]✓[/green] Pushed {artifact.name}:{artifact.version} to {artifact.location}")
        console.print(f"  Digest: sha256:{artifact.digest}")
    except DeploymentError as e:
        fail(e)


@cli.command()
@click.argument('artifact_json', type=click.Path(exists=True, dir_okay=False))
@click.option('--output', '-o', default='deployment.json', help='Where to write the deployment record')
@click.pass_context
def deploy(ctx, artifact_json, output):
    """Deploy an artifact to Fastly Compute."""
    try:
        cfg = load_config(ctx.obj['config_path'])
        platform = Platform(cfg.require('deploy'), FastlySettings.from_env())

        artifact = RecordStore(artifact_json).load(Artifact)
        declared = DeclaredResources()
        try:
            deployment = platform.deploy(operation_context(), artifact, declared)
        except DeploymentError as e:
            save_partial_deployment(e, output)
            raise
        finally:
            if len(declared):
                print_declared(declared)
        RecordStore(output).save(deployment)

        console.print(Panel.fit(
            f"[green]✓ Deployment successful[/green]\n\n"
            f"Service: {deployment.name} ({deployment.id})\n"
            f"Version: {deployment.version}\n"
            f"URL: {deployment.url or '-'}\n"
            f"Record: {output}",
            title="Deployment Complete",
            border_style="green"
        ))
    except DeploymentError as e:
        fail(e)


@cli.command()
@click.argument('deployment_json', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def status(ctx, deployment_json):
    """Show the health of a deployment."""
    try:
        cfg = load_config(ctx.obj['config_path'])
        platform = Platform(cfg.deploy, FastlySettings.from_env())

        deployment = RecordStore(deployment_json).load(Deployment)
        report = platform.status(operation_context(), deployment)
        print_status(report, f"Deployment {deployment.name or deployment.id}")
    except DeploymentError as e:
        fail(e)


@cli.command()
@click.argument('deployment_json', type=click.Path(exists=True, dir_okay=False))
@click.option('--yes', '-y', is_flag=True, help='Skip confirmation prompt')
@click.pass_context
def destroy(ctx, deployment_json, yes):
    """Destroy the resources of a deployment."""
    try:
        cfg = load_config(ctx.obj['config_path'])
        platform = Platform(cfg.deploy, FastlySettings.from_env())
        deployment = RecordStore(deployment_json).load(Deployment)

        console.print(Panel.fit(
            f"[bold red]⚠ WARNING: This will destroy resources[/bold red]\n\n"
            f"Service: {deployment.name or '-'} ({deployment.id or 'unknown id'})\n"
            f"Resources: {len(deployment.resource_state) if deployment.resource_state else 'legacy record'}",
            title="Destruction Plan",
            border_style="red"
        ))
        if not confirm_destroy("this deployment", yes):
            console.print("[yellow]Destruction cancelled[/yellow]")
            return

        platform.destroy(operation_context(), deployment)
        console.print("[green]✓ Deployment destroyed[/green]")
    except DeploymentError as e:
        fail(e)


@cli.command()
@click.argument('deployment_json', type=click.Path(exists=True, dir_okay=False))
@click.option('--output', '-o', default='release.json', help='Where to write the release record')
@click.pass_context
def release(ctx, deployment_json, output):
    """Release a deployment by activating its service version."""
    try:
        cfg = load_config(ctx.obj['config_path'])
        manager = ReleaseManager(cfg.require('release'), FastlySettings.from_env())

        deployment = RecordStore(deployment_json).load(Deployment)
        declared = DeclaredResources()
        result = manager.release(operation_context(), deployment, declared)
        RecordStore(output).save(result)

        state = "[green]active[/green]" if result.active else "[yellow]staged[/yellow]"
        console.print(f"Version {result.version} of service {result.name or '-'} ({result.id}) is {state}")
        if result.url:
            console.print(f"  URL: {result.url}")
    except DeploymentError as e:
        fail(e)


@cli.command('release-status')
@click.argument('release_json', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def release_status(ctx, release_json):
    """Show the health of a release."""
    try:
        cfg = load_config(ctx.obj['config_path'])
        manager = ReleaseManager(cfg.require('release'), FastlySettings.from_env())

        record = RecordStore(release_json).load(Release)
        report = manager.status(operation_context(), record)
        print_status(report, f"Release of version {record.version}")
    except DeploymentError as e:
        fail(e)


@cli.command('release-destroy')
@click.argument('release_json', type=click.Path(exists=True, dir_okay=False))
@click.option('--yes', '-y', is_flag=True, help='Skip confirmation prompt')
@click.pass_context
def release_destroy(ctx, release_json, yes):
    """Undo a release by deactivating the version it activated."""
    try:
        cfg = load_config(ctx.obj['config_path'])
        manager = ReleaseManager(cfg.require('release'), FastlySettings.from_env())
        record = RecordStore(release_json).load(Release)

        if not confirm_destroy(f"the release of version {record.version}", yes):
            console.print("[yellow]Destruction cancelled[/yellow]")
            return

        manager.destroy(operation_context(), record)
        console.print("[green]✓ Release destroyed[/green]")
    except DeploymentError as e:
        fail(e)


if __name__ == '__main__':
    cli()
