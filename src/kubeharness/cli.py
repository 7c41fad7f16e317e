"""CLI interface for kubeharness"""

import logging
from pathlib import Path
from typing import Optional

import click
import yaml

from kubeharness.application.environment import EnvironmentManager
from kubeharness.domain.errors import ProvisioningError
from kubeharness.infrastructure.config.config_manager import ConfigManager, ConfigurationError
from kubeharness.infrastructure.kube.client import KubeClient

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    logging.getLogger().setLevel(level)
    # The kubernetes client is chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _die(message: str, verbose: bool = False, exc: Optional[Exception] = None) -> None:
    """Exit with a user-friendly error message"""
    if exc is not None:
        logger.error(message, exc_info=verbose)
    else:
        logger.error(message)
    raise click.ClickException(message)


def load_manifest(file_path: Path) -> dict:
    """Load a single YAML manifest

    Args:
        file_path: Path to manifest file

    Returns:
        Manifest as a dict
    """
    with open(file_path, "r", encoding="utf-8") as f:
        manifest = yaml.safe_load(f)
    if not isinstance(manifest, dict):
        raise ValueError(f"{file_path} does not contain a Kubernetes object")
    return manifest


def _create_manager(ctx: click.Context, base_name: Optional[str] = None) -> EnvironmentManager:
    """Create environment manager from config

    Args:
        ctx: Click context holding config path and verbosity
        base_name: Optional namespace base name override

    Returns:
        EnvironmentManager instance
    """
    verbose = ctx.obj.get("verbose", False)
    try:
        config_manager = ConfigManager(config_path=ctx.obj.get("config_path"))
    except ConfigurationError as e:
        _die(str(e), verbose=verbose, exc=e)

    environment_config = config_manager.get_environment_config()
    if base_name:
        environment_config = environment_config.model_copy(update={"base_name": base_name})

    try:
        kube_client = KubeClient.from_config(config_manager.get_kube_config())
    except RuntimeError as e:
        _die(str(e), verbose=verbose, exc=e)

    return EnvironmentManager(
        kube_client,
        config=environment_config,
        policy=config_manager.get_retry_policy(),
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to .kubeharness.yml config file",
)
@click.pass_context
def cli(ctx, verbose: bool, config: Path):
    """kubeharness - test environments on Kubernetes"""
    ctx.ensure_object(dict)
    setup_logging(verbose)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose


@cli.group()
def namespace():
    """Create or delete test namespaces."""


@namespace.command("create")
@click.option("--base-name", type=str, help="Base name embedded in the namespace name. Overrides config.")
@click.pass_context
def namespace_create(ctx, base_name: Optional[str]):
    """Provision a fresh test namespace and print its name."""
    verbose = ctx.obj.get("verbose", False)
    manager = _create_manager(ctx, base_name)
    try:
        name = manager.create_environment()
    except ProvisioningError as e:
        _die(f"creating namespace failed: {e}", verbose=verbose, exc=e)
    finally:
        manager.shutdown(wait=False)
    click.echo(name)


@namespace.command("delete")
@click.argument("name", type=str)
@click.option("--wait/--no-wait", default=None, help="Wait for the namespace to disappear (default from config)")
@click.pass_context
def namespace_delete(ctx, name: str, wait: Optional[bool]):
    """Delete a test namespace.

    NAME: Namespace to delete
    """
    verbose = ctx.obj.get("verbose", False)
    manager = _create_manager(ctx)
    if wait is not None:
        manager.config = manager.config.model_copy(update={"wait_for_deletion": wait})
    handle = manager.destroy_environment(name)
    error = handle.exception()
    manager.shutdown()
    if error is not None:
        _die(f"deleting namespace {name} failed: {error}", verbose=verbose, exc=error)
    click.echo(f"Deleted namespace {name}")


@cli.group()
def pvc():
    """Provision and inspect persistent volume claims."""


@pvc.command("ensure")
@click.argument("file_path", type=click.Path(exists=True, path_type=Path))
@click.option("--namespace", "-n", type=str, help="Namespace for the claim. Overrides the manifest.")
@click.pass_context
def pvc_ensure(ctx, file_path: Path, namespace: Optional[str]):
    """Create a PVC from a manifest (an existing claim is accepted).

    FILE_PATH: Path to the PersistentVolumeClaim manifest
    """
    verbose = ctx.obj.get("verbose", False)
    try:
        manifest = load_manifest(file_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        _die(f"Invalid manifest: {e}", verbose=verbose, exc=e)
    if namespace:
        manifest.setdefault("metadata", {})["namespace"] = namespace

    manager = _create_manager(ctx)
    try:
        claim = manager.ensure_pvc(manifest)
    except ProvisioningError as e:
        _die(f"provisioning PVC failed: {e}", verbose=verbose, exc=e)
    finally:
        manager.shutdown(wait=False)

    phase = claim.status.phase if claim.status else None
    click.echo(f"{claim.metadata.namespace}/{claim.metadata.name} ({phase or 'Unknown'})")


@pvc.command("get")
@click.argument("namespace_name", metavar="NAMESPACE", type=str)
@click.argument("name", type=str)
@click.pass_context
def pvc_get(ctx, namespace_name: str, name: str):
    """Show a PVC's phase and bound volume.

    NAMESPACE: Namespace of the claim
    NAME: Claim name
    """
    verbose = ctx.obj.get("verbose", False)
    manager = _create_manager(ctx)
    try:
        claim = manager.get_pvc(namespace_name, name)
    except Exception as e:
        _die(f"reading PVC {namespace_name}/{name} failed: {e}", verbose=verbose, exc=e)
    finally:
        manager.shutdown(wait=False)

    status = claim.status
    click.echo(f"Phase: {status.phase if status else 'Unknown'}")
    click.echo(f"Volume: {claim.spec.volume_name or '-'}")


def main():
    """Main entry point"""
    cli(obj={})


if __name__ == "__main__":
    main()
