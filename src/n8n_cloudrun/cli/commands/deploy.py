"""CLI commands for deploying n8n to Cloud Run.

Implements 'n8n-cloudrun deploy' together with the 'image-ref' and 'url'
helpers that read the same configuration.
"""

from __future__ import annotations

import sys
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

import click

from n8n_cloudrun.config.defaults import DEFAULT_CONFIG_FILE
from n8n_cloudrun.config.loader import load_project_config
from n8n_cloudrun.lib.errors import (
    ConfigError,
    DeploymentError,
    DockerNotAvailableError,
    PrerequisiteError,
)
from n8n_cloudrun.lib.logging_config import get_logger, setup_logging
from n8n_cloudrun.models.project import image_reference

logger = get_logger(__name__)

EXIT_FAILURE = 1


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in deployment commands.

    Every failure, whether a missing prerequisite, a configuration problem
    or a failed cloud operation, is reported in red and exits with 1.
    """
    try:
        yield
    except PrerequisiteError as e:
        logger.error(f"Prerequisite missing: {e}")
        click.secho(f"Error: {e.requirement} is not available", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(EXIT_FAILURE)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.field}: {e.message}", err=True)
        sys.exit(EXIT_FAILURE)
    except DockerNotAvailableError as e:
        logger.error(f"Docker not available: {e}")
        click.secho("Error: Docker is not available", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(EXIT_FAILURE)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        if e.resource:
            click.echo(f"  Resource: {e.resource}", err=True)
        click.echo(f"  {e.message}", err=True)
        click.echo("  Fix the cause and run the command again to resume.", err=True)
        sys.exit(EXIT_FAILURE)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(EXIT_FAILURE)


def _is_interactive(non_interactive: bool) -> bool:
    """Prompts are only shown on a terminal and never with --non-interactive."""
    return not non_interactive and sys.stdin.isatty()


def _silent(message: str) -> None:
    """Echo replacement used with --quiet."""


config_option = click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    help="Deployment settings file (tfvars syntax)",
)
verbose_option = click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose debug logging",
)
quiet_option = click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress progress output",
)


@click.command()
@config_option
@click.option(
    "--non-interactive",
    is_flag=True,
    help="Never prompt; abort if a required setting is missing",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would change without building or provisioning",
)
@verbose_option
@quiet_option
def deploy(
    config_file: str,
    non_interactive: bool,
    dry_run: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Build the n8n image and deploy it to Cloud Run.

    Enables the required APIs, creates the Artifact Registry repository,
    builds and pushes the image for linux/amd64, then provisions Cloud SQL,
    secrets, the service account, IAM bindings and the Cloud Run service.
    Running it again converges; unchanged resources are left alone.

    Example:

        n8n-cloudrun deploy

        n8n-cloudrun deploy --config prod.tfvars --non-interactive

        n8n-cloudrun deploy --dry-run
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        from n8n_cloudrun.deploy.orchestrator import Orchestrator, check_prerequisites

        config_path = Path(config_file)
        check_prerequisites(config_path, require_docker=not dry_run)

        config = load_project_config(
            config_path, interactive=_is_interactive(non_interactive)
        )
        orchestrator = Orchestrator(config, echo=_silent if quiet else click.echo)

        if dry_run:
            orchestrator.plan()
            if not quiet:
                click.secho("[DRY RUN] No resources were changed", fg="yellow")
            return

        outcome = orchestrator.run()

        if quiet:
            click.echo(outcome.service_url or "")
            return

        click.echo()
        click.secho("Deployment Successful!", fg="green", bold=True)
        click.echo(f"  Image:     {outcome.image_uri}")
        click.echo(f"  URL:       {outcome.service_url or '(not available yet)'}")
        if outcome.converged:
            click.echo("  Changes:   none, already up to date")
        click.echo()


@click.command(name="image-ref")
@config_option
@verbose_option
def image_ref(config_file: str, verbose: bool) -> None:
    """Print the image reference a deployment pushes and runs."""
    setup_logging(verbose=verbose)

    with handle_deployment_errors():
        config = load_project_config(Path(config_file))
        click.echo(image_reference(config))


@click.command()
@config_option
@verbose_option
def url(config_file: str, verbose: bool) -> None:
    """Print the URL of the deployed service."""
    setup_logging(verbose=verbose)

    with handle_deployment_errors():
        from n8n_cloudrun.deploy.orchestrator import Orchestrator

        config = load_project_config(Path(config_file))
        service_url = Orchestrator(config).service_url()
        if service_url is None:
            raise DeploymentError(
                operation="url",
                message=f"Cloud Run service '{config.service_name}' does not exist. "
                "Run `n8n-cloudrun deploy` first.",
            )
        click.echo(service_url)
