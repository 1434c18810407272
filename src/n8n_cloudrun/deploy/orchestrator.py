"""End-to-end deployment: prerequisites, phase A, image publish, phase B."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import cast

import click
import docker
from docker.errors import DockerException
from requests.exceptions import ConnectionError as RequestsConnectionError

from n8n_cloudrun.deploy.builder import CLOUD_PLATFORM_SCOPE, ImagePublisher
from n8n_cloudrun.deploy.clients import GcpClients
from n8n_cloudrun.deploy.graph import ResourceGraph, apply_graph, plan_graph
from n8n_cloudrun.deploy.phases import SERVICE_KEY, build_phase_a, build_phase_b
from n8n_cloudrun.deploy.resources import CloudRunService
from n8n_cloudrun.lib.errors import PrerequisiteError
from n8n_cloudrun.lib.logging_config import get_logger
from n8n_cloudrun.models.deployment import ApplyResult, Change, DeployOutcome
from n8n_cloudrun.models.project import ProjectConfig, image_reference

logger = get_logger(__name__)

PhaseBuilder = Callable[..., ResourceGraph]
PublisherFactory = Callable[[ProjectConfig], ImagePublisher]
Echo = Callable[[str], None]


def check_prerequisites(config_path: Path, *, require_docker: bool = True) -> None:
    """Verify everything a deployment needs locally before touching the cloud.

    Checks that the configuration file exists, that the Docker daemon
    answers (skipped when nothing will be built), and that Google
    application-default credentials are available.

    Raises:
        PrerequisiteError: Naming the first missing prerequisite
    """
    import google.auth
    from google.auth.exceptions import DefaultCredentialsError

    if not config_path.is_file():
        raise PrerequisiteError(
            "config_file",
            f"Configuration file '{config_path}' not found. "
            "Create it with at least: gcp_project_id = \"your-project\"",
        )

    if require_docker:
        try:
            client = docker.from_env()  # type: ignore[attr-defined]
            client.ping()
        except (DockerException, RequestsConnectionError) as exc:
            raise PrerequisiteError(
                "docker",
                "Docker daemon is not available. "
                f"Ensure Docker is installed and running: {exc}",
            ) from exc

    try:
        google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
    except DefaultCredentialsError as exc:
        raise PrerequisiteError(
            "google_credentials",
            "Google application-default credentials not found. "
            "Run: gcloud auth application-default login",
        ) from exc

    logger.debug("All prerequisites satisfied")


class Orchestrator:
    """Drive a deployment of n8n to Cloud Run.

    Phase A makes the registry available, the image is then built and
    pushed, and phase B converges every remaining resource. Each step runs
    only when the previous one succeeded.
    """

    def __init__(
        self,
        config: ProjectConfig,
        *,
        clients: GcpClients | None = None,
        publisher_factory: PublisherFactory = ImagePublisher,
        phase_a: PhaseBuilder = build_phase_a,
        phase_b: PhaseBuilder = build_phase_b,
        echo: Echo = click.echo,
    ) -> None:
        self.config = config
        self.clients = clients or GcpClients()
        self._publisher_factory = publisher_factory
        self._phase_a = phase_a
        self._phase_b = phase_b
        self._echo = echo

    def _report(self, result: ApplyResult) -> None:
        self._echo(f"  {result.change.value:<9} {result.kind} {result.name}")

    def _banner(self) -> None:
        config = self.config
        self._echo("--- Configuration ---")
        self._echo(f"Project ID: {config.project_id}")
        self._echo(f"Region: {config.region}")
        self._echo(f"Image Tag: {image_reference(config)}")
        self._echo(f"Repo Name: {config.artifact_repo_name}")
        self._echo("---------------------")

    def run(self) -> DeployOutcome:
        """Deploy: phase A, publish, phase B.

        Returns:
            DeployOutcome with the image, the service URL and all changes

        Raises:
            DeploymentError: From the first failing step; later steps are
                not attempted
        """
        config = self.config
        self._banner()

        self._echo("---> Phase A: Artifact Registry API and repository")
        changes = apply_graph(self._phase_a(config, self.clients), self._report)

        self._echo(f"---> Building and pushing image for {config.platform}")
        published = self._publisher_factory(config).publish()
        self._echo(f"  pushed    {published.image_uri}")

        self._echo("---> Phase B: database, secrets, identity and service")
        graph = self._phase_b(config, self.clients, published.image_uri)
        changes.extend(apply_graph(graph, self._report))

        url = self._live_url(graph)
        self._echo("Deployment process completed.")
        if url:
            self._echo(f"Service URL: {url}")

        outcome = DeployOutcome(
            image_uri=published.image_uri, service_url=url, changes=changes
        )
        if outcome.converged:
            logger.info("Deployment already up to date")
        return outcome

    def plan(self) -> list[ApplyResult]:
        """Report what ``run`` would change, without building or mutating.

        Phase B is planned against the image reference the publish step
        would push.
        """
        config = self.config
        self._banner()

        self._echo("---> Phase A (dry run)")
        results = plan_graph(self._phase_a(config, self.clients), self._report)

        self._echo(f"---> Would build and push {image_reference(config)}")

        self._echo("---> Phase B (dry run)")
        graph = self._phase_b(config, self.clients, image_reference(config))
        results.extend(plan_graph(graph, self._report))

        pending = sum(1 for result in results if result.change != Change.UNCHANGED)
        self._echo(f"{pending} of {len(results)} resources would change.")
        return results

    def service_url(self) -> str | None:
        """Return the URL of the live service, or None if it is not deployed."""
        graph = self._phase_b(self.config, self.clients, image_reference(self.config))
        return self._live_url(graph)

    @staticmethod
    def _live_url(graph: ResourceGraph) -> str | None:
        service = cast(CloudRunService, graph.get(SERVICE_KEY))
        return service.url()
