"""Lazily constructed Google Cloud API clients shared by all resources."""

from __future__ import annotations

from functools import cached_property
from typing import Any

from google.api_core import exceptions as google_exceptions
from google.api_core import retry
from google.cloud import (
    artifactregistry_v1,
    resourcemanager_v3,
    run_v2,
    secretmanager,
    service_usage_v1,
)
from googleapiclient import discovery
from googleapiclient.errors import HttpError

from n8n_cloudrun.lib.logging_config import get_logger

logger = get_logger(__name__)

# Errors returned while a new identity or a newly enabled API propagates
PROPAGATION_ERRORS = (
    google_exceptions.NotFound,
    google_exceptions.InvalidArgument,
    google_exceptions.PermissionDenied,
)
PROPAGATION_HTTP_STATUSES = (400, 403, 404)


def is_not_found(exc: HttpError) -> bool:
    """Return True for a 404 from a discovery API."""
    return getattr(exc.resp, "status", None) == 404


def is_propagation_error(exc: Exception) -> bool:
    """Return True for errors that usually clear once IAM catches up."""
    if isinstance(exc, HttpError):
        return getattr(exc.resp, "status", None) in PROPAGATION_HTTP_STATUSES
    return isinstance(exc, PROPAGATION_ERRORS)


def _log_retry(exc: Exception) -> None:
    logger.info(f"Waiting for IAM propagation: {exc}")


def propagation_retry(
    *, initial: float = 2.0, maximum: float = 16.0, timeout: float = 180.0
) -> retry.Retry:
    """Build the retry policy used right after identities or APIs are created.

    Args:
        initial: First delay in seconds
        maximum: Longest delay between attempts
        timeout: Total time before the last error is raised
    """
    return retry.Retry(
        predicate=is_propagation_error,
        initial=initial,
        maximum=maximum,
        multiplier=2.0,
        timeout=timeout,
        on_error=_log_retry,
    )


class GcpClients:
    """Holder for the API clients used during a deployment.

    Each client is created on first use, so a run that fails in phase A
    never authenticates against the phase B services.
    """

    @cached_property
    def service_usage(self) -> service_usage_v1.ServiceUsageClient:
        """Service Usage client (API enablement)."""
        return service_usage_v1.ServiceUsageClient()

    @cached_property
    def artifact_registry(self) -> artifactregistry_v1.ArtifactRegistryClient:
        """Artifact Registry client."""
        return artifactregistry_v1.ArtifactRegistryClient()

    @cached_property
    def run(self) -> run_v2.ServicesClient:
        """Cloud Run (v2) services client."""
        return run_v2.ServicesClient()

    @cached_property
    def secret_manager(self) -> secretmanager.SecretManagerServiceClient:
        """Secret Manager client."""
        return secretmanager.SecretManagerServiceClient()

    @cached_property
    def projects(self) -> resourcemanager_v3.ProjectsClient:
        """Resource Manager projects client (project IAM and metadata)."""
        return resourcemanager_v3.ProjectsClient()

    @cached_property
    def sqladmin(self) -> Any:
        """Cloud SQL Admin discovery client."""
        return discovery.build("sqladmin", "v1", cache_discovery=False)

    @cached_property
    def iam(self) -> Any:
        """IAM discovery client (service accounts)."""
        return discovery.build("iam", "v1", cache_discovery=False)

    def project_number(self, project_id: str) -> str:
        """Return the numeric project number for a project ID."""
        project = self.projects.get_project(name=f"projects/{project_id}")
        return str(project.name).rsplit("/", 1)[-1]
