"""Container image builder and publisher for the n8n image.

This module builds the wrapper image with the Docker SDK and pushes it to
Artifact Registry, authenticating with Google application-default
credentials.
"""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import docker
from docker.errors import APIError, BuildError, DockerException

from n8n_cloudrun import startup
from n8n_cloudrun.deploy.dockerfile import SHIM_FILENAME, generate_dockerfile
from n8n_cloudrun.lib.errors import DeploymentError, DockerNotAvailableError
from n8n_cloudrun.lib.logging_config import get_logger
from n8n_cloudrun.models.deployment import PublishResult
from n8n_cloudrun.models.project import DEFAULT_IMAGE_TAG, ProjectConfig

if TYPE_CHECKING:
    from docker.models.images import Image
    from google.auth.credentials import Credentials

logger = get_logger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


@dataclass
class BuildResult:
    """Result of a container image build operation.

    Attributes:
        image_id: The SHA256 ID of the built image
        image_name: The repository/image name
        tag: The image tag
        full_name: Full image reference (name:tag)
        log_lines: Build log output lines
    """

    image_id: str
    image_name: str
    tag: str
    full_name: str
    log_lines: list[str] = field(default_factory=list)

    @classmethod
    def from_image(
        cls,
        image: Image,
        image_name: str,
        tag: str,
        log_lines: list[str] | None = None,
    ) -> BuildResult:
        """Create BuildResult from a Docker image object."""
        image_id = image.id or ""
        return cls(
            image_id=image_id,
            image_name=image_name,
            tag=tag,
            full_name=f"{image_name}:{tag}",
            log_lines=log_lines or [],
        )


def get_oci_labels(
    service_name: str,
    version: str,
    base_image: str | None = None,
) -> dict[str, str]:
    """Generate OCI-compliant container image labels.

    Args:
        service_name: Name of the service for image title
        version: Version string for the image
        base_image: Upstream image the build starts from

    Returns:
        Dictionary of OCI labels
    """
    created = datetime.now(timezone.utc).isoformat()

    labels = {
        "org.opencontainers.image.title": service_name,
        "org.opencontainers.image.version": version,
        "org.opencontainers.image.created": created,
        "com.n8n-cloudrun.managed": "true",
    }

    if base_image:
        labels["org.opencontainers.image.base.name"] = base_image

    return labels


def prepare_build_context(
    config: ProjectConfig, version: str = DEFAULT_IMAGE_TAG
) -> Path:
    """Create a temporary build context with the Dockerfile and the shim.

    The caller owns the returned directory and must remove it.
    """
    build_dir = Path(tempfile.mkdtemp(prefix="n8n-cloudrun-build-"))

    dockerfile = generate_dockerfile(
        config.service_name,
        config.container_port,
        base_image=config.n8n_base_image,
        version=version,
    )
    (build_dir / "Dockerfile").write_text(dockerfile, encoding="utf-8")
    shutil.copy2(Path(startup.__file__), build_dir / SHIM_FILENAME)

    return build_dir


def registry_auth_config(credentials: Credentials | None = None) -> dict[str, str]:
    """Return Docker credentials for Artifact Registry.

    Uses an OAuth access token from application-default credentials, which
    is what ``gcloud auth configure-docker`` sets up for the docker CLI.

    Raises:
        DeploymentError: If no credentials are available or refresh fails
    """
    import google.auth
    from google.auth.exceptions import DefaultCredentialsError, RefreshError
    from google.auth.transport.requests import Request

    try:
        if credentials is None:
            credentials, _ = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
        credentials.refresh(Request())
    except (DefaultCredentialsError, RefreshError) as exc:
        raise DeploymentError(
            operation="registry_auth",
            message=f"Could not obtain Google credentials for the registry: {exc}",
        ) from exc

    return {"username": "oauth2accesstoken", "password": str(credentials.token)}


class ContainerBuilder:
    """Builder for the n8n container image.

    Uses the Docker SDK to build and push images. Handles Docker daemon
    connection, build execution, and error handling.
    """

    def __init__(self) -> None:
        """Connect to the Docker daemon using the environment configuration.

        Raises:
            DockerNotAvailableError: If Docker daemon is not available
        """
        try:
            self.client = docker.from_env()  # type: ignore[attr-defined]
        except DockerException as e:
            raise DockerNotAvailableError(operation="init") from e

    def build(
        self,
        build_context: str,
        image_name: str,
        tag: str,
        labels: dict[str, str] | None = None,
        dockerfile: str = "Dockerfile",
        platform: str = "linux/amd64",
        **build_kwargs: Any,
    ) -> BuildResult:
        """Build a container image from the specified context.

        The target platform is always passed explicitly; the build host's
        own architecture is never used as a default.

        Args:
            build_context: Path to the build context directory
            image_name: Repository/image name for the built image
            tag: Tag for the built image
            labels: Optional OCI labels to apply
            dockerfile: Path to Dockerfile relative to context
            platform: Target platform for the image (default: linux/amd64)
            **build_kwargs: Additional arguments passed to Docker build

        Returns:
            BuildResult with image details and build logs

        Raises:
            DeploymentError: If build context doesn't exist or build fails
        """
        context_path = Path(build_context)
        if not context_path.exists():
            raise DeploymentError(
                operation="build",
                message=f"Build context not found: {build_context}",
            )

        full_tag = f"{image_name}:{tag}"
        logger.info(f"Building {full_tag} for {platform}")

        try:
            image, build_logs = self.client.images.build(
                path=str(context_path),
                tag=full_tag,
                dockerfile=dockerfile,
                labels=labels or {},
                rm=True,
                platform=platform,
                pull=True,  # Pull the base image for the target platform
                **build_kwargs,
            )

            log_lines: list[str] = []
            for log_entry in build_logs:
                if isinstance(log_entry, dict):
                    if "stream" in log_entry:
                        stream_val = log_entry["stream"]
                        if isinstance(stream_val, str):
                            log_lines.append(stream_val.rstrip("\n"))
                    elif "error" in log_entry:
                        log_lines.append(f"ERROR: {log_entry['error']}")

            return BuildResult.from_image(
                image=image,
                image_name=image_name,
                tag=tag,
                log_lines=log_lines,
            )

        except BuildError as e:
            raise DeploymentError(
                operation="build",
                message=f"Docker build failed: {e.msg}",
            ) from e
        except DockerException as e:
            raise DeploymentError(
                operation="build",
                message=f"Docker error during build: {e}",
            ) from e

    def push(
        self,
        image_name: str,
        tag: str,
        auth_config: dict[str, str] | None = None,
    ) -> str | None:
        """Push an image to its registry.

        Args:
            image_name: Repository/image name including the registry host
            tag: Tag to push
            auth_config: Registry credentials

        Returns:
            The digest reported by the registry, if any

        Raises:
            DeploymentError: If the push reports an error
        """
        full_tag = f"{image_name}:{tag}"
        logger.info(f"Pushing {full_tag}")

        digest: str | None = None
        try:
            for entry in self.client.images.push(
                image_name,
                tag=tag,
                auth_config=auth_config,
                stream=True,
                decode=True,
            ):
                if not isinstance(entry, dict):
                    continue
                if "error" in entry:
                    raise DeploymentError(
                        operation="push",
                        message=f"Pushing {full_tag} failed: {entry['error']}",
                    )
                aux = entry.get("aux")
                if isinstance(aux, dict) and aux.get("Digest"):
                    digest = str(aux["Digest"])
                elif entry.get("status"):
                    logger.debug(f"push: {entry['status']}")
        except APIError as e:
            raise DeploymentError(
                operation="push",
                message=f"Registry rejected {full_tag}: {e.explanation or e}",
            ) from e
        except DockerException as e:
            raise DeploymentError(
                operation="push",
                message=f"Docker error during push: {e}",
            ) from e

        return digest


class ImagePublisher:
    """Build the n8n image for the target platform and push it."""

    def __init__(
        self,
        config: ProjectConfig,
        builder: ContainerBuilder | None = None,
        credentials: Credentials | None = None,
        tag: str = DEFAULT_IMAGE_TAG,
    ) -> None:
        """Create a publisher; connects to Docker unless a builder is given."""
        self._config = config
        self._builder = builder or ContainerBuilder()
        self._credentials = credentials
        self._tag = tag

    def publish(self, **build_kwargs: Any) -> PublishResult:
        """Build and push the image.

        Returns:
            PublishResult for the pushed image

        Raises:
            DeploymentError: If the build or push fails
        """
        config = self._config
        build_dir = prepare_build_context(config, version=self._tag)
        try:
            result = self._builder.build(
                build_context=str(build_dir),
                image_name=config.image_name,
                tag=self._tag,
                labels=get_oci_labels(
                    config.service_name, self._tag, config.n8n_base_image
                ),
                platform=config.platform,
                **build_kwargs,
            )
            for line in result.log_lines:
                if line.strip():
                    logger.debug(line)

            digest = self._builder.push(
                config.image_name,
                self._tag,
                auth_config=registry_auth_config(self._credentials),
            )
        finally:
            shutil.rmtree(build_dir, ignore_errors=True)

        return PublishResult(
            image_uri=result.full_name,
            image_id=result.image_id,
            digest=digest,
        )
