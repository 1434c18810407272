"""Artifact Registry repository for the n8n image."""

from __future__ import annotations

from collections.abc import Iterable

from google.api_core import exceptions as google_exceptions
from google.cloud import artifactregistry_v1
from google.protobuf import field_mask_pb2

from n8n_cloudrun.deploy.resources.base import Resource
from n8n_cloudrun.lib.errors import DeploymentError

REPOSITORY_DESCRIPTION = "Docker repository for n8n"


class ArtifactRepository(Resource):
    """A Docker-format Artifact Registry repository."""

    kind = "Artifact Registry repository"

    def __init__(
        self,
        client: artifactregistry_v1.ArtifactRegistryClient,
        project_id: str,
        region: str,
        repository_id: str,
        *,
        key: str = "registry",
        depends_on: Iterable[str] = (),
    ) -> None:
        super().__init__(key, depends_on=depends_on)
        self._client = client
        self._project_id = project_id
        self._region = region
        self._repository_id = repository_id

    @property
    def parent(self) -> str:
        return f"projects/{self._project_id}/locations/{self._region}"

    @property
    def name(self) -> str:
        return f"{self.parent}/repositories/{self._repository_id}"

    def read(self) -> artifactregistry_v1.Repository | None:
        try:
            return self._client.get_repository(name=self.name)
        except google_exceptions.NotFound:
            return None

    def create(self) -> None:
        repository = artifactregistry_v1.Repository(
            format_=artifactregistry_v1.Repository.Format.DOCKER,
            description=REPOSITORY_DESCRIPTION,
        )
        operation = self._client.create_repository(
            parent=self.parent,
            repository_id=self._repository_id,
            repository=repository,
        )
        operation.result()

    def needs_update(self, current: artifactregistry_v1.Repository) -> bool:
        if current.format_ != artifactregistry_v1.Repository.Format.DOCKER:
            raise DeploymentError(
                operation="apply",
                message=(
                    "repository exists with a non-Docker format. Delete it or "
                    "choose another artifact_repo_name."
                ),
                resource=self.describe(),
            )
        return current.description != REPOSITORY_DESCRIPTION

    def update(self, current: artifactregistry_v1.Repository) -> None:
        repository = artifactregistry_v1.Repository(
            name=self.name, description=REPOSITORY_DESCRIPTION
        )
        self._client.update_repository(
            repository=repository,
            update_mask=field_mask_pb2.FieldMask(paths=["description"]),
        )
