"""Project API enablement through Service Usage."""

from __future__ import annotations

from google.api_core import exceptions as google_exceptions
from google.cloud import service_usage_v1

from n8n_cloudrun.deploy.resources.base import Resource


def api_key(service: str) -> str:
    """Graph key for an API, e.g. ``api:run`` for run.googleapis.com."""
    return f"api:{service.split('.', 1)[0]}"


class ProjectService(Resource):
    """A Google API enabled on the project."""

    kind = "API"
    blocks_reads = True

    def __init__(
        self,
        client: service_usage_v1.ServiceUsageClient,
        project_id: str,
        service: str,
    ) -> None:
        super().__init__(api_key(service))
        self._client = client
        self._project_id = project_id
        self._service = service

    @property
    def name(self) -> str:
        return f"projects/{self._project_id}/services/{self._service}"

    def describe(self) -> str:
        return f"API '{self._service}'"

    def read(self) -> service_usage_v1.Service | None:
        try:
            service = self._client.get_service(request={"name": self.name})
        except google_exceptions.NotFound:
            return None
        if service.state != service_usage_v1.State.ENABLED:
            return None
        return service

    def create(self) -> None:
        operation = self._client.enable_service(request={"name": self.name})
        operation.result()
