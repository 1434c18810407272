"""Secret Manager secrets and their generated values.

A secret's value is generated exactly once, when the secret has no enabled
version. Later runs never replace it: losing the n8n encryption key makes
every credential stored in n8n unreadable.
"""

from __future__ import annotations

import secrets
import string
from collections.abc import Callable, Iterable

from google.api_core import exceptions as google_exceptions
from google.cloud import secretmanager

from n8n_cloudrun.deploy.resources.base import Resource
from n8n_cloudrun.lib.errors import DeploymentError

SECRET_ALPHABET = string.ascii_letters + string.digits


def generate_secret_value(length: int = 32) -> str:
    """Generate a random alphanumeric secret value."""
    return "".join(secrets.choice(SECRET_ALPHABET) for _ in range(length))


def secret_key(secret_id: str) -> str:
    """Graph key of a secret."""
    return f"secret:{secret_id}"


def secret_version_key(secret_id: str) -> str:
    """Graph key of the generated version of a secret."""
    return f"secret-version:{secret_id}"


class Secret(Resource):
    """A Secret Manager secret with automatic replication."""

    kind = "secret"
    blocks_reads = True

    def __init__(
        self,
        client: secretmanager.SecretManagerServiceClient,
        project_id: str,
        secret_id: str,
        *,
        depends_on: Iterable[str] = (),
    ) -> None:
        super().__init__(secret_key(secret_id), depends_on=depends_on)
        self._client = client
        self._project_id = project_id
        self._secret_id = secret_id

    @property
    def name(self) -> str:
        return f"projects/{self._project_id}/secrets/{self._secret_id}"

    def read(self) -> secretmanager.Secret | None:
        try:
            return self._client.get_secret(request={"name": self.name})
        except google_exceptions.NotFound:
            return None

    def create(self) -> None:
        self._client.create_secret(
            request={
                "parent": f"projects/{self._project_id}",
                "secret_id": self._secret_id,
                "secret": {"replication": {"automatic": {}}},
            }
        )


class GeneratedSecretVersion(Resource):
    """The value of a secret, generated on first apply only."""

    kind = "secret version"

    def __init__(
        self,
        client: secretmanager.SecretManagerServiceClient,
        project_id: str,
        secret_id: str,
        generator: Callable[[], str] = generate_secret_value,
    ) -> None:
        super().__init__(
            secret_version_key(secret_id), depends_on=[secret_key(secret_id)]
        )
        self._client = client
        self._secret = f"projects/{project_id}/secrets/{secret_id}"
        self._generator = generator

    @property
    def name(self) -> str:
        return f"{self._secret}/versions/latest"

    def read(self) -> secretmanager.SecretVersion | None:
        try:
            versions = self._client.list_secret_versions(
                request={"parent": self._secret, "filter": "state:ENABLED"}
            )
            return next(iter(versions), None)
        except google_exceptions.NotFound:
            return None

    def create(self) -> None:
        payload = self._generator().encode("UTF-8")
        self._client.add_secret_version(
            request={"parent": self._secret, "payload": {"data": payload}}
        )

    def value(self) -> str:
        """Return the current secret value.

        Raises:
            DeploymentError: If the secret has no accessible version
        """
        try:
            response = self._client.access_secret_version(request={"name": self.name})
        except google_exceptions.NotFound as exc:
            raise DeploymentError(
                operation="apply",
                message="secret has no enabled version",
                resource=self.describe(),
            ) from exc
        return response.payload.data.decode("UTF-8")
