"""Cloud SQL instance, database and user.

The Cloud SQL Admin API has no generated client library, so these
resources use the discovery-based ``googleapiclient`` service object.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from typing import Any

from googleapiclient.errors import HttpError

from n8n_cloudrun.deploy.clients import is_not_found
from n8n_cloudrun.deploy.resources.base import Resource
from n8n_cloudrun.lib.errors import DeploymentError
from n8n_cloudrun.lib.logging_config import get_logger

logger = get_logger(__name__)

OPERATION_POLL_SECONDS = 5.0


def wait_for_operation(
    sqladmin: Any,
    project_id: str,
    operation: dict[str, Any],
    *,
    poll_seconds: float = OPERATION_POLL_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Block until a Cloud SQL operation is done.

    Raises:
        DeploymentError: If the operation finished with errors
    """
    while operation.get("status") != "DONE":
        sleep(poll_seconds)
        operation = (
            sqladmin.operations()
            .get(project=project_id, operation=operation["name"])
            .execute()
        )

    errors = operation.get("error", {}).get("errors", [])
    if errors:
        details = "; ".join(
            error.get("message") or error.get("code", "") for error in errors
        )
        raise DeploymentError(
            operation=str(operation.get("operationType", "sql")).lower(),
            message=details,
            resource=operation.get("targetId"),
        )


class SqlInstance(Resource):
    """A Cloud SQL PostgreSQL instance."""

    kind = "Cloud SQL instance"
    blocks_reads = True

    def __init__(
        self,
        sqladmin: Any,
        project_id: str,
        region: str,
        instance: str,
        *,
        tier: str,
        database_version: str,
        key: str = "sql-instance",
        depends_on: Iterable[str] = (),
    ) -> None:
        super().__init__(key, depends_on=depends_on)
        self._sqladmin = sqladmin
        self._project_id = project_id
        self._region = region
        self._instance = instance
        self._tier = tier
        self._database_version = database_version

    @property
    def name(self) -> str:
        return self._instance

    def read(self) -> dict[str, Any] | None:
        try:
            return (
                self._sqladmin.instances()
                .get(project=self._project_id, instance=self._instance)
                .execute()
            )
        except HttpError as exc:
            if is_not_found(exc):
                return None
            raise

    def create(self) -> None:
        body = {
            "name": self._instance,
            "region": self._region,
            "databaseVersion": self._database_version,
            "settings": {
                "tier": self._tier,
                "ipConfiguration": {"ipv4Enabled": True},
                "backupConfiguration": {"enabled": True},
            },
        }
        operation = (
            self._sqladmin.instances()
            .insert(project=self._project_id, body=body)
            .execute()
        )
        logger.info(f"Waiting for Cloud SQL instance {self._instance}")
        wait_for_operation(self._sqladmin, self._project_id, operation)

    def needs_update(self, current: dict[str, Any]) -> bool:
        version = current.get("databaseVersion")
        if version and version != self._database_version:
            raise DeploymentError(
                operation="apply",
                message=(
                    f"instance runs {version}, declared {self._database_version}. "
                    "Major version upgrades are not done automatically."
                ),
                resource=self.describe(),
            )
        return current.get("settings", {}).get("tier") != self._tier

    def update(self, current: dict[str, Any]) -> None:
        operation = (
            self._sqladmin.instances()
            .patch(
                project=self._project_id,
                instance=self._instance,
                body={"settings": {"tier": self._tier}},
            )
            .execute()
        )
        wait_for_operation(self._sqladmin, self._project_id, operation)


class SqlDatabase(Resource):
    """A database inside a Cloud SQL instance."""

    kind = "Cloud SQL database"

    def __init__(
        self,
        sqladmin: Any,
        project_id: str,
        instance: str,
        database: str,
        *,
        key: str = "sql-database",
        depends_on: Iterable[str] = (),
    ) -> None:
        super().__init__(key, depends_on=depends_on)
        self._sqladmin = sqladmin
        self._project_id = project_id
        self._instance = instance
        self._database = database

    @property
    def name(self) -> str:
        return f"{self._instance}/{self._database}"

    def read(self) -> dict[str, Any] | None:
        try:
            return (
                self._sqladmin.databases()
                .get(
                    project=self._project_id,
                    instance=self._instance,
                    database=self._database,
                )
                .execute()
            )
        except HttpError as exc:
            if is_not_found(exc):
                return None
            raise

    def create(self) -> None:
        operation = (
            self._sqladmin.databases()
            .insert(
                project=self._project_id,
                instance=self._instance,
                body={"name": self._database},
            )
            .execute()
        )
        wait_for_operation(self._sqladmin, self._project_id, operation)


class SqlUser(Resource):
    """A built-in database user whose password lives in Secret Manager.

    The password of an existing user is left alone: Cloud SQL never returns
    it, and the secret holding it is never regenerated.
    """

    kind = "Cloud SQL user"

    def __init__(
        self,
        sqladmin: Any,
        project_id: str,
        instance: str,
        user: str,
        password: Callable[[], str],
        *,
        key: str = "sql-user",
        depends_on: Iterable[str] = (),
    ) -> None:
        super().__init__(key, depends_on=depends_on)
        self._sqladmin = sqladmin
        self._project_id = project_id
        self._instance = instance
        self._user = user
        self._password = password

    @property
    def name(self) -> str:
        return f"{self._instance}/{self._user}"

    def read(self) -> dict[str, Any] | None:
        try:
            return (
                self._sqladmin.users()
                .get(
                    project=self._project_id,
                    instance=self._instance,
                    name=self._user,
                )
                .execute()
            )
        except HttpError as exc:
            if is_not_found(exc):
                return None
            raise

    def create(self) -> None:
        operation = (
            self._sqladmin.users()
            .insert(
                project=self._project_id,
                instance=self._instance,
                body={"name": self._user, "password": self._password()},
            )
            .execute()
        )
        wait_for_operation(self._sqladmin, self._project_id, operation)
