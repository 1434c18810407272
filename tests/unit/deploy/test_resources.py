"""Unit tests for the declared Google Cloud resources.

API clients are replaced with mocks; request and response messages use the
real client library types so field names are checked.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import httplib2
import pytest
from google.api_core import exceptions as google_exceptions
from google.api_core.retry import Retry
from google.cloud import artifactregistry_v1, run_v2, service_usage_v1
from google.iam.v1 import policy_pb2
from google.type import expr_pb2
from googleapiclient.errors import HttpError

from n8n_cloudrun.deploy.clients import is_propagation_error
from n8n_cloudrun.deploy.resources import (
    ArtifactRepository,
    CloudRunService,
    GeneratedSecretVersion,
    IamBinding,
    ProjectService,
    Secret,
    ServiceAccount,
    SqlDatabase,
    SqlInstance,
    SqlUser,
)
from n8n_cloudrun.deploy.resources.cloudrun import (
    n8n_environment,
    service_fingerprint,
    service_url,
)
from n8n_cloudrun.deploy.resources.database import wait_for_operation
from n8n_cloudrun.deploy.resources.secret_manager import generate_secret_value
from n8n_cloudrun.lib.errors import DeploymentError
from n8n_cloudrun.models.deployment import Change
from n8n_cloudrun.models.project import ProjectConfig

SERVICE_URL = "https://n8n-123456789.us-west2.run.app"


def http_not_found() -> HttpError:
    return HttpError(httplib2.Response({"status": 404}), b"not found")


def done(name: str = "op-1") -> dict[str, str]:
    return {"name": name, "status": "DONE"}


class TestProjectService:
    """Tests for API enablement."""

    def test_disabled_api_is_enabled(self) -> None:
        client = MagicMock()
        client.get_service.return_value = service_usage_v1.Service(
            state=service_usage_v1.State.DISABLED
        )
        resource = ProjectService(client, "proj-123", "run.googleapis.com")

        result = resource.apply()

        assert result.change == Change.CREATED
        assert result.key == "api:run"
        client.enable_service.assert_called_once_with(
            request={"name": "projects/proj-123/services/run.googleapis.com"}
        )
        client.enable_service.return_value.result.assert_called_once()

    def test_enabled_api_is_left_alone(self) -> None:
        client = MagicMock()
        client.get_service.return_value = service_usage_v1.Service(
            state=service_usage_v1.State.ENABLED
        )

        result = ProjectService(client, "proj-123", "run.googleapis.com").apply()

        assert result.change == Change.UNCHANGED
        client.enable_service.assert_not_called()


class TestArtifactRepository:
    """Tests for the Docker repository."""

    def _repository(self) -> ArtifactRepository:
        return ArtifactRepository(self.client, "proj-123", "us-west2", "n8n-repo")

    def setup_method(self) -> None:
        self.client = MagicMock()

    def test_missing_repository_created(self) -> None:
        self.client.get_repository.side_effect = google_exceptions.NotFound("none")

        assert self._repository().apply().change == Change.CREATED

        kwargs = self.client.create_repository.call_args[1]
        assert kwargs["parent"] == "projects/proj-123/locations/us-west2"
        assert kwargs["repository_id"] == "n8n-repo"
        assert (
            kwargs["repository"].format_
            == artifactregistry_v1.Repository.Format.DOCKER
        )

    def test_existing_repository_unchanged(self) -> None:
        from n8n_cloudrun.deploy.resources.registry import REPOSITORY_DESCRIPTION

        self.client.get_repository.return_value = artifactregistry_v1.Repository(
            format_=artifactregistry_v1.Repository.Format.DOCKER,
            description=REPOSITORY_DESCRIPTION,
        )

        assert self._repository().apply().change == Change.UNCHANGED
        self.client.create_repository.assert_not_called()
        self.client.update_repository.assert_not_called()

    def test_wrong_format_is_an_error(self) -> None:
        self.client.get_repository.return_value = artifactregistry_v1.Repository(
            format_=artifactregistry_v1.Repository.Format.MAVEN
        )

        with pytest.raises(DeploymentError, match="non-Docker format"):
            self._repository().apply()


class TestSecrets:
    """Tests for secrets and generated values."""

    def test_missing_secret_created_with_automatic_replication(self) -> None:
        client = MagicMock()
        client.get_secret.side_effect = google_exceptions.NotFound("none")

        result = Secret(client, "proj-123", "n8n-encryption-key").apply()

        assert result.change == Change.CREATED
        request = client.create_secret.call_args[1]["request"]
        assert request["secret_id"] == "n8n-encryption-key"
        assert request["secret"] == {"replication": {"automatic": {}}}

    def test_value_generated_when_no_version(self) -> None:
        client = MagicMock()
        client.list_secret_versions.return_value = []
        version = GeneratedSecretVersion(
            client, "proj-123", "n8n-db-password", generator=lambda: "s3cret"
        )

        assert version.apply().change == Change.CREATED

        request = client.add_secret_version.call_args[1]["request"]
        assert request["parent"] == "projects/proj-123/secrets/n8n-db-password"
        assert request["payload"] == {"data": b"s3cret"}

    def test_existing_value_never_regenerated(self) -> None:
        client = MagicMock()
        client.list_secret_versions.return_value = [MagicMock()]
        generator = MagicMock(return_value="new")
        version = GeneratedSecretVersion(
            client, "proj-123", "n8n-encryption-key", generator=generator
        )

        assert version.apply().change == Change.UNCHANGED
        generator.assert_not_called()
        client.add_secret_version.assert_not_called()

    def test_value_reads_latest_version(self) -> None:
        client = MagicMock()
        client.access_secret_version.return_value.payload.data = b"s3cret"
        version = GeneratedSecretVersion(client, "proj-123", "n8n-db-password")

        assert version.value() == "s3cret"
        name = "projects/proj-123/secrets/n8n-db-password/versions/latest"
        client.access_secret_version.assert_called_once_with(request={"name": name})

    def test_version_depends_on_secret(self) -> None:
        version = GeneratedSecretVersion(MagicMock(), "proj-123", "n8n-db-password")
        assert version.depends_on == ("secret:n8n-db-password",)

    def test_generated_values_are_alphanumeric(self) -> None:
        value = generate_secret_value()
        assert len(value) == 32
        assert value.isalnum()
        assert generate_secret_value() != value


class TestCloudSql:
    """Tests for the Cloud SQL instance, database and user."""

    def test_missing_instance_created_and_awaited(self) -> None:
        sqladmin = MagicMock()
        sqladmin.instances.return_value.get.return_value.execute.side_effect = (
            http_not_found()
        )
        sqladmin.instances.return_value.insert.return_value.execute.return_value = (
            done()
        )
        instance = SqlInstance(
            sqladmin,
            "proj-123",
            "us-west2",
            "n8n-db",
            tier="db-f1-micro",
            database_version="POSTGRES_13",
        )

        assert instance.apply().change == Change.CREATED

        body = sqladmin.instances.return_value.insert.call_args[1]["body"]
        assert body["databaseVersion"] == "POSTGRES_13"
        assert body["settings"]["tier"] == "db-f1-micro"
        assert body["region"] == "us-west2"

    def test_tier_change_patches(self) -> None:
        sqladmin = MagicMock()
        sqladmin.instances.return_value.get.return_value.execute.return_value = {
            "databaseVersion": "POSTGRES_13",
            "settings": {"tier": "db-f1-micro"},
        }
        sqladmin.instances.return_value.patch.return_value.execute.return_value = (
            done()
        )
        instance = SqlInstance(
            sqladmin,
            "proj-123",
            "us-west2",
            "n8n-db",
            tier="db-g1-small",
            database_version="POSTGRES_13",
        )

        assert instance.apply().change == Change.UPDATED
        sqladmin.instances.return_value.patch.assert_called_once_with(
            project="proj-123",
            instance="n8n-db",
            body={"settings": {"tier": "db-g1-small"}},
        )

    def test_version_mismatch_is_an_error(self) -> None:
        sqladmin = MagicMock()
        sqladmin.instances.return_value.get.return_value.execute.return_value = {
            "databaseVersion": "POSTGRES_15",
            "settings": {"tier": "db-f1-micro"},
        }
        instance = SqlInstance(
            sqladmin,
            "proj-123",
            "us-west2",
            "n8n-db",
            tier="db-f1-micro",
            database_version="POSTGRES_13",
        )

        with pytest.raises(DeploymentError, match="POSTGRES_15"):
            instance.apply()

    def test_other_http_errors_propagate(self) -> None:
        sqladmin = MagicMock()
        sqladmin.databases.return_value.get.return_value.execute.side_effect = (
            HttpError(httplib2.Response({"status": 403}), b"forbidden")
        )

        with pytest.raises(HttpError):
            SqlDatabase(sqladmin, "proj-123", "n8n-db", "n8n").read()

    def test_user_created_with_secret_password(self) -> None:
        sqladmin = MagicMock()
        sqladmin.users.return_value.get.return_value.execute.side_effect = (
            http_not_found()
        )
        sqladmin.users.return_value.insert.return_value.execute.return_value = done()

        user = SqlUser(
            sqladmin, "proj-123", "n8n-db", "n8n-user", password=lambda: "s3cret"
        )

        assert user.apply().change == Change.CREATED
        body = sqladmin.users.return_value.insert.call_args[1]["body"]
        assert body == {"name": "n8n-user", "password": "s3cret"}

    def test_existing_user_password_not_read(self) -> None:
        sqladmin = MagicMock()
        sqladmin.users.return_value.get.return_value.execute.return_value = {
            "name": "n8n-user"
        }
        password = MagicMock()

        user = SqlUser(sqladmin, "proj-123", "n8n-db", "n8n-user", password=password)

        assert user.apply().change == Change.UNCHANGED
        password.assert_not_called()

    def test_wait_for_operation_polls_until_done(self) -> None:
        sqladmin = MagicMock()
        sqladmin.operations.return_value.get.return_value.execute.side_effect = [
            {"name": "op-1", "status": "RUNNING"},
            done(),
        ]
        sleep = MagicMock()

        wait_for_operation(
            sqladmin, "proj-123", {"name": "op-1", "status": "PENDING"}, sleep=sleep
        )

        assert sleep.call_count == 2

    def test_wait_for_operation_reports_errors(self) -> None:
        operation = {
            "name": "op-1",
            "status": "DONE",
            "operationType": "CREATE",
            "targetId": "n8n-db",
            "error": {"errors": [{"code": "QUOTA", "message": "quota exceeded"}]},
        }

        with pytest.raises(DeploymentError, match="quota exceeded") as exc_info:
            wait_for_operation(MagicMock(), "proj-123", operation)

        assert exc_info.value.operation == "create"


class TestIam:
    """Tests for the service account and IAM bindings."""

    def test_service_account_created(self) -> None:
        iam = MagicMock()
        accounts = iam.projects.return_value.serviceAccounts.return_value
        accounts.get.return_value.execute.side_effect = http_not_found()
        account = ServiceAccount(iam, "proj-123", "n8n-service-account", "n8n")

        assert account.apply().change == Change.CREATED
        accounts.create.assert_called_once_with(
            name="projects/proj-123",
            body={
                "accountId": "n8n-service-account",
                "serviceAccount": {"displayName": "n8n"},
            },
        )
        assert account.email == "n8n-service-account@proj-123.iam.gserviceaccount.com"

    def test_binding_added_to_existing_role(self) -> None:
        client = MagicMock()
        policy = policy_pb2.Policy(etag=b"v1")
        policy.bindings.add(
            role="roles/cloudsql.client", members=["user:ops@example.com"]
        )
        client.get_iam_policy.return_value = policy
        binding = IamBinding(
            "binding:cloudsql-client",
            client,
            "projects/proj-123",
            "roles/cloudsql.client",
            "serviceAccount:sa@proj-123.iam.gserviceaccount.com",
        )

        assert binding.apply().change == Change.CREATED

        sent = client.set_iam_policy.call_args[1]["request"]["policy"]
        assert len(sent.bindings) == 1
        assert list(sent.bindings[0].members) == [
            "user:ops@example.com",
            "serviceAccount:sa@proj-123.iam.gserviceaccount.com",
        ]
        assert sent.etag == b"v1"

    def test_binding_added_as_new_role(self) -> None:
        client = MagicMock()
        client.get_iam_policy.return_value = policy_pb2.Policy()
        binding = IamBinding(
            "invoker",
            client,
            "projects/p/locations/r/services/n8n",
            "roles/run.invoker",
            "allUsers",
        )

        binding.apply()

        sent = client.set_iam_policy.call_args[1]["request"]["policy"]
        assert sent.bindings[0].role == "roles/run.invoker"
        assert list(sent.bindings[0].members) == ["allUsers"]

    def test_existing_binding_unchanged(self) -> None:
        client = MagicMock()
        policy = policy_pb2.Policy()
        policy.bindings.add(role="roles/run.invoker", members=["allUsers"])
        client.get_iam_policy.return_value = policy
        binding = IamBinding(
            "invoker",
            client,
            "projects/p/locations/r/services/n8n",
            "roles/run.invoker",
            "allUsers",
        )

        assert binding.apply().change == Change.UNCHANGED
        client.set_iam_policy.assert_not_called()

    def test_conditional_binding_survives_create(self) -> None:
        client = MagicMock()
        policy = policy_pb2.Policy(version=3, etag=b"v7")
        policy.bindings.add(
            role="roles/cloudsql.client",
            members=["user:contractor@example.com"],
            condition=expr_pb2.Expr(
                title="expires",
                expression='request.time < timestamp("2030-01-01T00:00:00Z")',
            ),
        )
        client.get_iam_policy.return_value = policy
        binding = IamBinding(
            "binding:cloudsql-client",
            client,
            "projects/proj-123",
            "roles/cloudsql.client",
            "serviceAccount:sa@proj-123.iam.gserviceaccount.com",
        )

        assert binding.apply().change == Change.CREATED

        client.get_iam_policy.assert_called_with(
            request={
                "resource": "projects/proj-123",
                "options": {"requested_policy_version": 3},
            }
        )
        sent = client.set_iam_policy.call_args[1]["request"]["policy"]
        assert sent.version == 3
        assert len(sent.bindings) == 2
        conditional, plain = sent.bindings
        assert conditional.condition.title == "expires"
        assert list(conditional.members) == ["user:contractor@example.com"]
        assert not plain.HasField("condition")
        assert list(plain.members) == [
            "serviceAccount:sa@proj-123.iam.gserviceaccount.com"
        ]

    def test_member_in_conditional_binding_is_not_enough(self) -> None:
        client = MagicMock()
        policy = policy_pb2.Policy(version=3)
        policy.bindings.add(
            role="roles/run.invoker",
            members=["allUsers"],
            condition=expr_pb2.Expr(title="office hours", expression="true"),
        )
        client.get_iam_policy.return_value = policy
        binding = IamBinding(
            "invoker",
            client,
            "projects/p/locations/r/services/n8n",
            "roles/run.invoker",
            "allUsers",
        )

        assert binding.read() is None

    def test_binding_retried_until_new_account_is_visible(self) -> None:
        client = MagicMock()
        client.get_iam_policy.side_effect = lambda request: policy_pb2.Policy(
            etag=b"v1"
        )
        client.set_iam_policy.side_effect = [
            google_exceptions.InvalidArgument(
                "Service account sa@proj-123.iam.gserviceaccount.com does not exist"
            ),
            policy_pb2.Policy(etag=b"v2"),
        ]
        binding = IamBinding(
            "binding:cloudsql-client",
            client,
            "projects/proj-123",
            "roles/cloudsql.client",
            "serviceAccount:sa@proj-123.iam.gserviceaccount.com",
            retry=Retry(
                predicate=is_propagation_error,
                initial=0.01,
                maximum=0.01,
                timeout=5.0,
            ),
        )

        binding.create()

        assert client.set_iam_policy.call_count == 2
        # The policy is read again so the retried write carries a fresh etag
        assert client.get_iam_policy.call_count == 2


class TestCloudRunService:
    """Tests for the n8n Cloud Run service."""

    IMAGE = "us-west2-docker.pkg.dev/proj-123/n8n-repo/n8n:latest"

    def _service(
        self, client: MagicMock, config: ProjectConfig, image: str = IMAGE
    ) -> CloudRunService:
        return CloudRunService(
            client,
            config,
            image,
            url=lambda: SERVICE_URL,
            secret_env={
                "DB_POSTGRESDB_PASSWORD": "n8n-db-password",
                "N8N_ENCRYPTION_KEY": "n8n-encryption-key",
            },
        )

    def test_service_url_is_deterministic(self) -> None:
        assert service_url("n8n", "123456789", "us-west2") == SERVICE_URL

    def test_environment(self, project_config: ProjectConfig) -> None:
        env = n8n_environment(project_config, SERVICE_URL)

        assert "PORT" not in env
        assert env["N8N_HOST"] == "n8n-123456789.us-west2.run.app"
        assert env["WEBHOOK_URL"] == SERVICE_URL
        assert env["N8N_PROTOCOL"] == "https"
        assert env["DB_TYPE"] == "postgresdb"
        assert env["DB_POSTGRESDB_HOST"] == "/cloudsql/proj-123:us-west2:n8n-db"
        assert env["DB_POSTGRESDB_USER"] == "n8n-user"

    def test_declared_service(self, project_config: ProjectConfig) -> None:
        declared = self._service(MagicMock(), project_config).declared()
        container = declared.template.containers[0]

        assert container.image == self.IMAGE
        assert container.ports[0].container_port == 5678
        assert dict(container.resources.limits) == {"cpu": "1", "memory": "2Gi"}
        assert container.startup_probe.tcp_socket.port == 5678
        assert container.startup_probe.initial_delay_seconds == 120
        assert container.startup_probe.failure_threshold == 1
        assert declared.template.scaling.max_instance_count == 1
        volume = declared.template.volumes[0]
        assert list(volume.cloud_sql_instance.instances) == ["proj-123:us-west2:n8n-db"]
        secrets = {
            var.name: (
                var.value_source.secret_key_ref.secret,
                var.value_source.secret_key_ref.version,
            )
            for var in container.env
            if var.value_source.secret_key_ref.secret
        }
        assert secrets == {
            "DB_POSTGRESDB_PASSWORD": ("n8n-db-password", "latest"),
            "N8N_ENCRYPTION_KEY": ("n8n-encryption-key", "latest"),
        }
        assert all(var.name != "PORT" for var in container.env)

    def test_missing_service_created(self, project_config: ProjectConfig) -> None:
        client = MagicMock()
        client.get_service.side_effect = google_exceptions.NotFound("none")

        result = self._service(client, project_config).apply()

        assert result.change == Change.CREATED
        kwargs = client.create_service.call_args[1]
        assert kwargs["parent"] == "projects/proj-123/locations/us-west2"
        assert kwargs["service_id"] == "n8n"
        client.create_service.return_value.result.assert_called_once()

    def test_matching_service_unchanged(self, project_config: ProjectConfig) -> None:
        client = MagicMock()
        resource = self._service(client, project_config)
        live = resource.declared()
        live.uri = SERVICE_URL
        client.get_service.return_value = live

        assert resource.apply().change == Change.UNCHANGED
        client.update_service.assert_not_called()

    def test_new_image_updates(self, project_config: ProjectConfig) -> None:
        client = MagicMock()
        client.get_service.return_value = self._service(
            client, project_config, image="old:1"
        ).declared()

        result = self._service(client, project_config).apply()

        assert result.change == Change.UPDATED
        sent = client.update_service.call_args[1]["service"]
        assert sent.name == "projects/proj-123/locations/us-west2/services/n8n"
        assert sent.template.containers[0].image == self.IMAGE

    def test_fingerprint_ignores_server_fields(
        self, project_config: ProjectConfig
    ) -> None:
        declared = self._service(MagicMock(), project_config).declared()
        live = run_v2.Service(declared)
        live.uri = SERVICE_URL
        live.generation = 7

        assert service_fingerprint(live) == service_fingerprint(declared)

    def test_url_prefers_live_uri(self, project_config: ProjectConfig) -> None:
        client = MagicMock()
        live_uri = "https://n8n-abc.a.run.app"
        client.get_service.return_value = run_v2.Service(uri=live_uri)

        assert self._service(client, project_config).url() == live_uri

    def test_url_none_when_not_deployed(self, project_config: ProjectConfig) -> None:
        client = MagicMock()
        client.get_service.side_effect = google_exceptions.NotFound("none")

        assert self._service(client, project_config).url() is None
