"""The Cloud Run service hosting n8n."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from google.api_core import exceptions as google_exceptions
from google.cloud import run_v2
from google.protobuf import field_mask_pb2

from n8n_cloudrun.config.defaults import STARTUP_PROBE
from n8n_cloudrun.deploy.resources.base import Resource
from n8n_cloudrun.lib.logging_config import get_logger
from n8n_cloudrun.models.project import ProjectConfig

logger = get_logger(__name__)

CONTAINER_NAME = "n8n"
CLOUDSQL_VOLUME = "cloudsql"
CLOUDSQL_MOUNT_PATH = "/cloudsql"

# Fields replaced on update; everything the declaration owns lives here
UPDATE_MASK_PATHS = ["template", "ingress", "labels"]

# Settings that do not depend on the project
N8N_STATIC_ENV: dict[str, str] = {
    "N8N_PATH": "/",
    "N8N_PROTOCOL": "https",
    "N8N_PROXY_HOPS": "1",
    "DB_TYPE": "postgresdb",
    "DB_POSTGRESDB_PORT": "5432",
    "DB_POSTGRESDB_SCHEMA": "public",
    "N8N_USER_FOLDER": "/home/node/.n8n",
    "EXECUTIONS_MODE": "regular",
    "QUEUE_HEALTH_CHECK_ACTIVE": "true",
    "N8N_RUNNERS_ENABLED": "true",
    "N8N_ENFORCE_SETTINGS_FILE_PERMISSIONS": "true",
}


def service_url(service_name: str, project_number: str, region: str) -> str:
    """Return the deterministic run.app URL of a Cloud Run service."""
    return f"https://{service_name}-{project_number}.{region}.run.app"


def n8n_environment(config: ProjectConfig, url: str) -> dict[str, str]:
    """Plain environment variables for the n8n container.

    ``PORT`` is reserved by Cloud Run and never set here; the startup shim
    copies it into ``N8N_PORT``.
    """
    host = url.split("://", 1)[-1].rstrip("/")
    env = dict(N8N_STATIC_ENV)
    env.update(
        {
            "N8N_HOST": host,
            "WEBHOOK_URL": url,
            "N8N_EDITOR_BASE_URL": url,
            "DB_POSTGRESDB_DATABASE": config.db_name,
            "DB_POSTGRESDB_USER": config.db_user,
            "DB_POSTGRESDB_HOST": f"{CLOUDSQL_MOUNT_PATH}/{config.sql_connection_name}",
            "GENERIC_TIMEZONE": config.generic_timezone,
        }
    )
    return env


def _secret_name(secret: str) -> str:
    # The API may echo either the short name or projects/*/secrets/<name>
    return secret.rsplit("/secrets/", 1)[-1]


def service_fingerprint(service: run_v2.Service) -> dict[str, Any]:
    """Reduce a service to the fields this declaration controls.

    Used to compare the live service with the declared one; anything Cloud
    Run fills in by itself is left out.
    """
    template = service.template
    container = template.containers[0] if template.containers else run_v2.Container()

    env: dict[str, str] = {}
    for var in container.env:
        ref = var.value_source.secret_key_ref
        if ref.secret:
            env[var.name] = f"secret:{_secret_name(ref.secret)}:{ref.version}"
        else:
            env[var.name] = var.value

    cloudsql: list[str] = []
    for volume in template.volumes:
        cloudsql.extend(volume.cloud_sql_instance.instances)

    probe = container.startup_probe
    return {
        "image": container.image,
        "ports": [port.container_port for port in container.ports],
        "env": env,
        "limits": dict(container.resources.limits),
        "service_account": template.service_account,
        "min_instances": template.scaling.min_instance_count,
        "max_instances": template.scaling.max_instance_count,
        "cloudsql": sorted(cloudsql),
        "mounts": sorted(
            (mount.name, mount.mount_path) for mount in container.volume_mounts
        ),
        "probe": (
            probe.tcp_socket.port,
            probe.initial_delay_seconds,
            probe.timeout_seconds,
            probe.period_seconds,
            probe.failure_threshold,
        ),
        "ingress": int(service.ingress),
    }


class CloudRunService(Resource):
    """The n8n Cloud Run service.

    The container listens on ``config.container_port`` and connects to Cloud
    SQL over the mounted unix socket. Secrets are referenced by name and
    ``latest`` version and never embedded in the configuration.
    """

    kind = "Cloud Run service"
    blocks_reads = True

    def __init__(
        self,
        client: run_v2.ServicesClient,
        config: ProjectConfig,
        image_uri: str,
        url: Callable[[], str],
        secret_env: Mapping[str, str],
        *,
        key: str = "service",
        depends_on: Iterable[str] = (),
    ) -> None:
        """Declare the service.

        Args:
            client: Cloud Run services client
            config: Project configuration
            image_uri: Image reference the service runs
            url: Returns the service's public URL (resolved lazily)
            secret_env: Environment variable name to secret ID
            key: Graph key
            depends_on: Graph keys applied before the service
        """
        super().__init__(key, depends_on=depends_on)
        self._client = client
        self._config = config
        self._image_uri = image_uri
        self._url = url
        self._secret_env = dict(secret_env)

    @property
    def parent(self) -> str:
        return f"projects/{self._config.project_id}/locations/{self._config.region}"

    @property
    def name(self) -> str:
        return f"{self.parent}/services/{self._config.service_name}"

    def declared(self) -> run_v2.Service:
        """Build the declared service definition."""
        config = self._config
        port = config.container_port

        env = [
            run_v2.EnvVar(name=name, value=value)
            for name, value in n8n_environment(config, self._url()).items()
        ]
        env.extend(
            run_v2.EnvVar(
                name=name,
                value_source=run_v2.EnvVarSource(
                    secret_key_ref=run_v2.SecretKeySelector(
                        secret=secret_id, version="latest"
                    )
                ),
            )
            for name, secret_id in self._secret_env.items()
        )

        container = run_v2.Container(
            name=CONTAINER_NAME,
            image=self._image_uri,
            ports=[run_v2.ContainerPort(name="http1", container_port=port)],
            env=env,
            resources=run_v2.ResourceRequirements(
                limits={"cpu": config.cpu, "memory": config.memory}
            ),
            startup_probe=run_v2.Probe(
                tcp_socket=run_v2.TCPSocketAction(port=port), **STARTUP_PROBE
            ),
            volume_mounts=[
                run_v2.VolumeMount(name=CLOUDSQL_VOLUME, mount_path=CLOUDSQL_MOUNT_PATH)
            ],
        )

        template = run_v2.RevisionTemplate(
            containers=[container],
            service_account=config.service_account_email,
            scaling=run_v2.RevisionScaling(
                min_instance_count=config.min_instances,
                max_instance_count=config.max_instances,
            ),
            volumes=[
                run_v2.Volume(
                    name=CLOUDSQL_VOLUME,
                    cloud_sql_instance=run_v2.CloudSqlInstance(
                        instances=[config.sql_connection_name]
                    ),
                )
            ],
        )

        return run_v2.Service(
            template=template,
            ingress=run_v2.IngressTraffic.INGRESS_TRAFFIC_ALL,
            labels={"managed-by": "n8n-cloudrun"},
        )

    def read(self) -> run_v2.Service | None:
        try:
            return self._client.get_service(name=self.name)
        except google_exceptions.NotFound:
            return None

    def create(self) -> None:
        operation = self._client.create_service(
            parent=self.parent,
            service=self.declared(),
            service_id=self._config.service_name,
        )
        operation.result()

    def needs_update(self, current: run_v2.Service) -> bool:
        live = service_fingerprint(current)
        declared = service_fingerprint(self.declared())
        changed = sorted(field for field in declared if live[field] != declared[field])
        if changed:
            logger.debug(f"{self.describe()} differs in: {', '.join(changed)}")
        return bool(changed)

    def update(self, current: run_v2.Service) -> None:
        service = self.declared()
        service.name = self.name
        operation = self._client.update_service(
            service=service,
            update_mask=field_mask_pb2.FieldMask(paths=UPDATE_MASK_PATHS),
        )
        operation.result()

    def url(self) -> str | None:
        """Return the live service URL, or None when it does not exist."""
        service = self.read()
        if service is None:
            return None
        return service.uri or self._url()
