"""The two resource graphs applied around the image publish.

Phase A enables the Artifact Registry API and creates the repository, which
must exist before anything is pushed. Phase B declares everything else,
including the Cloud Run service that references the pushed image.
"""

from __future__ import annotations

from n8n_cloudrun.config.defaults import (
    DB_PASSWORD_SECRET,
    ENCRYPTION_KEY_SECRET,
    REGISTRY_APIS,
    SERVICE_APIS,
)
from n8n_cloudrun.deploy.clients import GcpClients
from n8n_cloudrun.deploy.graph import ResourceGraph
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
from n8n_cloudrun.deploy.resources.cloudrun import service_url
from n8n_cloudrun.deploy.resources.secret_manager import secret_key, secret_version_key
from n8n_cloudrun.deploy.resources.services import api_key
from n8n_cloudrun.models.project import ProjectConfig

SERVICE_KEY = "service"

# Container environment variable -> secret ID
SECRET_ENV: dict[str, str] = {
    "DB_POSTGRESDB_PASSWORD": DB_PASSWORD_SECRET,
    "N8N_ENCRYPTION_KEY": ENCRYPTION_KEY_SECRET,
}


def build_phase_a(config: ProjectConfig, clients: GcpClients) -> ResourceGraph:
    """Declare the registry bootstrap graph."""
    graph = ResourceGraph()
    for api in REGISTRY_APIS:
        graph.add(ProjectService(clients.service_usage, config.project_id, api))
    graph.add(
        ArtifactRepository(
            clients.artifact_registry,
            config.project_id,
            config.region,
            config.artifact_repo_name,
            depends_on=[api_key(api) for api in REGISTRY_APIS],
        )
    )
    return graph


def build_phase_b(
    config: ProjectConfig, clients: GcpClients, image_uri: str
) -> ResourceGraph:
    """Declare the full resource graph around the Cloud Run service.

    Args:
        config: Project configuration
        clients: Google Cloud API clients
        image_uri: Published image the service runs

    Returns:
        Graph with the database, secrets, identity, bindings, service and
        public invoker grant
    """
    project_id = config.project_id
    graph = ResourceGraph()

    for api in SERVICE_APIS:
        graph.add(ProjectService(clients.service_usage, project_id, api))

    graph.add(
        SqlInstance(
            clients.sqladmin,
            project_id,
            config.region,
            config.db_instance_name,
            tier=config.db_tier,
            database_version=config.db_version,
            depends_on=[api_key("sqladmin.googleapis.com")],
        )
    )
    graph.add(
        SqlDatabase(
            clients.sqladmin,
            project_id,
            config.db_instance_name,
            config.db_name,
            depends_on=["sql-instance"],
        )
    )

    versions: dict[str, GeneratedSecretVersion] = {}
    for secret_id in SECRET_ENV.values():
        graph.add(
            Secret(
                clients.secret_manager,
                project_id,
                secret_id,
                depends_on=[api_key("secretmanager.googleapis.com")],
            )
        )
        versions[secret_id] = GeneratedSecretVersion(
            clients.secret_manager, project_id, secret_id
        )
        graph.add(versions[secret_id])

    graph.add(
        SqlUser(
            clients.sqladmin,
            project_id,
            config.db_instance_name,
            config.db_user,
            password=versions[DB_PASSWORD_SECRET].value,
            depends_on=["sql-instance", secret_version_key(DB_PASSWORD_SECRET)],
        )
    )

    account = ServiceAccount(
        clients.iam,
        project_id,
        config.service_account_name,
        display_name=f"{config.service_name} Cloud Run service account",
        depends_on=[api_key("iam.googleapis.com")],
    )
    graph.add(account)
    member = f"serviceAccount:{config.service_account_email}"

    binding_keys = ["binding:cloudsql-client"]
    graph.add(
        IamBinding(
            "binding:cloudsql-client",
            clients.projects,
            f"projects/{project_id}",
            "roles/cloudsql.client",
            member,
            depends_on=[account.key, api_key("cloudresourcemanager.googleapis.com")],
        )
    )
    for secret_id in SECRET_ENV.values():
        key = f"binding:secret-accessor:{secret_id}"
        binding_keys.append(key)
        graph.add(
            IamBinding(
                key,
                clients.secret_manager,
                f"projects/{project_id}/secrets/{secret_id}",
                "roles/secretmanager.secretAccessor",
                member,
                depends_on=[account.key, secret_key(secret_id)],
            )
        )

    url_cache: list[str] = []

    def url() -> str:
        if not url_cache:
            number = clients.project_number(project_id)
            url_cache.append(service_url(config.service_name, number, config.region))
        return url_cache[0]

    service = CloudRunService(
        clients.run,
        config,
        image_uri,
        url=url,
        secret_env=SECRET_ENV,
        key=SERVICE_KEY,
        depends_on=[
            api_key("run.googleapis.com"),
            account.key,
            *binding_keys,
            *(secret_version_key(secret_id) for secret_id in SECRET_ENV.values()),
            "sql-database",
            "sql-user",
        ],
    )
    graph.add(service)

    graph.add(
        IamBinding(
            "invoker",
            clients.run,
            service.name,
            "roles/run.invoker",
            "allUsers",
            depends_on=[SERVICE_KEY],
        )
    )
    return graph
