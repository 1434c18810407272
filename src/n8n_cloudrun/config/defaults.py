"""Default configuration values for n8n-cloudrun."""

DEFAULT_CONFIG_FILE = "deploy.tfvars"

# Environment overrides are read as TF_VAR_<file key>
ENV_PREFIX = "TF_VAR_"

# Configuration file keys that differ from the ProjectConfig field names
FIELD_FILE_KEYS: dict[str, str] = {
    "project_id": "gcp_project_id",
    "region": "gcp_region",
    "service_name": "cloud_run_service_name",
}

# APIs enabled in phase A (registry bootstrap)
REGISTRY_APIS: tuple[str, ...] = ("artifactregistry.googleapis.com",)

# APIs enabled in phase B (everything else)
SERVICE_APIS: tuple[str, ...] = (
    "run.googleapis.com",
    "sqladmin.googleapis.com",
    "secretmanager.googleapis.com",
    "iam.googleapis.com",
    "cloudresourcemanager.googleapis.com",
)

# Startup probe: n8n runs its database migrations before listening
STARTUP_PROBE: dict[str, int] = {
    "initial_delay_seconds": 120,
    "timeout_seconds": 240,
    "period_seconds": 240,
    "failure_threshold": 1,
}

DB_PASSWORD_SECRET = "n8n-db-password"
ENCRYPTION_KEY_SECRET = "n8n-encryption-key"
