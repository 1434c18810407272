"""Pydantic models for the project configuration.

This module defines the configuration schema for an n8n deployment on
Cloud Run, together with the names derived from it.
"""

import re
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_REGION = "us-west2"
DEFAULT_ARTIFACT_REPO_NAME = "n8n-repo"
DEFAULT_SERVICE_NAME = "n8n"
DEFAULT_IMAGE_TAG = "latest"

# Alpine-based n8n release; the wrapper image installs python3 with apk
DEFAULT_N8N_BASE_IMAGE = "docker.n8n.io/n8nio/n8n:1.80.0"

# Regex patterns for validation
GCP_PROJECT_ID_PATTERN = re.compile(r"^[a-z][a-z0-9-]{4,28}[a-z0-9]$")
GCP_REGION_PATTERN = re.compile(r"^[a-z]+-[a-z]+\d+$")
GCP_MEMORY_PATTERN = re.compile(r"^\d+(Mi|Gi)$")
RESOURCE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9-]*[a-z0-9]$|^[a-z]$")


class ProjectConfig(BaseModel):
    """Project configuration for an n8n deployment.

    Read once at the start of a run and never mutated afterwards.

    Attributes:
        project_id: GCP project ID
        region: GCP region for every regional resource
        artifact_repo_name: Artifact Registry repository name
        service_name: Cloud Run service name (also the image name)
        platform: Target platform for the container image
        db_instance_name: Cloud SQL instance name
        db_name: Database name inside the instance
        db_user: Database user n8n connects as
        db_tier: Cloud SQL machine tier
        db_version: Cloud SQL database version
        service_account_name: Account ID of the service identity
        cpu: CPU limit for the container
        memory: Memory limit for the container
        min_instances: Minimum running instances
        max_instances: Maximum running instances
        container_port: Port n8n listens on inside the container
        generic_timezone: Timezone passed to n8n
        n8n_base_image: Upstream n8n image the deployed image is built from
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    project_id: str = Field(..., description="GCP project ID")
    region: str = Field(default=DEFAULT_REGION, description="GCP region")
    artifact_repo_name: str = Field(
        default=DEFAULT_ARTIFACT_REPO_NAME,
        description="Artifact Registry repository name",
    )
    service_name: str = Field(
        default=DEFAULT_SERVICE_NAME, description="Cloud Run service name"
    )
    platform: str = Field(
        default="linux/amd64",
        description="Target platform for the container image",
    )
    db_instance_name: str = Field(default="n8n-db", description="Cloud SQL instance")
    db_name: str = Field(default="n8n", description="Database name")
    db_user: str = Field(default="n8n-user", description="Database user")
    db_tier: str = Field(default="db-f1-micro", description="Cloud SQL tier")
    db_version: str = Field(default="POSTGRES_13", description="Database version")
    service_account_name: str = Field(
        default="n8n-service-account", description="Service account ID"
    )
    cpu: str = Field(default="1", description="CPU limit (e.g., 1, 2)")
    memory: str = Field(default="2Gi", description="Memory limit (e.g., 512Mi, 2Gi)")
    min_instances: int = Field(default=0, ge=0, description="Minimum instances")
    # One instance at most: n8n is not safe with several writers on one database
    max_instances: int = Field(default=1, ge=1, description="Maximum instances")
    container_port: Annotated[int, Field(ge=1, le=65535)] = Field(
        default=5678, description="Port n8n listens on"
    )
    generic_timezone: str = Field(default="UTC", description="n8n timezone")
    n8n_base_image: str = Field(
        default=DEFAULT_N8N_BASE_IMAGE,
        description="Upstream n8n image to wrap (Alpine-based, with apk)",
    )

    @field_validator("project_id")
    @classmethod
    def validate_project_id(cls, v: str) -> str:
        """Validate GCP project ID format."""
        if not GCP_PROJECT_ID_PATTERN.match(v):
            raise ValueError(
                f"Invalid GCP project ID: {v}. "
                "Must be 6-30 lowercase letters, numbers, and hyphens, "
                "starting with a letter and not ending with a hyphen."
            )
        return v

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str) -> str:
        """Validate region format (e.g., us-west2)."""
        if not GCP_REGION_PATTERN.match(v):
            raise ValueError(f"Invalid GCP region: {v}. Expected e.g. us-west2.")
        return v

    @field_validator(
        "artifact_repo_name",
        "service_name",
        "db_instance_name",
        "service_account_name",
    )
    @classmethod
    def validate_resource_name(cls, v: str) -> str:
        """Validate names used as GCP resource identifiers."""
        if not RESOURCE_NAME_PATTERN.match(v):
            raise ValueError(
                f"Invalid resource name: {v}. "
                "Must contain only lowercase letters, numbers and '-', "
                "start with a letter and not end with '-'."
            )
        return v

    @field_validator("memory")
    @classmethod
    def validate_memory(cls, v: str) -> str:
        """Validate memory format (e.g., 512Mi, 1Gi)."""
        if not GCP_MEMORY_PATTERN.match(v):
            raise ValueError(
                f"Invalid memory format: {v}. Must be a number followed by Mi or Gi."
            )
        return v

    @model_validator(mode="after")
    def validate_scaling_range(self) -> "ProjectConfig":
        """Validate that min_instances <= max_instances."""
        if self.min_instances > self.max_instances:
            raise ValueError(
                f"min_instances ({self.min_instances}) must be <= "
                f"max_instances ({self.max_instances})"
            )
        return self

    @property
    def registry_host(self) -> str:
        """Docker host of the regional Artifact Registry."""
        return f"{self.region}-docker.pkg.dev"

    @property
    def image_name(self) -> str:
        """Image repository path without tag."""
        return (
            f"{self.registry_host}/{self.project_id}/"
            f"{self.artifact_repo_name}/{self.service_name}"
        )

    @property
    def sql_connection_name(self) -> str:
        """Cloud SQL connection name (project:region:instance)."""
        return f"{self.project_id}:{self.region}:{self.db_instance_name}"

    @property
    def service_account_email(self) -> str:
        """Email of the service identity the Cloud Run service runs as."""
        return (
            f"{self.service_account_name}@{self.project_id}.iam.gserviceaccount.com"
        )


def image_reference(config: ProjectConfig, tag: str = DEFAULT_IMAGE_TAG) -> str:
    """Return the fully-qualified image reference for a project.

    Example:
        >>> image_reference(ProjectConfig(project_id="proj-123"))
        'us-west2-docker.pkg.dev/proj-123/n8n-repo/n8n:latest'
    """
    return f"{config.image_name}:{tag}"
