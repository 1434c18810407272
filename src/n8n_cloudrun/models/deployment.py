"""Pydantic models for deployment results."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Change(str, Enum):
    """Outcome of converging a single resource."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class ApplyResult(BaseModel):
    """Result of applying (or planning) a single resource.

    Attributes:
        key: Graph key of the resource
        kind: Resource kind (e.g. "Cloud SQL instance")
        name: Cloud-side name of the resource
        change: What was (or would be) done
    """

    model_config = ConfigDict(extra="forbid")

    key: str = Field(..., description="Graph key of the resource")
    kind: str = Field(..., description="Resource kind")
    name: str = Field(..., description="Cloud-side resource name")
    change: Change = Field(..., description="Change applied to the resource")


class PublishResult(BaseModel):
    """Result of building and pushing the container image.

    Attributes:
        image_uri: Fully-qualified image reference that was pushed
        image_id: Local image ID of the built image
        digest: Registry digest reported by the push, if any
    """

    model_config = ConfigDict(extra="forbid")

    image_uri: str = Field(..., description="Pushed image reference")
    image_id: str = Field(..., description="Local image ID")
    digest: str | None = Field(default=None, description="Registry digest")


class DeployOutcome(BaseModel):
    """Summary of a complete orchestrator run.

    Attributes:
        image_uri: Image the Cloud Run service references
        service_url: Externally reachable service URL
        changes: Per-resource results of both phases in apply order
    """

    model_config = ConfigDict(extra="forbid")

    image_uri: str = Field(..., description="Deployed container image URI")
    service_url: str | None = Field(default=None, description="Service URL")
    changes: list[ApplyResult] = Field(
        default_factory=list, description="Per-resource results"
    )

    @property
    def converged(self) -> bool:
        """True when no resource needed to change."""
        return all(result.change == Change.UNCHANGED for result in self.changes)
