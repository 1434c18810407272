"""Declared Google Cloud resources for an n8n deployment."""

from n8n_cloudrun.deploy.resources.base import Resource
from n8n_cloudrun.deploy.resources.cloudrun import CloudRunService
from n8n_cloudrun.deploy.resources.database import SqlDatabase, SqlInstance, SqlUser
from n8n_cloudrun.deploy.resources.iam import IamBinding, ServiceAccount
from n8n_cloudrun.deploy.resources.registry import ArtifactRepository
from n8n_cloudrun.deploy.resources.secret_manager import (
    GeneratedSecretVersion,
    Secret,
)
from n8n_cloudrun.deploy.resources.services import ProjectService

__all__ = [
    "ArtifactRepository",
    "CloudRunService",
    "GeneratedSecretVersion",
    "IamBinding",
    "ProjectService",
    "Resource",
    "Secret",
    "ServiceAccount",
    "SqlDatabase",
    "SqlInstance",
    "SqlUser",
]
