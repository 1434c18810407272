"""n8n-cloudrun deployment engine.

This package provides the deployment functionality: Dockerfile generation,
image build and push, the declared Google Cloud resources and the
orchestrator that converges them.
"""

from n8n_cloudrun.deploy.builder import (
    BuildResult,
    ContainerBuilder,
    ImagePublisher,
    get_oci_labels,
)
from n8n_cloudrun.deploy.dockerfile import generate_dockerfile
from n8n_cloudrun.deploy.graph import ResourceGraph, apply_graph, plan_graph
from n8n_cloudrun.deploy.orchestrator import Orchestrator, check_prerequisites

__all__ = [
    "BuildResult",
    "ContainerBuilder",
    "ImagePublisher",
    "Orchestrator",
    "ResourceGraph",
    "apply_graph",
    "check_prerequisites",
    "generate_dockerfile",
    "get_oci_labels",
    "plan_graph",
]
