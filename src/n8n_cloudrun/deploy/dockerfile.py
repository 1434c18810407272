"""Dockerfile generation for the n8n Cloud Run image.

The image wraps the upstream n8n image and swaps its entrypoint for the
startup shim in ``n8n_cloudrun.startup``.
"""

from datetime import datetime, timezone

from jinja2 import Template

from n8n_cloudrun.models.project import DEFAULT_N8N_BASE_IMAGE

SHIM_FILENAME = "startup.py"

# Jinja2 template for generating Dockerfiles
N8N_DOCKERFILE_TEMPLATE = """\
# n8n on Cloud Run
# Auto-generated Dockerfile for {{ service_name }}
# Generated at: {{ created }}

FROM {{ base_image }}

# OCI Labels for container metadata
LABEL org.opencontainers.image.title="{{ service_name }}"
LABEL org.opencontainers.image.version="{{ version }}"
LABEL org.opencontainers.image.created="{{ created }}"
LABEL org.opencontainers.image.base.name="{{ base_image }}"
LABEL com.n8n-cloudrun.managed="true"

# The startup shim needs a Python interpreter
USER root
RUN apk add --no-cache python3
COPY {{ shim }} /{{ shim }}
RUN chmod 0755 /{{ shim }}
USER node

ENV N8N_PORT="{{ port }}"

EXPOSE {{ port }}

ENTRYPOINT ["python3", "/{{ shim }}"]
"""


def generate_dockerfile(
    service_name: str,
    port: int,
    *,
    base_image: str = DEFAULT_N8N_BASE_IMAGE,
    version: str = "latest",
) -> str:
    """Generate the Dockerfile for the n8n image.

    Args:
        service_name: Name of the service for labeling
        port: Port n8n listens on by default
        base_image: Upstream n8n image to wrap; must be Alpine-based since
            python3 is installed with apk
        version: Version for OCI label

    Returns:
        Generated Dockerfile content as a string
    """
    template = Template(N8N_DOCKERFILE_TEMPLATE)

    created = datetime.now(timezone.utc).isoformat()

    return template.render(
        service_name=service_name,
        port=port,
        base_image=base_image,
        version=version,
        created=created,
        shim=SHIM_FILENAME,
    )
