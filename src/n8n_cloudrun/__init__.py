"""n8n-cloudrun: deploy self-hosted n8n to Google Cloud Run.

Builds a thin wrapper image around the official n8n image, publishes it to
Artifact Registry and converges the Cloud SQL, Secret Manager, IAM and
Cloud Run resources n8n needs.
"""

__version__ = "0.1.0"
