"""Command-line interface for n8n-cloudrun."""
