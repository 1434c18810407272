"""Data models for n8n-cloudrun."""
