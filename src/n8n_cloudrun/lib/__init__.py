"""Shared helpers for n8n-cloudrun."""
