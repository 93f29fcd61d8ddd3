"""Outbound integrations with external services."""
