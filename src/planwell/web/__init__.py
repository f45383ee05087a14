"""Planwell - HTTP API."""
