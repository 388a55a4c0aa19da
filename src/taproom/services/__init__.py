"""Clients for the external lookup and cleanup services."""
