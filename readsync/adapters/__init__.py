"""Adapters for external systems: the remote multi-device store."""
