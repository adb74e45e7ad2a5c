"""Adapters binding upgrader ports to files and services."""
