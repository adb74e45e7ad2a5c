"""Resumable, step-driven dependency upgrades for Python projects."""

__version__ = "0.1.0"
