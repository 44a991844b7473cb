"""Mixture-of-agents chain orchestration."""

__version__ = "0.1.0"
