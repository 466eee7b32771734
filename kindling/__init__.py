"""Manage local Kubernetes clusters whose nodes are Docker containers."""

__version__ = "0.6.0a0"