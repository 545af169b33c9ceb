"""Workspace provider implementations."""

from src.providers.workspace.config_workspace_provider import ConfigWorkspaceProvider

__all__ = ["ConfigWorkspaceProvider"]
