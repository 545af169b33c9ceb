"""Abstract base class for workspace configuration lookups."""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.workspace import Workspace


# Concrete implementation: ConfigWorkspaceProvider (src/providers/workspace/),
# seeded from the ``workspaces`` section of config/config.yaml.
class IWorkspaceProvider(ABC):
    """Narrow read interface to workspace storage."""

    @abstractmethod
    async def get_workspace(self, workspace_id: str) -> Workspace | None:
        """Return the workspace or ``None`` when unknown."""

    @abstractmethod
    async def list_workspaces(self) -> list[Workspace]:
        """Return all known workspaces."""
