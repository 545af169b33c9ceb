"""Workspace provider seeded from configuration.

Reads the ``workspaces`` list of ``config/config.yaml`` (already merged by
:func:`src.config.loader.load_config`) into :class:`Workspace` models.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from src.interfaces.workspace_provider import IWorkspaceProvider
from src.models.workspace import Workspace
from src.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)


class ConfigWorkspaceProvider(IWorkspaceProvider):
    """In-memory workspace lookup built from config entries."""

    def __init__(self, workspaces: list[Workspace]) -> None:
        self._workspaces = {w.id: w for w in workspaces}

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "ConfigWorkspaceProvider":
        """Build from the merged config dict.

        Raises
        ------
        ConfigurationError
            If any workspace entry fails validation.
        """
        entries = config.get("workspaces") or []
        workspaces: list[Workspace] = []
        for entry in entries:
            try:
                workspaces.append(Workspace.model_validate(entry))
            except PydanticValidationError as exc:
                raise ConfigurationError(
                    message=f"Invalid workspace entry {entry.get('id', '?')!r}: {exc}"
                ) from exc
        logger.info("workspaces_loaded", count=len(workspaces))
        return cls(workspaces)

    async def get_workspace(self, workspace_id: str) -> Workspace | None:
        return self._workspaces.get(workspace_id)

    async def list_workspaces(self) -> list[Workspace]:
        return list(self._workspaces.values())
