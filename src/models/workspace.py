"""Workspace configuration as seen by retrieval.

Workspace CRUD lives outside the knowledge core; retrieval only needs the
narrow read model below (languages, tone of voice, brand colours, status).
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.models.chunk import DocumentLanguage


class WorkspaceStatus(str, Enum):  # noqa: UP042
    ACTIVE = "active"
    ARCHIVED = "archived"


class ToneOfVoice(str, Enum):  # noqa: UP042
    SUPPORTIVE = "supportive"
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    CONCISE = "concise"


class Branding(BaseModel):
    """Brand palette as hex colour strings."""

    model_config = ConfigDict(frozen=True)

    primary: str = Field(default="#2563eb", pattern=r"^#[0-9a-fA-F]{3,8}$")
    accent: str = Field(default="#f97316", pattern=r"^#[0-9a-fA-F]{3,8}$")
    background: str = Field(default="#ffffff", pattern=r"^#[0-9a-fA-F]{3,8}$")


class Workspace(BaseModel):
    """A tenant workspace.

    ``languages`` is ordered: the first entry is the workspace's primary
    language and the fallback when a query's language cannot be detected.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    status: WorkspaceStatus = WorkspaceStatus.ACTIVE
    languages: list[DocumentLanguage] = Field(
        default_factory=lambda: [DocumentLanguage.EN], min_length=1
    )
    tone_of_voice: ToneOfVoice = ToneOfVoice.SUPPORTIVE
    branding: Branding = Field(default_factory=Branding)

    @field_validator("languages")
    @classmethod
    def _known_languages_only(cls, value: list[DocumentLanguage]) -> list[DocumentLanguage]:
        if DocumentLanguage.UNKNOWN in value:
            raise ValueError("workspace languages must be concrete (en, nl)")
        # Preserve order, drop duplicates.
        return list(dict.fromkeys(value))

    @property
    def is_active(self) -> bool:
        return self.status == WorkspaceStatus.ACTIVE

    @property
    def primary_language(self) -> DocumentLanguage:
        return self.languages[0]
