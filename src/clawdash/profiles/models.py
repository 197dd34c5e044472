"""
Profile Models

A profile is one named gateway setup. Stored camelCase on disk so the
file stays compatible with the dashboard frontend.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PROFILE_ID = "default"


class Profile(BaseModel):
    """A stored dashboard profile."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: str = ""
    active: bool = False
    status: str = "stopped"
    port: int = 3000
    notes: str = ""
    soul: str = ""
    memory_path: str = Field("", alias="memoryPath")
    created_at: Optional[str] = Field(None, alias="createdAt")
    last_used_at: Optional[str] = Field(None, alias="lastUsedAt")

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
