"""
Profile Store — JSON-backed list of profiles.

The list is never empty and exactly one profile is active: a missing,
empty or corrupt file is replaced by a synthesized `default` profile.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ..errors import InvalidInputError
from ..utils import now_iso, read_json, write_json
from .models import DEFAULT_PROFILE_ID, Profile

logger = logging.getLogger("clawdash.profiles.store")


class ProfileStore:
    def __init__(self, path: Path, default_port: int = 3000):
        self.path = Path(path)
        self.default_port = default_port

    def _default_profile(self) -> Profile:
        ts = now_iso()
        return Profile(
            id=DEFAULT_PROFILE_ID,
            name="Default",
            active=True,
            status="running",
            port=self.default_port,
            created_at=ts,
            last_used_at=ts,
        )

    def _parse(self, raw) -> List[Profile]:
        if not isinstance(raw, list):
            return []
        profiles = []
        for item in raw:
            try:
                profiles.append(Profile.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping invalid profile entry: {e.errors()[0].get('msg')}")
        return profiles

    @staticmethod
    def _normalize_active(profiles: List[Profile]) -> bool:
        """Force exactly one active profile. Returns True if anything changed."""
        active = [p for p in profiles if p.active]
        if len(active) == 1:
            return False
        keep = active[0] if active else profiles[0]
        for p in profiles:
            p.active = p is keep
        return True

    def list(self) -> List[Profile]:
        profiles = self._parse(read_json(self.path, []))
        if not profiles:
            profiles = [self._default_profile()]
            self.save(profiles)
            return profiles
        if self._normalize_active(profiles):
            self.save(profiles)
        return profiles

    def save(self, profiles: List[Profile]) -> None:
        write_json(self.path, [p.to_dict() for p in profiles])

    def get(self, profile_id: str) -> Optional[Profile]:
        for p in self.list():
            if p.id == profile_id:
                return p
        return None

    def active(self) -> Profile:
        profiles = self.list()
        return next(p for p in profiles if p.active)

    def activate(self, profile_id: str) -> Profile:
        """Make ``profile_id`` the single active profile."""
        profiles = self.list()
        target = next((p for p in profiles if p.id == profile_id), None)
        if target is None:
            raise InvalidInputError(f"Unknown profile: {profile_id}")
        for p in profiles:
            p.active = p is target
        target.last_used_at = now_iso()
        self.save(profiles)
        logger.info(f"Active profile: {profile_id}")
        return target
