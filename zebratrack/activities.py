from __future__ import annotations

import logging
from typing import List, Optional

from .entity_key import EntityKey, EntitySource
from .errors import InvalidOperation, NotFound
from .frames import FrameRepository
from .models import Activity
from .projects import ACTIVE_ONLY, LocalProjectRepository, ZebraProjectRepository

logger = logging.getLogger(__name__)


class ActivityRepository:
    """Routes activity lookups by key source; local activities are listed before Zebra ones."""

    def __init__(
        self,
        local: LocalProjectRepository,
        remote: ZebraProjectRepository,
        frames: Optional[FrameRepository] = None,
    ) -> None:
        self.local = local
        self.remote = remote
        self.frames = frames

    def get(self, key: EntityKey) -> Optional[Activity]:
        match key.source:
            case EntitySource.LOCAL:
                return self.local.get_activity(key)
            case EntitySource.REMOTE:
                return self.remote.get_activity(key)

    def require(self, key: EntityKey) -> Activity:
        activity = self.get(key)
        if activity is None:
            raise NotFound(f"Activity {key} not found")
        return activity

    def all(self, active_only: bool = True) -> List[Activity]:
        statuses = ACTIVE_ONLY if active_only else ()
        return self.local.activities() + self.remote.activities(statuses)

    def get_by_alias(self, alias: str) -> Optional[Activity]:
        for activity in self.local.activities():
            if activity.alias == alias:
                return activity
        for activity in self.remote.activities(()):
            if activity.alias == alias:
                return activity
        return None

    def search(self, text: str, active_only: bool = True) -> List[Activity]:
        needle = text.strip().lower()
        return [
            activity
            for activity in self.all(active_only)
            if needle in activity.name.lower() or (activity.alias and needle in activity.alias.lower())
        ]

    def search_by_alias(self, text: str) -> List[Activity]:
        needle = text.strip().lower()
        return [activity for activity in self.all() if activity.alias and activity.alias.lower().startswith(needle)]

    def resolve(self, identifier: str) -> Activity:
        """Find an activity by local key, then by alias (local aliases first), then by Zebra key.

        Local keys and local aliases are resolved without loading the Zebra catalogue.
        """
        try:
            key: Optional[EntityKey] = EntityKey.parse(identifier)
        except ValueError:
            key = None
        if key is not None and key.is_local:
            return self.require(key)
        activity = self.get_by_alias(identifier)
        if activity is not None:
            return activity
        if key is None:
            raise NotFound(f"Activity '{identifier}' not found")
        return self.require(key)

    def create(
        self,
        project_key: EntityKey,
        name: str,
        description: str = "",
        alias: Optional[str] = None,
    ) -> Activity:
        return self.local.add_activity(project_key, name, description, alias)

    def update(self, activity: Activity) -> Activity:
        if not activity.key.is_local:
            raise InvalidOperation(f"Only local activities may be edited ({activity.key} comes from Zebra)")
        return self.local.update_activity(activity)

    def delete(self, key: EntityKey, force: bool = False) -> Activity:
        if not key.is_local:
            raise InvalidOperation(f"Only local activities may be deleted ({key} comes from Zebra)")
        if self.local.get_activity(key) is None:
            raise NotFound(f"Activity {key} not found")
        if self.frames is not None:
            frames = self.frames.get_by_activity(key)
            if frames and not force:
                raise InvalidOperation(
                    f"Activity {key} is used by {len(frames)} frame(s); use force to delete them too"
                )
            if frames:
                removed = self.frames.remove_by_activity(key)
                logger.info("Removed %d frame(s) of deleted activity %s", removed, key)
        return self.local.remove_activity(key)


__all__ = ["ActivityRepository"]
