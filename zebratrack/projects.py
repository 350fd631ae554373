"""Project storage: local user projects, the cached Zebra catalogue and the facade over both."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from .api import ZebraApiClient
from .entity_key import EntityKey, EntitySource
from .errors import InvalidOperation, NotFound
from .frames import FrameRepository
from .models import Activity, Project, ProjectStatus
from .schemas import ProjectData
from .storage import JsonFileStorage

logger = logging.getLogger(__name__)

LOCAL_PROJECTS_FILENAME = "local-projects.json"
ZEBRA_PROJECTS_FILENAME = "projects.json"

ACTIVE_ONLY = (ProjectStatus.ACTIVE,)


def _require_local(key: EntityKey, what: str) -> None:
    if not key.is_local:
        raise InvalidOperation(f"Only local {what} may be edited or deleted ({key} comes from Zebra)")


# ----------------------------------------------------------------------
# Local store
# ----------------------------------------------------------------------
class LocalProjectRepository:
    """Projects and activities the user created, stored with nested activities."""

    def __init__(self, data_dir: Path) -> None:
        self._storage = JsonFileStorage(Path(data_dir) / LOCAL_PROJECTS_FILENAME)

    def _load(self) -> Dict[EntityKey, Project]:
        projects: Dict[EntityKey, Project] = {}
        for record in self._storage.read(default=[]) or []:
            try:
                project = Project.from_dict(record)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable local project: %s", exc)
                continue
            projects[project.key] = project
        return projects

    def _store(self, projects: Dict[EntityKey, Project]) -> None:
        self._storage.write([project.to_dict() for project in projects.values()])

    # Projects
    def all(self, statuses: Sequence[ProjectStatus] = ()) -> List[Project]:
        projects = list(self._load().values())
        if statuses:
            projects = [project for project in projects if project.status in statuses]
        return projects

    def get(self, key: EntityKey) -> Optional[Project]:
        return self._load().get(key)

    def create(self, name: str, description: str = "", status: ProjectStatus = ProjectStatus.ACTIVE) -> Project:
        if not name.strip():
            raise InvalidOperation("Project name is required")
        projects = self._load()
        project = Project(key=EntityKey.local(), name=name.strip(), description=description, status=status)
        projects[project.key] = project
        self._store(projects)
        logger.info("Created local project %s (%s)", project.key, project.name)
        return project

    def update(self, project: Project) -> Project:
        _require_local(project.key, "projects")
        projects = self._load()
        if project.key not in projects:
            raise NotFound(f"Project {project.key} not found")
        projects[project.key] = project
        self._store(projects)
        return project

    def delete(self, key: EntityKey) -> Project:
        _require_local(key, "projects")
        projects = self._load()
        project = projects.pop(key, None)
        if project is None:
            raise NotFound(f"Project {key} not found")
        self._store(projects)
        logger.info("Deleted local project %s", key)
        return project

    # Activities
    def activities(self) -> List[Activity]:
        return [activity for project in self._load().values() for activity in project.activities]

    def get_activity(self, key: EntityKey) -> Optional[Activity]:
        return next((activity for activity in self.activities() if activity.key == key), None)

    def _check_alias(self, projects: Dict[EntityKey, Project], alias: Optional[str], exclude: Optional[EntityKey]) -> None:
        if not alias:
            return
        for project in projects.values():
            for activity in project.activities:
                if activity.alias == alias and activity.key != exclude:
                    raise InvalidOperation(f"Alias '{alias}' is already used by activity {activity.key}")

    def add_activity(
        self,
        project_key: EntityKey,
        name: str,
        description: str = "",
        alias: Optional[str] = None,
    ) -> Activity:
        _require_local(project_key, "projects")
        if not name.strip():
            raise InvalidOperation("Activity name is required")
        projects = self._load()
        project = projects.get(project_key)
        if project is None:
            raise NotFound(f"Project {project_key} not found")
        alias = alias or None
        self._check_alias(projects, alias, None)
        activity = Activity(
            key=EntityKey.local(),
            name=name.strip(),
            project_key=project_key,
            description=description,
            alias=alias,
        )
        projects[project_key] = replace(project, activities=project.activities + (activity,))
        self._store(projects)
        logger.info("Created local activity %s in project %s", activity.key, project_key)
        return activity

    def update_activity(self, activity: Activity) -> Activity:
        _require_local(activity.key, "activities")
        projects = self._load()
        owner = next((p for p in projects.values() if p.find_activity(activity.key) is not None), None)
        if owner is None:
            raise NotFound(f"Activity {activity.key} not found")
        self._check_alias(projects, activity.alias, activity.key)
        if activity.project_key != owner.key:
            raise InvalidOperation("Activities cannot be moved between projects")
        activities = tuple(activity if item.key == activity.key else item for item in owner.activities)
        projects[owner.key] = replace(owner, activities=activities)
        self._store(projects)
        return activity

    def remove_activity(self, key: EntityKey) -> Activity:
        _require_local(key, "activities")
        projects = self._load()
        for project in projects.values():
            activity = project.find_activity(key)
            if activity is None:
                continue
            remaining = tuple(item for item in project.activities if item.key != key)
            projects[project.key] = replace(project, activities=remaining)
            self._store(projects)
            logger.info("Deleted local activity %s", key)
            return activity
        raise NotFound(f"Activity {key} not found")


# ----------------------------------------------------------------------
# Zebra catalogue
# ----------------------------------------------------------------------
def project_from_data(data: ProjectData) -> Project:
    project_key = EntityKey.remote(data.id)
    try:
        status = ProjectStatus(data.status)
    except ValueError:
        status = ProjectStatus.OTHER
    return Project(
        key=project_key,
        name=data.name,
        description=data.description,
        status=status,
        activities=tuple(
            Activity(
                key=EntityKey.remote(item.id),
                name=item.name,
                project_key=project_key,
                description=item.description,
                alias=item.alias or None,
            )
            for item in data.activities
        ),
    )


class ZebraProjectRepository:
    """Read-only view of the Zebra projects, cached in ``projects.json``."""

    def __init__(self, api: ZebraApiClient, data_dir: Path) -> None:
        self.api = api
        self._storage = JsonFileStorage(Path(data_dir) / ZEBRA_PROJECTS_FILENAME)
        self._cache: Optional[Dict[int, Project]] = None

    def _load(self) -> Dict[int, Project]:
        if self._cache is not None:
            return self._cache
        records = self._storage.read(default=None)
        if not records:
            return self.refresh()
        cache: Dict[int, Project] = {}
        for record in records:
            try:
                project = Project.from_dict(record)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable cached project: %s", exc)
                continue
            cache[int(project.key.id)] = project
        self._cache = cache
        return cache

    def refresh(self) -> Dict[int, Project]:
        projects = [project_from_data(item) for item in self.api.fetch_projects()]
        self._storage.write([project.to_dict() for project in projects])
        self._cache = {int(project.key.id): project for project in projects}
        logger.info("Refreshed %d Zebra project(s)", len(projects))
        return self._cache

    def all(self, statuses: Sequence[ProjectStatus] = ACTIVE_ONLY) -> List[Project]:
        projects = list(self._load().values())
        if statuses:
            projects = [project for project in projects if project.status in statuses]
        return projects

    def get(self, key: EntityKey) -> Optional[Project]:
        if not key.is_remote:
            return None
        return self._load().get(int(key.id))

    def activities(self, statuses: Sequence[ProjectStatus] = ACTIVE_ONLY) -> List[Activity]:
        return [activity for project in self.all(statuses) for activity in project.activities]

    def get_activity(self, key: EntityKey) -> Optional[Activity]:
        if not key.is_remote:
            return None
        for project in self._load().values():
            activity = project.find_activity(key)
            if activity is not None:
                return activity
        return None


# ----------------------------------------------------------------------
# Facade
# ----------------------------------------------------------------------
def _rank_by_name(projects: Iterable[Project], name: str) -> List[Project]:
    needle = name.strip().lower()
    starts: List[Project] = []
    contains: List[Project] = []
    for project in projects:
        candidate = project.name.strip().lower()
        if candidate.startswith(needle):
            starts.append(project)
        elif needle in candidate:
            contains.append(project)
    matches = starts or contains
    return sorted(matches, key=lambda project: project.name.lower())


class ProjectRepository:
    """Routes project operations to the local store or the Zebra catalogue."""

    def __init__(
        self,
        local: LocalProjectRepository,
        remote: ZebraProjectRepository,
        frames: Optional[FrameRepository] = None,
    ) -> None:
        self.local = local
        self.remote = remote
        self.frames = frames

    def get(self, key: EntityKey) -> Optional[Project]:
        match key.source:
            case EntitySource.LOCAL:
                return self.local.get(key)
            case EntitySource.REMOTE:
                return self.remote.get(key)

    def get_by_activity(self, activity_key: EntityKey) -> Optional[Project]:
        match activity_key.source:
            case EntitySource.LOCAL:
                projects = self.local.all()
            case EntitySource.REMOTE:
                projects = self.remote.all(())
        return next((project for project in projects if project.find_activity(activity_key)), None)

    def all(self, statuses: Sequence[ProjectStatus] = ACTIVE_ONLY) -> List[Project]:
        return self.local.all(statuses) + self.remote.all(statuses)

    def get_by_name_like(self, name: str) -> List[Project]:
        return _rank_by_name(self.local.all(), name) + _rank_by_name(self.remote.all(), name)

    def get_by_activity_alias(self, alias: str) -> Optional[Project]:
        for project in self.all(()):
            if any(activity.alias == alias for activity in project.activities):
                return project
        return None

    def all_aliases(self) -> List[str]:
        return [activity.alias for project in self.all() for activity in project.activities if activity.alias]

    def resolve_local(self, identifier: str) -> Project:
        """Find a local project by key or by (partial) name."""
        try:
            key = EntityKey.parse(identifier)
        except ValueError:
            key = None
        if key is not None and key.is_local:
            project = self.local.get(key)
            if project is not None:
                return project

        matches = _rank_by_name(self.local.all(), identifier)
        exact = [project for project in matches if project.name.strip().lower() == identifier.strip().lower()]
        if exact:
            return exact[0]
        if len(matches) == 1:
            return matches[0]
        if not matches:
            raise NotFound(f"Local project '{identifier}' not found")
        names = ", ".join(f"{project.name} ({project.key})" for project in matches)
        raise InvalidOperation(f"Several local projects match '{identifier}': {names}")

    def create(self, name: str, description: str = "", status: ProjectStatus = ProjectStatus.ACTIVE) -> Project:
        return self.local.create(name, description, status)

    def update(self, project: Project) -> Project:
        _require_local(project.key, "projects")
        return self.local.update(project)

    def delete(self, key: EntityKey, force: bool = False) -> Project:
        _require_local(key, "projects")
        project = self.local.get(key)
        if project is None:
            raise NotFound(f"Project {key} not found")
        if project.activities and not force:
            raise InvalidOperation(
                f"Project {project.name} still has {len(project.activities)} activit(y/ies); use force to delete"
            )
        if self.frames is not None:
            for activity in project.activities:
                self.frames.remove_by_activity(activity.key)
        return self.local.delete(key)

    def refresh(self) -> int:
        return len(self.remote.refresh())


__all__ = [
    "LocalProjectRepository",
    "ProjectRepository",
    "ZebraProjectRepository",
    "project_from_data",
]
