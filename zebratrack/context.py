from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .activities import ActivityRepository
from .api import ZebraApiClient
from .config import Settings, get_settings
from .factory import TimesheetFactory
from .frames import FrameRepository
from .projects import LocalProjectRepository, ProjectRepository, ZebraProjectRepository
from .sync import TimesheetSyncService
from .timesheets import LocalTimesheetRepository, ZebraTimesheetRepository
from .track import Track
from .users import UserRepository


@dataclass
class AppContext:
    """All collaborators of one CLI invocation, wired from the settings."""

    settings: Settings
    api: ZebraApiClient
    frames: FrameRepository
    track: Track
    projects: ProjectRepository
    activities: ActivityRepository
    users: UserRepository
    local_timesheets: LocalTimesheetRepository
    remote_timesheets: ZebraTimesheetRepository
    factory: TimesheetFactory
    sync: TimesheetSyncService


def build_context(settings: Optional[Settings] = None, api: Optional[ZebraApiClient] = None) -> AppContext:
    settings = settings or get_settings()
    data_dir = settings.data_dir
    api = api or ZebraApiClient.from_settings(settings)

    frames = FrameRepository(data_dir)
    local_projects = LocalProjectRepository(data_dir)
    zebra_projects = ZebraProjectRepository(api, data_dir)
    activities = ActivityRepository(local_projects, zebra_projects, frames)
    users = UserRepository(api, data_dir, settings.user_id, settings.default_role_id)
    local_timesheets = LocalTimesheetRepository(data_dir)
    remote_timesheets = ZebraTimesheetRepository(api, activities, users, settings.timezone)

    return AppContext(
        settings=settings,
        api=api,
        frames=frames,
        track=Track(frames, default_role=users.default_role),
        projects=ProjectRepository(local_projects, zebra_projects, frames),
        activities=activities,
        users=users,
        local_timesheets=local_timesheets,
        remote_timesheets=remote_timesheets,
        factory=TimesheetFactory(frames, local_timesheets, settings.timezone),
        sync=TimesheetSyncService(local_timesheets, remote_timesheets),
    )


__all__ = ["AppContext", "build_context"]
