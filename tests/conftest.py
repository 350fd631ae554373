from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from zebratrack.activities import ActivityRepository
from zebratrack.config import Settings
from zebratrack.entity_key import EntityKey
from zebratrack.errors import RemoteUnavailable
from zebratrack.factory import TimesheetFactory
from zebratrack.frames import FrameRepository
from zebratrack.models import Activity, Role
from zebratrack.projects import LocalProjectRepository, ProjectRepository, ZebraProjectRepository
from zebratrack.schemas import ActivityData, ProjectData, RoleData, TimesheetData, TimesheetPayload, UserData
from zebratrack.sync import TimesheetSyncService
from zebratrack.timesheets import LocalTimesheetRepository, ZebraTimesheetRepository
from zebratrack.track import Track
from zebratrack.users import UserRepository

UTC = dt.timezone.utc
TIMEZONE = "Europe/Zurich"
USER_ID = 42


class FakeClock:
    def __init__(self, now: dt.datetime) -> None:
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, seconds: int) -> dt.datetime:
        self.now = self.now + dt.timedelta(seconds=seconds)
        return self.now


class FakeApiClient:
    """In-memory Zebra server speaking the same interface as ZebraApiClient."""

    def __init__(self) -> None:
        self.projects: List[ProjectData] = [
            ProjectData(
                id=10,
                name="Website",
                activities=[
                    ActivityData(id=100, name="Development", alias="dev"),
                    ActivityData(id=101, name="Meetings", alias="_meet"),
                ],
            ),
            ProjectData(id=11, name="Archive", status=0, activities=[ActivityData(id=110, name="Old work")]),
        ]
        self.users: Dict[int, UserData] = {
            USER_ID: UserData(
                id=USER_ID,
                username="jdoe",
                name="J. Doe",
                roles=[
                    RoleData(id=7, name="Developer", full_name="Senior Developer", status="active"),
                    RoleData(id=8, name="Lead", full_name="Team Lead", status="active"),
                ],
            )
        }
        self.timesheets: Dict[int, Dict[str, Any]] = {}
        self.modified = "2024-05-06 18:00:00"
        self.next_id = 1000
        self.fail_delete = False
        self.calls: List[Tuple[str, Any]] = []

    @staticmethod
    def _not_found(what: str) -> RemoteUnavailable:
        return RemoteUnavailable(f"Zebra API error 404: {what} not found", status_code=404)

    def _record(self, remote_id: int, payload: TimesheetPayload) -> Dict[str, Any]:
        record = {"id": remote_id, **payload.as_query()}
        record["individual_action"] = payload.role_id is None
        record["lu_date"] = self.modified
        return record

    def fetch_projects(self) -> List[ProjectData]:
        self.calls.append(("fetch_projects", None))
        return list(self.projects)

    def fetch_user(self, user_id: int) -> UserData:
        self.calls.append(("fetch_user", user_id))
        if user_id not in self.users:
            raise self._not_found(f"user {user_id}")
        return self.users[user_id]

    def fetch_timesheets(self, start: dt.date, end: dt.date, **filters: Any) -> List[TimesheetData]:
        self.calls.append(("fetch_timesheets", (start, end)))
        records = [TimesheetData.model_validate(record) for record in self.timesheets.values()]
        return [record for record in records if start <= record.date <= end]

    def fetch_timesheet(self, remote_id: int) -> TimesheetData:
        self.calls.append(("fetch_timesheet", remote_id))
        if remote_id not in self.timesheets:
            raise self._not_found(f"timesheet {remote_id}")
        return TimesheetData.model_validate(self.timesheets[remote_id])

    def create_timesheet(self, payload: TimesheetPayload) -> Optional[int]:
        self.calls.append(("create_timesheet", payload))
        remote_id = self.next_id
        self.next_id += 1
        self.timesheets[remote_id] = self._record(remote_id, payload)
        return remote_id

    def update_timesheet(self, remote_id: int, payload: TimesheetPayload) -> None:
        self.calls.append(("update_timesheet", remote_id))
        if remote_id not in self.timesheets:
            raise self._not_found(f"timesheet {remote_id}")
        self.timesheets[remote_id] = self._record(remote_id, payload)

    def delete_timesheet(self, remote_id: int) -> None:
        self.calls.append(("delete_timesheet", remote_id))
        if self.fail_delete:
            raise RemoteUnavailable("Zebra API error 500: internal error", status_code=500)
        if self.timesheets.pop(remote_id, None) is None:
            raise self._not_found(f"timesheet {remote_id}")

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]


@pytest.fixture()
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "zebra"
    path.mkdir()
    return path


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(dt.datetime(2024, 5, 6, 8, 0, tzinfo=UTC))


@pytest.fixture()
def fake_api() -> FakeApiClient:
    return FakeApiClient()


@pytest.fixture()
def settings(data_dir: Path) -> Settings:
    return Settings(
        _env_file=None,
        base_uri="https://zebra.example.test",
        token="secret",
        data_dir=data_dir,
        user_id=USER_ID,
        default_role_id=7,
        timezone=TIMEZONE,
    )


@pytest.fixture()
def frames(data_dir: Path, clock: FakeClock) -> FrameRepository:
    return FrameRepository(data_dir, clock=clock)


@pytest.fixture()
def local_projects(data_dir: Path) -> LocalProjectRepository:
    return LocalProjectRepository(data_dir)


@pytest.fixture()
def zebra_projects(fake_api: FakeApiClient, data_dir: Path) -> ZebraProjectRepository:
    return ZebraProjectRepository(fake_api, data_dir)


@pytest.fixture()
def projects(local_projects, zebra_projects, frames) -> ProjectRepository:
    return ProjectRepository(local_projects, zebra_projects, frames)


@pytest.fixture()
def activities(local_projects, zebra_projects, frames) -> ActivityRepository:
    return ActivityRepository(local_projects, zebra_projects, frames)


@pytest.fixture()
def users(fake_api: FakeApiClient, data_dir: Path) -> UserRepository:
    return UserRepository(fake_api, data_dir, user_id=USER_ID, default_role_id=7)


@pytest.fixture()
def track(frames: FrameRepository, users: UserRepository, clock: FakeClock) -> Track:
    return Track(frames, default_role=users.default_role, clock=clock)


@pytest.fixture()
def local_timesheets(data_dir: Path) -> LocalTimesheetRepository:
    return LocalTimesheetRepository(data_dir)


@pytest.fixture()
def remote_timesheets(fake_api, activities, users) -> ZebraTimesheetRepository:
    return ZebraTimesheetRepository(fake_api, activities, users, TIMEZONE)


@pytest.fixture()
def sync(local_timesheets, remote_timesheets) -> TimesheetSyncService:
    return TimesheetSyncService(local_timesheets, remote_timesheets)


@pytest.fixture()
def factory(frames, local_timesheets) -> TimesheetFactory:
    return TimesheetFactory(frames, local_timesheets, TIMEZONE)


@pytest.fixture()
def developer() -> Role:
    return Role(id=7, name="Developer", full_name="Senior Developer", status="active")


@pytest.fixture()
def lead() -> Role:
    return Role(id=8, name="Lead", full_name="Team Lead", status="active")


@pytest.fixture()
def remote_activity(activities: ActivityRepository) -> Activity:
    return activities.require(EntityKey.remote(100))


@pytest.fixture()
def meeting_activity(activities: ActivityRepository) -> Activity:
    return activities.require(EntityKey.remote(101))


@pytest.fixture()
def local_activity(local_projects: LocalProjectRepository) -> Activity:
    project = local_projects.create("Side project")
    return local_projects.add_activity(project.key, "Reading", alias="read")
