"""Local and remote timesheet storage."""

from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .activities import ActivityRepository
from .api import ZebraApiClient
from .entity_key import EntityKey
from .errors import InvalidOperation, NotFound, RemoteUnavailable, ZebraError
from .models import INDIVIDUAL, Role, RoleAssignment, Timesheet, new_uuid
from .schemas import TimesheetData, TimesheetPayload
from .storage import JsonFileStorage
from .users import UserRepository
from .utils import parse_local_timestamp, utcnow

logger = logging.getLogger(__name__)

TIMESHEETS_FILENAME = "timesheets.json"

ConfirmTimesheet = Callable[[Timesheet], bool]
ConfirmRemoteId = Callable[[int], bool]


# ----------------------------------------------------------------------
# Local store
# ----------------------------------------------------------------------
class LocalTimesheetRepository:
    """Timesheets kept on disk, keyed by uuid."""

    def __init__(self, data_dir: Path) -> None:
        self._storage = JsonFileStorage(Path(data_dir) / TIMESHEETS_FILENAME)

    def _load_raw(self) -> Dict[str, dict]:
        data = self._storage.read(default={})
        if isinstance(data, list):
            return {record["uuid"]: record for record in data if isinstance(record, dict) and record.get("uuid")}
        return dict(data or {})

    def _load(self) -> Dict[str, Timesheet]:
        timesheets: Dict[str, Timesheet] = {}
        for timesheet_uuid, record in self._load_raw().items():
            try:
                timesheets[timesheet_uuid] = Timesheet.from_dict(record)
            except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
                logger.warning("Skipping unreadable timesheet %s: %s", timesheet_uuid, exc)
        return timesheets

    def _store(self, timesheets: Dict[str, Timesheet]) -> None:
        ordered = sorted(timesheets.values(), key=lambda item: (item.date, item.uuid))
        self._storage.write({item.uuid: item.to_dict() for item in ordered})

    @staticmethod
    def _check_remote_id(timesheets: Dict[str, Timesheet], timesheet: Timesheet) -> None:
        if timesheet.remote_id is None:
            return
        for other in timesheets.values():
            if other.uuid != timesheet.uuid and other.remote_id == timesheet.remote_id:
                raise InvalidOperation(
                    f"Zebra id {timesheet.remote_id} is already used by local timesheet {other.uuid}"
                )

    def save(self, timesheet: Timesheet) -> Timesheet:
        timesheets = self._load()
        self._check_remote_id(timesheets, timesheet)
        timesheets[timesheet.uuid] = timesheet
        self._store(timesheets)
        return timesheet

    def update(self, timesheet: Timesheet) -> Timesheet:
        timesheets = self._load()
        if timesheet.uuid not in timesheets:
            raise NotFound(f"Timesheet {timesheet.uuid} not found")
        self._check_remote_id(timesheets, timesheet)
        timesheets[timesheet.uuid] = timesheet
        self._store(timesheets)
        return timesheet

    def save_many(self, saved: Iterable[Timesheet], removed: Iterable[str] = ()) -> None:
        """Write several changes in a single file replacement."""
        timesheets = self._load()
        for timesheet_uuid in removed:
            if timesheet_uuid not in timesheets:
                raise NotFound(f"Timesheet {timesheet_uuid} not found")
            del timesheets[timesheet_uuid]
        for timesheet in saved:
            self._check_remote_id(timesheets, timesheet)
            timesheets[timesheet.uuid] = timesheet
        self._store(timesheets)

    def remove(self, timesheet_uuid: str) -> Timesheet:
        timesheets = self._load()
        timesheet = timesheets.pop(timesheet_uuid, None)
        if timesheet is None:
            raise NotFound(f"Timesheet {timesheet_uuid} not found")
        self._store(timesheets)
        return timesheet

    def get(self, timesheet_uuid: str) -> Optional[Timesheet]:
        timesheets = self._load()
        if timesheet_uuid in timesheets:
            return timesheets[timesheet_uuid]
        # Allow unambiguous uuid prefixes
        matches = [item for key, item in timesheets.items() if key.startswith(timesheet_uuid)]
        return matches[0] if len(timesheet_uuid) >= 4 and len(matches) == 1 else None

    def require(self, timesheet_uuid: str) -> Timesheet:
        timesheet = self.get(timesheet_uuid)
        if timesheet is None:
            raise NotFound(f"Timesheet '{timesheet_uuid}' not found")
        return timesheet

    def get_by_remote_id(self, remote_id: int) -> Optional[Timesheet]:
        return next((item for item in self._load().values() if item.remote_id == remote_id), None)

    def all(self) -> List[Timesheet]:
        return sorted(self._load().values(), key=lambda item: (item.date, item.uuid))

    def get_by_date_range(self, start: dt.date, end: Optional[dt.date] = None) -> List[Timesheet]:
        end = end or start
        return [item for item in self.all() if start <= item.date <= end]

    def get_by_frame_uuids(self, frame_uuids: Iterable[str]) -> List[Timesheet]:
        wanted = set(frame_uuids)
        return [item for item in self.all() if wanted & set(item.frame_uuids)]

    def get_unsynced(self) -> List[Timesheet]:
        return [item for item in self.all() if item.remote_id is None]


# ----------------------------------------------------------------------
# Zebra
# ----------------------------------------------------------------------
def payload_from_timesheet(timesheet: Timesheet) -> TimesheetPayload:
    role = timesheet.role
    return TimesheetPayload(
        project_id=timesheet.project_id,
        activity_id=int(timesheet.activity.key.id),
        description=timesheet.description,
        time=timesheet.time,
        date=timesheet.date,
        client_description=timesheet.client_description,
        role_id=role.id if role else None,
    )


class ZebraTimesheetRepository:
    """Timesheets on the Zebra server, converted into local models."""

    def __init__(
        self,
        api: ZebraApiClient,
        activities: ActivityRepository,
        users: Optional[UserRepository] = None,
        timezone: str = "Europe/Zurich",
    ) -> None:
        self.api = api
        self.activities = activities
        self.users = users
        self.timezone = timezone

    def _role(self, role_id: int) -> Role:
        if self.users is not None:
            try:
                role = self.users.current_user().find_role(role_id)
            except ZebraError as exc:
                logger.debug("Could not resolve role %s from user data: %s", role_id, exc)
            else:
                if role is not None:
                    return role
        return Role(id=role_id)

    def to_timesheet(self, data: TimesheetData) -> Timesheet:
        activity = self.activities.get(EntityKey.remote(data.activity_id))
        if activity is None:
            raise NotFound(f"Activity {data.activity_id} of Zebra timesheet {data.id} is unknown; refresh projects")

        assignment: RoleAssignment
        if data.individual_action:
            assignment = INDIVIDUAL
        elif data.role_id is not None:
            assignment = self._role(data.role_id)
        else:
            logger.warning("Zebra timesheet %s has no role; treating it as individual", data.id)
            assignment = INDIVIDUAL

        return Timesheet(
            uuid=new_uuid(),
            activity=activity,
            description=data.description,
            client_description=data.client_description,
            time=data.time,
            date=data.date,
            assignment=assignment,
            frame_uuids=(),
            remote_id=data.id,
            updated_at=parse_local_timestamp(data.modified, self.timezone) or utcnow(),
        )

    def get_by_remote_id(self, remote_id: int) -> Optional[Timesheet]:
        try:
            data = self.api.fetch_timesheet(remote_id)
        except RemoteUnavailable as exc:
            if exc.is_not_found:
                return None
            raise
        return self.to_timesheet(data)

    def get_by_date_range(self, start: dt.date, end: Optional[dt.date] = None) -> List[Timesheet]:
        timesheets: List[Timesheet] = []
        for data in self.api.fetch_timesheets(start, end or start):
            try:
                timesheets.append(self.to_timesheet(data))
            except (NotFound, InvalidOperation) as exc:
                logger.warning("Skipping Zebra timesheet %s: %s", data.id, exc)
        return timesheets

    def create(self, timesheet: Timesheet, on_created: Optional[Callable[[int], None]] = None) -> Timesheet:
        """Create the record on Zebra and return the server copy.

        ``on_created`` receives the new id before the server copy is fetched.
        """
        payload = payload_from_timesheet(timesheet)
        remote_id = self.api.create_timesheet(payload)
        if remote_id is not None:
            if on_created is not None:
                on_created(remote_id)
            created = self.get_by_remote_id(remote_id)
            if created is not None:
                return created
        created = self._find_created(timesheet)
        if created is None:
            raise RemoteUnavailable("Timesheet was created but Zebra did not report its id")
        return created

    def _find_created(self, timesheet: Timesheet) -> Optional[Timesheet]:
        candidates = [
            item
            for item in self.get_by_date_range(timesheet.date, timesheet.date)
            if item.activity.key == timesheet.activity.key
            and item.project_id == timesheet.project_id
            and item.description == timesheet.description
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda item: item.remote_id or 0)

    def update(self, timesheet: Timesheet, confirm: Optional[ConfirmTimesheet] = None) -> Optional[Timesheet]:
        if timesheet.remote_id is None:
            raise InvalidOperation(f"Timesheet {timesheet.uuid} has never been pushed")
        if confirm is not None and not confirm(timesheet):
            return None
        self.api.update_timesheet(timesheet.remote_id, payload_from_timesheet(timesheet))
        updated = self.get_by_remote_id(timesheet.remote_id)
        if updated is None:
            raise NotFound(f"Zebra timesheet {timesheet.remote_id} disappeared after the update")
        return updated

    def delete(self, remote_id: int, confirm: ConfirmRemoteId) -> bool:
        if not confirm(remote_id):
            return False
        self.api.delete_timesheet(remote_id)
        logger.info("Deleted Zebra timesheet %s", remote_id)
        return True


__all__ = [
    "LocalTimesheetRepository",
    "ZebraTimesheetRepository",
    "payload_from_timesheet",
]
