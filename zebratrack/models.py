"""Domain models for frames, timesheets and the Zebra reference data."""

from __future__ import annotations

import datetime as dt
import re
import uuid as uuid_lib
from collections import Counter
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple, Union

from .entity_key import EntityKey
from .errors import InvalidOperation, InvalidTime
from .utils import ensure_utc, is_quarter_hours, parse_datetime, serialize_datetime, unique, utcnow

ISSUE_KEY_PATTERN = re.compile(r"[A-Z]{2,6}-\d{1,5}")


def new_uuid() -> str:
    return uuid_lib.uuid4().hex


def extract_issue_keys(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return unique(ISSUE_KEY_PATTERN.findall(text))


class ProjectStatus(IntEnum):
    INACTIVE = 0
    ACTIVE = 1
    OTHER = 2


# ----------------------------------------------------------------------
# Roles and users
# ----------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Role:
    """A Zebra role the user can book time on."""

    id: int
    name: str = ""
    full_name: str = ""
    type: str = ""
    status: str = ""
    parent_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "name": self.name,
            "full_name": self.full_name,
            "type": self.type,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Role":
        return cls(
            id=int(data["id"]),
            name=data.get("name") or "",
            full_name=data.get("full_name") or "",
            type=data.get("type") or "",
            status=data.get("status") or "",
            parent_id=data.get("parent_id"),
        )


@dataclass(frozen=True, slots=True)
class Individual:
    """Role assignment of work booked as an individual action."""

    def __repr__(self) -> str:
        return "INDIVIDUAL"


INDIVIDUAL = Individual()

RoleAssignment = Union[Role, Individual]


def assignment_from(role: Optional[Role], is_individual: bool) -> RoleAssignment:
    if is_individual:
        return INDIVIDUAL
    if role is None:
        raise InvalidOperation("A role is required unless the work is individual")
    return role


def _assignment_to_dict(assignment: RoleAssignment) -> Dict[str, Any]:
    if isinstance(assignment, Role):
        return {"is_individual": False, "role": assignment.to_dict()}
    return {"is_individual": True, "role": None}


def _assignment_from_dict(data: Dict[str, Any], individual_key: str) -> RoleAssignment:
    role_data = data.get("role")
    role = Role.from_dict(role_data) if role_data else None
    return assignment_from(role, bool(data.get(individual_key)))


@dataclass(frozen=True, slots=True)
class User:
    id: int
    username: str = ""
    firstname: str = ""
    lastname: str = ""
    name: str = ""
    email: str = ""
    roles: Tuple[Role, ...] = ()

    def find_role(self, role_id: int) -> Optional[Role]:
        return next((role for role in self.roles if role.id == role_id), None)

    def find_role_by_name(self, name: str) -> Optional[Role]:
        lowered = name.strip().lower()
        for role in self.roles:
            if role.name.lower() == lowered or role.full_name.lower() == lowered:
                return role
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "firstname": self.firstname,
            "lastname": self.lastname,
            "name": self.name,
            "email": self.email,
            "roles": [role.to_dict() for role in self.roles],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=int(data["id"]),
            username=data.get("username") or "",
            firstname=data.get("firstname") or "",
            lastname=data.get("lastname") or "",
            name=data.get("name") or "",
            email=data.get("email") or "",
            roles=tuple(Role.from_dict(item) for item in data.get("roles") or []),
        )


# ----------------------------------------------------------------------
# Projects and activities
# ----------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Activity:
    """A bookable activity; ``project_key`` points back at the owning project."""

    key: EntityKey
    name: str
    project_key: EntityKey
    description: str = ""
    alias: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key.to_dict(),
            "name": self.name,
            "description": self.description,
            "project": self.project_key.to_dict(),
            "alias": self.alias,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Activity":
        return cls(
            key=EntityKey.from_dict(data["key"]),
            name=data["name"],
            project_key=EntityKey.from_dict(data["project"]),
            description=data.get("description") or "",
            alias=data.get("alias") or None,
        )


@dataclass(frozen=True, slots=True)
class Project:
    key: EntityKey
    name: str
    description: str = ""
    status: ProjectStatus = ProjectStatus.ACTIVE
    activities: Tuple[Activity, ...] = ()

    def find_activity(self, key: EntityKey) -> Optional[Activity]:
        return next((activity for activity in self.activities if activity.key == key), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key.to_dict(),
            "name": self.name,
            "description": self.description,
            "status": int(self.status),
            "activities": [activity.to_dict() for activity in self.activities],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            key=EntityKey.from_dict(data["key"]),
            name=data["name"],
            description=data.get("description") or "",
            status=ProjectStatus(int(data.get("status", ProjectStatus.ACTIVE))),
            activities=tuple(Activity.from_dict(item) for item in data.get("activities") or []),
        )


# ----------------------------------------------------------------------
# Frames
# ----------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Frame:
    """One tracked interval. ``stop`` is ``None`` while the frame is running."""

    uuid: str
    start: dt.datetime
    stop: Optional[dt.datetime]
    activity: Activity
    assignment: RoleAssignment
    description: str = ""
    updated_at: dt.datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "updated_at", ensure_utc(self.updated_at))
        if self.stop is not None:
            object.__setattr__(self, "stop", ensure_utc(self.stop))
            if self.stop < self.start:
                raise InvalidTime(
                    f"Frame stop time {self.stop.isoformat()} is before its start time {self.start.isoformat()}"
                )
        if not isinstance(self.assignment, (Role, Individual)):
            raise InvalidOperation(f"Invalid role assignment: {self.assignment!r}")

    @classmethod
    def create(
        cls,
        start: dt.datetime,
        stop: Optional[dt.datetime],
        activity: Activity,
        assignment: RoleAssignment,
        description: str = "",
        updated_at: Optional[dt.datetime] = None,
    ) -> "Frame":
        return cls(
            uuid=new_uuid(),
            start=start,
            stop=stop,
            activity=activity,
            assignment=assignment,
            description=description or "",
            updated_at=updated_at or utcnow(),
        )

    @property
    def is_active(self) -> bool:
        return self.stop is None

    @property
    def is_individual(self) -> bool:
        return isinstance(self.assignment, Individual)

    @property
    def role(self) -> Optional[Role]:
        return self.assignment if isinstance(self.assignment, Role) else None

    @property
    def issue_keys(self) -> List[str]:
        return extract_issue_keys(self.description)

    def effective_stop(self, now: Optional[dt.datetime] = None) -> dt.datetime:
        return self.stop if self.stop is not None else (now or utcnow())

    def duration(self, now: Optional[dt.datetime] = None) -> int:
        return int((self.effective_stop(now) - self.start).total_seconds())

    def with_stop_time(self, stop: Optional[dt.datetime], updated_at: Optional[dt.datetime] = None) -> "Frame":
        return replace(self, stop=stop, updated_at=updated_at or utcnow())

    def with_changes(self, **changes: Any) -> "Frame":
        changes.setdefault("updated_at", utcnow())
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "uuid": self.uuid,
            "start": serialize_datetime(self.start),
            "stop": serialize_datetime(self.stop) if self.stop else None,
            "activity": self.activity.to_dict(),
            "description": self.description,
            "issue_keys": self.issue_keys,
            "updated_at": serialize_datetime(self.updated_at),
        }
        data.update(_assignment_to_dict(self.assignment))
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Frame":
        return cls(
            uuid=data["uuid"],
            start=parse_datetime(data["start"]),
            stop=parse_datetime(data.get("stop")),
            activity=Activity.from_dict(data["activity"]),
            assignment=_assignment_from_dict(data, "is_individual"),
            description=data.get("description") or "",
            updated_at=parse_datetime(data.get("updated_at")) or utcnow(),
        )


def most_common_role(frames: List[Frame]) -> Optional[Role]:
    counts = Counter(frame.role for frame in frames if frame.role is not None)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


# ----------------------------------------------------------------------
# Timesheets
# ----------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Timesheet:
    """Billable time for one remote activity on one calendar day."""

    uuid: str
    activity: Activity
    description: str
    time: float
    date: dt.date
    assignment: RoleAssignment
    client_description: Optional[str] = None
    frame_uuids: Tuple[str, ...] = ()
    remote_id: Optional[int] = None
    updated_at: dt.datetime = field(default_factory=utcnow)
    do_not_sync: bool = False

    def __post_init__(self) -> None:
        if not self.activity.key.is_remote or not self.activity.project_key.is_remote:
            raise InvalidOperation(
                f"Timesheets can only be booked on Zebra activities, got {self.activity.key}"
            )
        if not is_quarter_hours(self.time):
            raise InvalidOperation(f"Time must be a positive multiple of 0.25 hours, got {self.time}")
        if not isinstance(self.assignment, (Role, Individual)):
            raise InvalidOperation(f"Invalid role assignment: {self.assignment!r}")
        object.__setattr__(self, "time", float(self.time))
        object.__setattr__(self, "client_description", self.client_description or None)
        object.__setattr__(self, "frame_uuids", tuple(unique(self.frame_uuids)))
        object.__setattr__(self, "updated_at", ensure_utc(self.updated_at))

    @classmethod
    def create(
        cls,
        activity: Activity,
        description: str,
        time: float,
        date: dt.date,
        assignment: RoleAssignment,
        *,
        client_description: Optional[str] = None,
        frame_uuids: Tuple[str, ...] = (),
    ) -> "Timesheet":
        return cls(
            uuid=new_uuid(),
            activity=activity,
            description=description,
            time=time,
            date=date,
            assignment=assignment,
            client_description=client_description,
            frame_uuids=tuple(frame_uuids),
        )

    @property
    def project_id(self) -> int:
        return int(self.activity.project_key.id)

    @property
    def individual_action(self) -> bool:
        return isinstance(self.assignment, Individual)

    @property
    def role(self) -> Optional[Role]:
        return self.assignment if isinstance(self.assignment, Role) else None

    @property
    def is_synced(self) -> bool:
        return self.remote_id is not None

    def with_changes(self, **changes: Any) -> "Timesheet":
        changes.setdefault("updated_at", utcnow())
        return replace(self, **changes)

    def same_content(self, other: "Timesheet") -> bool:
        """Compare the fields that are mirrored on the Zebra server."""
        return (
            self.activity.key == other.activity.key
            and self.description == other.description
            and (self.client_description or None) == (other.client_description or None)
            and abs(self.time - other.time) < 1e-6
            and self.date == other.date
            and self.assignment == other.assignment
            and self.remote_id == other.remote_id
            and self.updated_at == other.updated_at
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "uuid": self.uuid,
            "activity": self.activity.to_dict(),
            "project_id": self.project_id,
            "description": self.description,
            "client_description": self.client_description,
            "time": self.time,
            "date": self.date.isoformat(),
            "frame_uuids": list(self.frame_uuids),
            "remote_id": self.remote_id,
            "updated_at": serialize_datetime(self.updated_at),
            "do_not_sync": self.do_not_sync,
        }
        role = self.role
        data["role"] = role.to_dict() if role else None
        data["individual_action"] = self.individual_action
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Timesheet":
        remote_id = data.get("remote_id")
        return cls(
            uuid=data["uuid"],
            activity=Activity.from_dict(data["activity"]),
            description=data.get("description") or "",
            client_description=data.get("client_description") or None,
            time=float(data["time"]),
            date=dt.date.fromisoformat(data["date"]),
            assignment=_assignment_from_dict(data, "individual_action"),
            frame_uuids=tuple(data.get("frame_uuids") or ()),
            remote_id=int(remote_id) if remote_id is not None else None,
            updated_at=parse_datetime(data.get("updated_at")) or utcnow(),
            do_not_sync=bool(data.get("do_not_sync", False)),
        )


__all__ = [
    "Activity",
    "Frame",
    "INDIVIDUAL",
    "Individual",
    "Project",
    "ProjectStatus",
    "Role",
    "RoleAssignment",
    "Timesheet",
    "User",
    "assignment_from",
    "extract_issue_keys",
    "most_common_role",
    "new_uuid",
]
