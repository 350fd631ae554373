"""Request and response structures of the Zebra REST API."""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .utils import is_quarter_hours


class RoleData(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: int
    parent_id: Optional[int] = None
    name: str = ""
    full_name: str = ""
    type: str = ""
    status: str = ""

    @field_validator("name", "full_name", "type", "status", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else str(value)


class UserData(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: int
    username: str = ""
    firstname: str = ""
    lastname: str = ""
    name: str = ""
    email: str = ""
    roles: List[RoleData] = Field(default_factory=list)

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "UserData":
        """``GET /users/{id}`` returns the user and its roles side by side."""
        user = dict(data.get("user") or {})
        user["roles"] = data.get("roles") or []
        return cls.model_validate(user)


class ActivityData(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: int
    name: str
    description: str = ""
    alias: Optional[str] = None

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or ""


class ProjectData(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: int
    name: str
    description: str = ""
    status: int = 1
    activities: List[ActivityData] = Field(default_factory=list)

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or ""


class TimesheetData(BaseModel):
    """A timesheet as returned by ``GET /timesheets``."""

    model_config = ConfigDict(extra="ignore")
    id: int
    project_id: Optional[int] = None
    activity_id: int
    role_id: Optional[int] = None
    description: str = ""
    client_description: Optional[str] = None
    time: float
    date: dt.date
    individual_action: bool = False
    modified: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        values = dict(data)
        if "activity_id" not in values:
            values["activity_id"] = values.get("occupation_id", values.get("occupid"))
        values["modified"] = values.get("lu_date") or values.get("modified")
        values["individual_action"] = values.get("individual_action") is True
        if values.get("role_id") in ("", 0):
            values["role_id"] = None
        if values.get("client_description") == "":
            values["client_description"] = None
        if values.get("description") is None:
            values["description"] = ""
        if isinstance(values.get("date"), str):
            values["date"] = values["date"][:10]
        return values


class TimesheetPayload(BaseModel):
    """Fields sent on create and update; transmitted as query parameters."""

    project_id: int
    activity_id: int
    description: str
    time: float
    date: dt.date
    client_description: Optional[str] = None
    role_id: Optional[int] = None

    @field_validator("time")
    @classmethod
    def _quarter_hours(cls, value: float) -> float:
        if not is_quarter_hours(value):
            raise ValueError(f"Time must be a multiple of 0.25, got: {value}")
        return value

    def as_query(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "project_id": self.project_id,
            "activity_id": self.activity_id,
            "description": self.description,
            "time": self.time,
            "date": self.date.isoformat(),
        }
        if self.client_description:
            params["client_description"] = self.client_description
        if self.role_id is not None:
            params["role_id"] = self.role_id
        return params


__all__ = [
    "ActivityData",
    "ProjectData",
    "RoleData",
    "TimesheetData",
    "TimesheetPayload",
    "UserData",
]
