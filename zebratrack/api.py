"""HTTP client for the Zebra REST API."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import requests
from pydantic import ValidationError

from .config import Settings
from .errors import RemoteUnavailable
from .schemas import ProjectData, TimesheetData, TimesheetPayload, UserData

logger = logging.getLogger(__name__)

TIMESHEETS_URL = "/api/v2/timesheets"
PROJECTS_URL = "/api/v2/projects"
USERS_URL = "/api/v2/users"
PROJECT_STATUSES = (0, 1, 2)


class ZebraApiClient:
    """Wraps the HTTP calls this client makes against Zebra."""

    def __init__(self, base_uri: str, token: Optional[str] = None, timeout: int = 15) -> None:
        self.base_uri = base_uri.rstrip("/") + "/"
        self.token = token
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "ZebraApiClient":
        if not settings.base_uri:
            logger.warning("ZEBRA_BASE_URI is not set; API requests will fail")
        if not settings.token:
            logger.warning("ZEBRA_TOKEN is not set; API requests may fail")
        return cls(settings.base_uri, settings.token, settings.request_timeout)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = urljoin(self.base_uri, path.lstrip("/"))
        kwargs.setdefault("timeout", self.timeout)
        headers = kwargs.setdefault("headers", {})
        headers.update(self._headers())
        logger.debug("%s %s params=%s", method, url, kwargs.get("params"))
        try:
            response = requests.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise RemoteUnavailable(f"Zebra request failed: {exc}") from exc

        if response.status_code >= 400:
            raise RemoteUnavailable(
                f"Zebra API error {response.status_code}: {response.text}",
                status_code=response.status_code,
                response=response,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteUnavailable(
                "Failed to decode JSON response from Zebra API", status_code=response.status_code, response=response
            ) from exc
        if not isinstance(data, dict) or data.get("success") is not True:
            raise RemoteUnavailable("Zebra API request was not successful", status_code=response.status_code, response=response)
        return data

    @staticmethod
    def _list(data: Dict[str, Any]) -> List[Any]:
        payload = data.get("data")
        items = payload.get("list") if isinstance(payload, dict) else None
        if isinstance(items, dict):
            return list(items.values())
        if isinstance(items, list):
            return items
        return []

    @staticmethod
    def _query(params: Dict[str, Any]) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        for key, value in params.items():
            if value is None:
                continue
            if isinstance(value, (list, tuple, set)):
                query[f"{key}[]"] = list(value)
            else:
                query[key] = value
        return query

    # ------------------------------------------------------------------
    # Projects and users
    # ------------------------------------------------------------------
    def fetch_projects(self) -> List[ProjectData]:
        data = self._request("GET", PROJECTS_URL, params={"statuses[]": list(PROJECT_STATUSES)})
        projects: List[ProjectData] = []
        for item in self._list(data):
            try:
                projects.append(ProjectData.model_validate(item))
            except ValidationError as exc:
                logger.warning("Ignoring malformed project record: %s", exc)
        return projects

    def fetch_user(self, user_id: int) -> UserData:
        data = self._request("GET", f"{USERS_URL}/{user_id}")
        payload = data.get("data")
        if not isinstance(payload, dict) or not isinstance(payload.get("user"), dict):
            raise RemoteUnavailable("User data not found in API response")
        try:
            return UserData.from_response(payload)
        except ValidationError as exc:
            raise RemoteUnavailable(f"Malformed user data: {exc}") from exc

    # ------------------------------------------------------------------
    # Timesheets
    # ------------------------------------------------------------------
    def fetch_timesheets(self, start: dt.date, end: dt.date, **filters: Any) -> List[TimesheetData]:
        params = self._query({"start_date": start.isoformat(), "end_date": end.isoformat(), **filters})
        data = self._request("GET", TIMESHEETS_URL, params=params)
        timesheets: Dict[int, TimesheetData] = {}
        for item in self._list(data):
            try:
                record = TimesheetData.model_validate(item)
            except ValidationError as exc:
                logger.warning("Ignoring malformed timesheet record: %s", exc)
                continue
            timesheets[record.id] = record
        return list(timesheets.values())

    def fetch_timesheet(self, remote_id: int) -> TimesheetData:
        data = self._request("GET", f"{TIMESHEETS_URL}/{remote_id}")
        payload = data.get("data")
        if isinstance(payload, dict) and isinstance(payload.get("timesheet"), dict):
            payload = payload["timesheet"]
        if not isinstance(payload, dict):
            raise RemoteUnavailable("Timesheet data not found in API response")
        try:
            return TimesheetData.model_validate(payload)
        except ValidationError as exc:
            raise RemoteUnavailable(f"Malformed timesheet data: {exc}") from exc

    def create_timesheet(self, payload: TimesheetPayload) -> Optional[int]:
        """Create a timesheet and return its id when the response carries one."""
        data = self._request("POST", TIMESHEETS_URL, params=self._query(payload.as_query()))
        return self._extract_id(data.get("data"))

    def update_timesheet(self, remote_id: int, payload: TimesheetPayload) -> None:
        self._request("PUT", f"{TIMESHEETS_URL}/{remote_id}", params=self._query(payload.as_query()))

    def delete_timesheet(self, remote_id: int) -> None:
        self._request("DELETE", f"{TIMESHEETS_URL}/{remote_id}")

    @staticmethod
    def _extract_id(payload: Any) -> Optional[int]:
        if isinstance(payload, dict):
            timesheet = payload.get("timesheet")
            if isinstance(timesheet, dict) and timesheet.get("id") is not None:
                return int(timesheet["id"])
            if payload.get("id") is not None:
                return int(payload["id"])
            return None
        if isinstance(payload, int) and not isinstance(payload, bool):
            return payload
        if isinstance(payload, str) and payload.isdigit():
            return int(payload)
        return None


__all__ = ["ZebraApiClient"]
