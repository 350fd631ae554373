from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from .entity_key import EntityKey
from .errors import FrameAlreadyStarted, InvalidOperation, InvalidTime, NotFound
from .models import Activity, Frame, Role
from .storage import JsonFileStorage
from .utils import utcnow

logger = logging.getLogger(__name__)

FRAMES_FILENAME = "frames.json"


class FrameRepository:
    """Persists closed frames and the single running ("current") frame.

    Both live in one document, ``{"frames": [...], "current": {...} | null}``, so that moving
    the current frame into the collection is a single atomic file replacement.
    """

    def __init__(self, data_dir: Path, clock: Callable[[], dt.datetime] = utcnow) -> None:
        self._storage = JsonFileStorage(Path(data_dir) / FRAMES_FILENAME)
        self._clock = clock

    # ------------------------------------------------------------------
    # Storage helpers
    # ------------------------------------------------------------------
    def _load(self) -> Dict[str, Any]:
        data = self._storage.read(default=None)
        if not isinstance(data, dict):
            return {"frames": {}, "current": None}
        frames: Dict[str, Dict[str, Any]] = {}
        for record in data.get("frames") or []:
            if isinstance(record, dict) and record.get("uuid"):
                frames[record["uuid"]] = record
        current = data.get("current")
        return {"frames": frames, "current": current if isinstance(current, dict) else None}

    def _store(self, state: Dict[str, Any]) -> None:
        records = sorted(state["frames"].values(), key=lambda item: (item.get("start") or "", item["uuid"]))
        self._storage.write({"frames": records, "current": state["current"]})

    @staticmethod
    def _decode(record: Dict[str, Any]) -> Optional[Frame]:
        try:
            return Frame.from_dict(record)
        except (KeyError, TypeError, ValueError, InvalidOperation, InvalidTime) as exc:
            logger.warning("Skipping unreadable frame record %s: %s", record.get("uuid"), exc)
            return None

    # ------------------------------------------------------------------
    # Current frame slot
    # ------------------------------------------------------------------
    def get_current(self) -> Optional[Frame]:
        record = self._load()["current"]
        if record is None:
            return None
        return self._decode(record)

    def has_current(self) -> bool:
        return self._load()["current"] is not None

    def save_current(self, frame: Frame) -> None:
        if not frame.is_active:
            raise InvalidOperation("Only a running frame can be stored as the current frame")
        if frame.start > self._clock():
            raise InvalidTime(f"Cannot start a frame in the future ({frame.start.isoformat()})")
        state = self._load()
        current = state["current"]
        if current is not None and current.get("uuid") != frame.uuid:
            raise FrameAlreadyStarted(
                f"Frame {current.get('uuid')} is already running; stop or cancel it first"
            )
        state["current"] = frame.to_dict()
        self._store(state)

    def clear_current(self) -> None:
        state = self._load()
        if state["current"] is None:
            return
        state["current"] = None
        self._store(state)

    def complete_current(self, stop: dt.datetime) -> Frame:
        state = self._load()
        record = state["current"]
        if record is None:
            raise InvalidOperation("There is no current frame to complete")
        closed = Frame.from_dict(record).with_stop_time(stop, updated_at=self._clock())
        state["frames"][closed.uuid] = closed.to_dict()
        state["current"] = None
        self._store(state)
        return closed

    # ------------------------------------------------------------------
    # Frame collection
    # ------------------------------------------------------------------
    def save(self, frame: Frame) -> None:
        if frame.is_active:
            raise InvalidOperation("Running frames must be stored through save_current()")
        state = self._load()
        state["frames"][frame.uuid] = frame.to_dict()
        self._store(state)

    def update(self, frame: Frame) -> Frame:
        """Replace a stored frame, keeping the current slot consistent."""
        state = self._load()
        current = state["current"]
        is_current = current is not None and current.get("uuid") == frame.uuid
        if frame.uuid not in state["frames"] and not is_current:
            raise NotFound(f"Frame {frame.uuid} not found")

        if frame.is_active:
            if not is_current:
                raise InvalidOperation("Only the current frame may be left without a stop time")
            state["current"] = frame.to_dict()
        else:
            if is_current:
                state["current"] = None
            state["frames"][frame.uuid] = frame.to_dict()
        self._store(state)
        return frame

    def remove(self, frame_uuid: str) -> Frame:
        state = self._load()
        current = state["current"]
        record = state["frames"].pop(frame_uuid, None)
        if current is not None and current.get("uuid") == frame_uuid:
            record = record or current
            state["current"] = None
        if record is None:
            raise NotFound(f"Frame {frame_uuid} not found")
        self._store(state)
        return Frame.from_dict(record)

    def get(self, frame_uuid: str) -> Optional[Frame]:
        state = self._load()
        record = state["frames"].get(frame_uuid)
        if record is None and state["current"] is not None and state["current"].get("uuid") == frame_uuid:
            record = state["current"]
        return self._decode(record) if record else None

    def all(self) -> List[Frame]:
        frames = [self._decode(record) for record in self._load()["frames"].values()]
        return sorted((frame for frame in frames if frame is not None), key=lambda frame: frame.start)

    def get_by_date_range(self, start: dt.datetime, end: dt.datetime) -> List[Frame]:
        return [frame for frame in self.all() if start <= frame.start <= end]

    def filter(
        self,
        project_ids: Optional[Iterable[int]] = None,
        issue_keys: Optional[Iterable[str]] = None,
        ignore_project_ids: Optional[Iterable[int]] = None,
        ignore_issue_keys: Optional[Iterable[str]] = None,
        start: Optional[dt.datetime] = None,
        end: Optional[dt.datetime] = None,
        include_partial: bool = False,
    ) -> List[Frame]:
        projects = set(project_ids or [])
        issues = set(issue_keys or [])
        ignored_projects = set(ignore_project_ids or [])
        ignored_issues = set(ignore_issue_keys or [])
        now = self._clock()

        def remote_project_id(frame: Frame) -> Optional[int]:
            key = frame.activity.project_key
            return int(key.id) if key.is_remote else None

        result: List[Frame] = []
        for frame in self.all():
            project_id = remote_project_id(frame)
            frame_issues = set(frame.issue_keys)
            if projects and project_id not in projects:
                continue
            if ignored_projects and project_id in ignored_projects:
                continue
            if issues and not issues & frame_issues:
                continue
            if ignored_issues and ignored_issues & frame_issues:
                continue
            effective_stop = frame.effective_stop(now)
            if include_partial:
                if end is not None and frame.start > end:
                    continue
                if start is not None and effective_stop < start:
                    continue
            else:
                if start is not None and frame.start < start:
                    continue
                if end is not None and effective_stop > end:
                    continue
            result.append(frame)
        return result

    # ------------------------------------------------------------------
    # Lookups used by Track and the activity repository
    # ------------------------------------------------------------------
    def last_closed(self) -> Optional[Frame]:
        now = self._clock()
        candidates = [frame for frame in self.all() if frame.stop is not None and frame.stop <= now]
        if not candidates:
            return None
        return max(candidates, key=lambda frame: frame.start)

    def last_role_for_activity(self, activity_key: EntityKey) -> Optional[Role]:
        for frame in reversed(self.all()):
            if frame.activity.key == activity_key and frame.role is not None:
                return frame.role
        return None

    def last_activity_for_issue_keys(self, issue_keys: Iterable[str]) -> Optional[Activity]:
        wanted = set(issue_keys)
        if not wanted:
            return None
        for frame in reversed(self.all()):
            if wanted & set(frame.issue_keys):
                return frame.activity
        return None

    def get_by_activity(self, activity_key: EntityKey) -> List[Frame]:
        frames = [frame for frame in self.all() if frame.activity.key == activity_key]
        current = self.get_current()
        if current is not None and current.activity.key == activity_key:
            frames.append(current)
        return frames

    def remove_by_activity(self, activity_key: EntityKey) -> int:
        state = self._load()
        removed = [
            frame_uuid
            for frame_uuid, record in state["frames"].items()
            if EntityKey.from_dict(record["activity"]["key"]) == activity_key
        ]
        for frame_uuid in removed:
            del state["frames"][frame_uuid]
        current = state["current"]
        if current is not None and EntityKey.from_dict(current["activity"]["key"]) == activity_key:
            state["current"] = None
            removed.append(current["uuid"])
        if removed:
            self._store(state)
            logger.info("Removed %d frame(s) of activity %s", len(removed), activity_key)
        return len(removed)


__all__ = ["FrameRepository", "FRAMES_FILENAME"]
