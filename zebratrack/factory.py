"""Turn a day's frames into billable timesheets."""

from __future__ import annotations

import datetime as dt
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .entity_key import EntityKey
from .frames import FrameRepository
from .models import INDIVIDUAL, Activity, Frame, RoleAssignment, Timesheet, most_common_role
from .timesheets import LocalTimesheetRepository
from .utils import day_bounds, local_date, unique

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Time entry"
MINIMUM_HOURS = 0.25


def round_hours(seconds: int, alias: Optional[str] = None) -> float:
    """Round to quarter hours: at least 0.25, down for ``_``-aliases, nearest otherwise."""
    hours = seconds / 3600
    if hours <= MINIMUM_HOURS:
        return MINIMUM_HOURS
    if alias and alias.startswith("_"):
        return math.floor(hours * 4) / 4
    # Round half up, not to even
    return math.floor(hours * 4 + 0.5) / 4


@dataclass
class FrameGroup:
    activity: Activity
    issue_keys: Tuple[str, ...]
    frames: List[Frame] = field(default_factory=list)

    @property
    def seconds(self) -> int:
        return sum(frame.duration() for frame in self.frames)

    @property
    def description(self) -> str:
        descriptions = unique(frame.description.strip() for frame in self.frames if frame.description.strip())
        return " ".join(descriptions) or DEFAULT_DESCRIPTION

    @property
    def assignment(self) -> RoleAssignment:
        if any(frame.is_individual for frame in self.frames):
            return INDIVIDUAL
        return most_common_role(self.frames) or INDIVIDUAL


def group_frames(frames: Iterable[Frame]) -> List[FrameGroup]:
    groups: Dict[Tuple[Tuple[str, ...], EntityKey], FrameGroup] = {}
    for frame in frames:
        issue_keys = tuple(sorted(frame.issue_keys))
        group_key = (issue_keys, frame.activity.key)
        if group_key not in groups:
            groups[group_key] = FrameGroup(activity=frame.activity, issue_keys=issue_keys)
        groups[group_key].frames.append(frame)
    return list(groups.values())


@dataclass
class FactoryResult:
    created: List[Timesheet] = field(default_factory=list)
    updated: List[Timesheet] = field(default_factory=list)
    skipped: List[FrameGroup] = field(default_factory=list)


class TimesheetFactory:
    def __init__(self, frames: FrameRepository, timesheets: LocalTimesheetRepository, timezone: str) -> None:
        self.frames = frames
        self.timesheets = timesheets
        self.timezone = timezone

    def frames_for_day(self, day: dt.date) -> List[Frame]:
        start, end = day_bounds(day, self.timezone)
        return [
            frame
            for frame in self.frames.get_by_date_range(start, end)
            if frame.stop is not None and local_date(frame.start, self.timezone) == day
        ]

    def from_frames(self, day: dt.date, frames: Optional[List[Frame]] = None, dry_run: bool = False) -> FactoryResult:
        result = FactoryResult()
        existing = self.timesheets.get_by_date_range(day, day)
        for group in group_frames(frames if frames is not None else self.frames_for_day(day)):
            if not group.activity.key.is_remote:
                logger.info("Skipping %d frame(s) of local activity %s", len(group.frames), group.activity.key)
                result.skipped.append(group)
                continue

            frame_uuids = [frame.uuid for frame in group.frames]
            duplicate = next((item for item in existing if set(item.frame_uuids) & set(frame_uuids)), None)
            if duplicate is not None:
                merged = tuple(unique(list(duplicate.frame_uuids) + frame_uuids))
                if merged == duplicate.frame_uuids:
                    result.skipped.append(group)
                    continue
                # Existing time and timestamp stay untouched
                updated = duplicate.with_changes(frame_uuids=merged, updated_at=duplicate.updated_at)
                if not dry_run:
                    self.timesheets.update(updated)
                existing = [updated if item.uuid == updated.uuid else item for item in existing]
                result.updated.append(updated)
                continue

            timesheet = Timesheet.create(
                group.activity,
                group.description,
                round_hours(group.seconds, group.activity.alias),
                day,
                group.assignment,
                frame_uuids=tuple(frame_uuids),
            )
            if not dry_run:
                self.timesheets.save(timesheet)
            existing.append(timesheet)
            result.created.append(timesheet)
            logger.info("Created timesheet %s (%.2fh) for %s", timesheet.uuid, timesheet.time, group.activity.name)
        return result


__all__ = ["FactoryResult", "FrameGroup", "TimesheetFactory", "group_frames", "round_hours"]
