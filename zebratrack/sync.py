"""Reconcile local timesheets with the Zebra server.

Conflicts are decided on ``updated_at`` alone and only a strictly greater timestamp counts
as newer, so records whose timestamps tie never trigger a warning. A pull that proceeds
always leaves the local copy equal to the remote one.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Sequence, Tuple

from .errors import InvalidOperation, NotFound, RemoteUnavailable, ZebraError
from .models import Role, Timesheet
from .timesheets import LocalTimesheetRepository, ZebraTimesheetRepository
from .utils import is_quarter_hours, unique

logger = logging.getLogger(__name__)

MERGE_SEPARATOR = " | "

ConfirmConflict = Callable[[Timesheet, Timesheet], bool]
ConfirmRemoteDelete = Callable[[int], bool]
ConfirmLocalDelete = Callable[[Timesheet], bool]


def is_newer(candidate: dt.datetime, reference: dt.datetime) -> bool:
    return candidate > reference


def _role_id(timesheet: Timesheet) -> Optional[int]:
    role = timesheet.assignment
    return role.id if isinstance(role, Role) else None


@dataclass
class DeleteResult:
    timesheet: Timesheet
    remote_deleted: bool = False
    remote_error: Optional[ZebraError] = None


@dataclass
class SyncReport:
    pushed: List[Timesheet] = field(default_factory=list)
    skipped: List[Timesheet] = field(default_factory=list)
    failed: List[Tuple[Timesheet, ZebraError]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class TimesheetSyncService:
    def __init__(self, local: LocalTimesheetRepository, remote: ZebraTimesheetRepository) -> None:
        self.local = local
        self.remote = remote

    @staticmethod
    def _adopt(local: Timesheet, remote: Timesheet) -> Timesheet:
        """The remote state, keeping the local identity and provenance."""
        return replace(
            remote,
            uuid=local.uuid,
            frame_uuids=local.frame_uuids,
            do_not_sync=local.do_not_sync,
        )

    def _store(self, timesheet: Timesheet) -> Timesheet:
        if self.local.get(timesheet.uuid) is None:
            return self.local.save(timesheet)
        return self.local.update(timesheet)

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------
    def is_remote_newer(self, timesheet: Timesheet) -> bool:
        if timesheet.remote_id is None:
            return False
        remote = self.remote.get_by_remote_id(timesheet.remote_id)
        return remote is not None and is_newer(remote.updated_at, timesheet.updated_at)

    @staticmethod
    def is_local_newer(local: Timesheet, remote: Timesheet) -> bool:
        return is_newer(local.updated_at, remote.updated_at)

    def push(
        self,
        timesheet: Timesheet,
        confirm: Optional[ConfirmConflict] = None,
        force: bool = False,
    ) -> Optional[Timesheet]:
        """Send one timesheet to Zebra and store the server's version locally.

        Returns ``None`` when nothing was pushed: the record is flagged ``do_not_sync`` or the
        remote copy is newer and the overwrite was not confirmed.
        """
        if timesheet.do_not_sync:
            logger.info("Timesheet %s is marked do-not-sync; not pushing", timesheet.uuid)
            return None

        if timesheet.remote_id is None:
            def remember(remote_id: int) -> None:
                self._store(replace(timesheet, remote_id=remote_id))

            created = self.remote.create(timesheet, on_created=remember)
            result = self._store(self._adopt(timesheet, created))
            logger.info("Created Zebra timesheet %s from %s", result.remote_id, timesheet.uuid)
            return result

        current = self.remote.get_by_remote_id(timesheet.remote_id)
        if current is None:
            raise NotFound(f"Zebra timesheet {timesheet.remote_id} no longer exists; pull to resolve")
        adopted = self._adopt(timesheet, current)
        if adopted.same_content(timesheet):
            logger.debug("Timesheet %s is already up to date on Zebra", timesheet.uuid)
            return timesheet
        if adopted.same_content(replace(timesheet, updated_at=current.updated_at)):
            # Only the timestamp differs, e.g. after a create whose follow-up fetch failed
            logger.debug("Timesheet %s matches Zebra; taking the server timestamp", timesheet.uuid)
            return self._store(adopted)
        if not force and is_newer(current.updated_at, timesheet.updated_at):
            logger.warning(
                "Zebra timesheet %s was modified after the local version (remote %s, local %s)",
                timesheet.remote_id,
                current.updated_at.isoformat(),
                timesheet.updated_at.isoformat(),
            )
            if confirm is None or not confirm(timesheet, current):
                return None

        updated = self.remote.update(timesheet)
        result = self._store(self._adopt(timesheet, updated))
        logger.info("Updated Zebra timesheet %s from %s", result.remote_id, timesheet.uuid)
        return result

    def push_all(
        self,
        start: dt.date,
        end: Optional[dt.date] = None,
        confirm: Optional[ConfirmConflict] = None,
        force: bool = False,
    ) -> SyncReport:
        report = SyncReport()
        for timesheet in self.local.get_by_date_range(start, end or start):
            try:
                result = self.push(timesheet, confirm=confirm, force=force)
            except (RemoteUnavailable, NotFound) as exc:
                logger.warning("Failed to push timesheet %s: %s", timesheet.uuid, exc)
                report.failed.append((timesheet, exc))
                continue
            if result is None:
                report.skipped.append(timesheet)
            else:
                report.pushed.append(result)
        return report

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------
    def _apply_remote(
        self,
        local: Optional[Timesheet],
        remote: Timesheet,
        confirm: Optional[ConfirmConflict],
        force: bool,
    ) -> Optional[Timesheet]:
        if local is None:
            return remote
        merged = self._adopt(local, remote)
        if merged.same_content(local):
            return None
        if not force and self.is_local_newer(local, remote):
            logger.warning(
                "Local timesheet %s was modified after the Zebra version (local %s, remote %s); "
                "local changes will be overwritten",
                local.uuid,
                local.updated_at.isoformat(),
                remote.updated_at.isoformat(),
            )
            if confirm is not None and not confirm(local, remote):
                logger.info("Kept local changes of timesheet %s", local.uuid)
                return None
        return merged

    def pull(
        self,
        start: dt.date,
        end: Optional[dt.date] = None,
        confirm: Optional[ConfirmConflict] = None,
        force: bool = False,
    ) -> List[Timesheet]:
        """Copy Zebra timesheets dated ``start..end`` into the local store."""
        written: List[Timesheet] = []
        for remote in self.remote.get_by_date_range(start, end or start):
            local = self.local.get_by_remote_id(remote.remote_id) if remote.remote_id is not None else None
            result = self._apply_remote(local, remote, confirm, force)
            if result is not None:
                written.append(result)
        if written:
            self.local.save_many(written)
        logger.info("Pulled %d timesheet(s) for %s..%s", len(written), start, end or start)
        return written

    def pull_one(
        self,
        timesheet: Timesheet,
        confirm: Optional[ConfirmConflict] = None,
        confirm_delete: Optional[ConfirmLocalDelete] = None,
        force: bool = False,
    ) -> Optional[Timesheet]:
        """Refresh one synced timesheet; returns the written record or ``None``."""
        if timesheet.remote_id is None:
            raise InvalidOperation(f"Timesheet {timesheet.uuid} is not synced to Zebra; nothing to pull")
        remote = self.remote.get_by_remote_id(timesheet.remote_id)
        if remote is None:
            logger.warning("Zebra timesheet %s was deleted on the server", timesheet.remote_id)
            if confirm_delete is not None and confirm_delete(timesheet):
                self.local.remove(timesheet.uuid)
                logger.info("Removed local timesheet %s", timesheet.uuid)
            return None
        result = self._apply_remote(timesheet, remote, confirm, force)
        if result is not None:
            self.local.update(result)
        return result

    # ------------------------------------------------------------------
    # Delete and merge
    # ------------------------------------------------------------------
    def delete(
        self,
        timesheet: Timesheet,
        confirm_remote: Optional[ConfirmRemoteDelete] = None,
    ) -> DeleteResult:
        """Delete locally; remove the Zebra copy first when ``confirm_remote`` agrees.

        A failing remote delete is reported in the result and never blocks the local delete.
        """
        result = DeleteResult(timesheet=timesheet)
        if timesheet.remote_id is not None and confirm_remote is not None:
            try:
                result.remote_deleted = self.remote.delete(timesheet.remote_id, confirm_remote)
            except RemoteUnavailable as exc:
                logger.warning(
                    "Failed to delete Zebra timesheet %s, deleting locally anyway: %s", timesheet.remote_id, exc
                )
                result.remote_error = exc
        self.local.remove(timesheet.uuid)
        logger.info("Deleted local timesheet %s", timesheet.uuid)
        return result

    def merge(self, timesheet_uuids: Sequence[str]) -> Timesheet:
        resolved = [self.local.require(timesheet_uuid) for timesheet_uuid in timesheet_uuids]
        by_uuid = {item.uuid: item for item in resolved}
        timesheets = [by_uuid[timesheet_uuid] for timesheet_uuid in unique(item.uuid for item in resolved)]
        if len(timesheets) < 2:
            raise InvalidOperation("At least two distinct timesheets are needed for a merge")
        first = timesheets[0]

        if any(item.activity.key != first.activity.key for item in timesheets[1:]):
            raise InvalidOperation("All merged timesheets must use the same activity")
        if any(item.individual_action != first.individual_action for item in timesheets[1:]) or any(
            _role_id(item) != _role_id(first) for item in timesheets[1:]
        ):
            raise InvalidOperation("All merged timesheets must use the same role")

        total = sum(item.time for item in timesheets)
        if not is_quarter_hours(total):
            raise InvalidOperation(f"Merged time must be a positive multiple of 0.25 hours, got {total}")
        total = round(total * 4) / 4

        client_descriptions = [item.client_description for item in timesheets if item.client_description]
        merged = Timesheet(
            uuid=first.uuid,
            activity=first.activity,
            description=MERGE_SEPARATOR.join(item.description for item in timesheets),
            client_description=MERGE_SEPARATOR.join(client_descriptions) if client_descriptions else None,
            time=total,
            date=first.date,
            assignment=first.assignment,
            frame_uuids=tuple(unique(uuid for item in timesheets for uuid in item.frame_uuids)),
            remote_id=None,
            updated_at=min(item.updated_at for item in timesheets),
            do_not_sync=False,
        )
        self.local.save_many([merged], removed=[item.uuid for item in timesheets[1:]])

        orphaned = [item.remote_id for item in timesheets if item.remote_id is not None]
        if orphaned:
            logger.warning("Merged timesheets still exist on Zebra as %s; delete them there", orphaned)
        logger.info("Merged %d timesheet(s) into %s (%.2fh)", len(timesheets), merged.uuid, merged.time)
        return merged


__all__ = ["DeleteResult", "SyncReport", "TimesheetSyncService", "is_newer"]
