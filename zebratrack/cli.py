from __future__ import annotations

import argparse
import datetime as dt
import logging
import sys
from dataclasses import replace
from typing import Any, Callable, Dict, Optional, Sequence

from .config import Settings, get_settings
from .context import AppContext, build_context
from .errors import InvalidOperation, InvalidTime, NotFound, ZebraError
from .frames import FrameRepository
from .logging_setup import setup_logging
from .models import INDIVIDUAL, Activity, Frame, Project, ProjectStatus, Role, RoleAssignment, Timesheet
from .utils import day_bounds, ensure_utc, utcnow, zone

logger = logging.getLogger(__name__)

Command = Callable[[argparse.Namespace, AppContext], int]


# ----------------------------------------------------------------------
# Parsing helpers
# ----------------------------------------------------------------------
def parse_time(value: str, tz_name: str, today: Optional[dt.date] = None) -> dt.datetime:
    """Accept ``HH:MM`` (today) or an ISO date-time; naive values are local time."""
    text = value.strip()
    tz = zone(tz_name)
    try:
        clock = dt.datetime.strptime(text, "%H:%M").time()
    except ValueError:
        try:
            parsed = dt.datetime.fromisoformat(text)
        except ValueError as exc:
            raise InvalidTime(f"Cannot parse time '{value}' (use HH:MM or YYYY-MM-DDTHH:MM)") from exc
        return ensure_utc(parsed, tz)
    day = today or utcnow().astimezone(tz).date()
    return ensure_utc(dt.datetime.combine(day, clock), tz)


def parse_day(args: argparse.Namespace, tz_name: str) -> dt.date:
    today = utcnow().astimezone(zone(tz_name)).date()
    if getattr(args, "yesterday", False):
        return today - dt.timedelta(days=1)
    if getattr(args, "date", None):
        try:
            return dt.date.fromisoformat(args.date)
        except ValueError as exc:
            raise InvalidTime(f"Invalid date '{args.date}' (use YYYY-MM-DD)") from exc
    return today


def confirm(question: str, assume: Optional[bool] = None) -> bool:
    if assume is not None:
        return assume
    if not sys.stdin.isatty():
        return False
    answer = input(f"{question} [y/N] ").strip().lower()
    return answer in {"y", "yes"}


def _role(ctx: AppContext, role_id: Optional[int]) -> Optional[Role]:
    if role_id is None:
        return None
    return ctx.users.find_role(role_id)


def _format_frame(frame: Frame, tz_name: str) -> str:
    tz = zone(tz_name)
    start = frame.start.astimezone(tz).strftime("%Y-%m-%d %H:%M")
    stop = frame.stop.astimezone(tz).strftime("%H:%M") if frame.stop else "running"
    minutes = frame.duration() // 60
    role = "individual" if frame.is_individual else frame.role.name if frame.role else "-"
    return f"{frame.uuid[:8]}  {start} - {stop}  {minutes:>4}m  {frame.activity.name} [{role}]  {frame.description}"


def _format_timesheet(timesheet: Timesheet) -> str:
    remote = str(timesheet.remote_id) if timesheet.remote_id is not None else "-"
    flag = " (no sync)" if timesheet.do_not_sync else ""
    return (
        f"{timesheet.uuid[:8]}  {timesheet.date.isoformat()}  {timesheet.time:>5.2f}h  "
        f"zebra:{remote}  {timesheet.activity.name}  {timesheet.description}{flag}"
    )


# ----------------------------------------------------------------------
# Frame commands
# ----------------------------------------------------------------------
def start_command(args: argparse.Namespace, ctx: AppContext) -> int:
    activity = ctx.activities.resolve(args.activity)
    at = parse_time(args.at, ctx.settings.timezone) if args.at else None
    frame = ctx.track.start(
        activity,
        " ".join(args.description),
        at=at,
        gap=not args.no_gap,
        is_individual=args.individual,
        role=_role(ctx, args.role),
    )
    print(f"Started {frame.activity.name} at {frame.start.astimezone(zone(ctx.settings.timezone)):%H:%M} ({frame.uuid[:8]})")
    return 0


def stop_command(args: argparse.Namespace, ctx: AppContext) -> int:
    at = parse_time(args.at, ctx.settings.timezone) if args.at else None
    frame = ctx.track.stop(at)
    print(f"Stopped {frame.activity.name}, tracked {frame.duration() // 60} minutes ({frame.uuid[:8]})")
    return 0


def cancel_command(args: argparse.Namespace, ctx: AppContext) -> int:
    frame = ctx.track.cancel()
    print(f"Cancelled {frame.activity.name} started at {frame.start.astimezone(zone(ctx.settings.timezone)):%H:%M}")
    return 0


def restart_command(args: argparse.Namespace, ctx: AppContext) -> int:
    at = parse_time(args.at, ctx.settings.timezone) if args.at else None
    frame = ctx.track.restart(_frame_uuid(ctx.frames, args.frame) if args.frame else None, at=at, gap=not args.no_gap)
    print(f"Restarted {frame.activity.name} ({frame.uuid[:8]})")
    return 0


def status_command(args: argparse.Namespace, ctx: AppContext) -> int:
    frame = ctx.track.get_current()
    if frame is None:
        print("No frame started.")
        return 0
    print(_format_frame(frame, ctx.settings.timezone))
    return 0


def add_command(args: argparse.Namespace, ctx: AppContext) -> int:
    activity = ctx.activities.resolve(args.activity)
    frame = ctx.track.add(
        activity,
        parse_time(args.start, ctx.settings.timezone),
        parse_time(args.stop, ctx.settings.timezone),
        " ".join(args.description),
        is_individual=args.individual,
        role=_role(ctx, args.role),
    )
    print(f"Added {frame.duration() // 60} minutes on {frame.activity.name} ({frame.uuid[:8]})")
    return 0


def _frame_uuid(frames: FrameRepository, prefix: str) -> str:
    if frames.get(prefix) is not None:
        return prefix
    matches = [frame.uuid for frame in frames.all() if frame.uuid.startswith(prefix)]
    if len(matches) != 1:
        raise NotFound(f"Frame '{prefix}' not found")
    return matches[0]


def remove_command(args: argparse.Namespace, ctx: AppContext) -> int:
    frame_uuid = _frame_uuid(ctx.frames, args.frame)
    if not confirm(f"Remove frame {frame_uuid[:8]}?", True if args.force else None):
        print("Nothing removed.")
        return 0
    ctx.frames.remove(frame_uuid)
    print(f"Removed frame {frame_uuid[:8]}")
    return 0


def frames_command(args: argparse.Namespace, ctx: AppContext) -> int:
    day = parse_day(args, ctx.settings.timezone)
    start, end = day_bounds(day, ctx.settings.timezone)
    for frame in ctx.frames.filter(start=start, end=end, include_partial=True):
        print(_format_frame(frame, ctx.settings.timezone))
    return 0


def refresh_command(args: argparse.Namespace, ctx: AppContext) -> int:
    count = ctx.projects.refresh()
    if ctx.settings.user_id is not None:
        ctx.users.current_user(refresh=True)
    print(f"Refreshed {count} project(s)")
    return 0


# ----------------------------------------------------------------------
# Project and activity commands
# ----------------------------------------------------------------------
def _format_project(project: Project) -> str:
    return f"{project.name} ({project.key})"


def _print_project(project: Project) -> None:
    print(f"Name: {project.name}")
    if project.description:
        print(f"Description: {project.description}")
    print(f"Status: {project.status.name.lower()}")


def _print_activity(activity: Activity) -> None:
    print(f"Activity: {activity.name} ({activity.key})")
    if activity.alias:
        print(f"Alias: {activity.alias}")
    if activity.description:
        print(f"Description: {activity.description}")


def projects_list_command(args: argparse.Namespace, ctx: AppContext) -> int:
    statuses = () if args.all else (ProjectStatus.ACTIVE,)
    projects = ctx.projects.local.all(statuses) if args.local else ctx.projects.all(statuses)
    if not projects:
        print("No projects found.")
    for project in projects:
        print(_format_project(project))
    return 0


def projects_add_command(args: argparse.Namespace, ctx: AppContext) -> int:
    project = ctx.projects.create(args.name, args.description or "", ProjectStatus(args.status))
    print(f"Created project {project.key}")
    _print_project(project)
    return 0


def projects_edit_command(args: argparse.Namespace, ctx: AppContext) -> int:
    project = ctx.projects.resolve_local(args.project)
    changes: Dict[str, Any] = {}
    if args.name is not None:
        if not args.name.strip():
            raise InvalidOperation("Project name cannot be empty")
        changes["name"] = args.name.strip()
    if args.description is not None:
        changes["description"] = args.description
    if args.status is not None:
        changes["status"] = ProjectStatus(args.status)
    if not changes:
        print("Nothing to change.")
        return 0
    updated = ctx.projects.update(replace(project, **changes))
    print(f"Updated project {updated.key}")
    _print_project(updated)
    return 0


def delete_project_command(args: argparse.Namespace, ctx: AppContext) -> int:
    project = ctx.projects.resolve_local(args.project)
    if project.activities and not args.cascade:
        names = ", ".join(f"{activity.name} ({activity.key})" for activity in project.activities)
        raise InvalidOperation(
            f"Project {project.name} has {len(project.activities)} activit(y/ies): {names}. "
            "Use --cascade to delete them and their frames too"
        )
    question = f"Delete project {project.name} ({project.key})?"
    if args.cascade and project.activities:
        question += " This also deletes its activities and their frames."
    if not confirm(question, True if args.force else None):
        print("Project deletion cancelled.")
        return 0
    ctx.projects.delete(project.key, force=args.cascade)
    print(f"Deleted project {project.name}")
    for activity in project.activities:
        print(f"  deleted activity {activity.name} ({activity.key})")
    return 0


def activities_list_command(args: argparse.Namespace, ctx: AppContext) -> int:
    projects = ctx.projects.local.all((ProjectStatus.ACTIVE,)) if args.local else ctx.projects.all()
    rows = sorted(
        ((project.name, activity) for project in projects for activity in project.activities),
        key=lambda row: (row[0].lower(), row[1].name.lower()),
    )
    if not rows:
        print("No activities found.")
    for project_name, activity in rows:
        alias = f" ({activity.alias})" if activity.alias else ""
        print(f"[{activity.key}] {project_name} - {activity.name}{alias}")
    return 0


def activities_add_command(args: argparse.Namespace, ctx: AppContext) -> int:
    project = ctx.projects.resolve_local(args.project)
    activity = ctx.activities.create(project.key, args.name, args.description or "", args.alias)
    print(f"Created activity in {project.name}")
    _print_activity(activity)
    return 0


def activities_edit_command(args: argparse.Namespace, ctx: AppContext) -> int:
    activity = ctx.activities.resolve(args.activity)
    changes: Dict[str, Any] = {}
    if args.name is not None:
        if not args.name.strip():
            raise InvalidOperation("Activity name cannot be empty")
        changes["name"] = args.name.strip()
    if args.description is not None:
        changes["description"] = args.description
    if args.alias is not None:
        changes["alias"] = args.alias or None
    if not changes:
        print("Nothing to change.")
        return 0
    updated = ctx.activities.update(replace(activity, **changes))
    print("Updated activity")
    _print_activity(updated)
    return 0


def activities_alias_command(args: argparse.Namespace, ctx: AppContext) -> int:
    activity = ctx.activities.resolve(args.activity)
    updated = ctx.activities.update(replace(activity, alias=args.alias or None))
    if updated.alias:
        print(f"Alias of {updated.name} is now '{updated.alias}'")
    else:
        print(f"Removed the alias of {updated.name}")
    return 0


def delete_activity_command(args: argparse.Namespace, ctx: AppContext) -> int:
    activity = ctx.activities.resolve(args.activity)
    if not activity.key.is_local:
        raise InvalidOperation(f"Only local activities may be deleted ({activity.key} comes from Zebra)")
    frames = ctx.frames.get_by_activity(activity.key)
    if frames and not args.cascade:
        raise InvalidOperation(
            f"Activity {activity.name} is used by {len(frames)} frame(s). Use --cascade to delete them too"
        )
    question = f"Delete activity {activity.name} ({activity.key})?"
    if frames:
        question += f" This also deletes {len(frames)} frame(s)."
    if not confirm(question, True if args.force else None):
        print("Activity deletion cancelled.")
        return 0
    ctx.activities.delete(activity.key, force=args.cascade)
    print(f"Deleted activity {activity.name}")
    for frame in frames:
        print(f"  deleted frame {_format_frame(frame, ctx.settings.timezone)}")
    return 0


# ----------------------------------------------------------------------
# Timesheet commands
# ----------------------------------------------------------------------
def timesheet_list_command(args: argparse.Namespace, ctx: AppContext) -> int:
    day = parse_day(args, ctx.settings.timezone)
    for timesheet in ctx.local_timesheets.get_by_date_range(day, day):
        print(_format_timesheet(timesheet))
    return 0


def timesheet_create_command(args: argparse.Namespace, ctx: AppContext) -> int:
    activity = ctx.activities.resolve(args.activity)
    day = parse_day(args, ctx.settings.timezone)
    try:
        time = float(args.time)
    except ValueError as exc:
        raise InvalidOperation(f"Time must be a number of hours, got '{args.time}'") from exc
    if not args.description.strip():
        raise InvalidOperation("Description cannot be empty")

    assignment: RoleAssignment
    if args.individual:
        assignment = INDIVIDUAL
    else:
        role = _role(ctx, args.role) or ctx.users.default_role()
        if role is None:
            raise InvalidOperation("Either --role must be given, a default role configured or --individual set")
        assignment = role

    timesheet = Timesheet.create(
        activity,
        args.description.strip(),
        time,
        day,
        assignment,
        client_description=(args.client_description or "").strip() or None,
    )
    ctx.local_timesheets.save(timesheet)
    print(f"Created: {_format_timesheet(timesheet)}")
    return 0


def timesheet_from_frames_command(args: argparse.Namespace, ctx: AppContext) -> int:
    day = parse_day(args, ctx.settings.timezone)
    result = ctx.factory.from_frames(day, dry_run=args.dry_run)
    prefix = "Would create" if args.dry_run else "Created"
    for timesheet in result.created:
        print(f"{prefix}: {_format_timesheet(timesheet)}")
    for timesheet in result.updated:
        print(f"Updated frames of: {_format_timesheet(timesheet)}")
    if not result.created and not result.updated:
        print("No new timesheets.")
    return 0


def timesheet_push_command(args: argparse.Namespace, ctx: AppContext) -> int:
    assume = True if args.force else None

    def confirm_overwrite(local: Timesheet, remote: Timesheet) -> bool:
        return confirm(
            f"Zebra timesheet {remote.remote_id} changed after your local copy "
            f"({remote.updated_at:%Y-%m-%d %H:%M} > {local.updated_at:%Y-%m-%d %H:%M}). Overwrite it?",
            assume,
        )

    if args.timesheet:
        timesheet = ctx.local_timesheets.require(args.timesheet)
        result = ctx.sync.push(timesheet, confirm=confirm_overwrite, force=args.force)
        if result is None:
            print("Nothing pushed.")
        else:
            print(f"Pushed: {_format_timesheet(result)}")
        return 0

    day = parse_day(args, ctx.settings.timezone)
    report = ctx.sync.push_all(day, day, confirm=confirm_overwrite, force=args.force)
    for timesheet in report.pushed:
        print(f"Pushed: {_format_timesheet(timesheet)}")
    for timesheet, error in report.failed:
        print(f"Failed: {timesheet.uuid[:8]}: {error}", file=sys.stderr)
    return 0 if report.ok else 1


def timesheet_pull_command(args: argparse.Namespace, ctx: AppContext) -> int:
    assume = True if args.force else None

    def ask_overwrite(local: Timesheet, remote: Timesheet) -> bool:
        return confirm(f"Local timesheet {local.uuid[:8]} changed after the Zebra copy. Overwrite local changes?")

    # Without a terminal the pull proceeds and only the warning is logged.
    confirm_overwrite = ask_overwrite if sys.stdin.isatty() else None

    if args.timesheet:
        timesheet = ctx.local_timesheets.require(args.timesheet)
        result = ctx.sync.pull_one(
            timesheet,
            confirm=confirm_overwrite,
            confirm_delete=lambda item: confirm(
                f"Zebra timesheet {item.remote_id} was deleted remotely. Delete the local copy?", assume
            ),
            force=args.force,
        )
        print("Pulled 1 timesheet." if result is not None else "Timesheet is already up to date.")
        return 0

    day = parse_day(args, ctx.settings.timezone)
    written = ctx.sync.pull(day, day, confirm=confirm_overwrite, force=args.force)
    for timesheet in written:
        print(f"Pulled: {_format_timesheet(timesheet)}")
    if not written:
        print("No timesheets were pulled (all are up to date).")
    return 0


def timesheet_merge_command(args: argparse.Namespace, ctx: AppContext) -> int:
    uuids = [ctx.local_timesheets.require(item).uuid for item in args.timesheets]
    merged = ctx.sync.merge(uuids)
    print(f"Merged into: {_format_timesheet(merged)}")
    return 0


def timesheet_delete_command(args: argparse.Namespace, ctx: AppContext) -> int:
    timesheet = ctx.local_timesheets.require(args.timesheet)
    if not confirm(f"Delete timesheet {timesheet.uuid[:8]} locally?", True if args.force else None):
        print("Deletion cancelled.")
        return 0

    def confirm_remote(remote_id: int) -> bool:
        return confirm(f"Also delete Zebra timesheet {remote_id}?", True if args.force else None)

    result = ctx.sync.delete(timesheet, confirm_remote=confirm_remote if args.remote else None)
    if result.remote_deleted:
        print(f"Deleted Zebra timesheet {timesheet.remote_id}")
    if result.remote_error is not None:
        print(f"Warning: Zebra deletion failed: {result.remote_error}", file=sys.stderr)
    print("Timesheet deleted locally.")
    if timesheet.remote_id is not None and not result.remote_deleted:
        print("The Zebra copy still exists and will come back on the next pull.")
    return 0


# ----------------------------------------------------------------------
# Parser
# ----------------------------------------------------------------------
def _add_day_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--date", help="YYYY-MM-DD (default: today)")
    parser.add_argument("--yesterday", action="store_true")


def _add_role_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--individual", action="store_true", help="Book as individual action (no role)")
    parser.add_argument("--role", type=int, help="Zebra role id (default: configured default role)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="zebra", description="Track time locally and sync timesheets with Zebra.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    start_parser = subparsers.add_parser("start", help="Start tracking an activity")
    start_parser.add_argument("activity", help="Activity alias or key (local:<uuid> / zebra:<id>)")
    start_parser.add_argument("description", nargs="*")
    start_parser.add_argument("--at", help="Start time (HH:MM or ISO date-time)")
    start_parser.add_argument("--no-gap", action="store_true", help="Start where the previous frame stopped")
    _add_role_options(start_parser)
    start_parser.set_defaults(func=start_command)

    stop_parser = subparsers.add_parser("stop", help="Stop the current frame")
    stop_parser.add_argument("--at", help="Stop time (HH:MM or ISO date-time)")
    stop_parser.set_defaults(func=stop_command)

    cancel_parser = subparsers.add_parser("cancel", help="Discard the current frame")
    cancel_parser.set_defaults(func=cancel_command)

    restart_parser = subparsers.add_parser("restart", help="Start a new frame like a previous one")
    restart_parser.add_argument("frame", nargs="?", help="Frame uuid (default: last frame)")
    restart_parser.add_argument("--at")
    restart_parser.add_argument("--no-gap", action="store_true")
    restart_parser.set_defaults(func=restart_command)

    status_parser = subparsers.add_parser("status", help="Show the current frame")
    status_parser.set_defaults(func=status_command)

    add_parser = subparsers.add_parser("add", help="Add a finished frame")
    add_parser.add_argument("activity")
    add_parser.add_argument("description", nargs="*")
    add_parser.add_argument("--from", dest="start", required=True)
    add_parser.add_argument("--to", dest="stop", required=True)
    _add_role_options(add_parser)
    add_parser.set_defaults(func=add_command)

    frames_parser = subparsers.add_parser("frames", help="List frames of a day")
    _add_day_options(frames_parser)
    frames_parser.set_defaults(func=frames_command)

    remove_parser = subparsers.add_parser("remove", help="Remove a frame")
    remove_parser.add_argument("frame")
    remove_parser.add_argument("--force", "-f", action="store_true")
    remove_parser.set_defaults(func=remove_command)

    refresh_parser = subparsers.add_parser("refresh", help="Reload projects and roles from Zebra")
    refresh_parser.set_defaults(func=refresh_command)

    status_choices = [int(status) for status in ProjectStatus]

    projects_parser = subparsers.add_parser("projects", help="List projects or manage local projects")
    projects_subparsers = projects_parser.add_subparsers(dest="projects_command", required=True)

    projects_list = projects_subparsers.add_parser("list", help="List projects")
    projects_list.add_argument("--all", action="store_true", help="Include inactive projects")
    projects_list.add_argument("--local", "-l", action="store_true", help="Only local projects")
    projects_list.set_defaults(func=projects_list_command)

    projects_add = projects_subparsers.add_parser("add", help="Add a local project")
    projects_add.add_argument("name")
    projects_add.add_argument("--description", "-d")
    projects_add.add_argument("--status", "-s", type=int, choices=status_choices, default=int(ProjectStatus.ACTIVE))
    projects_add.set_defaults(func=projects_add_command)

    projects_edit = projects_subparsers.add_parser("edit", help="Edit a local project")
    projects_edit.add_argument("project", help="Project name or local key")
    projects_edit.add_argument("--name")
    projects_edit.add_argument("--description", "-d")
    projects_edit.add_argument("--status", "-s", type=int, choices=status_choices)
    projects_edit.set_defaults(func=projects_edit_command)

    delete_project = subparsers.add_parser("delete-project", help="Delete a local project")
    delete_project.add_argument("project", help="Project name or local key")
    delete_project.add_argument("--cascade", "-c", action="store_true", help="Also delete its activities and frames")
    delete_project.add_argument("--force", "-f", action="store_true", help="Do not ask for confirmation")
    delete_project.set_defaults(func=delete_project_command)

    activities_parser = subparsers.add_parser("activities", help="List activities or manage local activities")
    activities_subparsers = activities_parser.add_subparsers(dest="activities_command", required=True)

    activities_list = activities_subparsers.add_parser("list", help="List activities of active projects")
    activities_list.add_argument("--local", "-l", action="store_true", help="Only local activities")
    activities_list.set_defaults(func=activities_list_command)

    activities_add = activities_subparsers.add_parser("add", help="Add an activity to a local project")
    activities_add.add_argument("name")
    activities_add.add_argument("--project", "-p", required=True, help="Local project name or key")
    activities_add.add_argument("--description", "-d")
    activities_add.add_argument("--alias")
    activities_add.set_defaults(func=activities_add_command)

    activities_edit = activities_subparsers.add_parser("edit", help="Edit a local activity")
    activities_edit.add_argument("activity", help="Activity alias or key")
    activities_edit.add_argument("--name")
    activities_edit.add_argument("--description", "-d")
    activities_edit.add_argument("--alias", help="New alias (empty to remove)")
    activities_edit.set_defaults(func=activities_edit_command)

    activities_alias = activities_subparsers.add_parser("alias", help="Set or remove the alias of a local activity")
    activities_alias.add_argument("activity", help="Activity alias or key")
    activities_alias.add_argument("alias", nargs="?", default="", help="New alias (omit to remove)")
    activities_alias.set_defaults(func=activities_alias_command)

    delete_activity = subparsers.add_parser("delete-activity", help="Delete a local activity")
    delete_activity.add_argument("activity", help="Activity alias or key")
    delete_activity.add_argument("--cascade", "-c", action="store_true", help="Also delete its frames")
    delete_activity.add_argument("--force", "-f", action="store_true", help="Do not ask for confirmation")
    delete_activity.set_defaults(func=delete_activity_command)

    ts_parser = subparsers.add_parser("timesheet", help="Manage timesheets")
    ts_subparsers = ts_parser.add_subparsers(dest="timesheet_command", required=True)

    ts_list = ts_subparsers.add_parser("list", help="List local timesheets")
    _add_day_options(ts_list)
    ts_list.set_defaults(func=timesheet_list_command)

    ts_create = ts_subparsers.add_parser("create", help="Create a timesheet by hand")
    ts_create.add_argument("activity", help="Zebra activity alias or key")
    ts_create.add_argument("description")
    ts_create.add_argument("time", help="Hours, a multiple of 0.25")
    _add_day_options(ts_create)
    ts_create.add_argument("--client-description", "-c")
    _add_role_options(ts_create)
    ts_create.set_defaults(func=timesheet_create_command)

    ts_frames = ts_subparsers.add_parser("create-from-frames", help="Create timesheets from a day's frames")
    _add_day_options(ts_frames)
    ts_frames.add_argument("--dry-run", action="store_true")
    ts_frames.set_defaults(func=timesheet_from_frames_command)

    ts_push = ts_subparsers.add_parser("push", help="Push timesheets to Zebra")
    ts_push.add_argument("timesheet", nargs="?")
    _add_day_options(ts_push)
    ts_push.add_argument("--force", "-f", action="store_true", help="Overwrite newer Zebra data without asking")
    ts_push.set_defaults(func=timesheet_push_command)

    ts_pull = ts_subparsers.add_parser("pull", help="Pull timesheets from Zebra")
    ts_pull.add_argument("timesheet", nargs="?")
    _add_day_options(ts_pull)
    ts_pull.add_argument("--force", "-f", action="store_true", help="Overwrite local changes without warning")
    ts_pull.set_defaults(func=timesheet_pull_command)

    ts_merge = ts_subparsers.add_parser("merge", help="Merge local timesheets into one")
    ts_merge.add_argument("timesheets", nargs="+")
    ts_merge.set_defaults(func=timesheet_merge_command)

    ts_delete = ts_subparsers.add_parser("delete", help="Delete a timesheet")
    ts_delete.add_argument("timesheet")
    ts_delete.add_argument("--remote", action="store_true", help="Also delete the Zebra copy")
    ts_delete.add_argument("--force", "-f", action="store_true")
    ts_delete.set_defaults(func=timesheet_delete_command)

    return parser


def main(argv: Sequence[str] | None = None, settings: Optional[Settings] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = settings or get_settings()
    if args.verbose:
        settings = settings.model_copy(update={"log_level": "DEBUG"})
    setup_logging(settings)
    ctx = build_context(settings)
    command: Command = args.func
    try:
        return command(args, ctx)
    except ZebraError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error[{exc.code}]: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
