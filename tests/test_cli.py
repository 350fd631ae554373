from __future__ import annotations

import datetime as dt
import logging

import pytest

from zebratrack import cli
from zebratrack.context import build_context
from zebratrack.errors import InvalidTime


@pytest.fixture(autouse=True)
def fake_context(monkeypatch, fake_api):
    monkeypatch.setattr(cli, "build_context", lambda settings: build_context(settings, api=fake_api))
    yield
    logger = logging.getLogger("zebratrack")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def run(settings, *argv):
    return cli.main(list(argv), settings=settings)


def test_parse_time_accepts_clock_and_iso():
    day = dt.date(2024, 1, 15)
    assert cli.parse_time("09:30", "Europe/Zurich", today=day) == dt.datetime(2024, 1, 15, 8, 30, tzinfo=dt.timezone.utc)
    assert cli.parse_time("2024-07-01T12:00", "Europe/Zurich") == dt.datetime(2024, 7, 1, 10, 0, tzinfo=dt.timezone.utc)
    assert cli.parse_time("2024-07-01T12:00+00:00", "Europe/Zurich").hour == 12
    with pytest.raises(InvalidTime):
        cli.parse_time("later", "Europe/Zurich")


def test_start_status_stop(settings, capsys):
    assert run(settings, "start", "dev", "ZEB-1", "review") == 0
    assert "Started Development" in capsys.readouterr().out

    assert run(settings, "status") == 0
    assert "ZEB-1 review" in capsys.readouterr().out

    assert run(settings, "stop") == 0
    assert "Stopped Development" in capsys.readouterr().out

    assert run(settings, "status") == 0
    assert "No frame started." in capsys.readouterr().out


def test_errors_print_code_and_exit_one(settings, capsys):
    assert run(settings, "stop") == 1
    assert "error[no_frame_started]" in capsys.readouterr().err

    assert run(settings, "start", "unknown-alias") == 1
    assert "error[not_found]" in capsys.readouterr().err

    assert run(settings, "start", "dev") == 0
    assert run(settings, "start", "dev") == 1
    assert "error[frame_already_started]" in capsys.readouterr().err


def test_add_frames_and_timesheet_workflow(settings, fake_api, capsys):
    assert run(settings, "add", "dev", "ZEB-3", "--from", "2024-05-06T09:00", "--to", "2024-05-06T10:30") == 0
    assert run(settings, "add", "_meet", "standup", "--individual", "--from", "2024-05-06T11:00", "--to", "2024-05-06T11:10") == 0
    capsys.readouterr()

    assert run(settings, "frames", "--date", "2024-05-06") == 0
    out = capsys.readouterr().out
    assert "ZEB-3" in out and "standup" in out

    assert run(settings, "timesheet", "create-from-frames", "--date", "2024-05-06") == 0
    assert capsys.readouterr().out.count("Created:") == 2

    assert run(settings, "timesheet", "push", "--date", "2024-05-06") == 0
    assert capsys.readouterr().out.count("Pushed:") == 2
    assert sorted(record["time"] for record in fake_api.timesheets.values()) == [0.25, 1.5]

    assert run(settings, "timesheet", "list", "--date", "2024-05-06") == 0
    assert "zebra:1000" in capsys.readouterr().out


def test_timesheet_merge_and_delete(settings, capsys):
    run(settings, "add", "dev", "design", "--from", "2024-05-06T09:00", "--to", "2024-05-06T09:30")
    run(settings, "add", "dev", "ZEB-8", "--from", "2024-05-06T10:00", "--to", "2024-05-06T10:45")
    run(settings, "timesheet", "create-from-frames", "--date", "2024-05-06")
    ctx = build_context(settings)
    uuids = [item.uuid for item in ctx.local_timesheets.all()]
    capsys.readouterr()

    assert run(settings, "timesheet", "merge", *uuids) == 0
    assert "Merged into:" in capsys.readouterr().out
    (merged,) = ctx.local_timesheets.all()
    assert merged.time == 1.25

    assert run(settings, "timesheet", "delete", merged.uuid, "--force") == 0
    assert ctx.local_timesheets.all() == []


def test_invalid_date_is_reported(settings, capsys):
    assert run(settings, "frames", "--date", "06.05.2024") == 1
    assert "error[invalid_time]" in capsys.readouterr().err


def test_local_project_and_activity_management(settings, capsys):
    assert run(settings, "projects", "add", "Side project", "-d", "Evenings") == 0
    assert "Name: Side project" in capsys.readouterr().out

    assert run(settings, "projects", "list", "--local") == 0
    out = capsys.readouterr().out
    assert "Side project (local:" in out
    assert "Website" not in out

    assert run(settings, "projects", "edit", "side", "--name", "Side work") == 0
    assert "Name: Side work" in capsys.readouterr().out

    assert run(settings, "activities", "add", "Reading", "--project", "Side work", "--alias", "read") == 0
    assert run(settings, "activities", "alias", "read", "books") == 0
    assert run(settings, "activities", "edit", "books", "--description", "Papers") == 0
    assert "Description: Papers" in capsys.readouterr().out

    assert run(settings, "activities", "list") == 0
    out = capsys.readouterr().out
    assert "Side work - Reading (books)" in out
    assert "Website - Development (dev)" in out

    assert run(settings, "activities", "edit", "dev", "--name", "Coding") == 1
    assert "error[invalid_operation]" in capsys.readouterr().err


def test_delete_activity_and_project_cascade(settings, capsys):
    run(settings, "projects", "add", "Side project")
    run(settings, "activities", "add", "Reading", "--project", "Side project", "--alias", "read")
    assert run(settings, "add", "read", "chapter 3", "--from", "2024-05-06T09:00", "--to", "2024-05-06T10:00") == 0
    capsys.readouterr()

    assert run(settings, "delete-project", "Side project", "--force") == 1
    assert "error[invalid_operation]" in capsys.readouterr().err
    assert run(settings, "delete-activity", "read", "--force") == 1
    assert "error[invalid_operation]" in capsys.readouterr().err

    assert run(settings, "delete-activity", "read", "--cascade", "--force") == 0
    assert "deleted frame" in capsys.readouterr().out
    ctx = build_context(settings)
    assert ctx.frames.all() == []

    assert run(settings, "delete-project", "Side project", "--force") == 0
    assert ctx.projects.local.all() == []
    assert run(settings, "delete-project", "Side project", "--force") == 1
    assert "error[not_found]" in capsys.readouterr().err


def test_timesheet_create_by_hand(settings, capsys):
    assert run(settings, "timesheet", "create", "dev", "Release", "1.5", "--date", "2024-05-06", "-c", "Client work") == 0
    assert run(settings, "timesheet", "create", "_meet", "Standup", "0.25", "--date", "2024-05-06", "--individual") == 0
    assert capsys.readouterr().out.count("Created:") == 2

    ctx = build_context(settings)
    release, standup = sorted(ctx.local_timesheets.all(), key=lambda item: item.time, reverse=True)
    assert release.time == 1.5
    assert release.role.id == 7
    assert release.client_description == "Client work"
    assert release.remote_id is None
    assert standup.individual_action

    assert run(settings, "timesheet", "create", "dev", "Odd", "0.3") == 1
    assert "error[invalid_operation]" in capsys.readouterr().err
    run(settings, "projects", "add", "Side project")
    run(settings, "activities", "add", "Reading", "--project", "Side project", "--alias", "read")
    assert run(settings, "timesheet", "create", "read", "Local only", "1") == 1
    assert "error[invalid_operation]" in capsys.readouterr().err
    assert len(ctx.local_timesheets.all()) == 2
