from __future__ import annotations

import datetime as dt
import json

import pytest

from zebratrack.errors import FrameAlreadyStarted, InvalidOperation, InvalidTime, NotFound
from zebratrack.frames import FRAMES_FILENAME
from zebratrack.models import INDIVIDUAL, Frame

UTC = dt.timezone.utc


def _closed(activity, role, start_hour, stop_hour, description=""):
    return Frame.create(
        dt.datetime(2024, 5, 6, start_hour, 0, tzinfo=UTC),
        dt.datetime(2024, 5, 6, stop_hour, 0, tzinfo=UTC),
        activity,
        role,
        description,
    )


def test_current_frame_lives_in_the_frames_document(frames, data_dir, remote_activity, developer, clock):
    frame = Frame.create(clock() - dt.timedelta(minutes=5), None, remote_activity, developer)
    frames.save_current(frame)

    stored = json.loads((data_dir / FRAMES_FILENAME).read_text(encoding="utf-8"))
    assert stored["current"]["uuid"] == frame.uuid
    assert stored["frames"] == []
    assert frames.get_current() == frame
    assert frames.has_current()


def test_second_current_frame_is_rejected(frames, remote_activity, developer, clock):
    first = Frame.create(clock(), None, remote_activity, developer)
    frames.save_current(first)
    with pytest.raises(FrameAlreadyStarted):
        frames.save_current(Frame.create(clock(), None, remote_activity, developer))
    assert frames.get_current() == first


def test_current_frame_cannot_start_in_the_future(frames, remote_activity, developer, clock):
    with pytest.raises(InvalidTime):
        frames.save_current(Frame.create(clock() + dt.timedelta(minutes=1), None, remote_activity, developer))


def test_closed_frames_cannot_be_current_and_running_frames_cannot_be_saved(frames, remote_activity, developer, clock):
    with pytest.raises(InvalidOperation):
        frames.save_current(_closed(remote_activity, developer, 6, 7))
    with pytest.raises(InvalidOperation):
        frames.save(Frame.create(clock(), None, remote_activity, developer))


def test_complete_current_moves_frame_into_collection(frames, remote_activity, developer, clock):
    frame = Frame.create(clock() - dt.timedelta(hours=1), None, remote_activity, developer)
    frames.save_current(frame)

    closed = frames.complete_current(clock())
    assert closed.uuid == frame.uuid
    assert closed.duration() == 3600
    assert frames.get_current() is None
    assert [item.uuid for item in frames.all()] == [frame.uuid]


def test_update_and_remove(frames, remote_activity, developer):
    frame = _closed(remote_activity, developer, 6, 7)
    frames.save(frame)

    changed = frames.update(frame.with_changes(description="ZEB-1 review"))
    assert frames.get(frame.uuid).description == "ZEB-1 review"
    assert changed.issue_keys == ["ZEB-1"]

    with pytest.raises(NotFound):
        frames.update(_closed(remote_activity, developer, 4, 5))
    with pytest.raises(InvalidOperation):
        frames.update(frame.with_stop_time(None))

    frames.remove(frame.uuid)
    assert frames.get(frame.uuid) is None
    with pytest.raises(NotFound):
        frames.remove(frame.uuid)


def test_filter_by_project_issue_and_range(frames, remote_activity, meeting_activity, local_activity, developer):
    review = _closed(remote_activity, developer, 5, 6, "ZEB-1 review")
    meeting = _closed(meeting_activity, INDIVIDUAL, 6, 7, "weekly")
    reading = _closed(local_activity, developer, 7, 9, "ZEB-2 notes")
    for frame in (review, meeting, reading):
        frames.save(frame)

    assert {f.uuid for f in frames.filter(project_ids=[10])} == {review.uuid, meeting.uuid}
    assert [f.uuid for f in frames.filter(issue_keys=["ZEB-2"])] == [reading.uuid]
    assert [f.uuid for f in frames.filter(ignore_issue_keys=["ZEB-1", "ZEB-2"])] == [meeting.uuid]
    assert {f.uuid for f in frames.filter(ignore_project_ids=[10])} == {reading.uuid}

    window_start = dt.datetime(2024, 5, 6, 6, 30, tzinfo=UTC)
    window_end = dt.datetime(2024, 5, 6, 8, 0, tzinfo=UTC)
    assert frames.filter(start=window_start, end=window_end) == []
    partial = frames.filter(start=window_start, end=window_end, include_partial=True)
    assert [f.uuid for f in partial] == [meeting.uuid, reading.uuid]


def test_last_closed_ignores_running_frame(frames, remote_activity, developer, clock):
    earlier = _closed(remote_activity, developer, 5, 6)
    later = _closed(remote_activity, developer, 6, 7)
    frames.save(later)
    frames.save(earlier)
    frames.save_current(Frame.create(clock(), None, remote_activity, developer))
    assert frames.last_closed() == later


def test_lookups_by_activity_and_issue(frames, remote_activity, meeting_activity, developer, lead, clock):
    frames.save(_closed(remote_activity, developer, 5, 6, "ZEB-9 bug"))
    frames.save(_closed(remote_activity, lead, 6, 7))
    frames.save_current(Frame.create(clock(), None, meeting_activity, INDIVIDUAL))

    assert frames.last_role_for_activity(remote_activity.key) == lead
    assert frames.last_activity_for_issue_keys(["ZEB-9"]) == remote_activity
    assert len(frames.get_by_activity(meeting_activity.key)) == 1

    assert frames.remove_by_activity(meeting_activity.key) == 1
    assert frames.get_current() is None
    assert frames.remove_by_activity(remote_activity.key) == 2
    assert frames.all() == []


def test_unreadable_records_are_skipped(frames, data_dir, remote_activity, developer):
    frame = _closed(remote_activity, developer, 5, 6)
    frames.save(frame)
    path = data_dir / FRAMES_FILENAME
    data = json.loads(path.read_text(encoding="utf-8"))
    data["frames"].append({"uuid": "broken", "start": "not a date"})
    path.write_text(json.dumps(data), encoding="utf-8")

    assert [item.uuid for item in frames.all()] == [frame.uuid]


def test_corrupt_file_raises(frames, data_dir):
    (data_dir / FRAMES_FILENAME).write_text("{not json", encoding="utf-8")
    with pytest.raises(InvalidOperation):
        frames.all()
