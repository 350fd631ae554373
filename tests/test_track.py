from __future__ import annotations

import datetime as dt

import pytest

from zebratrack.errors import FrameAlreadyStarted, InvalidOperation, InvalidTime, NoFrameStarted, NotFound
from zebratrack.frames import FrameRepository
from zebratrack.models import INDIVIDUAL
from zebratrack.track import Track


def test_start_then_stop_after_an_hour(track, frames, remote_activity, developer, clock):
    started = track.start(remote_activity, "work", at=clock(), gap=True, is_individual=False, role=developer)
    assert track.is_started()
    assert track.get_current() == started

    stopped = track.stop(clock.advance(3600))
    assert stopped.duration() == 3600
    assert stopped.uuid == started.uuid
    assert not track.is_started()
    assert frames.all() == [stopped]


def test_frame_timestamps_follow_the_clock(track, frames, remote_activity, developer, clock):
    started = track.start(remote_activity, "work", role=developer)
    assert started.updated_at == clock()

    clock.advance(1800)
    stopped = track.stop()
    assert stopped.updated_at == clock()
    assert frames.get(stopped.uuid).updated_at == clock()

    added = track.add(remote_activity, clock() - dt.timedelta(hours=3), clock() - dt.timedelta(hours=2), role=developer)
    assert added.updated_at == clock()


def test_conflicting_start_keeps_first_frame(track, remote_activity, meeting_activity, developer):
    first = track.start(remote_activity, "first", role=developer)
    with pytest.raises(FrameAlreadyStarted):
        track.start(meeting_activity, "second", role=developer)
    assert track.get_current() == first


def test_only_one_frame_is_active_at_a_time(track, frames, remote_activity, developer, clock):
    for _ in range(3):
        track.start(remote_activity, role=developer)
        clock.advance(600)
        track.stop()
        clock.advance(60)
    track.start(remote_activity, role=developer)
    assert len(frames.all()) == 3
    assert all(frame.stop is not None for frame in frames.all())
    assert frames.get_current() is not None


def test_start_uses_default_role(track, remote_activity, developer):
    frame = track.start(remote_activity, "work")
    assert frame.assignment == developer


def test_start_without_any_role_fails(data_dir, clock, remote_activity):
    track = Track(FrameRepository(data_dir, clock=clock), clock=clock)
    with pytest.raises(InvalidOperation):
        track.start(remote_activity, "work")
    frame = track.start(remote_activity, "support", is_individual=True)
    assert frame.assignment is INDIVIDUAL


def test_start_in_the_future_fails(track, remote_activity, developer, clock):
    with pytest.raises(InvalidTime):
        track.start(remote_activity, at=clock() + dt.timedelta(minutes=1), role=developer)
    assert not track.is_started()


def test_start_before_previous_stop_fails_with_gap(track, remote_activity, developer, clock):
    track.start(remote_activity, at=clock() - dt.timedelta(hours=2), role=developer)
    previous = track.stop(clock() - dt.timedelta(hours=1))
    with pytest.raises(InvalidTime):
        track.start(remote_activity, at=previous.stop - dt.timedelta(minutes=5), role=developer)


def test_start_without_gap_continues_previous_frame(track, remote_activity, developer, clock):
    track.start(remote_activity, at=clock() - dt.timedelta(hours=2), role=developer)
    previous = track.stop(clock() - dt.timedelta(hours=1))
    frame = track.start(remote_activity, gap=False, role=developer)
    assert frame.start == previous.stop


def test_stop_validations(track, remote_activity, developer, clock):
    with pytest.raises(NoFrameStarted):
        track.stop()
    track.start(remote_activity, at=clock() - dt.timedelta(minutes=30), role=developer)
    with pytest.raises(InvalidTime):
        track.stop(clock() + dt.timedelta(minutes=1))
    with pytest.raises(InvalidTime):
        track.stop(clock() - dt.timedelta(hours=1))
    assert track.is_started()


def test_cancel_discards_current_frame(track, frames, remote_activity, developer):
    with pytest.raises(NoFrameStarted):
        track.cancel()
    frame = track.start(remote_activity, role=developer)
    assert track.cancel() == frame
    assert not track.is_started()
    assert frames.all() == []


def test_add_closed_frame(track, frames, remote_activity, developer, clock):
    frame = track.add(remote_activity, clock() - dt.timedelta(hours=2), clock() - dt.timedelta(hours=1), "ZEB-4", role=developer)
    assert frames.get(frame.uuid) == frame
    assert not track.is_started()
    with pytest.raises(InvalidTime):
        track.add(remote_activity, clock(), clock() - dt.timedelta(minutes=1), role=developer)
    with pytest.raises(InvalidTime):
        track.add(remote_activity, clock(), clock() + dt.timedelta(minutes=1), role=developer)


def test_restart_repeats_last_frame(track, remote_activity, lead, clock):
    with pytest.raises(NotFound):
        track.restart()
    track.start(remote_activity, "ZEB-5 refactor", at=clock() - dt.timedelta(hours=1), role=lead)
    previous = track.stop()
    frame = track.restart()
    assert frame.uuid != previous.uuid
    assert frame.activity == previous.activity
    assert frame.description == "ZEB-5 refactor"
    assert frame.assignment == lead
    assert frame.start == clock()
