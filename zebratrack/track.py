from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Optional

from .errors import FrameAlreadyStarted, InvalidOperation, InvalidTime, NoFrameStarted, NotFound
from .frames import FrameRepository
from .models import INDIVIDUAL, Activity, Frame, Role, RoleAssignment
from .utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

DefaultRoleProvider = Callable[[], Optional[Role]]


def _no_default_role() -> Optional[Role]:
    return None


class Track:
    """State machine around the current frame: Idle or Active."""

    def __init__(
        self,
        frames: FrameRepository,
        default_role: DefaultRoleProvider = _no_default_role,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self.frames = frames
        self._default_role = default_role
        self._clock = clock

    def is_started(self) -> bool:
        return self.frames.has_current()

    def get_current(self) -> Optional[Frame]:
        return self.frames.get_current()

    def _assignment(self, is_individual: bool, role: Optional[Role]) -> RoleAssignment:
        if is_individual:
            return INDIVIDUAL
        if role is None:
            role = self._default_role()
        if role is None:
            raise InvalidOperation("No role given and no default role configured (ZEBRA_DEFAULT_ROLE_ID)")
        return role

    def start(
        self,
        activity: Activity,
        description: Optional[str] = None,
        at: Optional[dt.datetime] = None,
        gap: bool = True,
        is_individual: bool = False,
        role: Optional[Role] = None,
    ) -> Frame:
        current = self.frames.get_current()
        if current is not None:
            raise FrameAlreadyStarted(
                f"A frame is already started (uuid={current.uuid}, start={current.start.isoformat()}, "
                f"activity={current.activity.name}). Stop or cancel it first."
            )

        now = self._clock()
        start_time = ensure_utc(at) if at is not None else now
        last = self.frames.last_closed()
        if not gap and last is not None and last.stop is not None:
            start_time = last.stop

        if start_time > now:
            raise InvalidTime(
                f"Cannot start a frame in the future (start={start_time.isoformat()}, now={now.isoformat()})"
            )
        if gap and last is not None and last.stop is not None and start_time < last.stop:
            raise InvalidTime(
                f"Cannot start a frame before the previous frame ends (start={start_time.isoformat()}, "
                f"previous stop={last.stop.isoformat()})"
            )

        frame = Frame.create(
            start_time, None, activity, self._assignment(is_individual, role), description or "", updated_at=now
        )
        self.frames.save_current(frame)
        logger.info("Started frame %s on %s at %s", frame.uuid, activity.key, start_time.isoformat())
        return frame

    def stop(self, at: Optional[dt.datetime] = None) -> Frame:
        current = self.frames.get_current()
        if current is None:
            raise NoFrameStarted("No frame is started. Start a frame before stopping.")

        now = self._clock()
        stop_time = ensure_utc(at) if at is not None else now
        if stop_time > now:
            raise InvalidTime(
                f"Cannot stop a frame in the future (stop={stop_time.isoformat()}, now={now.isoformat()})"
            )
        if stop_time < current.start:
            raise InvalidTime(
                f"Cannot stop a frame before it starts (stop={stop_time.isoformat()}, "
                f"start={current.start.isoformat()})"
            )

        frame = self.frames.complete_current(stop_time)
        logger.info("Stopped frame %s after %d seconds", frame.uuid, frame.duration())
        return frame

    def cancel(self) -> Frame:
        current = self.frames.get_current()
        if current is None:
            raise NoFrameStarted("No frame is started. Nothing to cancel.")
        self.frames.clear_current()
        logger.info("Cancelled frame %s", current.uuid)
        return current

    def add(
        self,
        activity: Activity,
        start: dt.datetime,
        stop: dt.datetime,
        description: Optional[str] = None,
        is_individual: bool = False,
        role: Optional[Role] = None,
    ) -> Frame:
        start_time = ensure_utc(start)
        stop_time = ensure_utc(stop)
        now = self._clock()
        if start_time > stop_time:
            raise InvalidTime(
                f"Cannot add a frame whose start is after its stop (start={start_time.isoformat()}, "
                f"stop={stop_time.isoformat()})"
            )
        if stop_time > now:
            raise InvalidTime(f"Cannot add a frame that ends in the future (stop={stop_time.isoformat()})")

        frame = Frame.create(
            start_time, stop_time, activity, self._assignment(is_individual, role), description or "", updated_at=now
        )
        self.frames.save(frame)
        logger.info("Added frame %s on %s", frame.uuid, activity.key)
        return frame

    def restart(
        self,
        frame_uuid: Optional[str] = None,
        at: Optional[dt.datetime] = None,
        gap: bool = True,
    ) -> Frame:
        """Start a new frame that repeats an earlier one (latest closed frame by default)."""
        if frame_uuid is not None:
            source = self.frames.get(frame_uuid)
            if source is None:
                raise NotFound(f"Frame {frame_uuid} not found")
        else:
            source = self.frames.last_closed()
            if source is None:
                raise NotFound("There is no previous frame to restart")
        return self.start(
            source.activity,
            source.description,
            at=at,
            gap=gap,
            is_individual=source.is_individual,
            role=source.role,
        )


__all__ = ["Track"]
