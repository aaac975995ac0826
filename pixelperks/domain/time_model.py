"""Derived play-time arithmetic for stations and participants.

Nothing ticks. Every value is recomputed from absolute timestamps at read time:
a running timer stores `end_time`, a paused one stores the frozen
`remaining_time_on_pause`, and at most one of them is set.

Rule of thumb:
- OK: pure arithmetic on the entity fields and the supplied `now`.
- Not OK: datetime.now(), DB sessions, Redis.
"""

import math
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from pixelperks.models.schema_models import (
    ParticipantStatus,
    SessionParticipantSchema,
    StationSchema,
    StationStatus,
)


def seconds_between(start: datetime, end: datetime) -> int:
    """Whole seconds from start to end, floored, may be negative."""
    return math.floor((end - start).total_seconds())


def remaining(entity, now: datetime) -> int:
    """Remaining seconds on a station or participant timer."""
    if entity.remaining_time_on_pause is not None:
        return max(0, entity.remaining_time_on_pause)
    if entity.end_time is not None:
        return max(0, seconds_between(now, entity.end_time))
    return 0


def _has_timer(entity) -> bool:
    return entity.end_time is not None or entity.remaining_time_on_pause is not None


def _paused_status(entity):
    if isinstance(entity, StationSchema):
        return StationStatus.paused
    return ParticipantStatus.paused


def _running_status(entity):
    if isinstance(entity, StationSchema):
        return StationStatus.in_use
    return ParticipantStatus.active


def pause(entity, now: datetime):
    """Freeze the timer into `remaining_time_on_pause`.

    An entity without a timer keeps no frozen value, so it stays an open
    order after resuming.
    """
    frozen = remaining(entity, now) if _has_timer(entity) else None
    return entity.model_copy(
        update={
            "remaining_time_on_pause": frozen,
            "end_time": None,
            "status": _paused_status(entity),
        }
    )


def resume(entity, now: datetime):
    """Rebuild `end_time` from the frozen remainder."""
    end_time = None
    if entity.remaining_time_on_pause is not None:
        end_time = now + timedelta(seconds=entity.remaining_time_on_pause)
    return entity.model_copy(
        update={
            "remaining_time_on_pause": None,
            "end_time": end_time,
            "status": _running_status(entity),
        }
    )


def total_session_seconds(participant: SessionParticipantSchema) -> int:
    if participant.allotted_seconds is not None:
        return max(0, participant.allotted_seconds)
    if participant.start_time is not None and participant.end_time is not None:
        return max(0, seconds_between(participant.start_time, participant.end_time))
    return 0


def played_seconds(participant: SessionParticipantSchema, now: datetime) -> int:
    """Seconds of the current segment already used, never negative."""
    if not participant.has_timer:
        return 0
    return max(0, total_session_seconds(participant) - remaining(participant, now))


def _timed(participants: Iterable[SessionParticipantSchema]) -> List[SessionParticipantSchema]:
    return [p for p in participants if not p.is_finished and p.has_timer]


def timer_bounds(station: StationSchema, now: datetime) -> Tuple[Optional[int], Optional[int]]:
    """Return (soonest, latest) remaining seconds across timed participants."""
    values = [remaining(p, now) for p in _timed(station.members)]
    if not values:
        return None, None
    return min(values), max(values)


def latest_end_time(participants: Iterable[SessionParticipantSchema]) -> Optional[datetime]:
    """Station aggregate end: the latest end among non-finished participants."""
    ends = [p.end_time for p in participants if not p.is_finished and p.end_time is not None]
    return max(ends) if ends else None
