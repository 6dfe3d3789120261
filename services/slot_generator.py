import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking_request import BookingRequest
from models.slot import Slot
from services import transaction
from services.errors import InvalidSchedule, NotFound, ScheduleConflict, SlotInUse
from services.slot_store import lock_technician

logger = logging.getLogger(__name__)

DEFAULT_MAX_GENERATION_DAYS = 92


def _overlaps(existing: List[Tuple[datetime, datetime]], start: datetime, end: datetime) -> bool:
    return any(s < end and e > start for s, e in existing)


def _validate_schedule(date_start, date_end, hour_start, hour_end, duration_minutes, weekdays):
    if not isinstance(date_start, date) or not isinstance(date_end, date):
        raise InvalidSchedule("date_start and date_end are required")
    if not isinstance(hour_start, time) or not isinstance(hour_end, time):
        raise InvalidSchedule("hour_start and hour_end are required")
    if hour_start >= hour_end:
        raise InvalidSchedule("hour_start must be before hour_end")
    if not isinstance(duration_minutes, int) or isinstance(duration_minutes, bool) or duration_minutes <= 0:
        raise InvalidSchedule("duration_minutes must be a positive integer")
    if date_end < date_start:
        raise InvalidSchedule("date_end must not be before date_start")

    max_days = current_app.config.get("MAX_SLOT_GENERATION_DAYS", DEFAULT_MAX_GENERATION_DAYS)
    if (date_end - date_start).days + 1 > max_days:
        raise InvalidSchedule(f"Cannot generate more than {max_days} days at once")

    if weekdays is not None and any(d not in range(7) for d in weekdays):
        raise InvalidSchedule("weekdays must be integers between 0 (Monday) and 6 (Sunday)")


def _flush_checked(technician_id: int, window_start: datetime, window_end: datetime) -> None:
    """Flush new slots, then re-read the window: a writer that did not take the lock is caught here."""
    try:
        db.session.flush()
    except IntegrityError:
        raise ScheduleConflict("Slot already exists for that technician and time", technician_id=technician_id)

    ranges = sorted(
        (start, end)
        for start, end in db.session.query(Slot.start_time, Slot.end_time)
        .filter(
            Slot.technician_id == technician_id,
            Slot.start_time < window_end,
            Slot.end_time > window_start,
        )
        .all()
    )
    for (_, prev_end), (next_start, _) in zip(ranges, ranges[1:]):
        if next_start < prev_end:
            raise ScheduleConflict("Slots overlap for this technician", technician_id=technician_id, at=next_start)


def _create_missing(technician_id, date_start, date_end, hour_start, hour_end, duration_minutes, weekdays) -> int:
    lock_technician(technician_id)

    window_start = datetime.combine(date_start, hour_start)
    window_end = datetime.combine(date_end, hour_end)
    existing = [
        (s.start_time, s.end_time)
        for s in Slot.query.filter(
            Slot.technician_id == technician_id,
            Slot.start_time < window_end,
            Slot.end_time > window_start,
        ).all()
    ]

    step = timedelta(minutes=duration_minutes)
    created = 0
    day = date_start
    while day <= date_end:
        if weekdays is None or day.weekday() in weekdays:
            cursor = datetime.combine(day, hour_start)
            day_end = datetime.combine(day, hour_end)
            # no partial trailing slot past the end of the daily window
            while cursor + step <= day_end:
                slot_end = cursor + step
                if not _overlaps(existing, cursor, slot_end):
                    db.session.add(Slot(technician_id=technician_id, start_time=cursor, end_time=slot_end))
                    existing.append((cursor, slot_end))
                    created += 1
                cursor = slot_end
        day += timedelta(days=1)

    _flush_checked(technician_id, window_start, window_end)
    return created


def generate_slots(
    technician_id: int,
    date_start: date,
    date_end: date,
    hour_start: time,
    hour_end: time,
    duration_minutes: int,
    weekdays: Optional[Iterable[int]] = None,
) -> int:
    """
    Create consecutive slots of ``duration_minutes`` for every day of
    [date_start, date_end] inside the daily window [hour_start, hour_end).

    Slots overlapping an existing slot of the technician are skipped, which
    makes re-running with the same parameters a no-op. Returns the number of
    newly created slots.
    """
    weekdays = set(weekdays) if weekdays is not None else None
    _validate_schedule(date_start, date_end, hour_start, hour_end, duration_minutes, weekdays)

    for attempt in (1, 2):
        try:
            with transaction():
                created = _create_missing(
                    technician_id, date_start, date_end, hour_start, hour_end, duration_minutes, weekdays
                )
        except ScheduleConflict:
            # another writer got there first; the second pass skips what it created
            if attempt == 1:
                logger.info("Slot generation for technician %s raced another writer, retrying", technician_id)
                continue
            logger.warning("Slot generation for technician %s lost the race twice", technician_id)
            raise

        logger.info(
            "Generated %s slot(s) for technician %s from %s to %s (%s-%s, %s min)",
            created, technician_id, date_start, date_end, hour_start, hour_end, duration_minutes,
        )
        return created


def create_slot(technician_id: int, start_time: datetime, end_time: datetime) -> Slot:
    if end_time <= start_time:
        raise InvalidSchedule("end_time must be after start_time")

    with transaction():
        lock_technician(technician_id)

        overlapping = Slot.query.filter(
            Slot.technician_id == technician_id,
            Slot.start_time < end_time,
            Slot.end_time > start_time,
        ).first()
        if overlapping:
            raise InvalidSchedule("This slot overlaps an existing slot", slot_id=overlapping.id)

        slot = Slot(technician_id=technician_id, start_time=start_time, end_time=end_time)
        db.session.add(slot)
        _flush_checked(technician_id, start_time, end_time)

    return slot


def delete_slot(slot_id: int) -> None:
    with transaction():
        slot = db.session.get(Slot, slot_id)
        if slot is None:
            raise NotFound("Slot not found", slot_id=slot_id)
        if slot.is_reserved:
            raise SlotInUse("Reserved slots cannot be deleted", slot_id=slot_id)
        referenced = BookingRequest.query.filter(BookingRequest.slot_id == slot_id).first()
        if referenced:
            raise SlotInUse("Slot is referenced by a booking request", slot_id=slot_id, request_id=referenced.id)
        db.session.delete(slot)
