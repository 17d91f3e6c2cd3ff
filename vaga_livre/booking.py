from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any, Iterable

from .models import AvailabilitySlot, ParkingSpot, Reservation


def parse_instant(value: Any) -> datetime:
    """Coerce a datetime, a date or an ISO-8601 string into a naive datetime.

    Dates become midnight of that day. Aware datetimes are converted to local
    time before the tzinfo is dropped, so they compare with stored instants.
    Raises ValueError for anything else.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("instant must not be empty")
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as error:
            raise ValueError(f"invalid instant: {value!r}") from error
    else:
        raise ValueError(f"unsupported instant type: {type(value).__name__}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def has_time_overlap(new_start: datetime, new_end: datetime, exist_start: datetime, exist_end: datetime) -> bool:
    """Return True when two time intervals overlap.

    Intervals are treated as half-open ranges: [start, end)
    so touching boundaries (e.g. a stay ending on the 5th and one starting on the 5th) do not overlap.
    """
    if new_start >= new_end:
        raise ValueError("new_start must be earlier than new_end.")
    if exist_start >= exist_end:
        raise ValueError("exist_start must be earlier than exist_end.")

    return new_start < exist_end and new_end > exist_start


def find_conflicts(new_start: datetime, new_end: datetime, existing_reservations: Iterable[Reservation]) -> list[Reservation]:
    if new_start >= new_end:
        raise ValueError("new_start must be earlier than new_end.")

    return [
        reservation
        for reservation in existing_reservations
        if has_time_overlap(new_start, new_end, reservation.start, reservation.end)
    ]


def slot_bounds(slot: AvailabilitySlot) -> tuple[datetime, datetime]:
    """Return the half-open [open, close) window a slot covers on the calendar.

    A slot opens at its start instant. An end instant on exact midnight stands
    for the whole of that calendar day, so the window closes at the following
    midnight; any other end instant closes the window at that time.
    """
    close = slot.end
    if close.time() == time.min:
        close = close + timedelta(days=1)
    return slot.start, close


def slot_contains(slot: AvailabilitySlot, start: datetime, end: datetime) -> bool:
    """Day-level containment: the request must start and end on days the slot spans.

    Time-of-day bounds only apply on the slot's first day and, when its end is
    not midnight, on its last day. A request ending at midnight still ends on
    that later date, so it needs the slot to reach that date.
    """
    if start.date() < slot.start.date() or end.date() > slot.end.date():
        return False
    if start.date() == slot.start.date() and start < slot.start:
        return False
    if end.date() == slot.end.date() and slot.end.time() != time.min and end > slot.end:
        return False
    return True


def is_within_availability(start: datetime, end: datetime, slots: Iterable[AvailabilitySlot]) -> bool:
    return any(slot_contains(slot, start, end) for slot in slots)


def can_satisfy(spot: ParkingSpot, start: datetime, end: datetime) -> bool:
    """Return True if the spot is open for booking over [start, end)."""
    if not spot.is_available:
        return False
    if not spot.availability:
        return False
    if start >= end:
        return False
    return is_within_availability(start, end, spot.availability)


def iter_days(first: date, last: date) -> Iterable[date]:
    cursor = first
    while cursor <= last:
        yield cursor
        cursor += timedelta(days=1)


def _day_window(day: date) -> tuple[datetime, datetime]:
    day_start = datetime.combine(day, time.min)
    return day_start, day_start + timedelta(days=1)


def slot_days(slot: AvailabilitySlot) -> list[date]:
    slot_open, slot_close = slot_bounds(slot)
    last_day = (slot_close - timedelta(microseconds=1)).date()
    return list(iter_days(slot_open.date(), last_day))


def is_day_reserved(day: date, reservations: Iterable[Reservation]) -> bool:
    day_start, day_end = _day_window(day)
    return any(reservation.start < day_end and reservation.end > day_start for reservation in reservations)


def is_day_within_availability(day: date, slots: Iterable[AvailabilitySlot]) -> bool:
    return any(day in slot_days(slot) for slot in slots)


def is_day_bookable(spot: ParkingSpot, reservations: Iterable[Reservation], day: date, today: date) -> bool:
    """Calendar check for a single day: not past, offered by a slot, not reserved."""
    if day < today:
        return False
    if not spot.is_available or not spot.availability:
        return False
    if not is_day_within_availability(day, spot.availability):
        return False
    return not is_day_reserved(day, reservations)


def is_spot_fully_booked(spot: ParkingSpot, reservations: Iterable[Reservation]) -> bool:
    """Return True when every day offered by the spot's slots is already reserved.

    A spot with no slots is never reported as fully booked.
    """
    if not spot.availability:
        return False

    offered_days: set[date] = set()
    for slot in spot.availability:
        offered_days.update(slot_days(slot))
    if not offered_days:
        return False

    reservation_list = list(reservations)
    return all(is_day_reserved(day, reservation_list) for day in offered_days)
