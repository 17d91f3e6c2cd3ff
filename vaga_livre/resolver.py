from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Protocol
from uuid import uuid4

from . import booking
from .models import ParkingSpot, Reservation


class ReservationError(str, Enum):
    INVALID_RANGE = "InvalidRange"
    NO_AVAILABILITY_DEFINED = "NoAvailabilityDefined"
    OUTSIDE_AVAILABILITY = "OutsideAvailability"
    CONFLICTING_RESERVATION = "ConflictingReservation"
    SPOT_NOT_FOUND = "SpotNotFound"
    NOT_FOUND = "NotFound"
    NOT_PERMITTED = "NotPermitted"


_ERROR_MESSAGES = {
    ReservationError.INVALID_RANGE: "Reservation end must be a valid instant later than its start.",
    ReservationError.NO_AVAILABILITY_DEFINED: "The owner has not defined any availability for this spot.",
    ReservationError.OUTSIDE_AVAILABILITY: "The requested period is outside the availability defined by the owner.",
    ReservationError.CONFLICTING_RESERVATION: "The requested period conflicts with an existing reservation.",
    ReservationError.SPOT_NOT_FOUND: "Parking spot not found.",
    ReservationError.NOT_FOUND: "Reservation not found.",
    ReservationError.NOT_PERMITTED: "You are not allowed to cancel this reservation.",
}


@dataclass(frozen=True)
class ReservationResult:
    ok: bool
    reservation: Reservation | None = None
    error: ReservationError | None = None
    message: str = ""

    @staticmethod
    def success(reservation: Reservation | None = None, message: str = "") -> "ReservationResult":
        return ReservationResult(ok=True, reservation=reservation, message=message)

    @staticmethod
    def failure(error: ReservationError) -> "ReservationResult":
        return ReservationResult(ok=False, error=error, message=_ERROR_MESSAGES[error])


class SpotLookup(Protocol):
    def get_spot_by_id(self, spot_id: str) -> ParkingSpot | None: ...


class ReservationStore(Protocol):
    def get_reservations_for_spot(self, spot_id: str) -> list[Reservation]: ...

    def get_reservation(self, reservation_id: str) -> Reservation | None: ...

    def append_reservation(self, reservation: Reservation) -> None: ...

    def remove_reservation(self, reservation_id: str) -> None: ...


class RoleCheck(Protocol):
    def is_manager(self, user_id: str) -> bool: ...


class ReservationResolver:
    """Decides whether a spot can be booked for a range and records bookings.

    Holds no state of its own between calls: spots, reservations and roles are
    read from the injected collaborators every time.

    The conflict check re-reads the store right before appending, which only
    narrows the lost-update window of a last-write-wins store. Two writers
    racing between that read and the append can still both succeed.
    """

    def __init__(
        self,
        spots: SpotLookup,
        reservations: ReservationStore,
        roles: RoleCheck,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.spots = spots
        self.reservations = reservations
        self.roles = roles
        self.clock: Callable[[], datetime] = clock or datetime.now

    def can_satisfy(self, spot: ParkingSpot, start: Any, end: Any) -> bool:
        try:
            requested_start, requested_end = _parse_range(start, end)
        except ValueError:
            return False
        return booking.can_satisfy(spot, requested_start, requested_end)

    def reserve(
        self,
        spot: ParkingSpot,
        start: Any,
        end: Any,
        requester_id: str,
        vehicle_plate: str | None = None,
    ) -> ReservationResult:
        try:
            requested_start, requested_end = _parse_range(start, end)
        except ValueError:
            return ReservationResult.failure(ReservationError.INVALID_RANGE)

        if not spot.availability:
            return ReservationResult.failure(ReservationError.NO_AVAILABILITY_DEFINED)

        if not booking.can_satisfy(spot, requested_start, requested_end):
            return ReservationResult.failure(ReservationError.OUTSIDE_AVAILABILITY)

        existing = self.reservations.get_reservations_for_spot(spot.spot_id)
        if booking.find_conflicts(requested_start, requested_end, existing):
            return ReservationResult.failure(ReservationError.CONFLICTING_RESERVATION)

        reservation = Reservation(
            reservation_id=str(uuid4()),
            spot_id=spot.spot_id,
            user_id=requester_id,
            start=requested_start,
            end=requested_end,
            vehicle_plate=vehicle_plate,
            created_at=self.clock(),
        )
        self.reservations.append_reservation(reservation)
        return ReservationResult.success(reservation, "Spot reserved.")

    def reserve_spot(
        self,
        spot_id: str,
        start: Any,
        end: Any,
        requester_id: str,
        vehicle_plate: str | None = None,
    ) -> ReservationResult:
        spot = self.spots.get_spot_by_id(spot_id)
        if spot is None:
            return ReservationResult.failure(ReservationError.SPOT_NOT_FOUND)
        return self.reserve(spot, start, end, requester_id, vehicle_plate=vehicle_plate)

    def cancel(self, reservation_id: str, requester_id: str) -> ReservationResult:
        reservation = self.reservations.get_reservation(reservation_id)
        if reservation is None:
            return ReservationResult.failure(ReservationError.NOT_FOUND)

        if reservation.user_id != requester_id and not self.roles.is_manager(requester_id):
            return ReservationResult.failure(ReservationError.NOT_PERMITTED)

        try:
            self.reservations.remove_reservation(reservation_id)
        except LookupError:
            # Removed by another writer after it was read.
            return ReservationResult.failure(ReservationError.NOT_FOUND)
        return ReservationResult.success(reservation, "Reservation cancelled.")


def _parse_range(start: Any, end: Any) -> tuple[datetime, datetime]:
    requested_start = booking.parse_instant(start)
    requested_end = booking.parse_instant(end)
    if requested_end <= requested_start:
        raise ValueError("end must be later than start")
    return requested_start, requested_end
