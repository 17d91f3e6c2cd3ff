from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable
from uuid import uuid4

from .booking import is_day_bookable, iter_days, parse_instant
from .models import (
    ROLE_MANAGER,
    ROLE_RESIDENT,
    SPOT_TYPES,
    STATUS_APPROVED,
    STATUS_DENIED,
    STATUS_PENDING,
    AvailabilitySlot,
    Condominium,
    ParkingSpot,
    Reservation,
    User,
)
from .yaml_store import VagaLivreRepositories

UNKNOWN_USER = "Unknown user"
UNKNOWN_SPOT = "Unknown spot"
UNKNOWN_LOCATION = "Unknown location"
UNKNOWN_CONDOMINIUM = "Unknown condominium"
MAX_CALENDAR_DAYS = 92


@dataclass(frozen=True)
class RentalHistoryEntry:
    reservation: Reservation
    user_name: str
    spot_number: str
    spot_location: str

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.reservation.to_dict(),
            "user_name": self.user_name,
            "spot_number": self.spot_number,
            "spot_location": self.spot_location,
        }


@dataclass(frozen=True)
class UserListing:
    user: User
    condominium_name: str | None

    def to_dict(self) -> dict[str, Any]:
        return {**self.user.to_dict(), "condominium_name": self.condominium_name}


def _require_text(value: Any, field_name: str) -> str:
    normalized = str(value).strip() if value is not None else ""
    if not normalized:
        raise ValueError(f"{field_name} must not be empty")
    return normalized


def _require_manager(repositories: VagaLivreRepositories, manager_id: str) -> User:
    manager = repositories.users.get_user_by_id(manager_id)
    if manager is None or not manager.is_manager:
        raise PermissionError("Only managers can perform this action.")
    return manager


def _require_owned_spot(repositories: VagaLivreRepositories, spot_id: str, owner_id: str) -> ParkingSpot:
    spot = repositories.spots.get_spot_by_id(spot_id)
    if spot is None:
        raise LookupError(f"spot_id not found: {spot_id}")
    if spot.owner_id != owner_id:
        raise PermissionError("Only the owner can change this spot.")
    return spot


def register_spot(
    repositories: VagaLivreRepositories,
    owner_id: str,
    number: str,
    spot_type: str,
    location: str,
    description: str | None = None,
) -> ParkingSpot:
    """Register a spot for its owner. New spots start available with no slots."""
    owner_id = _require_text(owner_id, "owner_id")
    if spot_type not in SPOT_TYPES:
        raise ValueError(f"spot_type must be one of: {', '.join(SPOT_TYPES)}")

    spot = ParkingSpot(
        spot_id=f"spot-{uuid4().hex[:12]}",
        number=_require_text(number, "number"),
        spot_type=spot_type,
        location=_require_text(location, "location"),
        is_available=True,
        owner_id=owner_id,
        availability=(),
        description=description.strip() if description and description.strip() else None,
    )
    return repositories.spots.add_spot(spot)


def build_slots(spot_id: str, raw_slots: Iterable[dict[str, Any]]) -> list[AvailabilitySlot]:
    """Turn submitted slot mappings into AvailabilitySlots.

    A missing ``end`` means a single-day slot. Date-only ends land on midnight,
    which the booking rules read as the whole of that day.
    """
    slots: list[AvailabilitySlot] = []
    for index, raw in enumerate(raw_slots):
        if not isinstance(raw, dict):
            raise ValueError(f"slot #{index + 1} must be a mapping")
        start = parse_instant(raw.get("start"))
        end = parse_instant(raw.get("end")) if raw.get("end") not in (None, "") else start
        is_recurring = bool(raw.get("is_recurring", False))
        pattern = raw.get("recurrence_pattern") if is_recurring else None
        slot_id = str(raw.get("slot_id") or f"slot-{uuid4().hex[:12]}")
        slots.append(
            AvailabilitySlot(
                slot_id=slot_id,
                spot_id=spot_id,
                start=start,
                end=end,
                is_recurring=is_recurring,
                recurrence_pattern=str(pattern) if pattern else None,
            )
        )
    return slots


def set_spot_availability(
    repositories: VagaLivreRepositories,
    spot_id: str,
    owner_id: str,
    raw_slots: Iterable[dict[str, Any]],
) -> ParkingSpot:
    spot = _require_owned_spot(repositories, spot_id, owner_id)
    slots = build_slots(spot.spot_id, raw_slots)
    updated = ParkingSpot(
        spot_id=spot.spot_id,
        number=spot.number,
        spot_type=spot.spot_type,
        location=spot.location,
        is_available=spot.is_available,
        owner_id=spot.owner_id,
        availability=tuple(slots),
        description=spot.description,
    )
    return repositories.spots.save_spot(updated, "SPOT_AVAILABILITY_UPDATED", {"slot_count": len(slots)})


def set_spot_toggle(repositories: VagaLivreRepositories, spot_id: str, owner_id: str, is_available: bool) -> ParkingSpot:
    spot = _require_owned_spot(repositories, spot_id, owner_id)
    updated = ParkingSpot(
        spot_id=spot.spot_id,
        number=spot.number,
        spot_type=spot.spot_type,
        location=spot.location,
        is_available=bool(is_available),
        owner_id=spot.owner_id,
        availability=spot.availability,
        description=spot.description,
    )
    return repositories.spots.save_spot(updated, "SPOT_TOGGLED", {"is_available": updated.is_available})


def search_spots(spots: Iterable[ParkingSpot], term: str | None = None, spot_type: str | None = None) -> list[ParkingSpot]:
    needle = (term or "").strip().lower()
    results: list[ParkingSpot] = []
    for spot in spots:
        if not spot.is_available:
            continue
        if needle and needle not in spot.number.lower() and needle not in spot.location.lower():
            continue
        if spot_type not in (None, "", "all") and spot.spot_type != spot_type:
            continue
        results.append(spot)
    return results


def spot_calendar(
    repositories: VagaLivreRepositories,
    spot_id: str,
    first_day: date,
    last_day: date,
    today: date,
) -> list[dict[str, Any]]:
    spot = repositories.spots.get_spot_by_id(spot_id)
    if spot is None:
        raise LookupError(f"spot_id not found: {spot_id}")
    if last_day < first_day:
        raise ValueError("last_day must not be earlier than first_day")
    if (last_day - first_day).days >= MAX_CALENDAR_DAYS:
        raise ValueError(f"calendar range must be shorter than {MAX_CALENDAR_DAYS} days")

    reservations = repositories.reservations.get_reservations_for_spot(spot_id)
    return [
        {"day": day.isoformat(), "bookable": is_day_bookable(spot, reservations, day, today)}
        for day in iter_days(first_day, last_day)
    ]


def register_user(
    repositories: VagaLivreRepositories,
    name: str,
    email: str,
    role: str = ROLE_RESIDENT,
    apartment: str | None = None,
    phone: str | None = None,
    condominium_id: str | None = None,
    today: date | None = None,
) -> User:
    """Register a user. Residents wait for manager approval; managers do not."""
    email = _require_text(email, "email")
    if "@" not in email:
        raise ValueError("email is not valid")
    if condominium_id is not None and repositories.condominiums.get_condominium_by_id(condominium_id) is None:
        raise LookupError(f"condominium_id not found: {condominium_id}")

    user = User(
        user_id=f"user-{uuid4().hex[:12]}",
        name=_require_text(name, "name"),
        email=email,
        role=role,
        status=STATUS_APPROVED if role == ROLE_MANAGER else STATUS_PENDING,
        apartment=apartment,
        phone=phone,
        condominium_id=condominium_id,
        registration_date=(today or date.today()).isoformat(),
    )
    return repositories.users.add_user(user)


def pending_registrations(repositories: VagaLivreRepositories, manager_id: str) -> list[User]:
    _require_manager(repositories, manager_id)
    return [user for user in repositories.users.get_users() if user.status == STATUS_PENDING]


def decide_registration(repositories: VagaLivreRepositories, manager_id: str, user_id: str, approve: bool) -> User:
    _require_manager(repositories, manager_id)
    user = repositories.users.get_user_by_id(user_id)
    if user is None:
        raise LookupError(f"user_id not found: {user_id}")
    if user.status != STATUS_PENDING:
        raise ValueError(f"Registration was already {user.status}.")

    decided = User(
        user_id=user.user_id,
        name=user.name,
        email=user.email,
        role=user.role,
        status=STATUS_APPROVED if approve else STATUS_DENIED,
        apartment=user.apartment,
        phone=user.phone,
        condominium_id=user.condominium_id,
        registration_date=user.registration_date,
    )
    return repositories.users.update_user(decided)


def list_users(repositories: VagaLivreRepositories, manager_id: str) -> list[UserListing]:
    """Every registered user with the name of their condominium, for managers."""
    _require_manager(repositories, manager_id)
    condominiums = {condo.condominium_id: condo for condo in repositories.condominiums.get_condominiums()}

    listings = []
    for user in repositories.users.get_users():
        condominium_name = None
        if user.condominium_id:
            condominium = condominiums.get(user.condominium_id)
            condominium_name = condominium.name if condominium else UNKNOWN_CONDOMINIUM
        listings.append(UserListing(user=user, condominium_name=condominium_name))
    listings.sort(key=lambda listing: listing.user.name.lower())
    return listings


def _optional_text(value: Any, current: str | None) -> str | None:
    if value is None:
        return current
    return str(value).strip() or None


def update_profile(
    repositories: VagaLivreRepositories,
    user_id: str,
    name: str | None = None,
    apartment: str | None = None,
    phone: str | None = None,
) -> User:
    """Edit a user's own contact fields; None keeps a field, an empty string clears it.

    Email, role and status cannot be changed here.
    """
    user = repositories.users.get_user_by_id(user_id)
    if user is None:
        raise LookupError(f"user_id not found: {user_id}")

    updated = User(
        user_id=user.user_id,
        name=user.name if name is None else _require_text(name, "name"),
        email=user.email,
        role=user.role,
        status=user.status,
        apartment=_optional_text(apartment, user.apartment),
        phone=_optional_text(phone, user.phone),
        condominium_id=user.condominium_id,
        registration_date=user.registration_date,
    )
    return repositories.users.update_user(updated)


def register_condominium(repositories: VagaLivreRepositories, manager_id: str, name: str, address: str) -> Condominium:
    _require_manager(repositories, manager_id)
    condominium = Condominium(
        condominium_id=f"condo-{uuid4().hex[:12]}",
        name=_require_text(name, "name"),
        address=_require_text(address, "address"),
    )
    return repositories.condominiums.add_condominium(condominium)


def reservations_for_user(repositories: VagaLivreRepositories, user_id: str) -> list[Reservation]:
    records = repositories.reservations.get_reservations_for_user(user_id)
    records.sort(key=lambda record: (record.start, record.spot_id))
    return records


def rental_history(
    repositories: VagaLivreRepositories,
    manager_id: str,
    user_id: str | None = None,
    start_day: date | None = None,
    end_day: date | None = None,
) -> list[RentalHistoryEntry]:
    """Every reservation joined with its renter and spot, newest first.

    The day filter keeps reservations touching any day in
    [start_day, end_day]; a missing end_day means the single start_day.
    """
    _require_manager(repositories, manager_id)

    users = {user.user_id: user for user in repositories.users.get_users()}
    spots = {spot.spot_id: spot for spot in repositories.spots.get_parking_spots()}

    window: tuple[datetime, datetime] | None = None
    if start_day is not None:
        last_day = end_day or start_day
        if last_day < start_day:
            raise ValueError("end_day must not be earlier than start_day")
        window = (
            datetime.combine(start_day, time.min),
            datetime.combine(last_day + timedelta(days=1), time.min),
        )

    entries: list[RentalHistoryEntry] = []
    for record in repositories.reservations.get_all_reservations():
        if user_id not in (None, "", "all") and record.user_id != user_id:
            continue
        if window is not None and not (record.start < window[1] and record.end > window[0]):
            continue

        renter = users.get(record.user_id)
        spot = spots.get(record.spot_id)
        entries.append(
            RentalHistoryEntry(
                reservation=record,
                user_name=renter.name if renter else UNKNOWN_USER,
                spot_number=spot.number if spot else UNKNOWN_SPOT,
                spot_location=spot.location if spot else UNKNOWN_LOCATION,
            )
        )

    entries.sort(key=lambda entry: entry.reservation.start, reverse=True)
    return entries


def seed_demo_data(repositories: VagaLivreRepositories, today: date | None = None) -> dict[str, Any]:
    """Populate an empty data directory with a manager, two residents and spots."""
    base_day = today or date.today()
    if repositories.users.get_users() or repositories.spots.get_parking_spots():
        raise ValueError("Demo data can only be seeded into an empty data directory.")

    condominium = Condominium(
        condominium_id=f"condo-{uuid4().hex[:12]}",
        name="Residencial Vaga Livre",
        address="Rua das Flores, 100",
    )
    repositories.condominiums.add_condominium(condominium)

    manager = register_user(repositories, "Carol White", "carol@example.com", role=ROLE_MANAGER, today=base_day)
    alice = register_user(repositories, "Alice Smith", "alice@example.com", apartment="101", today=base_day)
    bob = register_user(repositories, "Bob Johnson", "bob@example.com", apartment="202", today=base_day)
    for resident in (alice, bob):
        decide_registration(repositories, manager.user_id, resident.user_id, approve=True)

    layout = [
        (alice, "A01", "compact", "Level 1, Near Elevator"),
        (bob, "A02", "standard", "Level 1, Central"),
        (alice, "M01", "motorcycle", "Level 1, Bike Rack"),
        (bob, "B05", "suv", "Level 2, Wide Area"),
    ]
    spots: list[ParkingSpot] = []
    for owner, number, spot_type, location in layout:
        spot = register_spot(repositories, owner.user_id, number, spot_type, location)
        spot = set_spot_availability(
            repositories,
            spot.spot_id,
            owner.user_id,
            [{"start": base_day.isoformat(), "end": (base_day + timedelta(days=13)).isoformat()}],
        )
        spots.append(spot)

    return {"condominium": condominium, "manager": manager, "residents": [alice, bob], "spots": spots}
