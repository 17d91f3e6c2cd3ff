from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

SPOT_TYPES = ("compact", "standard", "suv", "motorcycle")
RECURRENCE_PATTERNS = ("daily", "weekly", "monthly")
ROLE_RESIDENT = "resident"
ROLE_MANAGER = "manager"
STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_DENIED = "denied"


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return str(value) if value is not None else None


@dataclass(frozen=True)
class AvailabilitySlot:
    slot_id: str
    spot_id: str
    start: datetime
    end: datetime
    is_recurring: bool = False
    # Stored as declared by the owner; never expanded into concrete dates.
    recurrence_pattern: str | None = None

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError("Availability slot end must not be earlier than its start.")
        if self.recurrence_pattern is not None and self.recurrence_pattern not in RECURRENCE_PATTERNS:
            raise ValueError(f"Unknown recurrence pattern: {self.recurrence_pattern}")
        if not self.is_recurring and self.recurrence_pattern is not None:
            object.__setattr__(self, "recurrence_pattern", None)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "slot_id": self.slot_id,
            "spot_id": self.spot_id,
            "start": self.start.isoformat(timespec="seconds"),
            "end": self.end.isoformat(timespec="seconds"),
            "is_recurring": self.is_recurring,
        }
        if self.recurrence_pattern is not None:
            payload["recurrence_pattern"] = self.recurrence_pattern
        return payload

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "AvailabilitySlot":
        return AvailabilitySlot(
            slot_id=str(data["slot_id"]),
            spot_id=str(data["spot_id"]),
            start=datetime.fromisoformat(str(data["start"])),
            end=datetime.fromisoformat(str(data["end"])),
            is_recurring=bool(data.get("is_recurring", False)),
            recurrence_pattern=_optional_str(data, "recurrence_pattern"),
        )


@dataclass(frozen=True)
class ParkingSpot:
    spot_id: str
    number: str
    spot_type: str
    location: str
    is_available: bool = True
    owner_id: str | None = None
    availability: tuple[AvailabilitySlot, ...] = field(default_factory=tuple)
    description: str | None = None

    def __post_init__(self) -> None:
        if self.spot_type not in SPOT_TYPES:
            raise ValueError(f"Unknown spot type: {self.spot_type}")
        object.__setattr__(self, "availability", tuple(self.availability))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "spot_id": self.spot_id,
            "number": self.number,
            "spot_type": self.spot_type,
            "location": self.location,
            "is_available": self.is_available,
            "owner_id": self.owner_id,
            "availability": [slot.to_dict() for slot in self.availability],
        }
        if self.description is not None:
            payload["description"] = self.description
        return payload

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ParkingSpot":
        return ParkingSpot(
            spot_id=str(data["spot_id"]),
            number=str(data["number"]),
            spot_type=str(data["spot_type"]),
            location=str(data.get("location", "")),
            is_available=bool(data.get("is_available", True)),
            owner_id=_optional_str(data, "owner_id"),
            availability=tuple(AvailabilitySlot.from_dict(row) for row in data.get("availability") or []),
            description=_optional_str(data, "description"),
        )


@dataclass(frozen=True)
class Reservation:
    reservation_id: str
    spot_id: str
    user_id: str
    start: datetime
    end: datetime
    vehicle_plate: str | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError("Reservation start time must be earlier than end time.")

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "reservation_id": self.reservation_id,
            "spot_id": self.spot_id,
            "user_id": self.user_id,
            "start": self.start.isoformat(timespec="seconds"),
            "end": self.end.isoformat(timespec="seconds"),
        }
        if self.vehicle_plate is not None:
            payload["vehicle_plate"] = self.vehicle_plate
        if self.created_at is not None:
            payload["created_at"] = self.created_at.isoformat(timespec="seconds")
        return payload

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Reservation":
        created_at = data.get("created_at")
        return Reservation(
            reservation_id=str(data["reservation_id"]),
            spot_id=str(data["spot_id"]),
            user_id=str(data["user_id"]),
            start=datetime.fromisoformat(str(data["start"])),
            end=datetime.fromisoformat(str(data["end"])),
            vehicle_plate=_optional_str(data, "vehicle_plate"),
            created_at=datetime.fromisoformat(str(created_at)) if created_at is not None else None,
        )


@dataclass(frozen=True)
class User:
    user_id: str
    name: str
    email: str
    role: str = ROLE_RESIDENT
    status: str = STATUS_PENDING
    apartment: str | None = None
    phone: str | None = None
    condominium_id: str | None = None
    registration_date: str | None = None

    def __post_init__(self) -> None:
        if self.role not in (ROLE_RESIDENT, ROLE_MANAGER):
            raise ValueError(f"Unknown role: {self.role}")
        if self.status not in (STATUS_PENDING, STATUS_APPROVED, STATUS_DENIED):
            raise ValueError(f"Unknown status: {self.status}")

    @property
    def is_manager(self) -> bool:
        return self.role == ROLE_MANAGER

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "status": self.status,
        }
        for key in ("apartment", "phone", "condominium_id", "registration_date"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "User":
        return User(
            user_id=str(data["user_id"]),
            name=str(data["name"]),
            email=str(data["email"]),
            role=str(data.get("role", ROLE_RESIDENT)),
            status=str(data.get("status", STATUS_PENDING)),
            apartment=_optional_str(data, "apartment"),
            phone=_optional_str(data, "phone"),
            condominium_id=_optional_str(data, "condominium_id"),
            registration_date=_optional_str(data, "registration_date"),
        )


@dataclass(frozen=True)
class Condominium:
    condominium_id: str
    name: str
    address: str

    def to_dict(self) -> dict[str, str]:
        return {
            "condominium_id": self.condominium_id,
            "name": self.name,
            "address": self.address,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Condominium":
        return Condominium(
            condominium_id=str(data["condominium_id"]),
            name=str(data["name"]),
            address=str(data.get("address", "")),
        )
