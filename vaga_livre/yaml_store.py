from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Callable
import shutil

import yaml

from .models import Condominium, ParkingSpot, Reservation, User


class VagaLivreStorageError(RuntimeError):
    pass


SPOTS_FILE = "parking_spots.yaml"
RESERVATIONS_FILE = "reservations.yaml"
USERS_FILE = "users.yaml"
CONDOMINIUMS_FILE = "condominiums.yaml"
EVENTS_FILE = "events.yaml"


class YamlDataStore:
    """List-of-mappings YAML files under one data directory, plus an event log."""

    def __init__(self, base_dir: str | Path = "data", clock: Callable[[], datetime] | None = None) -> None:
        self.base_dir = Path(base_dir)
        self.log_file = self.base_dir / EVENTS_FILE
        self.clock: Callable[[], datetime] = clock or datetime.now
        self._ensure_files()

    def path_for(self, file_name: str) -> Path:
        return self.base_dir / file_name

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for name in (SPOTS_FILE, RESERVATIONS_FILE, USERS_FILE, CONDOMINIUMS_FILE, EVENTS_FILE):
            path = self.path_for(name)
            if not path.exists():
                path.write_text("[]\n", encoding="utf-8")

    def read_rows(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            else:
                self.log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def write_rows(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise VagaLivreStorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            # backup is best-effort
            backup_path = path

        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self.log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or self.clock()).isoformat(timespec="seconds")
        events = self.read_rows(self.log_file)
        events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
        self.write_rows(self.log_file, events)

    def get_events(self) -> list[dict[str, Any]]:
        return self.read_rows(self.log_file)


class _YamlRepository:
    file_name = ""
    id_field = ""

    def __init__(self, store: YamlDataStore) -> None:
        self.store = store
        self.path = store.path_for(self.file_name)

    def _rows(self) -> list[dict[str, Any]]:
        return self.store.read_rows(self.path)

    def _records(self, decode: Callable[[dict[str, Any]], Any]) -> list[Any]:
        """Decode every row, skipping (and logging) mappings that fail validation."""
        records = []
        for index, row in enumerate(self._rows()):
            try:
                records.append(decode(row))
            except (KeyError, TypeError, ValueError) as error:
                self.store.log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": self.file_name,
                        "index": index,
                        self.id_field: str(row.get(self.id_field)),
                        "reason": f"{type(error).__name__}: {error}",
                    },
                )
        return records

    def _find(self, decode: Callable[[dict[str, Any]], Any], record_id: str) -> Any:
        for record in self._records(decode):
            if getattr(record, self.id_field) == record_id:
                return record
        return None

    def _save(self, rows: list[dict[str, Any]]) -> None:
        self.store.write_rows(self.path, rows)


class SpotYamlRepository(_YamlRepository):
    file_name = SPOTS_FILE
    id_field = "spot_id"

    def get_parking_spots(self) -> list[ParkingSpot]:
        return self._records(ParkingSpot.from_dict)

    def get_spot_by_id(self, spot_id: str) -> ParkingSpot | None:
        return self._find(ParkingSpot.from_dict, spot_id)

    def get_spots_by_owner(self, owner_id: str) -> list[ParkingSpot]:
        return [spot for spot in self.get_parking_spots() if spot.owner_id == owner_id]

    def add_spot(self, spot: ParkingSpot) -> ParkingSpot:
        rows = self._rows()
        if any(str(row.get("spot_id")) == spot.spot_id for row in rows):
            raise ValueError(f"spot_id already exists: {spot.spot_id}")
        rows.append(spot.to_dict())
        self._save(rows)

        self.store.log_event(
            "SPOT_REGISTERED",
            {
                "spot_id": spot.spot_id,
                "number": spot.number,
                "spot_type": spot.spot_type,
                "owner_id": spot.owner_id,
            },
        )
        return spot

    def save_spot(self, spot: ParkingSpot, event_type: str, payload: dict[str, Any]) -> ParkingSpot:
        rows = self._rows()
        for index, row in enumerate(rows):
            if str(row.get("spot_id")) == spot.spot_id:
                rows[index] = spot.to_dict()
                break
        else:
            raise LookupError(f"spot_id not found: {spot.spot_id}")

        self._save(rows)
        self.store.log_event(event_type, {"spot_id": spot.spot_id, **payload})
        return spot


class ReservationYamlRepository(_YamlRepository):
    file_name = RESERVATIONS_FILE
    id_field = "reservation_id"

    def get_all_reservations(self) -> list[Reservation]:
        return self._records(Reservation.from_dict)

    def get_reservations_for_spot(self, spot_id: str) -> list[Reservation]:
        return [record for record in self.get_all_reservations() if record.spot_id == spot_id]

    def get_reservations_for_user(self, user_id: str) -> list[Reservation]:
        return [record for record in self.get_all_reservations() if record.user_id == user_id]

    def get_reservation(self, reservation_id: str) -> Reservation | None:
        return self._find(Reservation.from_dict, reservation_id)

    def append_reservation(self, reservation: Reservation) -> None:
        rows = self._rows()
        rows.append(reservation.to_dict())
        self._save(rows)

        self.store.log_event(
            "RESERVATION_CREATED",
            {
                "reservation_id": reservation.reservation_id,
                "spot_id": reservation.spot_id,
                "user_id": reservation.user_id,
                "start": reservation.start.isoformat(timespec="minutes"),
                "end": reservation.end.isoformat(timespec="minutes"),
            },
            reservation.created_at,
        )

    def remove_reservation(self, reservation_id: str) -> None:
        rows = self._rows()
        remaining = [row for row in rows if str(row.get("reservation_id")) != reservation_id]
        if len(remaining) == len(rows):
            raise LookupError(f"reservation_id not found: {reservation_id}")

        self._save(remaining)
        self.store.log_event("RESERVATION_CANCELLED", {"reservation_id": reservation_id})


class UserYamlRepository(_YamlRepository):
    file_name = USERS_FILE
    id_field = "user_id"

    def get_users(self) -> list[User]:
        return self._records(User.from_dict)

    def get_user_by_id(self, user_id: str) -> User | None:
        return self._find(User.from_dict, user_id)

    def is_manager(self, user_id: str) -> bool:
        user = self.get_user_by_id(user_id)
        return user is not None and user.is_manager

    def add_user(self, user: User) -> User:
        rows = self._rows()
        email = user.email.strip().lower()
        for row in rows:
            if str(row.get("user_id")) == user.user_id:
                raise ValueError(f"user_id already exists: {user.user_id}")
            if str(row.get("email", "")).strip().lower() == email:
                raise ValueError("A user with this email is already registered.")

        rows.append(user.to_dict())
        self._save(rows)
        self.store.log_event(
            "USER_REGISTERED",
            {"user_id": user.user_id, "role": user.role, "status": user.status},
        )
        return user

    def update_user(self, user: User) -> User:
        rows = self._rows()
        for index, row in enumerate(rows):
            if str(row.get("user_id")) == user.user_id:
                previous_status = str(row.get("status"))
                rows[index] = user.to_dict()
                break
        else:
            raise LookupError(f"user_id not found: {user.user_id}")

        self._save(rows)
        if previous_status != user.status:
            self.store.log_event(
                "USER_STATUS_CHANGED",
                {"user_id": user.user_id, "from": previous_status, "to": user.status},
            )
        return user


class CondominiumYamlRepository(_YamlRepository):
    file_name = CONDOMINIUMS_FILE
    id_field = "condominium_id"

    def get_condominiums(self) -> list[Condominium]:
        return self._records(Condominium.from_dict)

    def get_condominium_by_id(self, condominium_id: str) -> Condominium | None:
        return self._find(Condominium.from_dict, condominium_id)

    def add_condominium(self, condominium: Condominium) -> Condominium:
        rows = self._rows()
        rows.append(condominium.to_dict())
        self._save(rows)
        self.store.log_event(
            "CONDOMINIUM_REGISTERED",
            {"condominium_id": condominium.condominium_id, "name": condominium.name},
        )
        return condominium


class VagaLivreRepositories:
    """Bundle of the per-entity repositories sharing one data directory."""

    def __init__(self, base_dir: str | Path = "data", clock: Callable[[], datetime] | None = None) -> None:
        self.store = YamlDataStore(base_dir, clock=clock)
        self.spots = SpotYamlRepository(self.store)
        self.reservations = ReservationYamlRepository(self.store)
        self.users = UserYamlRepository(self.store)
        self.condominiums = CondominiumYamlRepository(self.store)
