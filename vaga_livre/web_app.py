from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Callable
import logging

from flask import Flask, jsonify, request

from . import management
from .booking import is_spot_fully_booked
from .config import Config
from .resolver import ReservationError, ReservationResolver
from .yaml_store import VagaLivreRepositories, VagaLivreStorageError

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"
DEFAULT_CALENDAR_DAYS = 30

_RESOLVER_STATUS = {
    ReservationError.INVALID_RANGE: 400,
    ReservationError.NO_AVAILABILITY_DEFINED: 409,
    ReservationError.OUTSIDE_AVAILABILITY: 409,
    ReservationError.CONFLICTING_RESERVATION: 409,
    ReservationError.SPOT_NOT_FOUND: 404,
    ReservationError.NOT_FOUND: 404,
    ReservationError.NOT_PERMITTED: 403,
}


def create_app(
    data_dir: str | Path | None = None,
    now_provider: Callable[[], datetime] | None = None,
) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    clock: Callable[[], datetime] = now_provider or datetime.now
    repositories = VagaLivreRepositories(data_dir or app.config["DATA_DIR"], clock=clock)
    resolver = ReservationResolver(repositories.spots, repositories.reservations, repositories.users, clock=clock)

    def _requester() -> str | None:
        user_id = str(request.headers.get(USER_HEADER, "")).strip()
        return user_id or None

    def _serialize_spot(spot: Any) -> dict[str, Any]:
        payload = spot.to_dict()
        payload["fully_booked"] = is_spot_fully_booked(
            spot, repositories.reservations.get_reservations_for_spot(spot.spot_id)
        )
        return payload

    def _error(message: str, status: int) -> Any:
        return jsonify({"ok": False, "message": message}), status

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = app.config["CORS_ORIGIN"]
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = f"Content-Type,{USER_HEADER}"
        return response

    @app.errorhandler(ValueError)
    def handle_value_error(error: ValueError) -> Any:
        return _error(str(error), 400)

    @app.errorhandler(LookupError)
    def handle_lookup_error(error: LookupError) -> Any:
        return _error(str(error), 404)

    @app.errorhandler(PermissionError)
    def handle_permission_error(error: PermissionError) -> Any:
        return _error(str(error), 403)

    @app.errorhandler(VagaLivreStorageError)
    def handle_storage_error(error: VagaLivreStorageError) -> Any:
        logger.exception("Storage failure: %s", error)
        return _error("Could not save data, please try again.", 500)

    @app.get("/api/spots")
    def list_spots() -> Any:
        spots = management.search_spots(
            repositories.spots.get_parking_spots(),
            term=request.args.get("q"),
            spot_type=request.args.get("type"),
        )
        spots.sort(key=lambda spot: spot.number)
        return jsonify({"ok": True, "spots": [_serialize_spot(spot) for spot in spots]})

    @app.post("/api/spots")
    def create_spot() -> Any:
        owner_id = _requester()
        if owner_id is None:
            return _error(f"{USER_HEADER} header is required.", 401)

        payload = request.get_json(silent=True) or {}
        spot = management.register_spot(
            repositories,
            owner_id=owner_id,
            number=str(payload.get("number", "")),
            spot_type=str(payload.get("spot_type", "")),
            location=str(payload.get("location", "")),
            description=payload.get("description"),
        )
        return jsonify({"ok": True, "spot": _serialize_spot(spot)}), 201

    @app.get("/api/my-spots")
    def list_my_spots() -> Any:
        owner_id = _requester()
        if owner_id is None:
            return _error(f"{USER_HEADER} header is required.", 401)
        spots = repositories.spots.get_spots_by_owner(owner_id)
        return jsonify({"ok": True, "spots": [_serialize_spot(spot) for spot in spots]})

    @app.put("/api/spots/<spot_id>/availability")
    def update_availability(spot_id: str) -> Any:
        owner_id = _requester()
        if owner_id is None:
            return _error(f"{USER_HEADER} header is required.", 401)

        payload = request.get_json(silent=True) or {}
        raw_slots = payload.get("slots")
        if not isinstance(raw_slots, list):
            return _error("slots must be a list.", 400)

        spot = management.set_spot_availability(repositories, spot_id, owner_id, raw_slots)
        return jsonify({"ok": True, "spot": _serialize_spot(spot)})

    @app.post("/api/spots/<spot_id>/toggle")
    def toggle_spot(spot_id: str) -> Any:
        owner_id = _requester()
        if owner_id is None:
            return _error(f"{USER_HEADER} header is required.", 401)

        payload = request.get_json(silent=True) or {}
        if not isinstance(payload.get("is_available"), bool):
            return _error("is_available must be true or false.", 400)

        spot = management.set_spot_toggle(repositories, spot_id, owner_id, payload["is_available"])
        return jsonify({"ok": True, "spot": _serialize_spot(spot)})

    @app.get("/api/spots/<spot_id>/calendar")
    def get_spot_calendar(spot_id: str) -> Any:
        today = clock().date()
        first_day = _parse_day(request.args.get("from")) or today
        last_day = _parse_day(request.args.get("to")) or first_day + timedelta(days=DEFAULT_CALENDAR_DAYS - 1)
        days = management.spot_calendar(repositories, spot_id, first_day, last_day, today)
        return jsonify({"ok": True, "spot_id": spot_id, "days": days})

    @app.post("/api/reservations")
    def create_reservation() -> Any:
        requester_id = _requester()
        if requester_id is None:
            return _error(f"{USER_HEADER} header is required.", 401)

        payload = request.get_json(silent=True) or {}
        spot_id = str(payload.get("spot_id", "")).strip()
        if not spot_id:
            return _error("spot_id is required.", 400)

        result = resolver.reserve_spot(
            spot_id,
            payload.get("start"),
            payload.get("end"),
            requester_id,
            vehicle_plate=payload.get("vehicle_plate"),
        )
        if not result.ok:
            return _resolver_error(result)
        return jsonify({"ok": True, "message": result.message, "reservation": result.reservation.to_dict()}), 201

    @app.delete("/api/reservations/<reservation_id>")
    def cancel_reservation(reservation_id: str) -> Any:
        requester_id = _requester()
        if requester_id is None:
            return _error(f"{USER_HEADER} header is required.", 401)

        result = resolver.cancel(reservation_id, requester_id)
        if not result.ok:
            return _resolver_error(result)
        return jsonify({"ok": True, "message": result.message})

    @app.get("/api/my-reservations")
    def get_my_reservations() -> Any:
        requester_id = _requester()
        if requester_id is None:
            return _error(f"{USER_HEADER} header is required.", 401)

        records = management.reservations_for_user(repositories, requester_id)
        spots = {spot.spot_id: spot for spot in repositories.spots.get_parking_spots()}
        reservations = []
        for record in records:
            spot = spots.get(record.spot_id)
            reservations.append(
                {
                    **record.to_dict(),
                    "spot_number": spot.number if spot else management.UNKNOWN_SPOT,
                    "spot_location": spot.location if spot else management.UNKNOWN_LOCATION,
                }
            )
        return jsonify({"ok": True, "reservations": reservations})

    @app.post("/api/users")
    def create_user() -> Any:
        payload = request.get_json(silent=True) or {}
        user = management.register_user(
            repositories,
            name=str(payload.get("name", "")),
            email=str(payload.get("email", "")),
            apartment=payload.get("apartment"),
            phone=payload.get("phone"),
            condominium_id=payload.get("condominium_id"),
            today=clock().date(),
        )
        return jsonify({"ok": True, "user": user.to_dict()}), 201

    @app.put("/api/profile")
    def update_profile() -> Any:
        user_id = _requester()
        if user_id is None:
            return _error(f"{USER_HEADER} header is required.", 401)

        payload = request.get_json(silent=True) or {}
        user = management.update_profile(
            repositories,
            user_id,
            name=payload.get("name"),
            apartment=payload.get("apartment"),
            phone=payload.get("phone"),
        )
        return jsonify({"ok": True, "user": user.to_dict()})

    @app.get("/api/condominiums")
    def list_condominiums() -> Any:
        condominiums = repositories.condominiums.get_condominiums()
        return jsonify({"ok": True, "condominiums": [condominium.to_dict() for condominium in condominiums]})

    @app.post("/api/admin/condominiums")
    def create_condominium() -> Any:
        payload = request.get_json(silent=True) or {}
        condominium = management.register_condominium(
            repositories,
            manager_id=_requester() or "",
            name=str(payload.get("name", "")),
            address=str(payload.get("address", "")),
        )
        return jsonify({"ok": True, "condominium": condominium.to_dict()}), 201

    @app.get("/api/admin/users")
    def list_users() -> Any:
        listings = management.list_users(repositories, _requester() or "")
        return jsonify({"ok": True, "users": [listing.to_dict() for listing in listings]})

    @app.get("/api/admin/approvals")
    def list_pending() -> Any:
        users = management.pending_registrations(repositories, _requester() or "")
        return jsonify({"ok": True, "users": [user.to_dict() for user in users]})

    @app.post("/api/admin/approvals/<user_id>")
    def decide(user_id: str) -> Any:
        payload = request.get_json(silent=True) or {}
        decision = str(payload.get("decision", "")).strip().lower()
        if decision not in ("approve", "deny"):
            return _error("decision must be 'approve' or 'deny'.", 400)

        user = management.decide_registration(repositories, _requester() or "", user_id, approve=decision == "approve")
        return jsonify({"ok": True, "user": user.to_dict()})

    @app.get("/api/admin/rental-history")
    def get_rental_history() -> Any:
        entries = management.rental_history(
            repositories,
            _requester() or "",
            user_id=request.args.get("user_id"),
            start_day=_parse_day(request.args.get("from")),
            end_day=_parse_day(request.args.get("to")),
        )
        return jsonify({"ok": True, "reservations": [entry.to_dict() for entry in entries]})

    return app


def _resolver_error(result: Any) -> Any:
    status = _RESOLVER_STATUS.get(result.error, 400)
    return jsonify({"ok": False, "error": result.error.value, "message": result.message}), status


def _parse_day(value: str | None) -> date | None:
    if value is None or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError as error:
        raise ValueError(f"invalid date: {value}") from error
