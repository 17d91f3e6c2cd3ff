from __future__ import annotations

from typing import Annotated

from mcp.server.fastmcp import FastMCP

from vaga_livre import ReservationResolver, VagaLivreRepositories
from vaga_livre.config import Config
from vaga_livre.management import search_spots
from vaga_livre.models import SPOT_TYPES

mcp = FastMCP(
    "Vaga Livre MCP Server",
    instructions="Browse condominium parking spots and manage reservations.",
    json_response=True,
)

REPOSITORIES = VagaLivreRepositories(Config.DATA_DIR)
RESOLVER = ReservationResolver(REPOSITORIES.spots, REPOSITORIES.reservations, REPOSITORIES.users)


@mcp.resource("vagalivre://spot-types")
async def list_spot_types() -> list[str]:
    """List the parking spot categories."""
    return list(SPOT_TYPES)


@mcp.tool()
def list_available_spots(term: str | None = None, spot_type: str | None = None) -> list[dict]:
    """Return spots open for booking, optionally filtered by number/location text and type."""
    spots = search_spots(REPOSITORIES.spots.get_parking_spots(), term=term, spot_type=spot_type)
    return [spot.to_dict() for spot in spots]


@mcp.tool()
def reserve_spot(
    spot_id: str,
    start_iso: Annotated[str, "ISO date or datetime the reservation starts"],
    end_iso: Annotated[str, "ISO date or datetime the reservation ends (exclusive)"],
    user_id: str,
    vehicle_plate: str | None = None,
) -> dict:
    """Reserve a spot for [start, end) on behalf of a user."""
    result = RESOLVER.reserve_spot(spot_id, start_iso, end_iso, user_id, vehicle_plate=vehicle_plate)
    if not result.ok:
        return {"ok": False, "error": result.error.value, "message": result.message}
    return {"ok": True, "reservation": result.reservation.to_dict()}


@mcp.tool()
def cancel_reservation(reservation_id: str, user_id: str) -> dict:
    """Cancel a reservation as its renter or as a manager."""
    result = RESOLVER.cancel(reservation_id, user_id)
    if not result.ok:
        return {"ok": False, "error": result.error.value, "message": result.message}
    return {"ok": True, "message": result.message}


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
