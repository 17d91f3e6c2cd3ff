from .booking import can_satisfy, has_time_overlap, is_spot_fully_booked, parse_instant
from .models import AvailabilitySlot, Condominium, ParkingSpot, Reservation, User
from .resolver import ReservationError, ReservationResolver, ReservationResult
from .yaml_store import (
	ReservationYamlRepository,
	SpotYamlRepository,
	UserYamlRepository,
	CondominiumYamlRepository,
	VagaLivreRepositories,
	VagaLivreStorageError,
	YamlDataStore,
)

__all__ = [
	"can_satisfy",
	"has_time_overlap",
	"is_spot_fully_booked",
	"parse_instant",
	"AvailabilitySlot",
	"Condominium",
	"ParkingSpot",
	"Reservation",
	"User",
	"ReservationError",
	"ReservationResolver",
	"ReservationResult",
	"ReservationYamlRepository",
	"SpotYamlRepository",
	"UserYamlRepository",
	"CondominiumYamlRepository",
	"VagaLivreRepositories",
	"VagaLivreStorageError",
	"YamlDataStore",
]
