import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path

from vaga_livre import Reservation, User, VagaLivreRepositories
from vaga_livre import management
from vaga_livre.models import ROLE_MANAGER, STATUS_APPROVED, STATUS_DENIED, STATUS_PENDING


class ManagementTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.repos = VagaLivreRepositories(Path(self._temp_dir.name) / "data")
        self.manager = management.register_user(
            self.repos, "Carol White", "carol@example.com", role=ROLE_MANAGER, today=date(2024, 5, 1)
        )
        self.alice = management.register_user(self.repos, "Alice Smith", "alice@example.com", today=date(2024, 5, 2))

    def tearDown(self) -> None:
        self._temp_dir.cleanup()


class TestSpots(ManagementTestCase):
    def test_new_spot_is_available_without_slots(self) -> None:
        spot = management.register_spot(self.repos, self.alice.user_id, "A01", "compact", "Level 1")

        self.assertTrue(spot.is_available)
        self.assertEqual(spot.availability, ())
        self.assertEqual(spot.owner_id, self.alice.user_id)
        self.assertEqual(self.repos.spots.get_spot_by_id(spot.spot_id), spot)

    def test_register_spot_validates_input(self) -> None:
        with self.assertRaises(ValueError):
            management.register_spot(self.repos, self.alice.user_id, "A01", "truck", "Level 1")
        with self.assertRaises(ValueError):
            management.register_spot(self.repos, self.alice.user_id, " ", "compact", "Level 1")

    def test_owner_sets_availability(self) -> None:
        spot = management.register_spot(self.repos, self.alice.user_id, "A01", "compact", "Level 1")

        updated = management.set_spot_availability(
            self.repos,
            spot.spot_id,
            self.alice.user_id,
            [
                {"start": "2024-06-01", "end": "2024-06-10", "is_recurring": True, "recurrence_pattern": "weekly"},
                {"start": "2024-06-20"},
            ],
        )

        self.assertEqual(len(updated.availability), 2)
        self.assertEqual(updated.availability[0].recurrence_pattern, "weekly")
        self.assertEqual(updated.availability[1].start, updated.availability[1].end)
        self.assertEqual(self.repos.spots.get_spot_by_id(spot.spot_id).availability, updated.availability)

    def test_non_owner_cannot_set_availability(self) -> None:
        spot = management.register_spot(self.repos, self.alice.user_id, "A01", "compact", "Level 1")
        with self.assertRaises(PermissionError):
            management.set_spot_availability(self.repos, spot.spot_id, self.manager.user_id, [])

    def test_invalid_slot_is_rejected(self) -> None:
        spot = management.register_spot(self.repos, self.alice.user_id, "A01", "compact", "Level 1")
        with self.assertRaises(ValueError):
            management.set_spot_availability(
                self.repos, spot.spot_id, self.alice.user_id, [{"start": "2024-06-10", "end": "2024-06-01"}]
            )

    def test_toggle_and_search(self) -> None:
        first = management.register_spot(self.repos, self.alice.user_id, "A01", "compact", "Level 1, Near Elevator")
        second = management.register_spot(self.repos, self.alice.user_id, "B05", "suv", "Level 2, Wide Area")
        management.set_spot_toggle(self.repos, second.spot_id, self.alice.user_id, False)

        spots = self.repos.spots.get_parking_spots()

        self.assertEqual([spot.spot_id for spot in management.search_spots(spots)], [first.spot_id])
        self.assertEqual(management.search_spots(spots, term="elevator"), [self.repos.spots.get_spot_by_id(first.spot_id)])
        self.assertEqual(management.search_spots(spots, spot_type="suv"), [])
        self.assertEqual(len(management.search_spots(spots, spot_type="all")), 1)

    def test_spot_calendar(self) -> None:
        spot = management.register_spot(self.repos, self.alice.user_id, "A01", "compact", "Level 1")
        management.set_spot_availability(self.repos, spot.spot_id, self.alice.user_id, [{"start": "2024-06-01", "end": "2024-06-03"}])
        self.repos.reservations.append_reservation(
            Reservation("res-1", spot.spot_id, "renter-1", datetime(2024, 6, 2), datetime(2024, 6, 3))
        )

        days = management.spot_calendar(self.repos, spot.spot_id, date(2024, 6, 1), date(2024, 6, 4), today=date(2024, 6, 1))

        self.assertEqual(
            [(day["day"], day["bookable"]) for day in days],
            [("2024-06-01", True), ("2024-06-02", False), ("2024-06-03", True), ("2024-06-04", False)],
        )

    def test_spot_calendar_rejects_huge_ranges(self) -> None:
        spot = management.register_spot(self.repos, self.alice.user_id, "A01", "compact", "Level 1")
        with self.assertRaises(ValueError):
            management.spot_calendar(self.repos, spot.spot_id, date(2024, 1, 1), date(2024, 12, 31), today=date(2024, 1, 1))


class TestRegistrations(ManagementTestCase):
    def test_residents_start_pending_and_managers_approved(self) -> None:
        self.assertEqual(self.alice.status, STATUS_PENDING)
        self.assertEqual(self.manager.status, STATUS_APPROVED)
        self.assertEqual(self.alice.registration_date, "2024-05-02")

    def test_register_user_rejects_unknown_condominium(self) -> None:
        with self.assertRaises(LookupError):
            management.register_user(self.repos, "Bob", "bob@example.com", condominium_id="condo-missing")

    def test_register_user_rejects_bad_email(self) -> None:
        with self.assertRaises(ValueError):
            management.register_user(self.repos, "Bob", "bob.example.com")

    def test_manager_approves_pending(self) -> None:
        pending = management.pending_registrations(self.repos, self.manager.user_id)
        self.assertEqual([user.user_id for user in pending], [self.alice.user_id])

        decided = management.decide_registration(self.repos, self.manager.user_id, self.alice.user_id, approve=True)

        self.assertEqual(decided.status, STATUS_APPROVED)
        self.assertEqual(management.pending_registrations(self.repos, self.manager.user_id), [])

    def test_denied_cannot_be_decided_again(self) -> None:
        management.decide_registration(self.repos, self.manager.user_id, self.alice.user_id, approve=False)
        self.assertEqual(self.repos.users.get_user_by_id(self.alice.user_id).status, STATUS_DENIED)

        with self.assertRaises(ValueError):
            management.decide_registration(self.repos, self.manager.user_id, self.alice.user_id, approve=True)

    def test_residents_cannot_approve(self) -> None:
        with self.assertRaises(PermissionError):
            management.decide_registration(self.repos, self.alice.user_id, self.alice.user_id, approve=True)
        with self.assertRaises(PermissionError):
            management.pending_registrations(self.repos, self.alice.user_id)

    def test_register_condominium_requires_manager(self) -> None:
        condo = management.register_condominium(self.repos, self.manager.user_id, "Residencial Sol", "Rua A, 1")
        self.assertEqual(self.repos.condominiums.get_condominiums(), [condo])

        with self.assertRaises(PermissionError):
            management.register_condominium(self.repos, self.alice.user_id, "Other", "Rua B, 2")


class TestUsersAndProfiles(ManagementTestCase):
    def test_list_users_joins_condominium_names(self) -> None:
        condo = management.register_condominium(self.repos, self.manager.user_id, "Residencial Sol", "Rua A, 1")
        bob = management.register_user(self.repos, "Bob Johnson", "bob@example.com", condominium_id=condo.condominium_id)
        self.repos.users.add_user(User("user-orphan", "Zed", "zed@example.com", condominium_id="condo-gone"))

        listings = management.list_users(self.repos, self.manager.user_id)

        names = {listing.user.user_id: listing.condominium_name for listing in listings}
        self.assertEqual(names[bob.user_id], "Residencial Sol")
        self.assertIsNone(names[self.alice.user_id])
        self.assertEqual(names["user-orphan"], management.UNKNOWN_CONDOMINIUM)
        self.assertEqual([listing.user.name for listing in listings][:2], ["Alice Smith", "Bob Johnson"])
        self.assertEqual(listings[1].to_dict()["condominium_name"], "Residencial Sol")

    def test_list_users_requires_manager(self) -> None:
        with self.assertRaises(PermissionError):
            management.list_users(self.repos, self.alice.user_id)

    def test_update_profile_changes_contact_fields_only(self) -> None:
        updated = management.update_profile(self.repos, self.alice.user_id, name="Alice S.", apartment="101", phone="555-0101")

        self.assertEqual(updated.name, "Alice S.")
        self.assertEqual(updated.apartment, "101")
        self.assertEqual(updated.phone, "555-0101")
        self.assertEqual(updated.email, self.alice.email)
        self.assertEqual(updated.role, self.alice.role)
        self.assertEqual(updated.status, STATUS_PENDING)
        self.assertEqual(self.repos.users.get_user_by_id(self.alice.user_id), updated)

    def test_update_profile_keeps_and_clears_fields(self) -> None:
        management.update_profile(self.repos, self.alice.user_id, apartment="101", phone="555-0101")

        updated = management.update_profile(self.repos, self.alice.user_id, phone="")

        self.assertEqual(updated.name, "Alice Smith")
        self.assertEqual(updated.apartment, "101")
        self.assertIsNone(updated.phone)

    def test_update_profile_rejects_blank_name_and_unknown_user(self) -> None:
        with self.assertRaises(ValueError):
            management.update_profile(self.repos, self.alice.user_id, name="  ")
        with self.assertRaises(LookupError):
            management.update_profile(self.repos, "user-missing", name="Nobody")


class TestRentalHistory(ManagementTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.spot = management.register_spot(self.repos, self.alice.user_id, "A01", "compact", "Level 1")
        for reservation_id, user_id, start, end in (
            ("res-1", self.alice.user_id, datetime(2024, 6, 1), datetime(2024, 6, 3)),
            ("res-2", "renter-gone", datetime(2024, 6, 10), datetime(2024, 6, 12)),
            ("res-3", self.alice.user_id, datetime(2024, 6, 20), datetime(2024, 6, 21)),
        ):
            self.repos.reservations.append_reservation(Reservation(reservation_id, self.spot.spot_id, user_id, start, end))
        self.repos.reservations.append_reservation(
            Reservation("res-4", "spot-gone", self.alice.user_id, datetime(2024, 6, 15), datetime(2024, 6, 16))
        )

    def ids(self, entries: list) -> list[str]:
        return [entry.reservation.reservation_id for entry in entries]

    def test_newest_first_with_placeholders(self) -> None:
        entries = management.rental_history(self.repos, self.manager.user_id)

        self.assertEqual(self.ids(entries), ["res-3", "res-4", "res-2", "res-1"])
        by_id = {entry.reservation.reservation_id: entry for entry in entries}
        self.assertEqual(by_id["res-2"].user_name, management.UNKNOWN_USER)
        self.assertEqual(by_id["res-4"].spot_number, management.UNKNOWN_SPOT)
        self.assertEqual(by_id["res-1"].user_name, "Alice Smith")
        self.assertEqual(by_id["res-1"].to_dict()["spot_number"], "A01")

    def test_filters_by_user(self) -> None:
        entries = management.rental_history(self.repos, self.manager.user_id, user_id=self.alice.user_id)
        self.assertEqual(self.ids(entries), ["res-3", "res-4", "res-1"])

    def test_filters_by_inclusive_days(self) -> None:
        entries = management.rental_history(
            self.repos, self.manager.user_id, start_day=date(2024, 6, 2), end_day=date(2024, 6, 10)
        )
        self.assertEqual(self.ids(entries), ["res-2", "res-1"])

        single_day = management.rental_history(self.repos, self.manager.user_id, start_day=date(2024, 6, 15))
        self.assertEqual(self.ids(single_day), ["res-4"])

    def test_requires_manager(self) -> None:
        with self.assertRaises(PermissionError):
            management.rental_history(self.repos, self.alice.user_id)

    def test_reservations_for_user_sorted_by_start(self) -> None:
        records = management.reservations_for_user(self.repos, self.alice.user_id)
        self.assertEqual([record.reservation_id for record in records], ["res-1", "res-4", "res-3"])


class TestSeedDemoData(unittest.TestCase):
    def test_seed_creates_bookable_spots(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repos = VagaLivreRepositories(Path(temp_dir) / "data")
            seeded = management.seed_demo_data(repos, today=date(2024, 6, 1))

            self.assertEqual(len(seeded["spots"]), 4)
            self.assertTrue(all(spot.availability for spot in repos.spots.get_parking_spots()))
            self.assertTrue(all(user.status == STATUS_APPROVED for user in repos.users.get_users()))

            with self.assertRaises(ValueError):
                management.seed_demo_data(repos, today=date(2024, 6, 1))


if __name__ == "__main__":
    unittest.main()
