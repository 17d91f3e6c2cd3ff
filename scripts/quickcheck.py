from __future__ import annotations

from datetime import date, timedelta
from pathlib import Path
import tempfile
import traceback

from vaga_livre import ReservationResolver, VagaLivreRepositories
from vaga_livre.management import rental_history, seed_demo_data


def main() -> int:
    print("[INFO] Vaga Livre Quick Check")

    with tempfile.TemporaryDirectory() as temp_dir:
        data_dir = Path(temp_dir) / "data"
        repositories = VagaLivreRepositories(data_dir)
        today = date.today()

        seeded = seed_demo_data(repositories, today=today)
        print(f"[OK] Demo data seeded: {len(seeded['spots'])} spots, {len(seeded['residents'])} residents")

        resolver = ReservationResolver(repositories.spots, repositories.reservations, repositories.users)
        spot = seeded["spots"][0]
        renter = seeded["residents"][1]
        start = today + timedelta(days=1)
        end = today + timedelta(days=3)

        created = resolver.reserve(spot, start, end, renter.user_id)
        if not created.ok:
            print(f"[ERROR] Reservation failed: {created.error.value}")
            return 1
        print(f"[OK] Reserved {spot.number}: {created.reservation.start.date()}~{created.reservation.end.date()}")

        conflicting = resolver.reserve(spot, start, end, renter.user_id)
        print(f"[OK] Second booking of the same range rejected: {conflicting.error.value}")

        history = rental_history(repositories, seeded["manager"].user_id)
        print(f"[OK] Rental history entries: {len(history)}")

        cancelled = resolver.cancel(created.reservation.reservation_id, renter.user_id)
        print(f"[OK] Cancelled: {cancelled.ok}")
        print(f"[OK] Event Log YAML events: {len(repositories.store.get_events())}")

    print("[DONE] Quick check completed successfully.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        print("[ERROR] Quick check failed.")
        traceback.print_exc()
        raise SystemExit(1)
