from datetime import timedelta
import random

import pytest

from evcharge.core.enums import BookingStatus
from evcharge.core.exceptions import NotFoundException, ValidationException
from evcharge.models.station import StationBlockedSlot
from evcharge.services.slot_availability import SlotAvailabilityService


@pytest.fixture
def availability(db) -> SlotAvailabilityService:
    return SlotAvailabilityService(db)


def _block(db, station, slot_number, start, end):
    block = StationBlockedSlot(
        station_id=station.id, slot_number=slot_number, start_time=start, end_time=end
    )
    db.add(block)
    db.commit()
    return block


class TestIsSlotAvailable:
    def test_free_slot(self, availability, station, base_time) -> None:
        assert availability.is_slot_available(station, 1, base_time, base_time + timedelta(hours=1))

    def test_overlapping_booking_takes_slot(
        self, availability, station, ev_owner, make_booking, base_time
    ) -> None:
        make_booking(ev_owner, station, base_time, hours=1, slot_number=1)

        assert not availability.is_slot_available(
            station, 1, base_time + timedelta(minutes=30), base_time + timedelta(minutes=90)
        )
        # Other slot on the same station is unaffected
        assert availability.is_slot_available(
            station, 2, base_time + timedelta(minutes=30), base_time + timedelta(minutes=90)
        )

    def test_touching_windows_do_not_conflict(
        self, availability, station, ev_owner, make_booking, base_time
    ) -> None:
        make_booking(ev_owner, station, base_time, hours=1, slot_number=1)

        end = base_time + timedelta(hours=1)
        assert availability.is_slot_available(station, 1, end, end + timedelta(hours=1))
        assert availability.is_slot_available(station, 1, base_time - timedelta(hours=1), base_time)

    @pytest.mark.parametrize(
        "status", [BookingStatus.CANCELLED.value, BookingStatus.COMPLETED.value]
    )
    def test_inactive_bookings_release_the_slot(
        self, availability, station, ev_owner, make_booking, base_time, status
    ) -> None:
        make_booking(ev_owner, station, base_time, hours=1, slot_number=1, status=status)

        assert availability.is_slot_available(station, 1, base_time, base_time + timedelta(hours=1))

    def test_in_progress_booking_still_takes_slot(
        self, availability, station, ev_owner, make_booking, base_time
    ) -> None:
        make_booking(
            ev_owner, station, base_time, slot_number=1, status=BookingStatus.IN_PROGRESS.value
        )

        assert not availability.is_slot_available(
            station, 1, base_time, base_time + timedelta(minutes=30)
        )

    def test_blocked_window_takes_slot(self, db, availability, station, base_time) -> None:
        _block(db, station, 2, base_time, base_time + timedelta(hours=2))

        assert not availability.is_slot_available(
            station, 2, base_time + timedelta(hours=1), base_time + timedelta(hours=3)
        )
        assert availability.is_slot_available(
            station, 2, base_time + timedelta(hours=2), base_time + timedelta(hours=3)
        )

    @pytest.mark.parametrize("slot_number", [0, 3])
    def test_slot_number_out_of_range(self, availability, station, base_time, slot_number) -> None:
        with pytest.raises(ValidationException) as exc_info:
            availability.is_slot_available(
                station, slot_number, base_time, base_time + timedelta(hours=1)
            )
        assert exc_info.value.code == "INVALID_SLOT_NUMBER"

    def test_empty_window_is_rejected(self, availability, station, base_time) -> None:
        with pytest.raises(ValidationException):
            availability.is_slot_available(station, 1, base_time, base_time)


class TestListAvailableSlots:
    def test_complement_of_occupied(
        self, db, availability, make_station, station_owner, ev_owner, make_booking, base_time
    ) -> None:
        station = make_station(station_owner, total_slots=4)
        make_booking(ev_owner, station, base_time, slot_number=2)
        _block(db, station, 4, base_time - timedelta(hours=1), base_time + timedelta(minutes=15))

        start, end = base_time, base_time + timedelta(hours=1)
        available = availability.list_available_slots(station, start, end)
        occupied = availability.occupied_slots(station, start, end)

        assert available == [1, 3]
        assert occupied == {2, 4}
        assert set(available) | occupied == set(range(1, 5))
        for slot_number in range(1, 5):
            assert availability.is_slot_available(station, slot_number, start, end) is (
                slot_number in available
            )

    @pytest.mark.parametrize("seed", [1, 8, 99])
    def test_complement_holds_for_random_windows(
        self, db, availability, make_station, station_owner, ev_owner, make_booking, base_time, seed
    ) -> None:
        rng = random.Random(seed)
        quarter = timedelta(minutes=15)
        total_slots = 5
        station = make_station(station_owner, total_slots=total_slots)
        statuses = [status.value for status in BookingStatus]

        taken = []  # (slot_number, start, end) that should occupy a slot
        for _ in range(12):
            slot_number = rng.randint(1, total_slots)
            start = base_time + rng.randint(0, 40) * quarter
            end = start + rng.randint(2, 12) * quarter
            if rng.random() < 0.25:
                _block(db, station, slot_number, start, end)
                taken.append((slot_number, start, end))
                continue
            status = rng.choice(statuses)
            make_booking(
                ev_owner,
                station,
                start,
                hours=(end - start) / timedelta(hours=1),
                slot_number=slot_number,
                status=status,
            )
            if status in (BookingStatus.BOOKED.value, BookingStatus.IN_PROGRESS.value):
                taken.append((slot_number, start, end))

        for _ in range(40):
            start = base_time + rng.randint(-4, 50) * quarter
            end = start + rng.randint(1, 16) * quarter

            available = availability.list_available_slots(station, start, end)
            occupied = availability.occupied_slots(station, start, end)
            expected = {slot for slot, s, e in taken if s < end and start < e}

            assert occupied == expected
            assert set(available).isdisjoint(occupied)
            assert set(available) | occupied == set(range(1, total_slots + 1))
            assert available == sorted(available)

    def test_station_availability_summary(self, availability, station, base_time) -> None:
        result = availability.get_station_availability(
            station.id, base_time, base_time + timedelta(hours=2)
        )

        assert result["available_slots"] == [1, 2]
        assert result["station"]["total_slots"] == 2
        assert result["station"]["charging_rate"] == 10.0
        assert result["time_range"]["start"] == base_time

    def test_unknown_station(self, availability, base_time) -> None:
        with pytest.raises(NotFoundException):
            availability.get_station_availability(
                "missing", base_time, base_time + timedelta(hours=1)
            )
