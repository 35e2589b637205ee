from datetime import datetime, timedelta, timezone

import pytest

from evcharge.models.booking import Booking
from evcharge.models.station import ChargingStation


def _station(total: int = 3, available: int = 3) -> ChargingStation:
    return ChargingStation(total_slots=total, available_slots=available)


class TestStationCounters:
    def test_decrement_floors_at_zero(self) -> None:
        station = _station(total=2, available=1)

        assert station.decrement_available_slots() == 0
        assert station.decrement_available_slots() == 0

    def test_increment_caps_at_total(self) -> None:
        station = _station(total=2, available=1)

        assert station.increment_available_slots() == 2
        assert station.increment_available_slots() == 2

    @pytest.mark.parametrize(
        "total, available, new_total, expected",
        [(3, 3, 5, 5), (3, 1, 2, 0), (3, 2, 6, 5), (4, 4, 1, 1)],
    )
    def test_resize(self, total, available, new_total, expected) -> None:
        station = _station(total=total, available=available)

        station.resize(new_total)

        assert station.total_slots == new_total
        assert station.available_slots == expected
        assert 0 <= station.available_slots <= station.total_slots

    def test_operating_hours(self) -> None:
        station = ChargingStation(open_time="08:00", close_time="20:30")
        assert station.operating_hours == {"open": "08:00", "close": "20:30"}


class TestBookingWindow:
    START = datetime(2030, 5, 1, 10, 0, tzinfo=timezone.utc)

    def _booking(self) -> Booking:
        return Booking(
            user_id="u",
            station_id="s",
            slot_number=1,
            start_time=self.START,
            end_time=self.START + timedelta(hours=1),
            duration=1,
            total_amount=10,
        )

    def test_defaults(self) -> None:
        booking = self._booking()

        assert booking.status == "booked"
        assert booking.payment_status == "pending"
        assert booking.payment_intent_id == ""
        assert booking.is_active
        assert booking.vehicle_info is None

    @pytest.mark.parametrize(
        "offset_start, offset_end, expected",
        [
            (timedelta(minutes=30), timedelta(minutes=90), True),
            (timedelta(hours=1), timedelta(hours=2), False),  # touching at the end
            (timedelta(hours=-1), timedelta(0), False),  # touching at the start
            (timedelta(minutes=-30), timedelta(hours=2), True),  # covering
        ],
    )
    def test_half_open_overlap(self, offset_start, offset_end, expected) -> None:
        booking = self._booking()
        assert booking.overlaps(self.START + offset_start, self.START + offset_end) is expected

    def test_naive_stored_times_are_treated_as_utc(self) -> None:
        booking = self._booking()
        booking.start_time = self.START.replace(tzinfo=None)
        booking.end_time = (self.START + timedelta(hours=1)).replace(tzinfo=None)

        assert booking.overlaps(self.START + timedelta(minutes=59), self.START + timedelta(hours=3))
        assert booking.hours_until_start(self.START - timedelta(hours=2)) == pytest.approx(2)

    def test_lifecycle_helpers(self) -> None:
        booking = self._booking()

        booking.start_charging()
        assert booking.status == "in_progress"
        booking.complete()
        assert booking.status == "completed"
        assert not booking.is_active
