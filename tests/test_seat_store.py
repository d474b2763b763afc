"""Unit tests for SeatStore."""

import pytest

from conftest import T0, TIMEOUT
from seatsync.exceptions import InvalidSeatStateError, SeatNotFoundError
from seatsync.services.seat_store import SeatStore


class TestSeatStore:
    def test_all_seats_start_available(self, store):
        seats = store.get_all()

        assert [s.id for s in seats] == [1, 2, 3, 4]
        assert all(not s.occupied for s in seats)
        assert all(s.expires_at is None for s in seats)
        assert all(s.updated_at == T0 for s in seats)

    def test_rejects_empty_seat_set(self):
        with pytest.raises(ValueError):
            SeatStore(0, TIMEOUT)

    @pytest.mark.parametrize("seat_id", [0, 5, -1, 100])
    def test_get_unknown_seat(self, store, seat_id):
        with pytest.raises(SeatNotFoundError):
            store.get(seat_id)

    def test_apply_occupied_sets_expiry(self, store, clock):
        now = clock.advance(minutes=5)

        seat = store.apply(2, True, now)

        assert seat.occupied is True
        assert seat.updated_at == now
        assert seat.expires_at == now + TIMEOUT
        assert store.get(2) == seat

    def test_apply_unoccupied_clears_expiry(self, store, clock):
        store.apply(2, True, clock())
        later = clock.advance(minutes=10)

        seat = store.apply(2, False, later)

        assert seat.occupied is False
        assert seat.expires_at is None
        assert seat.updated_at == later

    def test_apply_unknown_seat_does_not_mutate(self, store, clock):
        before = store.get_all()

        with pytest.raises(SeatNotFoundError):
            store.apply(9, True, clock())

        assert store.get_all() == before
        assert 9 not in store

    def test_refresh_expiry(self, store, clock):
        store.apply(1, True, clock())
        later = clock.advance(minutes=50)

        seat = store.refresh_expiry(1, later)

        assert seat.updated_at == later
        assert seat.expires_at == later + TIMEOUT

    def test_refresh_expiry_requires_occupied_seat(self, store, clock):
        before = store.get(1)

        with pytest.raises(InvalidSeatStateError, match="cannot extend an unoccupied seat"):
            store.refresh_expiry(1, clock.advance(minutes=1))

        assert store.get(1) == before

    def test_snapshot_is_not_affected_by_later_mutations(self, store, clock):
        snapshot = store.get_all()

        store.apply(3, True, clock())

        assert snapshot[2].occupied is False
        assert store.get_all()[2].occupied is True

    def test_remaining_time_is_derived_at_read_time(self, store, clock):
        seat = store.apply(1, True, clock())

        assert seat.remaining_seconds(clock.advance(minutes=15)) == 45 * 60
        assert seat.remaining_seconds(clock.advance(hours=2)) == 0.0
        assert store.get(2).remaining_seconds(clock()) is None
