class SeatSyncError(Exception):
    """Base exception for seat synchronization errors."""

    pass


class SeatNotFoundError(SeatSyncError):
    def __init__(self, seat_id: object) -> None:
        self.seat_id = seat_id
        super().__init__(f"Seat {seat_id} not found")


class InvalidSeatStateError(SeatSyncError):
    def __init__(self, seat_id: int, message: str) -> None:
        self.seat_id = seat_id
        super().__init__(message)


class MalformedInputError(SeatSyncError):
    """Producer payload that cannot be turned into a seat event."""

    pass


class TransportUnavailableError(SeatSyncError):
    """Hardware link is down; actuator commands cannot be delivered."""

    pass
