"""Custom exceptions for ride management."""


class RideError(Exception):
    """Base class for ride errors."""
    pass


class RideNotFoundError(RideError):
    """Raised when a ride cannot be found."""

    def __init__(self, ride_id):
        self.ride_id = ride_id
        super().__init__(f"Ride {ride_id} not found")


class InvalidRideDataError(RideError):
    """Raised when ride input is missing or malformed."""
    pass
