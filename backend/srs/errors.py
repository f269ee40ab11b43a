"""Errors raised by the scheduler and its persistence collaborator."""


class SchedulerError(Exception):
    """Base class for all scheduling errors."""


class InvalidRating(SchedulerError, ValueError):
    """A rating outside 1=Again, 2=Hard, 3=Good, 4=Easy."""

    def __init__(self, rating: object) -> None:
        super().__init__(f"Invalid rating {rating!r}: expected 1 (Again) to 4 (Easy)")
        self.rating = rating


class InvalidState(SchedulerError):
    """A stored card study with an impossible combination of fields."""


class PersistenceFailure(SchedulerError):
    """Loading or saving a card study failed in the storage layer."""
