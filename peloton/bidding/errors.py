"""
Error taxonomy for the bidding engine.

Every error here is recoverable by the user retrying the action:
- ValidationRejected: user-correctable, message is shown verbatim
- StaleDataConflict: the view is out of date, a fresh reload is required
- TransportFailure: the external store call failed, nothing was committed
"""


class BiddingError(Exception):
    """Base class for bidding engine errors."""


class ValidationRejected(BiddingError):
    """A bid placement or cancellation broke a game rule."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NotParticipantError(ValidationRejected):
    """The user has not joined the game and is not an admin."""


class StaleDataConflict(BiddingError):
    """Rider was sold or re-priced since the view was rendered."""


class TransportFailure(BiddingError):
    """The external store could not complete the request."""
