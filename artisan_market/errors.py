"""Error taxonomy shared by the storage layer, the session store and the views.

Validation problems subclass ``ValueError`` so callers that only care about
"bad input" can keep catching that; everything else derives from
``MarketError``.
"""


class MarketError(Exception):
    """Base class for failures reported back to the invoking user."""


class InvalidInput(MarketError, ValueError):
    """Rejected before any collaborator was called."""


class InvalidTransition(InvalidInput):
    def __init__(self, current: str, target: str):
        super().__init__(f"cannot move order from {current} to {target}")
        self.current = current
        self.target = target


class AuthError(MarketError):
    """Credentials or session token were not accepted."""


class PermissionDenied(MarketError):
    pass


class NotFound(MarketError):
    pass


class GeocodingError(MarketError):
    """The geocoding service could not be reached or answered garbage."""


class LocationNotFound(GeocodingError):
    pass
