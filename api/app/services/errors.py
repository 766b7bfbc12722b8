class MarketplaceError(Exception):
    """Base marketplace error."""


class ValidationError(MarketplaceError):
    """Raised when input is malformed or missing required fields."""


class NotFoundError(MarketplaceError):
    """Raised when the requested gig or application does not exist."""


class AuthorizationError(MarketplaceError):
    """Raised when the acting user is not the owner or applicant required."""


class ConflictError(MarketplaceError):
    """Raised when an operation conflicts with the current gig or application state."""


class InvalidTransition(MarketplaceError):
    """Raised when a gig status change is not a legal lifecycle edge."""


class ConcurrencyError(MarketplaceError):
    """Raised when a write lost a race against another write to the same gig."""


class StoreUnavailableError(MarketplaceError):
    """Raised when the store is unavailable, not configured or timed out."""
