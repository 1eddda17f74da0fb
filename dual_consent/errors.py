class PersistenceError(RuntimeError):
    """A store write failed; the registration attempt was rolled back."""


class RequestExpiredError(PermissionError):
    """A dual-consent request was resolved after its expiry window."""
