"""Exception hierarchy for parkreserve."""


class ParkReserveError(Exception):
    """Base exception."""


class ConfigError(ParkReserveError):
    """Invalid configuration."""


class AuthError(ParkReserveError):
    """Session cookie or csrf token missing or unusable."""


class SnapshotError(ParkReserveError):
    """Reservation info snapshot could not be fetched."""


class TargetNotFoundError(ParkReserveError):
    """No reservation target with this id in the snapshot."""


class TransportError(ParkReserveError):
    """A claim request produced no interpretable result."""


class InvalidTransitionError(ParkReserveError):
    """A job tried to leave a terminal state."""
