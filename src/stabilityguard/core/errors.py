class StabilityGuardError(Exception):
    """Base class for stabilityguard errors."""


class InvalidConfigurationError(StabilityGuardError, ValueError):
    """History capacity or another setting is out of range."""


class HistoryLookupError(StabilityGuardError):
    """A previous-result lookup failed internally.

    Never escapes history propagation: the queried link is treated as absent.
    """
