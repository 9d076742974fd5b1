"""Domain-specific errors for capbridge."""


class CapbridgeError(Exception):
    """Base error for capbridge."""


class MapValidationError(CapbridgeError):
    """Raised when a capability map does not conform to schema or semantics."""


class MapLoadError(CapbridgeError):
    """Raised when loading capability map sources fails."""


class ConfigError(CapbridgeError):
    """Raised when the settings file is unreadable or malformed."""


class LedgerLoadError(CapbridgeError):
    """Raised when the persisted exposure ledger cannot be read."""


class MissingValueError(CapbridgeError):
    """Raised when a characteristic read finds no value for its capability."""

    def __init__(self, capability: str) -> None:
        super().__init__(f"missing capability value for '{capability}'")
        self.capability = capability


class TargetError(CapbridgeError):
    """Base target-protocol error."""


class ServiceCreationError(TargetError):
    """Raised when a service cannot be added to an accessory."""


class DeviceLimitReachedError(TargetError):
    """Raised when the bridge cannot hold any more accessories."""


class DeviceUnavailableError(CapbridgeError):
    """Raised when exposing a device that is currently unavailable."""


class ExposeError(CapbridgeError):
    """Raised when a device could not be added to the bridge."""


class UnexposeError(CapbridgeError):
    """Raised when a device could not be removed from the bridge."""
