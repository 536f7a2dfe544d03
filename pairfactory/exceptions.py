"""
Pair Factory SDK - Exceptions

Every failure aborts the triggering operation; the ledger transaction
rolls back, so callers never observe partial state.
"""


class FactoryError(Exception):
    """Base class for factory failures."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(FactoryError):
    """Bad administrative input (fee ceiling, zero address, variant args)."""


class FeeTooLarge(ConfigurationError):
    """Fee multiplier above MAX_PROTOCOL_FEE."""
    def __init__(self, requested: int, maximum: int):
        self.requested = requested
        self.maximum = maximum
        super().__init__(f"Fee multiplier {requested} exceeds maximum {maximum}")


class ZeroAddress(ConfigurationError):
    """The null address was supplied where a real one is required."""
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"{field} cannot be the zero address")


class InvariantViolation(FactoryError):
    """Grant would make an address both a call target and a router."""


class DeploymentFailed(FactoryError):
    """Clone creation failed (address collision, bad salt)."""


class InitializationFailed(FactoryError):
    """Pair initialize or seed asset transfer failed after deployment."""


class PermissionDenied(FactoryError):
    """Non-owner invoked an owner-gated operation."""
    def __init__(self, sender: str, operation: str):
        self.sender = sender
        self.operation = operation
        super().__init__(f"{sender} is not allowed to call {operation}")
