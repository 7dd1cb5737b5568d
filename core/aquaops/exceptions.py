"""
AquaOps Custom Exceptions

Every engine error is recoverable: it is raised to the caller and leaves
the fleet state as it was before the call.
"""

from typing import Any


class AquaOpsError(Exception):
    """Base exception for AquaOps."""

    def __init__(self, message: str = "", details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details: dict[str, Any] = details or {}


class ConfigurationError(AquaOpsError):
    """Configuration or fixture is invalid."""

    pass


class InvalidSample(AquaOpsError):
    """Sample is not a finite number."""

    def __init__(self, message: str = "Invalid sample", value: Any = None, details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.value = value


class InvalidReading(InvalidSample):
    """Telemetry reading rejected at the store boundary."""

    def __init__(
        self,
        message: str = "Invalid reading",
        unit_id: str | None = None,
        metric: str | None = None,
        value: Any = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, value=value, details=details)
        self.unit_id = unit_id
        self.metric = metric


class UnitNotFoundError(AquaOpsError):
    """No unit with the requested id."""

    def __init__(self, unit_id: str):
        super().__init__(f"Unit not found: {unit_id}", {"unit_id": unit_id})
        self.unit_id = unit_id


class EmptyFleetError(AquaOpsError):
    """Aggregation requested over zero units."""

    pass


class AdvisoryUnavailableError(AquaOpsError):
    """The advisor could not compose a response."""

    pass
