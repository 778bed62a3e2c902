"""Error taxonomy shared by the monitoring core and the HTTP layer."""

from __future__ import annotations


class VitalWatchError(Exception):
    """Base class for domain errors."""

    status_code = 500
    error_type = "server_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingFieldError(VitalWatchError):
    """Raised when a required ingestion field is absent."""

    status_code = 400
    error_type = "missing_field"

    def __init__(self, field_name: str):
        super().__init__(f"Missing required field: {field_name}")
        self.field_name = field_name


class InvalidValueError(VitalWatchError):
    """Raised when a vital is present but not numeric."""

    status_code = 400
    error_type = "invalid_value"

    def __init__(self, field_name: str, value: object):
        super().__init__(f"Field {field_name} must be numeric, got {value!r}")
        self.field_name = field_name
        self.value = value


class OutOfRangeError(VitalWatchError):
    """A value outside the sensor's physical range.

    Normally attached to a normalized reading as a diagnostic instead of being
    raised; strict validation raises it.
    """

    status_code = 400
    error_type = "out_of_range"

    def __init__(self, field_name: str, value: float, low: float, high: float):
        super().__init__(
            f"{field_name}={value} outside sensor range [{low}, {high}]"
        )
        self.field_name = field_name
        self.value = value
        self.low = low
        self.high = high


class NotFoundError(VitalWatchError):
    status_code = 404
    error_type = "not_found"


class InvalidStateError(VitalWatchError):
    """Raised on an illegal alert lifecycle transition."""

    status_code = 409
    error_type = "invalid_state"


class DependencyError(VitalWatchError):
    """Raised when storage or another collaborator is unreachable."""

    status_code = 503
    error_type = "dependency_error"


class ConflictError(VitalWatchError):
    """Raised when creating something that already exists."""

    status_code = 409
    error_type = "conflict"
