class DigitalMeError(Exception):
    """Base error for all user-facing Digital Me exceptions."""

    status_code = 500


class ConfigurationError(DigitalMeError):
    """Raised when configuration is invalid or incomplete."""


class ProjectNotInitializedError(DigitalMeError):
    """Raised when the .digitalme data directory or database is missing."""


class ValidationError(DigitalMeError):
    """Raised when input data or model invariants fail."""

    status_code = 400


class BagValidationError(ValidationError):
    """Raised when a submitted bag is structurally incomplete or fails a checksum."""


class ResourceIngestError(ValidationError):
    """Raised when a validated bag still cannot be turned into a resource."""


class AuthenticationError(DigitalMeError):
    """Raised when the caller identity is missing or unknown."""

    status_code = 401


class PermissionDeniedError(DigitalMeError):
    """Raised when the caller's access level does not allow the operation."""

    status_code = 403


class ResourceNotFoundError(DigitalMeError):
    """Raised when a resource id is unknown or malformed."""

    status_code = 404
