"""Exception types shared across the pipeline."""


class EnricherError(Exception):
    """Base class for all enricher errors."""


class ConfigurationError(EnricherError):
    """Invalid configuration or input layout. Raised before any record is processed."""


class PersistenceError(EnricherError):
    """The output destination cannot be read, opened or written."""


class TransientServiceFailure(EnricherError):
    """A network, timeout or throttle fault that is worth retrying."""


class MalformedResponse(EnricherError):
    """A service answered, but not in the expected shape."""
