class QueueError(Exception):
    """Base class for queue errors surfaced to callers."""


class ConfigurationError(QueueError):
    """Unknown connection name or a provider that does not honour the contract."""


class SerializationError(QueueError):
    """A job could not be turned into a durable payload, or back into a job."""
