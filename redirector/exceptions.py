class RedirectorError(Exception):
    """Base error for the redirector."""


class StatsPersistenceError(RedirectorError):
    """Stats could not be written to disk. In-memory state is kept."""


class ConfigurationError(RedirectorError):
    """Settings from the CLI or environment are unusable."""
