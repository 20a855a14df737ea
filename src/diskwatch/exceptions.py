"""Custom exceptions for the diskwatch package."""


class DiskWatchError(Exception):
    """Base exception for all diskwatch errors."""
    pass


class ConfigError(DiskWatchError, ValueError):
    """Invalid configuration value."""
    pass


class StoreError(DiskWatchError):
    """Error related to the history store."""
    pass


class StoreUnavailableError(StoreError):
    """History store could not be opened or created."""
    pass


class StoreWriteError(StoreError):
    """An entry could not be appended to the history store."""
    pass


class CycleError(StoreError):
    """A reconciliation cycle finished with failed appends."""

    def __init__(self, message: str, failures=None):
        super().__init__(message)
        self.failures = list(failures or [])


class WatchStateError(DiskWatchError):
    """Illegal transition between reporting and watching."""
    pass
