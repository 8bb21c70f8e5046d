"""modelstate error hierarchy.

All modelstate-specific errors inherit from ModelStateError for easy catching.
"""


class ModelStateError(Exception):
    """Base error for all modelstate operations."""


class StorageNotDefinedError(ModelStateError):
    """A sync operation was requested but no storage could be resolved."""

    def __init__(self, message: str = "Storage is not defined."):
        super().__init__(message)


class SyncMethodError(ModelStateError):
    """A storage was asked to perform a sync method it does not know."""

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"Method is not found: {method!r}")


class RecordNotFoundError(ModelStateError):
    """A storage has no record for the requested id."""

    def __init__(self, record_id):
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id!r}")
