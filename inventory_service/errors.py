# inventory_service/errors.py

"""
Errors raised by the stores and the store router.
The HTTP layer maps them to status codes; none of them carry details meant for clients.
"""


class StoreError(Exception):
    """Base class for store errors."""


class NotFoundError(StoreError):
    """An update, delete or lookup referenced an identifier that does not exist."""

    def __init__(self, record_type: str, record_id: int):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f"{record_type} {record_id} not found")


class InvalidReferenceError(StoreError):
    """A mutation referenced a branch or product that does not exist."""


class RecordInUseError(StoreError):
    """A delete was refused because other records still point at the record."""


class BackendUnavailableError(StoreError):
    """The relational backend could not be reached or a query against it failed."""


class ValueOutOfRangeError(StoreError):
    """A computed amount does not fit the stored column."""
