# typed errors raised by the db package, mapped 1:1 to what the UI shows
from typing import Any, Optional


class CatalogError(Exception):
    """Base class for every error the core raises on purpose."""


class ValidationError(CatalogError):
    """Malformed or missing required input."""

    def __init__(
        self, message: str, field: Optional[str] = None, value: Any = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.value = value


class NotFoundError(CatalogError):
    """Referenced entity does not exist."""

    def __init__(self, entity: str, key: Any) -> None:
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class ConflictError(CatalogError):
    """Uniqueness violation on special_id / order_id."""

    def __init__(self, field: str, value: Any = None) -> None:
        if value is None:
            msg = f"Duplicate value for {field}."
        else:
            msg = f"{field} {value!r} already exists."
        super().__init__(msg)
        self.field = field
        self.value = value


class StorageError(CatalogError):
    """
    Underlying persistence failure. The message stays generic,
    driver details only go to the log.
    """

    def __init__(self, message: str = "Storage failure, please try again.") -> None:
        super().__init__(message)


class SyncSourceError(CatalogError):
    """A spreadsheet source (file or Google Sheet) could not be read."""

    def __init__(self, message: str, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.source = source
