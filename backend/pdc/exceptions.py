"""Domain exceptions raised by services and the bulk upload pipeline.

Routers translate these into HTTP responses; the worker treats them as
task failures.
"""

from typing import Any


class NotFoundError(Exception):
    """A load-by-id found no row."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} does not exist")


class InputValidationError(ValueError):
    """A request carried values the service refuses to persist."""


class ConflictError(Exception):
    """A write would violate a uniqueness rule."""


class StorageError(Exception):
    """The object store could not serve or move an object."""


class BulkUploadCsvError(ValueError):
    """A bulk upload CSV failed structural validation.

    Any instance of this error invalidates the whole batch.
    """


class EmptyCsvError(BulkUploadCsvError):
    def __init__(self) -> None:
        super().__init__("No short codes detected in the first row of the CSV")


class UnknownShortCodeError(BulkUploadCsvError):
    def __init__(self, short_code: str) -> None:
        self.short_code = short_code
        super().__init__(f"{short_code} is not a valid BaseField short code.")


class MissingRequiredColumnError(BulkUploadCsvError):
    def __init__(self, short_code: str) -> None:
        self.short_code = short_code
        super().__init__(f"The CSV is missing the required column {short_code}.")


class RaggedRowError(BulkUploadCsvError):
    def __init__(self, line_number: int, expected: int, actual: int) -> None:
        self.line_number = line_number
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Row {line_number} has {actual} columns but the header has {expected}."
        )
