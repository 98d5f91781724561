"""Base model for records read from the database."""

import logging
from collections.abc import Iterable
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound="StoredRecord")


class StoredRecord(BaseModel):
    """A database row normalized at read time.

    Rows migrated from the original document store still carry camelCase
    keys, so both spellings are accepted.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @classmethod
    def from_row(cls: type[RecordT], row: dict[str, Any]) -> RecordT:
        """Parse a single row, raising pydantic's ValidationError on bad data."""
        return cls.model_validate(row)


def parse_records(model: type[RecordT], rows: Iterable[dict[str, Any]]) -> list[RecordT]:
    """Parse rows, skipping any that fail validation.

    A single corrupt record must not take down an aggregate view, so bad
    rows are logged and dropped.
    """
    records: list[RecordT] = []
    for row in rows:
        try:
            records.append(model.from_row(row))
        except PydanticValidationError as e:
            logger.warning(
                "Skipping invalid %s record %s: %d error(s)",
                model.__name__,
                row.get("id") if isinstance(row, dict) else None,
                e.error_count(),
            )
    return records
