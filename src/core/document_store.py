"""Document-style persistence on top of the Supabase client.

Services read and write whole records by id or by a list of field filters.
Transport failures are re-signalled as ServiceUnavailableError so callers can
tell "offline, retry" apart from every other failure.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Any, TypeVar
from uuid import uuid4

import httpx
from supabase import Client

from src.api.middleware.error_handler import ServiceUnavailableError, StoreError
from src.core.normalization import utcnow
from src.core.supabase import get_supabase_client

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Collections used by the ledger and billing engines
ORDERS = "orders"
PAYMENTS = "payments"
DEBTS = "debts"
PLANS = "plans"
SUBSCRIPTIONS = "subscriptions"
SHOPS = "shops"
CUSTOMERS = "customers"
EXPENSES = "expenses"


class FilterOperator(str, Enum):
    """Comparison operators accepted by get_collection."""

    EQ = "=="
    NE = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    ARRAY_CONTAINS = "array-contains"
    IN = "in"
    NOT_IN = "not-in"


@dataclass(frozen=True)
class QueryFilter:
    """A single ``field operator value`` condition."""

    field: str
    operator: FilterOperator | str
    value: Any

    def __post_init__(self) -> None:
        object.__setattr__(self, "operator", FilterOperator(self.operator))


def where(field: str, operator: FilterOperator | str, value: Any) -> QueryFilter:
    """Shorthand constructor for QueryFilter."""
    return QueryFilter(field, operator, value)


def to_storable(value: Any) -> Any:
    """Convert Decimal, datetime and Enum values into JSON-safe primitives.

    Decimals are sent as strings so no precision is lost on the way to a
    numeric column.
    """
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {k: to_storable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_storable(v) for v in value]
    return value


def _apply_filter(query: Any, condition: QueryFilter) -> Any:
    field, op, value = condition.field, condition.operator, to_storable(condition.value)
    if op == FilterOperator.EQ:
        return query.is_(field, "null") if value is None else query.eq(field, value)
    if op == FilterOperator.NE:
        return query.not_.is_(field, "null") if value is None else query.neq(field, value)
    if op == FilterOperator.GT:
        return query.gt(field, value)
    if op == FilterOperator.GTE:
        return query.gte(field, value)
    if op == FilterOperator.LT:
        return query.lt(field, value)
    if op == FilterOperator.LTE:
        return query.lte(field, value)
    if op == FilterOperator.ARRAY_CONTAINS:
        return query.contains(field, [value])
    if op == FilterOperator.IN:
        return query.in_(field, list(value))
    if op == FilterOperator.NOT_IN:
        return query.not_.in_(field, list(value))
    raise ValueError(f"Unsupported filter operator: {op}")


class DocumentStore:
    """Record-level access to Supabase tables."""

    def __init__(self, supabase_client: Client | None = None) -> None:
        """Initialize the store.

        Args:
            supabase_client: Optional Supabase client for testing.
        """
        self._supabase_client = supabase_client

    @property
    def client(self) -> Client:
        """Get Supabase client."""
        if self._supabase_client is None:
            self._supabase_client = get_supabase_client()
        return self._supabase_client

    def _execute(self, action: str, call: Callable[[], T]) -> T:
        try:
            return call()
        except (httpx.TransportError, ConnectionError, TimeoutError) as e:
            logger.warning("Database unreachable during %s: %s", action, e)
            raise ServiceUnavailableError() from e
        except Exception as e:
            logger.error("Database error during %s: %s", action, e)
            raise StoreError(f"Database error during {action}") from e

    async def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Get a record by id.

        Args:
            collection: Table name.
            doc_id: Record id.

        Returns:
            dict | None: The record or None if not found.
        """
        response = self._execute(
            f"get {collection}/{doc_id}",
            lambda: self.client.table(collection)
            .select("*")
            .eq("id", str(doc_id))
            .maybe_single()
            .execute(),
        )
        return response.data if response and response.data else None

    async def get_collection(
        self,
        collection: str,
        filters: list[QueryFilter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """Get all records matching every filter.

        Args:
            collection: Table name.
            filters: Conditions combined with AND.
            order_by: Optional column to sort by.
            descending: Sort direction for order_by.

        Returns:
            list[dict]: Matching records.
        """

        def run() -> Any:
            query = self.client.table(collection).select("*")
            for condition in filters or []:
                query = _apply_filter(query, condition)
            if order_by:
                query = query.order(order_by, desc=descending)
            return query.execute()

        response = self._execute(f"query {collection}", run)
        return response.data or []

    async def add_document(self, collection: str, data: dict[str, Any]) -> str:
        """Insert a record and return its id.

        Ids are generated client-side so a failed multi-step write can be
        compensated by id.
        """
        payload = to_storable(data)
        payload.setdefault("id", str(uuid4()))
        payload.setdefault("created_at", utcnow().isoformat())
        response = self._execute(
            f"insert into {collection}",
            lambda: self.client.table(collection).insert(payload).execute(),
        )
        if response.data:
            return str(response.data[0]["id"])
        return payload["id"]

    async def update_document(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Apply a partial update and stamp updated_at."""
        payload = to_storable({**data, "updated_at": utcnow()})
        self._execute(
            f"update {collection}/{doc_id}",
            lambda: self.client.table(collection).update(payload).eq("id", str(doc_id)).execute(),
        )

    async def update_document_if(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        expected: dict[str, Any],
    ) -> bool:
        """Apply a partial update only if the record still holds the expected values.

        This is the compare-and-swap used to serialize concurrent money
        updates on the same record.

        Returns:
            bool: True if the record matched and was updated.
        """
        payload = to_storable({**data, "updated_at": utcnow()})

        def run() -> Any:
            query = self.client.table(collection).update(payload).eq("id", str(doc_id))
            for field, value in expected.items():
                query = _apply_filter(query, QueryFilter(field, FilterOperator.EQ, value))
            return query.execute()

        response = self._execute(f"conditional update {collection}/{doc_id}", run)
        return bool(response.data)

    async def delete_document(self, collection: str, doc_id: str) -> None:
        """Delete a record by id."""
        self._execute(
            f"delete {collection}/{doc_id}",
            lambda: self.client.table(collection).delete().eq("id", str(doc_id)).execute(),
        )


@lru_cache
def get_document_store() -> DocumentStore:
    """Get the shared document store."""
    return DocumentStore()
