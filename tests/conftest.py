"""Pytest configuration and fixtures."""

import copy
import os
from collections import defaultdict
from collections.abc import Generator
from decimal import Decimal, InvalidOperation
from typing import Any
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")

from src.api.middleware.error_handler import ServiceUnavailableError  # noqa: E402
from src.core.document_store import DocumentStore, FilterOperator, QueryFilter, to_storable  # noqa: E402
from src.core.normalization import utcnow  # noqa: E402


def _as_number(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _same(stored: Any, expected: Any) -> bool:
    """Compare like a numeric column would: "100" equals "100.00"."""
    if stored is None or expected is None:
        return stored is None and expected is None
    left, right = _as_number(stored), _as_number(expected)
    if left is not None and right is not None:
        return left == right
    return stored == expected


def _ordered(stored: Any, expected: Any) -> int:
    left, right = _as_number(stored), _as_number(expected)
    if left is not None and right is not None:
        return (left > right) - (left < right)
    return (str(stored) > str(expected)) - (str(stored) < str(expected))


def _matches(row: dict[str, Any], condition: QueryFilter) -> bool:
    stored = row.get(condition.field)
    value = to_storable(condition.value)
    op = condition.operator
    if op == FilterOperator.EQ:
        return _same(stored, value)
    if op == FilterOperator.NE:
        return not _same(stored, value)
    if stored is None and op not in (FilterOperator.NOT_IN,):
        return False
    if op == FilterOperator.GT:
        return _ordered(stored, value) > 0
    if op == FilterOperator.GTE:
        return _ordered(stored, value) >= 0
    if op == FilterOperator.LT:
        return _ordered(stored, value) < 0
    if op == FilterOperator.LTE:
        return _ordered(stored, value) <= 0
    if op == FilterOperator.ARRAY_CONTAINS:
        return isinstance(stored, list) and any(_same(item, value) for item in stored)
    if op == FilterOperator.IN:
        return any(_same(stored, v) for v in value)
    if op == FilterOperator.NOT_IN:
        return not any(_same(stored, v) for v in value)
    raise ValueError(f"Unsupported filter operator: {op}")


class InMemoryDocumentStore(DocumentStore):
    """DocumentStore keeping rows in dictionaries.

    Rows are stored in their serialized form, as the database would hold
    them. ``offline`` makes every call raise ServiceUnavailableError and
    ``fail_on`` raises a chosen error for one (method, collection) pair.
    """

    def __init__(self) -> None:
        super().__init__(supabase_client=MagicMock())
        self.collections: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self.offline = False
        self.fail_on: dict[tuple[str, str], Exception] = {}
        self.calls: list[tuple[str, str]] = []

    def seed(self, collection: str, *rows: dict[str, Any]) -> None:
        for row in rows:
            stored = to_storable(row)
            self.collections[collection][stored["id"]] = stored

    def rows(self, collection: str) -> list[dict[str, Any]]:
        return list(self.collections[collection].values())

    def row(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        return self.collections[collection].get(doc_id)

    def _enter(self, method: str, collection: str) -> None:
        self.calls.append((method, collection))
        if self.offline:
            raise ServiceUnavailableError()
        error = self.fail_on.get((method, collection))
        if error is not None:
            raise error

    async def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        self._enter("get_document", collection)
        row = self.collections[collection].get(str(doc_id))
        return copy.deepcopy(row) if row is not None else None

    async def get_collection(
        self,
        collection: str,
        filters: list[QueryFilter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        self._enter("get_collection", collection)
        rows = [
            copy.deepcopy(row)
            for row in self.collections[collection].values()
            if all(_matches(row, condition) for condition in filters or [])
        ]
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by)), reverse=descending)
        return rows

    async def add_document(self, collection: str, data: dict[str, Any]) -> str:
        self._enter("add_document", collection)
        payload = to_storable(data)
        payload.setdefault("id", str(uuid4()))
        payload.setdefault("created_at", utcnow().isoformat())
        self.collections[collection][payload["id"]] = payload
        return payload["id"]

    async def update_document(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._enter("update_document", collection)
        row = self.collections[collection].get(str(doc_id))
        if row is not None:
            row.update(to_storable({**data, "updated_at": utcnow()}))

    async def update_document_if(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        expected: dict[str, Any],
    ) -> bool:
        self._enter("update_document_if", collection)
        row = self.collections[collection].get(str(doc_id))
        if row is None:
            return False
        if not all(_same(row.get(field), to_storable(value)) for field, value in expected.items()):
            return False
        row.update(to_storable({**data, "updated_at": utcnow()}))
        return True

    async def delete_document(self, collection: str, doc_id: str) -> None:
        self._enter("delete_document", collection)
        self.collections[collection].pop(str(doc_id), None)


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    """Provide an empty in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    # Configure default mock responses
    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("src.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def client(
    mock_supabase_client: MagicMock,
    store: InMemoryDocumentStore,
) -> Generator[TestClient, None, None]:
    """Provide a test client wired to the in-memory store.

    Args:
        mock_supabase_client: Mocked Supabase client fixture.
        store: In-memory store the routes read and write.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.api.deps import get_store
    from src.main import app

    app.dependency_overrides[get_store] = lambda: store
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
