"""
Pytest configuration and shared fixtures for the data mapper tests.

The pipeline talks to three collaborators (document store, relational store,
model provider). The fakes below stand in for them so every stage can be
exercised without MongoDB, Postgres or network access.
"""

import os

# Never bootstrap real catalog tables from the FastAPI lifespan during tests.
os.environ.setdefault("SKIP_DB_INIT", "1")

from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from datamapper.domain.mapping.errors import StoreUnavailableError
from datamapper.domain.mapping.models import BatchErrorKind, BatchWriteOutcome
from datamapper.domain.mapping.progress import ProgressBus
from datamapper.integrations.document_store import filter_tenant_collections
from datamapper.integrations.llm import ModelTransportError

TENANT_ID = "0b7e6a52-4c1f-4a55-9a61-2f5d3c9e8a10"


class FakeDocumentStore:
    """In-memory document store keyed by collection name."""

    def __init__(self, collections: Optional[Dict[str, List[Dict[str, Any]]]] = None, reachable: bool = True):
        self.collections = collections or {}
        self.reachable = reachable
        self.sample_calls: List[str] = []

    def ping(self) -> None:
        if not self.reachable:
            raise StoreUnavailableError("document", "Document store is unreachable: connection refused")

    def list_collections(self, tenant_id: str) -> List[str]:
        return filter_tenant_collections(list(self.collections), tenant_id)

    def count(self, collection: str) -> int:
        return len(self.collections.get(collection, []))

    def sample(self, collection: str, n: int) -> List[Dict[str, Any]]:
        self.sample_calls.append(collection)
        return [dict(doc) for doc in self.collections.get(collection, [])[:n]]

    def load_all(self, collection: str) -> List[Dict[str, Any]]:
        return [dict(doc) for doc in self.collections.get(collection, [])]


FailureRule = Callable[[str, int], Optional[BatchWriteOutcome]]


class FakeRelationalStore:
    """
    Records every insert call. ``failure`` can return an outcome for a given
    (table, call index) to simulate a failing batch.
    """

    def __init__(self, failure: Optional[FailureRule] = None, reachable: bool = True):
        self.failure = failure
        self.reachable = reachable
        self.calls: List[Dict[str, Any]] = []
        self.rows: Dict[str, List[Dict[str, Any]]] = {}

    def ping(self) -> None:
        if not self.reachable:
            raise StoreUnavailableError("relational", "Relational store is unreachable: connection refused")

    def insert_batch(self, table: str, rows: List[Dict[str, Any]]) -> BatchWriteOutcome:
        index = sum(1 for call in self.calls if call["table"] == table)
        self.calls.append({"table": table, "rows": list(rows)})
        if self.failure is not None:
            outcome = self.failure(table, index)
            if outcome is not None:
                return outcome
        self.rows.setdefault(table, []).extend(rows)
        return BatchWriteOutcome(inserted_count=len(rows))

    def count_rows(self, table: str, tenant_id: str) -> int:
        return sum(1 for row in self.rows.get(table, []) if row.get("business_id") == tenant_id)

    def clear_tenant(self, tenant_id: str) -> Dict[str, Dict[str, Any]]:
        results = {}
        for table, rows in self.rows.items():
            kept = [row for row in rows if row.get("business_id") != tenant_id]
            results[table] = {"success": True, "deleted": len(rows) - len(kept)}
            self.rows[table] = kept
        return results


def failing_batch(table: str, index: int, kind: BatchErrorKind = BatchErrorKind.WRITE) -> FailureRule:
    def rule(called_table: str, called_index: int) -> Optional[BatchWriteOutcome]:
        if called_table == table and called_index == index:
            return BatchWriteOutcome(inserted_count=0, error="simulated batch failure", error_kind=kind)
        return None
    return rule


class FakeModelProvider:
    """Replays scripted responses; an Exception entry is raised instead of returned."""

    def __init__(self, responses: Sequence[Union[str, Exception]] = ()):
        self.responses = list(responses)
        self.calls: List[Dict[str, str]] = []

    def complete(self, system_prompt: str, user_prompt: str, model: str) -> str:
        self.calls.append({"model": model, "system": system_prompt, "user": user_prompt})
        if not self.responses:
            raise ModelTransportError(model, "no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def product_documents(count: int = 9) -> List[Dict[str, Any]]:
    return [
        {
            "_id": f"doc-{index}",
            "Product Name": f"Widget {index}",
            "Price": f"${10 + index}.50",
            "Status": "active",
        }
        for index in range(count)
    ]


@pytest.fixture
def tenant_id() -> str:
    return TENANT_ID


@pytest.fixture
def bus() -> ProgressBus:
    return ProgressBus(console=False)


@pytest.fixture
def sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()
