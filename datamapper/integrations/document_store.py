"""
Document store holding each tenant's schema-less collections.

Tenant collections are named ``<tenant_id>_<suffix>``.
"""
import logging
import re
from typing import Any, Dict, List, Optional, Protocol

from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from datamapper.core.config import settings
from datamapper.domain.mapping.errors import DocumentStoreError, StoreUnavailableError

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    def ping(self) -> None:
        ...

    def list_collections(self, tenant_id: str) -> List[str]:
        ...

    def count(self, collection: str) -> int:
        ...

    def sample(self, collection: str, n: int) -> List[Dict[str, Any]]:
        ...

    def load_all(self, collection: str) -> List[Dict[str, Any]]:
        ...


def tenant_collection_prefix(tenant_id: str) -> str:
    return f"{tenant_id}_"


def filter_tenant_collections(names: List[str], tenant_id: str) -> List[str]:
    pattern = re.compile(rf"^{re.escape(tenant_collection_prefix(tenant_id))}")
    return sorted(name for name in names if pattern.match(name))


class MongoDocumentStore:
    def __init__(self, client: Optional[MongoClient] = None, database: Optional[str] = None):
        self.client = client or MongoClient(
            settings.mongodb_uri,
            serverSelectionTimeoutMS=settings.mongodb_timeout_ms,
        )
        self.db = self.client[database or settings.mongodb_database]

    def ping(self) -> None:
        try:
            self.client.admin.command("ping")
        except (ConnectionFailure, ServerSelectionTimeoutError) as exc:
            raise StoreUnavailableError("document", f"Document store is unreachable: {exc}") from exc

    def list_collections(self, tenant_id: str) -> List[str]:
        try:
            names = self.db.list_collection_names()
        except (ConnectionFailure, ServerSelectionTimeoutError) as exc:
            raise StoreUnavailableError("document", f"Document store is unreachable: {exc}") from exc
        except PyMongoError as exc:
            raise DocumentStoreError(f"Failed to list collections: {exc}") from exc
        return filter_tenant_collections(names, tenant_id)

    def count(self, collection: str) -> int:
        try:
            return self.db[collection].count_documents({})
        except PyMongoError as exc:
            raise DocumentStoreError(f"Failed to count {collection}: {exc}") from exc

    def sample(self, collection: str, n: int) -> List[Dict[str, Any]]:
        try:
            return list(self.db[collection].find({}).limit(n))
        except PyMongoError as exc:
            raise DocumentStoreError(f"Failed to sample {collection}: {exc}") from exc

    def load_all(self, collection: str) -> List[Dict[str, Any]]:
        try:
            return list(self.db[collection].find({}))
        except PyMongoError as exc:
            raise DocumentStoreError(f"Failed to load {collection}: {exc}") from exc

    def close(self) -> None:
        self.client.close()
