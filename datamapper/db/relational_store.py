"""
Relational store used as the load target of the mapping pipeline.

The pipeline only needs a narrow write contract (``insert_batch``) plus a few
maintenance helpers for the HTTP surface. ``SqlAlchemyRelationalStore`` builds
SQLAlchemy Core tables from the fixed catalog so the same code runs against
Postgres in production and SQLite in tests.
"""
import logging
import re
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    delete,
    func,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError

from datamapper.db.catalog import DELETE_ORDER, TABLE_CATALOG, TENANT_COLUMN, TableSpec
from datamapper.domain.mapping.errors import StoreUnavailableError
from datamapper.domain.mapping.models import BatchErrorKind, BatchWriteOutcome

logger = logging.getLogger(__name__)


class RelationalStore(Protocol):
    def ping(self) -> None:
        ...

    def insert_batch(self, table: str, rows: List[Dict[str, Any]]) -> BatchWriteOutcome:
        ...

    def count_rows(self, table: str, tenant_id: str) -> int:
        ...

    def clear_tenant(self, tenant_id: str) -> Dict[str, Dict[str, Any]]:
        ...


def _column_type(sql_type: str):
    upper = sql_type.upper()
    if upper == "UUID":
        return String(36)
    if "INT" in upper:
        return Integer()
    if upper.startswith("DECIMAL") or upper.startswith("NUMERIC"):
        match = re.search(r"\((\d+)\s*,\s*(\d+)\)", upper)
        if match:
            return Numeric(int(match.group(1)), int(match.group(2)))
        return Numeric()
    if "TIMESTAMP" in upper:
        return DateTime()
    if "DATE" in upper:
        return Date()
    match = re.match(r"VARCHAR\((\d+)\)", upper)
    if match:
        return String(int(match.group(1)))
    return Text()


def build_catalog_metadata(metadata: Optional[MetaData] = None) -> MetaData:
    """
    Build SQLAlchemy tables for every catalog entry.

    Primary keys are scoped by tenant: (business_id, <table pk>). Foreign keys
    are not declared because generated ids are not guaranteed to exist in the
    referenced table.
    """
    metadata = metadata or MetaData()
    for spec in TABLE_CATALOG.values():
        Table(spec.name, metadata, *_build_columns(spec))
    return metadata


def _build_columns(spec: TableSpec) -> List[Column]:
    columns = []
    for name, sql_type in spec.columns.items():
        is_key = name == TENANT_COLUMN and spec.primary_key is not None or name == spec.primary_key
        columns.append(
            Column(
                name,
                _column_type(sql_type),
                primary_key=is_key,
                nullable=not is_key and name != TENANT_COLUMN,
                autoincrement=False,
            )
        )
    return columns


def classify_write_error(exc: Exception) -> BatchErrorKind:
    if isinstance(exc, IntegrityError):
        return BatchErrorKind.DUPLICATE
    if isinstance(exc, (OperationalError, InterfaceError)):
        return BatchErrorKind.CONNECTION
    return BatchErrorKind.WRITE


class SqlAlchemyRelationalStore:
    def __init__(self, engine: Engine):
        self.engine = engine
        self.metadata = build_catalog_metadata()

    def _table(self, name: str) -> Table:
        try:
            return self.metadata.tables[name]
        except KeyError:
            raise ValueError(f"Unknown catalog table: {name}") from None

    def ensure_catalog_tables(self) -> None:
        self.metadata.create_all(self.engine, checkfirst=True)
        logger.info("Ensured %d catalog tables exist", len(self.metadata.tables))

    def ping(self) -> None:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise StoreUnavailableError("relational", f"Relational store is unreachable: {exc}") from exc

    def insert_batch(self, table: str, rows: List[Dict[str, Any]]) -> BatchWriteOutcome:
        if not rows:
            return BatchWriteOutcome(inserted_count=0)

        target = self._table(table)
        # executemany needs every row to bind the same parameter set
        keys = [column.name for column in target.columns if any(column.name in row for row in rows)]
        params = [{key: row.get(key) for key in keys} for row in rows]

        try:
            with self.engine.begin() as conn:
                conn.execute(target.insert(), params)
        except SQLAlchemyError as exc:
            kind = classify_write_error(exc)
            message = str(getattr(exc, "orig", None) or exc).strip().splitlines()[0]
            logger.warning("Batch insert into %s failed (%s): %s", table, kind.value, message)
            return BatchWriteOutcome(inserted_count=0, error=message, error_kind=kind)

        return BatchWriteOutcome(inserted_count=len(params))

    def count_rows(self, table: str, tenant_id: str) -> int:
        target = self._table(table)
        stmt = select(func.count()).select_from(target).where(target.c[TENANT_COLUMN] == tenant_id)
        with self.engine.connect() as conn:
            return int(conn.execute(stmt).scalar() or 0)

    def clear_tenant(self, tenant_id: str) -> Dict[str, Dict[str, Any]]:
        """Delete the tenant's rows from every catalog table, children first."""
        results: Dict[str, Dict[str, Any]] = {}
        for name in DELETE_ORDER:
            target = self._table(name)
            try:
                with self.engine.begin() as conn:
                    deleted = conn.execute(delete(target).where(target.c[TENANT_COLUMN] == tenant_id)).rowcount
                results[name] = {"success": True, "deleted": max(deleted or 0, 0)}
            except SQLAlchemyError as exc:
                logger.error("Failed to clear %s for tenant %s: %s", name, tenant_id, exc)
                results[name] = {"success": False, "error": str(exc)}
        return results
