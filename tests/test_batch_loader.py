"""
Tests for batched inserts into the relational store.
"""

import math

import pytest

from datamapper.domain.mapping.loader import load_table, partition
from datamapper.domain.mapping.models import BatchErrorKind, CandidateRecord, LogLevel

from conftest import FakeRelationalStore, TENANT_ID, failing_batch


def _records(count):
    return [
        CandidateRecord(
            table="customer",
            tenant_id=TENANT_ID,
            source_doc_id=f"doc-{i}",
            values={"business_id": TENANT_ID, "customer_id": i + 1, "customer_name": f"Customer {i}"},
        )
        for i in range(count)
    ]


class TestPartition:
    @pytest.mark.parametrize("count,size", [(0, 10), (1, 10), (10, 10), (11, 10), (250, 100)])
    def test_batch_count(self, count, size):
        batches = partition(_records(count), size)
        assert len(batches) == math.ceil(count / size)
        assert sum(len(batch) for batch in batches) == count
        assert all(len(batch) <= size for batch in batches)

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            partition(_records(3), 0)


class TestLoadTable:
    def test_all_batches_succeed(self, bus):
        store = FakeRelationalStore()

        result = load_table(store, "customer", _records(250), bus, batch_size=100)

        assert len(store.calls) == 3
        assert [len(call["rows"]) for call in store.calls] == [100, 100, 50]
        assert result.attempted == 250
        assert result.inserted == 250
        assert result.errors == []
        assert not result.fatal

    def test_failed_batch_does_not_stop_loading(self, bus):
        store = FakeRelationalStore(failure=failing_batch("customer", 0))

        result = load_table(store, "customer", _records(150), bus, batch_size=100)

        assert len(store.calls) == 2
        assert result.attempted == 150
        assert result.inserted == 50
        assert result.errors == ["simulated batch failure"]
        assert result.batches[0].error_kind == BatchErrorKind.WRITE
        assert not result.fatal
        assert any(event.level == LogLevel.ERROR for event in bus.history())

    def test_connection_failure_marks_table_fatal(self, bus):
        store = FakeRelationalStore(failure=failing_batch("customer", 1, BatchErrorKind.CONNECTION))

        result = load_table(store, "customer", _records(30), bus, batch_size=10)

        assert len(store.calls) == 3
        assert result.inserted == 20
        assert result.fatal

    def test_store_exception_is_recorded(self, bus):
        class ExplodingStore(FakeRelationalStore):
            def insert_batch(self, table, rows):
                raise RuntimeError("disk full")

        result = load_table(ExplodingStore(), "customer", _records(5), bus, batch_size=2)

        assert result.attempted == 5
        assert result.inserted == 0
        assert result.errors == ["disk full"] * 3

    def test_rows_carry_record_values(self, bus):
        store = FakeRelationalStore()

        load_table(store, "customer", _records(2), bus, batch_size=10)

        assert store.calls[0]["rows"][0] == {
            "business_id": TENANT_ID,
            "customer_id": 1,
            "customer_name": "Customer 0",
        }

    def test_no_records_no_calls(self, bus):
        store = FakeRelationalStore()
        result = load_table(store, "customer", [], bus, batch_size=10)
        assert store.calls == []
        assert result.attempted == 0
