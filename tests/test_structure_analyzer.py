"""
Tests for collection structure analysis.
"""

import pytest

from datamapper.domain.mapping.analyzer import (
    analyze_collection,
    build_field_profile,
    categorize_field,
    infer_value_type,
    is_monetary_field,
    normalize_field_name,
)
from datamapper.domain.mapping.errors import EmptyCollectionError
from datamapper.domain.mapping.models import InferredType, LogLevel
from datamapper.domain.mapping.values import DocumentValue, documents_from_raw

from conftest import FakeDocumentStore, TENANT_ID, product_documents


class TestFieldNames:
    """Normalization and pattern categories."""

    @pytest.mark.parametrize("raw,expected", [
        ("Product Name", "product_name"),
        ("  Unit   Price ", "unit_price"),
        ("E-mail", "email"),
        ("PO#", "po"),
    ])
    def test_normalize_field_name(self, raw, expected):
        assert normalize_field_name(raw) == expected

    def test_categorize_known_field(self):
        assert categorize_field("Product Name") == ("inventory", "name")
        assert categorize_field("SKU") == ("inventory", "id")

    def test_categorize_unknown_field(self):
        assert categorize_field("zzz_qqq") is None
        assert categorize_field("   ") is None

    @pytest.mark.parametrize("name", ["Total Amount", "unit_price", "Invoice", "Capital"])
    def test_monetary_field(self, name):
        assert is_monetary_field(name)

    @pytest.mark.parametrize("name", ["Name", "Status", "Email"])
    def test_non_monetary_field(self, name):
        assert not is_monetary_field(name)


class TestValueTypes:
    """Type inference over tagged document values."""

    @pytest.mark.parametrize("raw,expected", [
        ("2024-01-05", InferredType.DATE),
        ("05/01/2024", InferredType.DATE),
        ("1,234.50", InferredType.NUMBER),
        ("$99", InferredType.NUMBER),
        (42, InferredType.NUMBER),
        (True, InferredType.BOOLEAN),
        ({"street": "Main"}, InferredType.OBJECT),
        ("hello", InferredType.STRING),
        (None, InferredType.UNKNOWN),
    ])
    def test_infer_value_type(self, raw, expected):
        assert infer_value_type(DocumentValue.of(raw)) == expected

    def test_bool_is_not_a_number(self):
        value = DocumentValue.of(False)
        assert infer_value_type(value) == InferredType.BOOLEAN

    def test_nan_is_null(self):
        assert DocumentValue.of(float("nan")).is_null


class TestFieldProfile:
    """Profiles built from sampled documents."""

    def test_union_of_fields_in_first_seen_order(self):
        documents = documents_from_raw(
            [
                {"_id": "a", "Name": "Acme", "Price": "$10"},
                {"_id": "b", "Name": "Beta", "Notes": "late"},
            ],
            "c",
        )
        profile = build_field_profile("c", 2, documents)
        assert profile.field_names == ["Name", "Price", "Notes"]
        assert "_id" not in profile.field_names

    def test_majority_type_and_samples(self):
        documents = documents_from_raw(
            [
                {"Price": "$10"},
                {"Price": "12"},
                {"Price": None},
                {"Price": "n/a"},
                {"Price": "7.25"},
            ],
            "c",
        )
        profile = build_field_profile("c", 5, documents)
        price = profile.get("Price")
        assert price.inferred_type == InferredType.NUMBER
        assert price.sample_values == ("$10", "12", "n/a", "7.25")
        assert price.occurrences == 5
        assert price.is_monetary
        assert profile.monetary_fields == ["Price"]

    def test_sample_values_are_truncated(self):
        documents = documents_from_raw([{"Notes": "x" * 250}], "c")
        profile = build_field_profile("c", 1, documents)
        assert len(profile.get("Notes").sample_values[0]) == 100


class TestAnalyzeCollection:
    """Structure analysis against a document store."""

    def test_analyze_samples_configured_size(self, bus):
        collection = f"{TENANT_ID}_products"
        store = FakeDocumentStore({collection: product_documents(9)})

        profile = analyze_collection(store, collection, bus, sample_size=5)

        assert profile.document_count == 9
        assert len(profile.sample_documents) == 5
        assert set(profile.field_names) == {"Product Name", "Price", "Status"}
        assert bus.history()[-1].level == LogLevel.SUCCESS

    def test_empty_collection_raises(self, bus):
        collection = f"{TENANT_ID}_empty"
        store = FakeDocumentStore({collection: []})

        with pytest.raises(EmptyCollectionError) as exc_info:
            analyze_collection(store, collection, bus)
        assert exc_info.value.collection == collection
        assert store.sample_calls == []
