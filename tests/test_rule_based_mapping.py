"""
Tests for the deterministic rule-based mapping.
"""

import pytest

from datamapper.db.catalog import get_table_spec
from datamapper.domain.mapping.analyzer import build_field_profile
from datamapper.domain.mapping.fallback import (
    DEFAULT_TABLE,
    determine_transformation,
    infer_relationships,
    match_field,
    rule_based_mapping,
    select_table,
    similarity,
    suggest_alternatives,
)
from datamapper.domain.mapping.models import FieldMapping, InferredType, MappingSource, TransformKind
from datamapper.domain.mapping.values import documents_from_raw

from conftest import TENANT_ID, product_documents


def _profile(collection, raw_documents):
    documents = documents_from_raw(raw_documents, collection)
    return build_field_profile(collection, len(documents), documents)


class TestTableSelection:
    """Ordered rules: collection name first, then field names."""

    @pytest.mark.parametrize("suffix,expected", [
        ("purchase_orders", "purchase_order"),
        ("customers", "customer"),
        ("customer_orders", "customer"),
        ("vendors", "supplier"),
        ("sales", "sales_order"),
        ("orders", "sales_order"),
        ("investments", "investment"),
        ("investors", "investor"),
        ("products", DEFAULT_TABLE),
    ])
    def test_collection_name_rules(self, suffix, expected):
        table, _ = select_table(f"{TENANT_ID}_{suffix}", [], TENANT_ID)
        assert table == expected

    def test_field_names_used_when_collection_name_is_neutral(self):
        table, rule = select_table(f"{TENANT_ID}_sheet1", ["Vendor Name", "Phone"], TENANT_ID)
        assert (table, rule) == ("supplier", "supplier")

    def test_collection_name_wins_over_fields(self):
        table, _ = select_table(f"{TENANT_ID}_customers", ["Order Number"], TENANT_ID)
        assert table == "customer"

    def test_default_table(self):
        table, rule = select_table(f"{TENANT_ID}_sheet1", ["Widget", "Colour"], TENANT_ID)
        assert (table, rule) == (DEFAULT_TABLE, "default")


class TestFieldMatching:
    def test_similarity(self):
        assert similarity("price", "price") == 1.0
        assert similarity("price", "selling_price") == 0.8
        assert similarity("abc", "xyz") == 0.0

    def test_direct_match(self):
        profile = _profile("c", [{"Product Name": "Widget"}])
        assert match_field(profile.fields[0], get_table_spec("product")) == ("product_name", 0.95)

    def test_category_match(self):
        profile = _profile("c", [{"Item Name": "Widget"}])
        assert match_field(profile.fields[0], get_table_spec("product")) == ("product_name", 0.85)

    def test_no_match(self):
        profile = _profile("c", [{"zzqx": "1"}])
        assert match_field(profile.fields[0], get_table_spec("product")) is None

    def test_suggestions_are_limited(self):
        profile = _profile("c", [{"supplier": "Acme"}])
        suggestions = suggest_alternatives(profile.fields[0], get_table_spec("supplier"))
        assert 0 < len(suggestions) <= 3
        assert suggestions[0] == "supplier_id"

    @pytest.mark.parametrize("inferred,column,expected", [
        (InferredType.DATE, "order_date", TransformKind.DATE_FORMAT),
        (InferredType.NUMBER, "total_amount", TransformKind.CURRENCY_FORMAT),
        (InferredType.NUMBER, "price", TransformKind.CURRENCY_FORMAT),
        (InferredType.STRING, "customer_id", TransformKind.ID_GENERATION),
        (InferredType.STRING, "status", TransformKind.NONE),
    ])
    def test_determine_transformation(self, inferred, column, expected):
        assert determine_transformation(inferred, column) == expected

    def test_infer_relationships_from_foreign_keys(self):
        relationships = infer_relationships(
            get_table_spec("product"),
            [FieldMapping("Supplier", "supplier_id"), FieldMapping("Name", "product_name")],
        )
        assert relationships == [
            {"related_table": "supplier", "relationship_type": "foreign_key", "key": "supplier_id"}
        ]


class TestRuleBasedMapping:
    def test_product_collection(self):
        profile = _profile(f"{TENANT_ID}_products", product_documents(3))

        mapping = rule_based_mapping(profile, TENANT_ID)

        assert mapping.source == MappingSource.RULE_BASED
        assert mapping.confidence is None
        assert mapping.table_names == ["product"]
        table = mapping.tables[0]
        assert table.confidence is None
        assert {m.source_field: m.target_column for m in table.field_mappings} == {
            "Product Name": "product_name",
            "Price": "price",
            "Status": "status",
        }
        price = next(m for m in table.field_mappings if m.target_column == "price")
        assert price.transform == TransformKind.CURRENCY_FORMAT

    def test_second_field_for_same_column_is_unmapped(self):
        profile = _profile(f"{TENANT_ID}_products", [{"Product Name": "A", "product_name": "B"}])

        mapping = rule_based_mapping(profile, TENANT_ID)

        assert [m.source_field for m in mapping.tables[0].field_mappings] == ["Product Name"]
        assert [u.field_name for u in mapping.unmapped_fields] == ["product_name"]

    def test_always_returns_one_table(self):
        profile = _profile(f"{TENANT_ID}_misc", [{"zzqx": "1", "wwvk": "2"}])

        mapping = rule_based_mapping(profile, TENANT_ID)

        assert mapping.table_names == [DEFAULT_TABLE]
        assert mapping.tables[0].field_mappings == []
        assert {u.field_name for u in mapping.unmapped_fields} == {"zzqx", "wwvk"}
