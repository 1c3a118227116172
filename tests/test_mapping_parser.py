"""
Tests for parsing model mapping responses.

The parser must never raise: every malformed input becomes a ParseError.
"""

import json

import pytest

from datamapper.domain.mapping.models import MappingSource, TransformKind
from datamapper.domain.mapping.parser import (
    ParsedMapping,
    ParseError,
    extract_json_object,
    parse_mapping_response,
    strip_code_fences,
)


def _response(tables, unmapped=None):
    return json.dumps({"tables": tables, "unmapped_fields": unmapped or []})


VALID_RESPONSE = _response(
    [
        {
            "table_name": "sales_order",
            "confidence": 0.9,
            "reasoning": "Order fields",
            "field_mappings": [
                {"source_field": "Order Date", "target_field": "order_date", "confidence": 0.95, "transformation": "date_format"},
                {"source_field": "Total", "target_field": "total_amount", "confidence": 0.9, "transformation": "currency_format"},
            ],
        }
    ],
    [{"field_name": "Note", "reason": "free text"}],
)


class TestCleanup:
    def test_strip_code_fences(self):
        assert strip_code_fences("```json\n{\"a\": 1}\n```") == '{"a": 1}'

    def test_extract_json_object_ignores_prose(self):
        assert extract_json_object('Here you go: {"a": {"b": 2}} thanks') == '{"a": {"b": 2}}'

    def test_extract_json_object_missing(self):
        assert extract_json_object("no json here") is None


class TestValidResponses:
    def test_parses_catalog_mapping(self):
        result = parse_mapping_response(VALID_RESPONSE, ["Order Date", "Total", "Note"], model="m1")

        assert isinstance(result, ParsedMapping)
        mapping = result.mapping
        assert mapping.source == MappingSource.MODEL
        assert mapping.model == "m1"
        assert mapping.table_names == ["sales_order"]
        table = mapping.tables[0]
        assert table.confidence == 0.9
        assert [(m.source_field, m.target_column, m.transform) for m in table.field_mappings] == [
            ("Order Date", "order_date", TransformKind.DATE_FORMAT),
            ("Total", "total_amount", TransformKind.CURRENCY_FORMAT),
        ]
        assert [item.field_name for item in mapping.unmapped_fields] == ["Note"]

    def test_accepts_fenced_response_with_prose(self):
        content = f"Sure! Here is the mapping:\n```json\n{VALID_RESPONSE}\n```\nLet me know."
        assert isinstance(parse_mapping_response(content), ParsedMapping)

    def test_accepts_target_column_key(self):
        content = _response(
            [{"table_name": "customer", "field_mappings": [{"source_field": "Name", "target_column": "customer_name"}]}]
        )
        result = parse_mapping_response(content)
        assert result.mapping.tables[0].field_mappings[0].target_column == "customer_name"

    def test_unknown_transformation_becomes_none(self):
        content = _response(
            [{"table_name": "customer", "field_mappings": [
                {"source_field": "Name", "target_field": "customer_name", "transformation": "uppercase"}
            ]}]
        )
        result = parse_mapping_response(content)
        assert result.mapping.tables[0].field_mappings[0].transform == TransformKind.NONE

    def test_confidence_is_clamped(self):
        content = _response(
            [{"table_name": "customer", "confidence": 7, "field_mappings": [
                {"source_field": "Name", "target_field": "customer_name", "confidence": -1}
            ]}]
        )
        table = parse_mapping_response(content).mapping.tables[0]
        assert table.confidence == 1.0
        assert table.field_mappings[0].confidence == 0.0


class TestCatalogFiltering:
    def test_unknown_table_dropped_when_valid_ones_remain(self):
        content = _response(
            [
                {"table_name": "orders_v2", "field_mappings": [{"source_field": "A", "target_field": "b"}]},
                {"table_name": "customer", "field_mappings": [{"source_field": "Name", "target_field": "customer_name"}]},
            ]
        )
        result = parse_mapping_response(content)
        assert isinstance(result, ParsedMapping)
        assert result.mapping.table_names == ["customer"]
        assert result.dropped_tables == ["orders_v2"]

    def test_invalid_column_becomes_unmapped(self):
        content = _response(
            [{"table_name": "customer", "field_mappings": [
                {"source_field": "Name", "target_field": "customer_name"},
                {"source_field": "Loyalty", "target_field": "loyalty_tier"},
            ]}]
        )
        result = parse_mapping_response(content)
        assert result.dropped_mappings == 1
        assert [m.target_column for m in result.mapping.tables[0].field_mappings] == ["customer_name"]
        unmapped = result.mapping.unmapped_fields
        assert unmapped[0].field_name == "Loyalty"
        assert "loyalty_tier" in unmapped[0].reason

    def test_tenant_column_cannot_be_mapped(self):
        content = _response(
            [{"table_name": "customer", "field_mappings": [
                {"source_field": "Name", "target_field": "customer_name"},
                {"source_field": "Business", "target_field": "business_id"},
            ]}]
        )
        result = parse_mapping_response(content)
        assert [m.target_column for m in result.mapping.tables[0].field_mappings] == ["customer_name"]

    def test_unknown_source_field_dropped(self):
        result = parse_mapping_response(VALID_RESPONSE, ["Total"])
        assert [m.source_field for m in result.mapping.tables[0].field_mappings] == ["Total"]

    def test_duplicate_target_column_keeps_first(self):
        content = _response(
            [{"table_name": "customer", "field_mappings": [
                {"source_field": "Name", "target_field": "customer_name"},
                {"source_field": "Full Name", "target_field": "customer_name"},
            ]}]
        )
        mappings = parse_mapping_response(content).mapping.tables[0].field_mappings
        assert [m.source_field for m in mappings] == ["Name"]

    def test_table_left_without_mappings_is_dropped(self):
        content = _response(
            [
                {"table_name": "supplier", "field_mappings": [{"source_field": "X", "target_field": "nope"}]},
                {"table_name": "customer", "field_mappings": [{"source_field": "Name", "target_field": "customer_name"}]},
            ]
        )
        result = parse_mapping_response(content)
        assert result.mapping.table_names == ["customer"]
        assert "supplier" in result.dropped_tables


class TestRejectedResponses:
    @pytest.mark.parametrize("content", [
        "",
        "I could not determine a mapping.",
        "{not valid json}",
        "[1, 2, 3]",
        '{"mapping": []}',
        '{"tables": "customer"}',
    ])
    def test_malformed_content(self, content):
        assert isinstance(parse_mapping_response(content), ParseError)

    def test_missing_field_mappings(self):
        content = json.dumps({"tables": [{"table_name": "customer"}]})
        result = parse_mapping_response(content)
        assert isinstance(result, ParseError)
        assert "field_mappings" in result.reason

    def test_only_unknown_tables(self):
        content = _response([{"table_name": "ledger", "field_mappings": [{"source_field": "A", "target_field": "b"}]}])
        result = parse_mapping_response(content)
        assert isinstance(result, ParseError)
        assert "ledger" in result.reason

    def test_none_content(self):
        assert isinstance(parse_mapping_response(None), ParseError)
