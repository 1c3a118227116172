"""
Tests for model failover, retry/backoff and the rule-based fallback.
"""

import json

import pytest

from datamapper.domain.mapping.analyzer import build_field_profile
from datamapper.domain.mapping.fallback import rule_based_mapping
from datamapper.domain.mapping.models import LogLevel, MappingSource
from datamapper.domain.mapping.resolver import MappingResolver
from datamapper.domain.mapping.values import documents_from_raw
from datamapper.integrations.llm import ModelRateLimitError, ModelTimeoutError, ModelTransportError

from conftest import FakeModelProvider, TENANT_ID, product_documents

PRODUCT_RESPONSE = json.dumps(
    {
        "tables": [
            {
                "table_name": "product",
                "confidence": 0.9,
                "reasoning": "Inventory sheet",
                "field_mappings": [
                    {"source_field": "Product Name", "target_field": "product_name", "confidence": 0.95},
                    {"source_field": "Price", "target_field": "price", "transformation": "currency_format"},
                ],
            }
        ],
        "unmapped_fields": [],
    }
)


@pytest.fixture
def profile():
    collection = f"{TENANT_ID}_products"
    documents = documents_from_raw(product_documents(5), collection)
    return build_field_profile(collection, 5, documents)


class FallbackSpy:
    def __init__(self):
        self.calls = []

    def __call__(self, profile, tenant_id=None):
        self.calls.append((profile.collection, tenant_id))
        return rule_based_mapping(profile, tenant_id)


def _resolver(provider, sleeps, fallback=rule_based_mapping, models=("m1", "m2"), max_retries=2):
    return MappingResolver(
        provider,
        models=list(models),
        max_retries=max_retries,
        backoff_base=1.0,
        backoff_max=8.0,
        sleep=sleeps.append,
        fallback=fallback,
    )


class TestBackoff:
    def test_exponential_and_capped(self):
        resolver = _resolver(FakeModelProvider(), [])
        assert [resolver.backoff_delay(attempt) for attempt in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 8.0]


class TestModelSuccess:
    def test_first_model_answers(self, profile, bus):
        provider = FakeModelProvider([PRODUCT_RESPONSE])
        sleeps = []
        fallback = FallbackSpy()

        mapping = _resolver(provider, sleeps, fallback).resolve(profile, bus, TENANT_ID)

        assert mapping.source == MappingSource.MODEL
        assert mapping.model == "m1"
        assert mapping.table_names == ["product"]
        assert [call["model"] for call in provider.calls] == ["m1"]
        assert sleeps == []
        assert fallback.calls == []

    def test_prompt_mentions_fields_and_catalog(self, profile, bus):
        provider = FakeModelProvider([PRODUCT_RESPONSE])

        _resolver(provider, []).resolve(profile, bus, TENANT_ID)

        prompt = provider.calls[0]["user"]
        assert "Product Name" in prompt
        assert "sales_order" in prompt
        assert "JSON" in provider.calls[0]["system"]

    def test_retry_after_unparseable_response(self, profile, bus):
        provider = FakeModelProvider(["I think this is a product table.", PRODUCT_RESPONSE])
        sleeps = []
        resolver = _resolver(provider, sleeps)

        mapping = resolver.resolve(profile, bus, TENANT_ID)

        assert mapping.model == "m1"
        assert sleeps == [1.0]
        assert [record.outcome for record in resolver.attempts] == ["parse_error", "success"]

    def test_failover_to_second_model(self, profile, bus):
        provider = FakeModelProvider([
            ModelRateLimitError("m1", "429"),
            ModelRateLimitError("m1", "429"),
            PRODUCT_RESPONSE,
        ])
        sleeps = []
        resolver = _resolver(provider, sleeps)

        mapping = resolver.resolve(profile, bus, TENANT_ID)

        assert mapping.model == "m2"
        assert [call["model"] for call in provider.calls] == ["m1", "m1", "m2"]
        # no wait when moving on to the next model
        assert sleeps == [1.0]
        assert [record.outcome for record in resolver.attempts] == ["rate_limit", "rate_limit", "success"]


class TestFailureCascade:
    def test_all_models_fail_uses_fallback_once(self, profile, bus):
        provider = FakeModelProvider([
            ModelTimeoutError("m1", "timed out"),
            ModelTransportError("m1", "connection reset"),
            ModelTimeoutError("m2", "timed out"),
            RuntimeError("unexpected"),
        ])
        sleeps = []
        fallback = FallbackSpy()
        resolver = _resolver(provider, sleeps, fallback)

        mapping = resolver.resolve(profile, bus, TENANT_ID)

        assert mapping.source == MappingSource.RULE_BASED
        assert mapping.confidence is None
        assert fallback.calls == [(profile.collection, TENANT_ID)]
        assert len(provider.calls) == 4
        assert sleeps == [1.0, 1.0]
        assert [record.outcome for record in resolver.attempts] == ["timeout", "transport", "timeout", "error"]

        messages = [event.message for event in bus.history()]
        assert "All models failed, switching to rule-based mapping" in messages
        assert bus.history()[-1].level == LogLevel.SUCCESS

    def test_three_models_three_retries_of_malformed_json(self, profile, bus):
        provider = FakeModelProvider(['{"tables": [ {"table_name": "product", '] * 9)
        sleeps = []
        fallback = FallbackSpy()
        resolver = _resolver(provider, sleeps, fallback, models=("m1", "m2", "m3"), max_retries=3)

        mapping = resolver.resolve(profile, bus, TENANT_ID)

        assert [call["model"] for call in provider.calls] == ["m1"] * 3 + ["m2"] * 3 + ["m3"] * 3
        assert len(fallback.calls) == 1
        assert mapping.confidence is None
        assert all(table.table_name == "product" for table in mapping.tables)
        assert sleeps == [1.0, 2.0] * 3
        assert {record.outcome for record in resolver.attempts} == {"parse_error"}

    def test_backoff_grows_between_retries(self, profile, bus):
        provider = FakeModelProvider([ModelTimeoutError("m1", "timed out")] * 4)
        sleeps = []

        _resolver(provider, sleeps, models=("m1",), max_retries=4).resolve(profile, bus, TENANT_ID)

        assert sleeps == [1.0, 2.0, 4.0]

    def test_no_models_configured(self, profile, bus):
        provider = FakeModelProvider([PRODUCT_RESPONSE])
        fallback = FallbackSpy()

        mapping = _resolver(provider, [], fallback, models=()).resolve(profile, bus, TENANT_ID)

        assert provider.calls == []
        assert len(fallback.calls) == 1
        assert mapping.source == MappingSource.RULE_BASED

    def test_every_attempt_is_logged(self, profile, bus):
        provider = FakeModelProvider([ModelTimeoutError("m1", "timed out")] * 4)

        _resolver(provider, []).resolve(profile, bus, TENANT_ID)

        failures = [event for event in bus.history() if event.message == "Model request failed"]
        assert len(failures) == 4
        assert {event.detail["outcome"] for event in failures} == {"timeout"}
        assert all("elapsedSeconds" in event.detail for event in failures)
