"""
Mapping resolver: model-backed mapping with multi-model failover.

Models are tried strictly in configured order. Each model gets a fixed number
of attempts with exponential backoff between them; timeouts, rate limits,
transport failures and unusable responses all count as a failed attempt.
When every model is exhausted the rule-based fallback produces the mapping,
so resolution never fails.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from datamapper.core.config import settings
from datamapper.domain.mapping.fallback import rule_based_mapping
from datamapper.domain.mapping.models import FieldProfile, LogLevel, TableMapping
from datamapper.domain.mapping.parser import ParseError, parse_mapping_response
from datamapper.domain.mapping.progress import ProgressBus
from datamapper.domain.mapping.prompts import MAPPING_SYSTEM_PROMPT, build_mapping_prompt
from datamapper.integrations.llm import (
    ModelProvider,
    ModelProviderError,
    ModelRateLimitError,
    ModelTimeoutError,
)

logger = logging.getLogger(__name__)

FallbackFn = Callable[[FieldProfile, Optional[str]], TableMapping]


@dataclass(frozen=True)
class AttemptRecord:
    model: str
    attempt: int
    elapsed_seconds: float
    outcome: str  # success | timeout | rate_limit | transport | parse_error | error
    error: Optional[str] = None


class MappingResolver:
    def __init__(
        self,
        provider: ModelProvider,
        models: Optional[Sequence[str]] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        fallback: FallbackFn = rule_based_mapping,
    ):
        self.provider = provider
        self.models = list(settings.llm_models if models is None else models)
        self.max_retries = max(1, max_retries or settings.llm_max_retries)
        self.backoff_base = settings.llm_backoff_base_seconds if backoff_base is None else backoff_base
        self.backoff_max = settings.llm_backoff_max_seconds if backoff_max is None else backoff_max
        self.sleep = sleep
        self.fallback = fallback
        self.attempts: List[AttemptRecord] = []

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the given 1-based failed attempt."""
        return min(self.backoff_max, self.backoff_base * (2 ** (attempt - 1)))

    def resolve(self, profile: FieldProfile, bus: ProgressBus, tenant_id: Optional[str] = None) -> TableMapping:
        self.attempts = []
        prompt = build_mapping_prompt(profile)
        bus.log(LogLevel.INFO, "Starting model table mapping analysis", {"collection": profile.collection})

        for model in self.models:
            for attempt in range(1, self.max_retries + 1):
                mapping = self._attempt(profile, bus, prompt, model, attempt)
                if mapping is not None:
                    return mapping
                if attempt < self.max_retries:
                    delay = self.backoff_delay(attempt)
                    bus.log(LogLevel.INFO, f"Waiting {delay:.1f}s before retry", {"model": model})
                    self.sleep(delay)
            bus.log(
                LogLevel.WARNING,
                f"Model {model} failed {self.max_retries} attempts",
                {"model": model},
            )

        bus.log(LogLevel.WARNING, "All models failed, switching to rule-based mapping")
        mapping = self.fallback(profile, tenant_id)
        bus.log(
            LogLevel.SUCCESS,
            "Rule-based mapping determined",
            {
                "tables": mapping.table_names,
                "fieldMappings": sum(len(table.field_mappings) for table in mapping.tables),
                "unmappedFields": len(mapping.unmapped_fields),
            },
        )
        return mapping

    def _attempt(
        self,
        profile: FieldProfile,
        bus: ProgressBus,
        prompt: str,
        model: str,
        attempt: int,
    ) -> Optional[TableMapping]:
        bus.log(
            LogLevel.PROGRESS,
            "Querying model for table mapping",
            {"model": model, "attempt": attempt, "maxRetries": self.max_retries},
        )
        started = time.monotonic()
        outcome, error, mapping = "success", None, None

        try:
            content = self.provider.complete(MAPPING_SYSTEM_PROMPT, prompt, model)
        except ModelTimeoutError as exc:
            outcome, error = "timeout", exc.message
        except ModelRateLimitError as exc:
            outcome, error = "rate_limit", exc.message
        except ModelProviderError as exc:
            outcome, error = "transport", exc.message
        except Exception as exc:
            logger.warning("Unexpected model provider failure (%s): %s", model, exc)
            outcome, error = "error", str(exc)
        else:
            result = parse_mapping_response(content, profile.field_names, model=model)
            if isinstance(result, ParseError):
                outcome, error = "parse_error", result.reason
            else:
                mapping = result.mapping

        elapsed = round(time.monotonic() - started, 3)
        self.attempts.append(AttemptRecord(model, attempt, elapsed, outcome, error))

        if mapping is None:
            bus.log(
                LogLevel.ERROR,
                "Model request failed",
                {"model": model, "attempt": attempt, "elapsedSeconds": elapsed, "outcome": outcome, "error": error},
            )
            return None

        bus.log(
            LogLevel.SUCCESS,
            "Table mapping determined successfully",
            {
                "model": model,
                "attempt": attempt,
                "elapsedSeconds": elapsed,
                "outcome": outcome,
                "confidence": mapping.confidence,
                "tables": [
                    {
                        "name": table.table_name,
                        "confidence": table.confidence,
                        "fieldMappings": len(table.field_mappings),
                    }
                    for table in mapping.tables
                ],
                "unmappedFields": len(mapping.unmapped_fields),
            },
        )
        return mapping
