"""
Text-generation provider used by the mapping resolver.

Transport problems (timeouts, rate limits, connection/status errors) are raised
as ``ModelProviderError`` subclasses so callers can tell them apart from a
successful call that returned unusable text.
"""
import logging
from typing import Any, Dict, Optional, Protocol

import anthropic
from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage, SystemMessage

from datamapper.core.config import settings

logger = logging.getLogger(__name__)


class ModelProviderError(Exception):
    """A model call failed before producing any content."""

    def __init__(self, model: str, message: str):
        self.model = model
        self.message = message
        super().__init__(f"{model}: {message}")


class ModelTimeoutError(ModelProviderError):
    pass


class ModelRateLimitError(ModelProviderError):
    pass


class ModelTransportError(ModelProviderError):
    pass


class ModelProvider(Protocol):
    def complete(self, system_prompt: str, user_prompt: str, model: str) -> str:
        ...


def message_text(content: Any) -> str:
    """Flatten a chat response body (plain string or list of content blocks) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content or "")


class AnthropicModelProvider:
    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        self.api_key = (api_key if api_key is not None else settings.anthropic_api_key or "").strip()
        self.timeout = timeout or settings.llm_api_timeout
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self.max_tokens = max_tokens or settings.llm_max_tokens
        self._clients: Dict[str, ChatAnthropic] = {}

    def _client(self, model: str) -> ChatAnthropic:
        if model not in self._clients:
            # Retries are driven by the resolver's own backoff schedule
            self._clients[model] = ChatAnthropic(
                model=model,
                api_key=self.api_key,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._clients[model]

    def complete(self, system_prompt: str, user_prompt: str, model: str) -> str:
        if not self.api_key:
            raise ModelTransportError(
                model, "Anthropic API key not configured. Set ANTHROPIC_API_KEY in your environment."
            )

        llm = self._client(model)
        try:
            response = llm.invoke([SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)])
        except anthropic.APITimeoutError as exc:
            raise ModelTimeoutError(model, f"Request timed out after {self.timeout}s") from exc
        except anthropic.RateLimitError as exc:
            raise ModelRateLimitError(model, str(exc)) from exc
        except (anthropic.APIConnectionError, anthropic.APIStatusError) as exc:
            raise ModelTransportError(model, str(exc)) from exc

        text = message_text(response.content)
        logger.debug("Model %s returned %d characters", model, len(text))
        return text
