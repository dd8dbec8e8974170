"""Text-generation provider abstraction with retry logic."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, runtime_checkable

from ..core.errors import ServiceUnavailableError
from ..core.prompts import SYSTEM_PROMPT, GuidanceContext, render_remediation_prompt
from ..models.provider import CompletionResult
from ..utils.sanitize import sanitize_error

logger = logging.getLogger(__name__)

RETRYABLE_MARKERS = ("500", "502", "503", "504", "timeout", "timed out")
FATAL_MARKERS = ("400", "401", "403", "404")


@runtime_checkable
class TextGenerator(Protocol):
    """Black-box generator: structured context in, text out."""

    name: str

    async def generate(self, context: GuidanceContext) -> str: ...


class BaseProvider:
    """Base class with shared retry logic and config handling."""

    name: str = "base"

    def __init__(self, provider_config: dict, common_config: dict):
        self.config = provider_config
        self.common = common_config
        self.max_attempts = common_config.get("retry_attempts", 3)
        self.retry_delay = common_config.get("retry_delay_seconds", 5)

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int = 0) -> CompletionResult:
        raise NotImplementedError

    async def complete_with_retry(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 0,
    ) -> CompletionResult:
        """Wrap complete() with backoff on rate limits, 5xx and timeouts."""
        rate_limit_max = max(self.max_attempts, 5)
        last_result: Optional[CompletionResult] = None

        for attempt in range(1, rate_limit_max + 1):
            result = await self.complete(system_prompt, user_prompt, max_tokens)
            last_result = result
            if result.success:
                return result

            error_msg = result.error or ""
            is_rate_limit = "429" in error_msg
            is_retryable = (
                is_rate_limit or any(code in error_msg for code in RETRYABLE_MARKERS)
            ) and not any(code in error_msg for code in FATAL_MARKERS)

            effective_max = rate_limit_max if is_rate_limit else self.max_attempts
            if not is_retryable or attempt >= effective_max:
                result.error = sanitize_error(error_msg)
                return result

            base_delay = 30 if is_rate_limit else self.retry_delay
            wait_time = base_delay * min(attempt, 3)
            logger.info("%s attempt %d failed, retrying in %ss", self.name, attempt, wait_time)
            await asyncio.sleep(wait_time)

        return last_result or CompletionResult(success=False, error="Max retries exceeded")

    async def generate(self, context: GuidanceContext) -> str:
        """Produce remediation guidance or raise ServiceUnavailableError."""
        result = await self.complete_with_retry(SYSTEM_PROMPT, render_remediation_prompt(context))
        if not result.success or not result.content:
            raise ServiceUnavailableError(
                f"{self.name} text generation failed: {result.error or 'empty response'}"
            )
        return result.content


def get_text_generator(
    config: dict,
    provider_override: Optional[str] = None,
    model_override: Optional[str] = None,
) -> BaseProvider:
    """Factory for the configured text-generation provider."""
    ai_config = config.get("ai", {})
    provider_name = provider_override or ai_config.get("provider", "openai")

    provider_config = dict(ai_config.get(provider_name, {}))
    if model_override:
        provider_config["model"] = model_override

    common_config = {
        k: v for k, v in ai_config.items() if k not in ("openai", "anthropic")
    }

    if provider_name == "openai":
        from .openai_provider import OpenAIProvider
        return OpenAIProvider(provider_config, common_config)
    elif provider_name == "anthropic":
        from .anthropic import AnthropicProvider
        return AnthropicProvider(provider_config, common_config)
    else:
        raise ValueError(f"Unknown AI provider: {provider_name}")
