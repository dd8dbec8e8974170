"""Anthropic messages API provider."""

from __future__ import annotations

import os
from typing import Optional

import httpx

from ..models.provider import CompletionResult
from .base import BaseProvider


class AnthropicProvider(BaseProvider):
    name = "anthropic"
    API_URL = "https://api.anthropic.com/v1/messages"

    def _get_api_key(self) -> Optional[str]:
        return os.environ.get(self.config.get("api_key_env", "ANTHROPIC_API_KEY"))

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int = 0) -> CompletionResult:
        api_key = self._get_api_key()
        if not api_key:
            env_var = self.config.get("api_key_env", "ANTHROPIC_API_KEY")
            return CompletionResult(
                success=False,
                error=f"API key not found in environment variable: {env_var}",
            )

        model = self.config.get("model", "claude-sonnet-4-5-20250929")
        # The system prompt is identical for every task, so mark it cacheable.
        body = {
            "model": model,
            "max_tokens": max_tokens or self.config.get("max_tokens", 1500),
            "temperature": self.common.get("temperature", 0.3),
            "system": [
                {
                    "type": "text",
                    "text": system_prompt,
                    "cache_control": {"type": "ephemeral"},
                },
            ],
            "messages": [{"role": "user", "content": user_prompt}],
        }
        headers = {
            "x-api-key": api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.common.get("timeout_seconds", 120)) as client:
                response = await client.post(self.API_URL, json=body, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            return CompletionResult(
                success=False,
                error=f"{e.response.status_code} | {e.response.text}",
            )
        except httpx.HTTPError as e:
            return CompletionResult(success=False, error=f"{type(e).__name__}: {e}")
        except Exception as e:
            return CompletionResult(success=False, error=f"Malformed response: {type(e).__name__}: {e}")

        if not isinstance(data, dict):
            return CompletionResult(success=False, error="Malformed response: expected a JSON object")

        content = next(
            (block.get("text") for block in data.get("content", []) if block.get("type") == "text"),
            None,
        )
        usage = data.get("usage", {})
        return CompletionResult(
            success=True,
            content=content,
            model=data.get("model", model),
            tokens_used={
                "input": usage.get("input_tokens", 0),
                "output": usage.get("output_tokens", 0),
                "cacheRead": usage.get("cache_read_input_tokens", 0),
            },
        )
