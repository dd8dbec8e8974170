"""OpenAI chat-completions provider."""

from __future__ import annotations

import os
from typing import Optional

import httpx

from ..models.provider import CompletionResult
from .base import BaseProvider


class OpenAIProvider(BaseProvider):
    name = "openai"
    API_URL = "https://api.openai.com/v1/chat/completions"

    def _get_api_key(self) -> Optional[str]:
        return os.environ.get(self.config.get("api_key_env", "OPENAI_API_KEY"))

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int = 0) -> CompletionResult:
        api_key = self._get_api_key()
        if not api_key:
            env_var = self.config.get("api_key_env", "OPENAI_API_KEY")
            return CompletionResult(
                success=False,
                error=f"API key not found in environment variable: {env_var}",
            )

        model = self.config.get("model", "gpt-4o")
        body = {
            "model": model,
            "max_tokens": max_tokens or self.config.get("max_tokens", 1500),
            "temperature": self.common.get("temperature", 0.3),
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        url = self.config.get("endpoint") or self.API_URL

        try:
            async with httpx.AsyncClient(timeout=self.common.get("timeout_seconds", 120)) as client:
                response = await client.post(url, json=body, headers=headers)
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

        choices = data.get("choices") or []
        if not choices:
            return CompletionResult(success=False, error="No choices in response")
        usage = data.get("usage", {})
        return CompletionResult(
            success=True,
            content=choices[0].get("message", {}).get("content"),
            model=data.get("model", model),
            tokens_used={
                "input": usage.get("prompt_tokens", 0),
                "output": usage.get("completion_tokens", 0),
            },
        )
