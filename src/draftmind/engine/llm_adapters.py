"""Concrete completion services and factory helpers."""

from __future__ import annotations

import asyncio
import json
from urllib.error import HTTPError
from urllib.error import URLError
from urllib.request import Request
from urllib.request import urlopen

from draftmind.config import LLMConfig
from draftmind.engine.completion import Completion
from draftmind.engine.completion import CompletionError
from draftmind.engine.completion import TextCompletionService


class NoopCompletionService(TextCompletionService):
    """Deterministic service that generates nothing and consumes nothing."""

    async def complete(
        self,
        system_instruction: str,
        prompt: str,
        max_output_tokens: int,
    ) -> Completion:
        del system_instruction, prompt, max_output_tokens
        return Completion()


class OpenAICompatibleCompletionService(TextCompletionService):
    """OpenAI-compatible chat-completions service."""

    def __init__(
        self,
        *,
        model: str,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        temperature: float = 0.2,
        timeout_seconds: float = 60.0,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._temperature = temperature
        self._timeout_seconds = timeout_seconds

    async def complete(
        self,
        system_instruction: str,
        prompt: str,
        max_output_tokens: int,
    ) -> Completion:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(
                    self._complete_sync,
                    system_instruction,
                    prompt,
                    max_output_tokens=max_output_tokens,
                ),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise CompletionError(
                f"provider timed out after {self._timeout_seconds}s"
            ) from exc

    def _complete_sync(
        self,
        system_instruction: str,
        prompt: str,
        *,
        max_output_tokens: int,
    ) -> Completion:
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": prompt},
            ],
            "temperature": self._temperature,
            "max_tokens": max_output_tokens,
        }
        request = Request(
            url=f"{self._base_url}/chat/completions",
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            method="POST",
        )
        try:
            with urlopen(request, timeout=self._timeout_seconds) as response:
                raw = response.read().decode("utf-8")
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise CompletionError(f"provider HTTP {exc.code}: {detail[:200]}") from exc
        except URLError as exc:
            raise CompletionError(f"provider network error: {exc.reason}") from exc
        except OSError as exc:
            raise CompletionError(f"provider IO error: {exc}") from exc

        return self._parse_response(raw)

    @staticmethod
    def _parse_response(raw: str) -> Completion:
        try:
            data = json.loads(raw)
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise CompletionError(
                "provider response missing choices[0].message.content"
            ) from exc

        if not isinstance(content, str):
            raise CompletionError("provider response content must be a string")

        usage = data.get("usage") or {}
        return Completion(
            text=content,
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
        )


def build_completion_service(config: LLMConfig) -> TextCompletionService:
    """Create a concrete completion service from ``LLMConfig``."""

    provider = config.provider.strip().lower()
    if provider == "openai":
        if not config.api_key:
            raise ValueError("llm_config.api_key is required when provider='openai'")
        return OpenAICompatibleCompletionService(
            model=config.model,
            api_key=config.api_key,
            base_url=config.base_url,
            temperature=config.temperature,
            timeout_seconds=config.timeout_seconds,
        )
    if provider == "noop":
        return NoopCompletionService()
    raise ValueError(
        f"Unsupported llm_config.provider '{config.provider}'. "
        "Supported providers: openai, noop."
    )
