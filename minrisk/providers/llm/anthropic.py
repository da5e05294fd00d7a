from __future__ import annotations

import logging
import time

import httpx

from minrisk.core.config import get_settings
from minrisk.core.errors import ProviderConfigError, UpstreamError, UpstreamTimeoutError


logger = logging.getLogger(__name__)


class AnthropicProvider:
    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._settings = get_settings()
        self._client = client
        self._owns_client = False
        self.model = self._settings.llm_model

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        self._client = httpx.AsyncClient(timeout=self._settings.llm_timeout_s)
        self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    async def complete(self, prompt: str, *, max_tokens: int, temperature: float) -> str:
        api_key = self._settings.anthropic_api_key
        if not api_key:
            raise ProviderConfigError("ANTHROPIC_API_KEY is required for the Anthropic provider")

        payload = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "x-api-key": api_key,
            "anthropic-version": self._settings.anthropic_version,
            "content-type": "application/json",
        }
        client = self._get_client()
        start = time.monotonic()
        try:
            response = await client.post(self._settings.anthropic_api_url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise UpstreamTimeoutError("AI request timed out") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError("AI request failed") from exc

        latency_ms = (time.monotonic() - start) * 1000.0
        if response.status_code >= 400:
            logger.warning(
                "llm_call_error model=%s status=%s latency_ms=%.1f",
                self.model,
                response.status_code,
                latency_ms,
            )
            # Keep the provider body out of the error; it may echo the prompt.
            raise UpstreamError(
                f"AI API error: {response.status_code}",
                details={"status_code": response.status_code},
            )
        logger.info("llm_call_ok model=%s latency_ms=%.1f", self.model, latency_ms)

        body = response.json()
        blocks = body.get("content") or []
        text_parts = [block.get("text", "") for block in blocks if block.get("type", "text") == "text"]
        if not text_parts:
            raise UpstreamError("AI response contained no text content")
        return "".join(text_parts)
