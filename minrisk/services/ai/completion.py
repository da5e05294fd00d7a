from __future__ import annotations

import asyncio
import logging
import time

from minrisk.core.config import get_settings
from minrisk.core.errors import UpstreamTimeoutError
from minrisk.providers.llm.base import LLMProvider


logger = logging.getLogger(__name__)


async def complete_with_timeout(
    provider: LLMProvider,
    prompt: str,
    *,
    operation: str,
    timeout_s: float | None = None,
    temperature: float | None = None,
) -> str:
    # The only semantic time bound in the service; the in-flight call is cancelled, never retried.
    settings = get_settings()
    bound = settings.llm_timeout_s if timeout_s is None else timeout_s
    start = time.monotonic()
    try:
        text = await asyncio.wait_for(
            provider.complete(
                prompt,
                max_tokens=settings.llm_max_tokens,
                temperature=settings.llm_temperature if temperature is None else temperature,
            ),
            timeout=bound,
        )
    except asyncio.TimeoutError as exc:
        logger.warning("llm_call_timeout operation=%s timeout_s=%s", operation, bound)
        raise UpstreamTimeoutError(
            "AI analysis timeout - request took too long",
            details={"timeout_s": bound},
        ) from exc
    logger.info(
        "llm_call_completed operation=%s chars=%s latency_ms=%.1f",
        operation,
        len(text),
        (time.monotonic() - start) * 1000.0,
    )
    return text
