from __future__ import annotations

import asyncio


class FakeLLMProvider:
    def __init__(
        self,
        response: str = '{"suggestions": []}',
        *,
        delay_s: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        # Deterministic response keeps tests stable without external calls.
        self._response = response
        self._delay_s = delay_s
        self._error = error
        self.model = "fake-llm"
        self.prompts: list[str] = []
        self.closed = False

    async def complete(self, prompt: str, *, max_tokens: int, temperature: float) -> str:
        _ = (max_tokens, temperature)
        self.prompts.append(prompt)
        if self._delay_s:
            await asyncio.sleep(self._delay_s)
        if self._error is not None:
            raise self._error
        return self._response

    async def aclose(self) -> None:
        self.closed = True
