from __future__ import annotations

from typing import Protocol


class LLMProvider(Protocol):
    model: str

    async def complete(self, prompt: str, *, max_tokens: int, temperature: float) -> str:
        ...

    async def aclose(self) -> None:
        ...
