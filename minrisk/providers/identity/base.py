from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class IdentityUser:
    id: str
    email: str | None
    user_metadata: dict[str, Any] = field(default_factory=dict)


class IdentityProvider(Protocol):
    async def get_user(self, token: str) -> IdentityUser | None:
        ...

    async def get_user_by_id(self, user_id: str) -> IdentityUser | None:
        ...

    async def find_user_by_email(self, email: str) -> IdentityUser | None:
        ...

    async def create_user(
        self, *, email: str, metadata: dict[str, Any], email_confirmed: bool = True
    ) -> IdentityUser:
        ...

    async def invite_user_by_email(
        self, *, email: str, metadata: dict[str, Any], redirect_to: str | None = None
    ) -> IdentityUser:
        ...

    async def generate_link(self, *, email: str, link_type: str = "recovery") -> str:
        ...

    async def delete_user(self, user_id: str) -> None:
        ...

    async def aclose(self) -> None:
        ...
