from __future__ import annotations

from typing import Any
from uuid import uuid4

from minrisk.core.errors import ConflictError, UpstreamError
from minrisk.providers.identity.base import IdentityUser


class FakeIdentityProvider:
    def __init__(self) -> None:
        # In-memory accounts and tokens keep tests deterministic without network calls.
        self.users: dict[str, IdentityUser] = {}
        self.tokens: dict[str, str] = {}
        self.deleted: list[str] = []
        self.invited: list[str] = []
        self.links: list[str] = []
        self.fail_on: set[str] = set()
        self.closed = False

    def add_user(
        self,
        *,
        email: str,
        token: str | None = None,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> IdentityUser:
        user = IdentityUser(id=user_id or str(uuid4()), email=email, user_metadata=dict(metadata or {}))
        self.users[user.id] = user
        if token is not None:
            self.tokens[token] = user.id
        return user

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise UpstreamError(f"Identity provider error during {operation}")

    async def get_user(self, token: str) -> IdentityUser | None:
        self._check("get_user")
        user_id = self.tokens.get(token)
        return self.users.get(user_id) if user_id else None

    async def get_user_by_id(self, user_id: str) -> IdentityUser | None:
        self._check("get_user_by_id")
        return self.users.get(user_id)

    async def find_user_by_email(self, email: str) -> IdentityUser | None:
        self._check("find_user_by_email")
        target = email.strip().lower()
        for user in self.users.values():
            if (user.email or "").lower() == target:
                return user
        return None

    async def create_user(
        self, *, email: str, metadata: dict[str, Any], email_confirmed: bool = True
    ) -> IdentityUser:
        self._check("create_user")
        if await self.find_user_by_email(email) is not None:
            raise ConflictError("User with this email already exists")
        return self.add_user(email=email, metadata=metadata)

    async def invite_user_by_email(
        self, *, email: str, metadata: dict[str, Any], redirect_to: str | None = None
    ) -> IdentityUser:
        self._check("invite_user")
        if await self.find_user_by_email(email) is not None:
            raise ConflictError("User with this email already exists")
        self.invited.append(email)
        return self.add_user(email=email, metadata=metadata)

    async def generate_link(self, *, email: str, link_type: str = "recovery") -> str:
        self._check("generate_link")
        link = f"https://auth.example.test/verify?type={link_type}&email={email}"
        self.links.append(link)
        return link

    async def delete_user(self, user_id: str) -> None:
        self._check("delete_user")
        self.users.pop(user_id, None)
        self.tokens = {token: uid for token, uid in self.tokens.items() if uid != user_id}
        self.deleted.append(user_id)

    async def aclose(self) -> None:
        self.closed = True
