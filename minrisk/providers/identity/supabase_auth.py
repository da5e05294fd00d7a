from __future__ import annotations

import logging
from typing import Any

import httpx

from minrisk.core.config import get_settings
from minrisk.core.errors import ConflictError, ProviderConfigError, UpstreamError, UpstreamTimeoutError
from minrisk.providers.identity.base import IdentityUser


logger = logging.getLogger(__name__)

# The admin list endpoint caps page size; scanning stops at the first short page.
_LIST_PAGE_SIZE = 1000


def _to_user(payload: dict[str, Any]) -> IdentityUser:
    # Admin endpoints sometimes wrap the record in {"user": {...}}.
    record = payload.get("user") if isinstance(payload.get("user"), dict) else payload
    return IdentityUser(
        id=str(record["id"]),
        email=record.get("email"),
        user_metadata=dict(record.get("user_metadata") or {}),
    )


def _is_already_registered(response: httpx.Response) -> bool:
    if response.status_code not in {400, 409, 422}:
        return False
    body = response.text.lower()
    return "already" in body and ("registered" in body or "exists" in body)


class SupabaseIdentityProvider:
    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._settings = get_settings()
        self._client = client
        self._owns_client = False

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        timeout_s = self._settings.identity_call_timeout_ms / 1000.0
        self._client = httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        # Injected clients belong to the caller; only a lazily created one is closed here.
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    def _base_url(self) -> str:
        return self._settings.supabase_url.rstrip("/") + "/auth/v1"

    def _service_headers(self) -> dict[str, str]:
        key = self._settings.supabase_service_role_key
        if not key:
            raise ProviderConfigError("SUPABASE_SERVICE_ROLE_KEY is required for identity admin calls")
        return {"apikey": key, "Authorization": f"Bearer {key}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        headers: dict[str, str],
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        client = self._get_client()
        try:
            return await client.request(
                method, f"{self._base_url()}{path}", headers=headers, json=json, params=params
            )
        except httpx.TimeoutException as exc:
            logger.warning("identity_call_timeout operation=%s", operation)
            raise UpstreamTimeoutError(f"Identity provider timed out during {operation}") from exc
        except httpx.HTTPError as exc:
            logger.warning("identity_call_failed operation=%s", operation, exc_info=exc)
            raise UpstreamError(f"Identity provider request failed during {operation}") from exc

    def _raise_for_status(self, response: httpx.Response, *, operation: str) -> None:
        if response.status_code < 400:
            return
        logger.warning(
            "identity_call_error operation=%s status=%s", operation, response.status_code
        )
        raise UpstreamError(
            f"Identity provider error during {operation}",
            details={"status_code": response.status_code},
        )

    async def get_user(self, token: str) -> IdentityUser | None:
        # Resolve the session token with the anon key; any rejection means no user.
        apikey = self._settings.supabase_anon_key or self._settings.supabase_service_role_key
        if not apikey:
            raise ProviderConfigError("SUPABASE_ANON_KEY is required to resolve session tokens")
        response = await self._request(
            "GET",
            "/user",
            operation="get_user",
            headers={"apikey": apikey, "Authorization": f"Bearer {token}"},
        )
        if response.status_code in {401, 403, 404}:
            return None
        self._raise_for_status(response, operation="get_user")
        return _to_user(response.json())

    async def get_user_by_id(self, user_id: str) -> IdentityUser | None:
        response = await self._request(
            "GET",
            f"/admin/users/{user_id}",
            operation="get_user_by_id",
            headers=self._service_headers(),
        )
        if response.status_code == 404:
            return None
        self._raise_for_status(response, operation="get_user_by_id")
        return _to_user(response.json())

    async def find_user_by_email(self, email: str) -> IdentityUser | None:
        target = email.strip().lower()
        page = 1
        while True:
            response = await self._request(
                "GET",
                "/admin/users",
                operation="list_users",
                headers=self._service_headers(),
                params={"page": page, "per_page": _LIST_PAGE_SIZE},
            )
            self._raise_for_status(response, operation="list_users")
            payload = response.json()
            users = payload.get("users", []) if isinstance(payload, dict) else payload
            for record in users:
                if str(record.get("email") or "").lower() == target:
                    return _to_user(record)
            if len(users) < _LIST_PAGE_SIZE:
                return None
            page += 1

    async def create_user(
        self, *, email: str, metadata: dict[str, Any], email_confirmed: bool = True
    ) -> IdentityUser:
        response = await self._request(
            "POST",
            "/admin/users",
            operation="create_user",
            headers=self._service_headers(),
            json={"email": email, "email_confirm": email_confirmed, "user_metadata": metadata},
        )
        if _is_already_registered(response):
            raise ConflictError("User with this email already exists")
        self._raise_for_status(response, operation="create_user")
        return _to_user(response.json())

    async def invite_user_by_email(
        self, *, email: str, metadata: dict[str, Any], redirect_to: str | None = None
    ) -> IdentityUser:
        params = {"redirect_to": redirect_to} if redirect_to else None
        response = await self._request(
            "POST",
            "/invite",
            operation="invite_user",
            headers=self._service_headers(),
            json={"email": email, "data": metadata},
            params=params,
        )
        if _is_already_registered(response):
            raise ConflictError("User with this email already exists")
        self._raise_for_status(response, operation="invite_user")
        return _to_user(response.json())

    async def generate_link(self, *, email: str, link_type: str = "recovery") -> str:
        body: dict[str, Any] = {"type": link_type, "email": email}
        if self._settings.app_url:
            body["redirect_to"] = f"{self._settings.app_url.rstrip('/')}/auth/callback"
        response = await self._request(
            "POST",
            "/admin/generate_link",
            operation="generate_link",
            headers=self._service_headers(),
            json=body,
        )
        self._raise_for_status(response, operation="generate_link")
        payload = response.json()
        link = payload.get("action_link") or (payload.get("properties") or {}).get("action_link")
        if not link:
            raise UpstreamError("Identity provider returned no action link")
        return str(link)

    async def delete_user(self, user_id: str) -> None:
        response = await self._request(
            "DELETE",
            f"/admin/users/{user_id}",
            operation="delete_user",
            headers=self._service_headers(),
        )
        if response.status_code == 404:
            return
        self._raise_for_status(response, operation="delete_user")
