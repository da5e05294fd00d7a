from __future__ import annotations

from minrisk.core.config import get_settings
from minrisk.core.errors import ProviderConfigError
from minrisk.providers.identity.base import IdentityProvider
from minrisk.providers.identity.fake import FakeIdentityProvider
from minrisk.providers.identity.supabase_auth import SupabaseIdentityProvider


def get_identity_provider() -> IdentityProvider:
    settings = get_settings()
    provider = (settings.identity_provider or "supabase").lower()

    if provider == "fake":
        return FakeIdentityProvider()
    if provider == "supabase":
        return SupabaseIdentityProvider()
    raise ProviderConfigError(f"Unknown identity provider: {settings.identity_provider}")
