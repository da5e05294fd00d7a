from __future__ import annotations

import pytest

from minrisk.domain.models import Base
from minrisk.persistence.db import engine


@pytest.fixture(autouse=True)
async def database() -> None:
    # Build the external schema from the ORM mapping; each test starts from empty tables.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()
