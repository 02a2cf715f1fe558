"""
Fixtures and helpers for end-to-end webhook scenarios.

Provides:
- Concise senders for the three webhook endpoints
- A file-backed SQLite engine for scenarios that need real concurrency
- DB assertions (order count, stored status)
"""
from typing import AsyncGenerator, Optional

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.db.database import build_engine, init_db
from app.db.models import OrderRecord
from app.domain.schemas import OrderStatus, Platform


# ============================================================================
# Senders
# ============================================================================

async def send_webhook(client: AsyncClient, platform: Platform, body: dict) -> dict:
    """POST to /webhook/<slug>; every answer is HTTP 200"""
    response = await client.post(f"/webhook/{platform.slug}", json=body)
    assert response.status_code == 200
    return response.json()


# ============================================================================
# File-backed database
# ============================================================================

@pytest.fixture
async def file_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """SQLite file with the busy timeout the app uses, one connection per session"""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.sqlite'}")
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def file_session_factory(file_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)


# ============================================================================
# DB assertions
# ============================================================================

async def assert_order_count(
    db: AsyncSession,
    expected: int,
    platform: Optional[Platform] = None,
) -> None:
    query = select(func.count()).select_from(OrderRecord)
    if platform is not None:
        query = query.where(OrderRecord.platform == platform.value)
    count = (await db.execute(query)).scalar_one()
    assert count == expected, f"expected {expected} orders, found {count}"


async def assert_order_status(
    db: AsyncSession,
    platform: Platform,
    external_order_id: str,
    expected: OrderStatus,
) -> None:
    result = await db.execute(
        select(OrderRecord.status).where(
            OrderRecord.platform == platform.value,
            OrderRecord.external_order_id == external_order_id,
        )
    )
    status = result.scalar_one_or_none()
    assert status == expected.value, f"expected {expected.value}, found {status}"
