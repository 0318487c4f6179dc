"""
Pytest configuration and shared fixtures.

Every test gets its own SQLite database file, so services that commit can be
exercised exactly as they run against PostgreSQL.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-referral-engine")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("NOTIFICATIONS_ENABLED", "false")

import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from referral_core.config import CommissionConfig, get_commission_config
from referral_core.core.security import create_access_token
from referral_core.database import Base, enable_sqlite_savepoints, get_db, import_models
from referral_core.models.commission import CommissionAccount
from referral_core.models.referrer import Influencer, ReferralUser, ReferrerRef
from referral_core.services.ledger_service import CommissionLedger
from referral_core.services.notification_service import (
    NotificationService,
    NotificationType,
    get_notification_service,
)
from referral_core.services.referral_service import ReferralService
from referral_core.services.referrer_service import ReferrerService


NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


class RecordingNotifier(NotificationService):
    """Keeps notifications in memory instead of sending email."""

    def __init__(self):
        super().__init__(enabled=True, admin_email="finance@example.com")
        self.sent: List[Tuple[NotificationType, Optional[str], Dict[str, Any]]] = []

    async def notify(self, event: NotificationType, to_email: Optional[str], **data: Any) -> bool:
        self.sent.append((event, to_email, data))
        return True

    def events(self) -> List[NotificationType]:
        return [event for event, _, _ in self.sent]


# ==================== DATABASE FIXTURES ====================


@pytest_asyncio.fixture
async def engine(tmp_path):
    import_models()
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'referrals.db'}")
    enable_sqlite_savepoints(test_engine)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def config() -> CommissionConfig:
    return CommissionConfig(code_prefix="SHRIBALAJI", maturity_days=7, min_payout_amount=Decimal("500"))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# ==================== DOMAIN HELPERS ====================


@pytest.fixture
def referrers(db, config):
    return ReferrerService(db, config)


@pytest.fixture
def referrals(db, config, notifier):
    return ReferralService(db, config, notifier)


@pytest.fixture
def ledger(db):
    return CommissionLedger(db)


@pytest_asyncio.fixture
async def referrer(referrers) -> ReferralUser:
    """A regular user whose code is SHRIBALAJIABC123."""
    return await referrers.register_user(
        uuid.UUID("00000000-0000-4000-8000-000000abc123"),
        email="referrer@example.com",
        name="Asha",
    )


@pytest_asyncio.fixture
async def influencer(referrers) -> Influencer:
    influencer = await referrers.register_influencer(
        user_id=uuid.uuid4(),
        name="Priya Styles",
        email="priya@example.com",
        username="PriyaStyles",
    )
    return await referrers.update_influencer(influencer.id, {"status": "approved"})


async def get_account(db: AsyncSession, ref: ReferrerRef) -> CommissionAccount:
    result = await db.execute(
        select(CommissionAccount)
        .where(
            CommissionAccount.referrer_kind == ref.kind.value,
            CommissionAccount.referrer_id == ref.id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def refresh(db: AsyncSession, instance):
    await db.refresh(instance)
    return instance


async def make_available(db: AsyncSession, ref: ReferrerRef, amount: Decimal) -> CommissionAccount:
    """Credit and mature commission directly on the ledger."""
    ledger = CommissionLedger(db)
    account = await ledger.open_account(ref)
    account = await ledger.credit(account, amount)
    account = await ledger.mature(account, amount)
    await db.commit()
    return account


async def convert_new_signup(
    referrals: ReferralService,
    code: str,
    order_total: Decimal,
    now: datetime = NOW,
):
    """Attribute a fresh signup to a code and deliver its first order."""
    referral = await referrals.attribute(uuid.uuid4(), code, now=now)
    order_id = uuid.uuid4()
    referral = await referrals.convert(referral, order_id, order_total, now=now + timedelta(days=1))
    return referral, order_id


# ==================== API FIXTURES ====================


def token_for(user_id: uuid.UUID, role: str = "user") -> Dict[str, str]:
    token = create_access_token(user_id, additional_claims={"role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return token_for(uuid.uuid4(), role="admin")


@pytest.fixture
def service_headers() -> Dict[str, str]:
    return token_for(uuid.uuid4(), role="service")


@pytest_asyncio.fixture
async def client(session_factory, config, notifier) -> AsyncGenerator[httpx.AsyncClient, None]:
    from referral_core.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_commission_config] = lambda: config
    app.dependency_overrides[get_notification_service] = lambda: notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()
