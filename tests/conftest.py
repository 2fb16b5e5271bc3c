"""Shared test fixtures."""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hawkeye.alerting.lifecycle import AlertLifecycleManager
from hawkeye.config import HawkeyeConfig
from hawkeye.database import create_tables
from hawkeye.realtime.publisher import RealtimePublisher
from hawkeye.store.assets import AssetStore
from hawkeye.store.users import UserStore


@pytest.fixture
def fixed_now():
    return datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def config(tmp_path):
    """Config with every external channel and provider switched off."""
    return HawkeyeConfig(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        log_dir=str(tmp_path / "logs"),
        screenshots_enabled=False,
        screenshots_dir=str(tmp_path / "screenshots"),
        virustotal_api_key=None,
        shodan_api_key=None,
        smtp_host=None,
        smtp_user=None,
        smtp_pass=None,
        alert_slack_webhook_url=None,
        alert_discord_webhook_url=None,
        telegram_bot_token=None,
        monitoring_history_cap=5,
    )


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine shared across sessions via StaticPool."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def publisher():
    return RealtimePublisher(queue_size=100)


@pytest.fixture
def asset_store(session_factory):
    return AssetStore(session_factory, history_cap=5)


@pytest.fixture
def user_store(session_factory):
    return UserStore(session_factory)


@pytest.fixture
def lifecycle(session_factory, publisher):
    return AlertLifecycleManager(session_factory, publisher=publisher)


@pytest_asyncio.fixture
async def user(user_store):
    return await user_store.add(
        "alice@acme.com",
        first_name="Alice",
        last_name="Smith",
        company="Acme Corp",
    )


@pytest.fixture
def make_alert(lifecycle, user):
    """Create an alert for ``user`` with sensible defaults."""

    async def _make(**overrides):
        data = {
            "user_id": user.id,
            "type": "threat_detected",
            "severity": "high",
            "title": "Domain Alert: acme-login.com",
            "message": "Threat detected: suspicious login page",
            "source": "Domain Monitoring",
            "source_url": "http://acme-login.com",
        }
        now = overrides.pop("now", None)
        data.update(overrides)
        return await lifecycle.create(data, now=now)

    return _make
