"""Monitored asset persistence: atomic field updates, capped history, asset alerts."""

import re
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, func, select, update

from ..constants import ALERT_TYPES, ASSET_STATUSES, HISTORY_STATUSES, MONITORING_TYPES, RISK_LEVELS
from ..errors import AssetNotFoundError
from ..models.asset import AssetAlert, AssetMonitoringRecord, MonitoredAsset
from ..models.base import utcnow
from ..utils.logging import get_logger

logger = get_logger("store.assets")

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://")


def normalize_domain(domain: str) -> str:
    """Strip whitespace, scheme, path and a leading ``www.``; lowercase."""
    value = domain.strip().lower()
    value = _SCHEME_RE.sub("", value)
    value = value.split("/", 1)[0]
    if value.startswith("www."):
        value = value[4:]
    return value


class AssetStore:
    """Reads and atomic writes for monitored domains."""

    def __init__(self, db_session_factory, history_cap: int = 100):
        self._db_session_factory = db_session_factory
        self._history_cap = history_cap

    async def add(
        self,
        user_id: int,
        domain: str,
        monitoring_type: str = "all",
        tags: Optional[list[str]] = None,
        status: str = "active",
    ) -> MonitoredAsset:
        if status not in ASSET_STATUSES:
            raise ValueError(f"Unknown asset status: {status}")
        if monitoring_type not in MONITORING_TYPES:
            raise ValueError(f"Unknown monitoring type: {monitoring_type}")
        async with self._db_session_factory() as session:
            asset = MonitoredAsset(
                user_id=user_id,
                domain=normalize_domain(domain),
                monitoring_type=monitoring_type,
                status=status,
                tags=tags or [],
            )
            session.add(asset)
            await session.commit()
            await session.refresh(asset)
        logger.info("asset_added", asset_id=asset.id, domain=asset.domain, user_id=user_id)
        return asset

    async def get(self, asset_id: int) -> MonitoredAsset:
        async with self._db_session_factory() as session:
            asset = await session.get(MonitoredAsset, asset_id)
        if asset is None:
            raise AssetNotFoundError(f"Asset {asset_id} not found")
        return asset

    async def list_active(self) -> list[MonitoredAsset]:
        async with self._db_session_factory() as session:
            result = await session.execute(
                select(MonitoredAsset)
                .where(MonitoredAsset.status == "active")
                .order_by(MonitoredAsset.id)
            )
            return list(result.scalars().all())

    async def list_active_for_user(self, user_id: int) -> list[MonitoredAsset]:
        async with self._db_session_factory() as session:
            result = await session.execute(
                select(MonitoredAsset)
                .where(MonitoredAsset.user_id == user_id, MonitoredAsset.status == "active")
                .order_by(MonitoredAsset.id)
            )
            return list(result.scalars().all())

    async def count_for_user(self, user_id: int) -> int:
        async with self._db_session_factory() as session:
            result = await session.execute(
                select(func.count(MonitoredAsset.id)).where(MonitoredAsset.user_id == user_id)
            )
            return result.scalar_one()

    async def update_fields(self, asset_id: int, fields: dict[str, Any]) -> None:
        """Apply a set of column values in a single UPDATE ... WHERE id = :id."""
        values = dict(fields)
        values.setdefault("updated_at", utcnow())
        async with self._db_session_factory() as session:
            result = await session.execute(
                update(MonitoredAsset).where(MonitoredAsset.id == asset_id).values(**values)
            )
            await session.commit()
        if result.rowcount == 0:
            raise AssetNotFoundError(f"Asset {asset_id} not found")

    async def append_history(
        self,
        asset_id: int,
        status: str,
        response_time_ms: Optional[int] = None,
        changes: Optional[list[dict]] = None,
        check_date: Optional[datetime] = None,
    ) -> AssetMonitoringRecord:
        """Append a monitoring record and prune the asset's history to the cap."""
        if status not in HISTORY_STATUSES:
            raise ValueError(f"Unknown history status: {status}")
        async with self._db_session_factory() as session:
            record = AssetMonitoringRecord(
                asset_id=asset_id,
                status=status,
                response_time_ms=response_time_ms,
                changes=changes or [],
                check_date=check_date or utcnow(),
            )
            session.add(record)
            await session.flush()

            keep = (
                select(AssetMonitoringRecord.id)
                .where(AssetMonitoringRecord.asset_id == asset_id)
                .order_by(AssetMonitoringRecord.check_date.desc(), AssetMonitoringRecord.id.desc())
                .limit(self._history_cap)
            )
            await session.execute(
                delete(AssetMonitoringRecord).where(
                    AssetMonitoringRecord.asset_id == asset_id,
                    AssetMonitoringRecord.id.not_in(keep.scalar_subquery()),
                )
            )
            await session.commit()
            await session.refresh(record)
        return record

    async def list_history(self, asset_id: int) -> list[AssetMonitoringRecord]:
        """Return the asset's monitoring records, newest first."""
        async with self._db_session_factory() as session:
            result = await session.execute(
                select(AssetMonitoringRecord)
                .where(AssetMonitoringRecord.asset_id == asset_id)
                .order_by(AssetMonitoringRecord.check_date.desc(), AssetMonitoringRecord.id.desc())
            )
            return list(result.scalars().all())

    async def add_asset_alert(
        self, asset_id: int, alert_type: str, message: str, severity: str = "medium"
    ) -> AssetAlert:
        if alert_type not in ALERT_TYPES:
            raise ValueError(f"Unknown alert type: {alert_type}")
        if severity not in RISK_LEVELS:
            raise ValueError(f"Unknown alert severity: {severity}")
        async with self._db_session_factory() as session:
            alert = AssetAlert(
                asset_id=asset_id,
                type=alert_type,
                message=message,
                severity=severity,
            )
            session.add(alert)
            await session.commit()
            await session.refresh(alert)
        return alert

    async def list_asset_alerts(self, asset_id: int) -> list[AssetAlert]:
        async with self._db_session_factory() as session:
            result = await session.execute(
                select(AssetAlert).where(AssetAlert.asset_id == asset_id).order_by(AssetAlert.id)
            )
            return list(result.scalars().all())

    async def count_unread_asset_alerts(self, asset_id: int) -> int:
        async with self._db_session_factory() as session:
            result = await session.execute(
                select(func.count(AssetAlert.id)).where(
                    AssetAlert.asset_id == asset_id, AssetAlert.is_read.is_(False)
                )
            )
            return result.scalar_one()

    async def mark_asset_alerts_read(self, asset_id: int) -> int:
        """Flip every unread asset alert to read in one statement."""
        async with self._db_session_factory() as session:
            result = await session.execute(
                update(AssetAlert)
                .where(AssetAlert.asset_id == asset_id, AssetAlert.is_read.is_(False))
                .values(is_read=True)
            )
            await session.commit()
        return result.rowcount
