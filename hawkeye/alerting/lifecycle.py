"""Alert lifecycle management: creation, status transitions, notes, actions.

Every write is either a single ``UPDATE ... WHERE id = :id`` statement or an
insert into one of the append-only tables (actions, notes, deliveries), so
concurrent scans and dispatch passes never overwrite each other's changes.
"""

from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import delete, func, select, update

from ..constants import ALERT_STATUSES, ALERT_TYPES, DEFAULT_EXPIRATION_DAYS, EXPIRATION_DAYS, RISK_LEVELS
from ..errors import AlertNotFoundError, InvalidTransitionError
from ..models.alert import Alert, AlertAction, AlertDelivery, AlertNote
from ..models.asset import MonitoredAsset
from ..models.base import utcnow
from ..utils.logging import get_logger

logger = get_logger("alerting.lifecycle")

VALID_TRANSITIONS = {
    "new": ["acknowledged", "false_positive"],
    "acknowledged": ["investigating", "false_positive"],
    "investigating": ["resolved", "false_positive"],
    "resolved": [],
    "false_positive": [],
}


def expiration_for(severity: str, created_at: datetime) -> datetime:
    days = EXPIRATION_DAYS.get(severity, DEFAULT_EXPIRATION_DAYS)
    return created_at + timedelta(days=days)


def alert_to_dict(alert: Alert) -> dict:
    return {
        "id": alert.id,
        "user_id": alert.user_id,
        "asset_id": alert.asset_id,
        "type": alert.type,
        "severity": alert.severity,
        "title": alert.title,
        "message": alert.message,
        "source": alert.source,
        "source_url": alert.source_url,
        "metadata": alert.metadata_json or {},
        "status": alert.status,
        "is_read": alert.is_read,
        "is_archived": alert.is_archived,
        "notified": alert.notified,
        "expires_at": alert.expires_at.isoformat() if alert.expires_at else None,
        "created_at": alert.created_at.isoformat() if alert.created_at else None,
    }


class AlertLifecycleManager:
    """Owns every state change of a global alert."""

    def __init__(self, db_session_factory, publisher=None):
        self._db_session_factory = db_session_factory
        self._publisher = publisher

    def _publish(self, user_id: int, event_name: str, payload: dict) -> None:
        if self._publisher is not None:
            self._publisher.publish(user_id, event_name, payload)

    async def create(self, data: dict[str, Any], now: Optional[datetime] = None) -> Alert:
        """Persist a new alert.

        ``data`` carries the alert columns by name (``metadata`` for the JSON
        blob). ``expires_at`` defaults from the severity: low 30 days,
        medium 60, high 90, critical 180.
        """
        now = now or utcnow()
        severity = data.get("severity", "medium")
        status = data.get("status", "new")
        if severity not in RISK_LEVELS:
            raise ValueError(f"Unknown alert severity: {severity}")
        if data["type"] not in ALERT_TYPES:
            raise ValueError(f"Unknown alert type: {data['type']}")
        if status not in ALERT_STATUSES:
            raise ValueError(f"Unknown alert status: {status}")
        expires_at = data.get("expires_at") or expiration_for(severity, now)

        async with self._db_session_factory() as session:
            alert = Alert(
                user_id=data["user_id"],
                asset_id=data.get("asset_id"),
                type=data["type"],
                severity=severity,
                title=data["title"],
                message=data["message"],
                source=data["source"],
                source_url=data.get("source_url"),
                metadata_json=dict(data.get("metadata") or {}),
                status=status,
                expires_at=expires_at,
                created_at=now,
                updated_at=now,
            )
            session.add(alert)
            await session.commit()
            await session.refresh(alert)

        logger.info(
            "alert_created",
            alert_id=alert.id,
            user_id=alert.user_id,
            type=alert.type,
            severity=severity,
        )
        self._publish(alert.user_id, "alert_created", alert_to_dict(alert))
        return alert

    async def get(self, alert_id: int) -> Alert:
        async with self._db_session_factory() as session:
            alert = await session.get(Alert, alert_id)
        if alert is None:
            raise AlertNotFoundError(f"Alert {alert_id} not found")
        return alert

    async def _require(self, session, alert_id: int) -> Alert:
        alert = await session.get(Alert, alert_id)
        if alert is None:
            raise AlertNotFoundError(f"Alert {alert_id} not found")
        return alert

    async def add_note(self, alert_id: int, content: str, author: str) -> AlertNote:
        async with self._db_session_factory() as session:
            await self._require(session, alert_id)
            note = AlertNote(alert_id=alert_id, content=content, author=author)
            session.add(note)
            await session.commit()
            await session.refresh(note)
        return note

    async def add_action(
        self,
        alert_id: int,
        kind: str,
        description: str,
        actor: str = "system",
        metadata: Optional[dict] = None,
    ) -> AlertAction:
        async with self._db_session_factory() as session:
            await self._require(session, alert_id)
            action = AlertAction(
                alert_id=alert_id,
                action=kind,
                description=description,
                performed_by=actor,
                metadata_json=metadata or {},
            )
            session.add(action)
            await session.commit()
            await session.refresh(action)
        return action

    async def mark_read(self, alert_id: int) -> None:
        """Flag an alert as read. Repeated calls change nothing."""
        async with self._db_session_factory() as session:
            result = await session.execute(
                update(Alert).where(Alert.id == alert_id).values(is_read=True)
            )
            await session.commit()
        if result.rowcount == 0:
            raise AlertNotFoundError(f"Alert {alert_id} not found")

    async def update_status(self, alert_id: int, new_status: str, actor: str = "system") -> Alert:
        """Move an alert to a new status along the allowed transitions.

        The update is conditional on the status read beforehand; if another
        writer changed it in between, the transition is rejected rather than
        applied on top of the other change.
        """
        async with self._db_session_factory() as session:
            alert = await self._require(session, alert_id)
            old_status = alert.status
            allowed = VALID_TRANSITIONS.get(old_status, [])
            if new_status not in allowed:
                raise InvalidTransitionError(old_status, new_status, allowed)

            result = await session.execute(
                update(Alert)
                .where(Alert.id == alert_id, Alert.status == old_status)
                .values(status=new_status, updated_at=utcnow())
            )
            if result.rowcount == 0:
                await session.rollback()
                current = (await session.execute(
                    select(Alert.status).where(Alert.id == alert_id)
                )).scalar_one_or_none()
                raise InvalidTransitionError(
                    current or old_status, new_status, VALID_TRANSITIONS.get(current, [])
                )

            session.add(AlertAction(
                alert_id=alert_id,
                action="status_updated",
                description=f"Status changed from {old_status} to {new_status}",
                performed_by=actor,
                metadata_json={"from": old_status, "to": new_status},
            ))
            await session.commit()

        alert = await self.get(alert_id)
        logger.info("alert_status_updated", alert_id=alert_id, old=old_status, new=new_status, actor=actor)
        self._publish(alert.user_id, "alert_status_changed", {
            "alert_id": alert_id,
            "old_status": old_status,
            "new_status": new_status,
            "actor": actor,
        })
        return alert

    async def list_actions(self, alert_id: int) -> list[AlertAction]:
        async with self._db_session_factory() as session:
            result = await session.execute(
                select(AlertAction).where(AlertAction.alert_id == alert_id).order_by(AlertAction.id)
            )
            return list(result.scalars().all())

    async def list_notes(self, alert_id: int) -> list[AlertNote]:
        async with self._db_session_factory() as session:
            result = await session.execute(
                select(AlertNote).where(AlertNote.alert_id == alert_id).order_by(AlertNote.id)
            )
            return list(result.scalars().all())

    async def list_pending(self) -> list[Alert]:
        """Alerts still waiting for notification: new, unread, live, not fully notified."""
        async with self._db_session_factory() as session:
            result = await session.execute(
                select(Alert)
                .where(
                    Alert.status == "new",
                    Alert.is_read.is_(False),
                    Alert.is_archived.is_(False),
                    Alert.notified.is_(False),
                )
                .order_by(Alert.created_at, Alert.id)
            )
            return list(result.scalars().all())

    async def delivered_channels(self, alert_id: int) -> set[str]:
        async with self._db_session_factory() as session:
            result = await session.execute(
                select(AlertDelivery.channel).where(AlertDelivery.alert_id == alert_id)
            )
            return set(result.scalars().all())

    async def record_deliveries(
        self,
        alert_id: int,
        channels: list[str],
        fully_notified: bool,
        now: Optional[datetime] = None,
        actor: str = "system",
    ) -> None:
        """Store successful channel deliveries and the ``notifications_sent`` action together."""
        now = now or utcnow()
        async with self._db_session_factory() as session:
            for channel in channels:
                session.add(AlertDelivery(alert_id=alert_id, channel=channel, delivered_at=now))
            session.add(AlertAction(
                alert_id=alert_id,
                action="notifications_sent",
                description=f"Sent via: {', '.join(channels)}",
                performed_by=actor,
                performed_at=now,
                metadata_json={"channels": list(channels)},
            ))
            if fully_notified:
                await session.execute(
                    update(Alert).where(Alert.id == alert_id).values(notified=True)
                )
            await session.commit()

    async def mark_notified(self, alert_id: int) -> None:
        """Take an alert out of the pending set without recording a new delivery."""
        async with self._db_session_factory() as session:
            await session.execute(
                update(Alert).where(Alert.id == alert_id).values(notified=True)
            )
            await session.commit()

    async def reset_notifications(self, alert_id: int, actor: str = "system") -> None:
        """Forget every delivery so the next dispatch pass notifies again."""
        async with self._db_session_factory() as session:
            await self._require(session, alert_id)
            await session.execute(delete(AlertDelivery).where(AlertDelivery.alert_id == alert_id))
            await session.execute(
                update(Alert).where(Alert.id == alert_id).values(notified=False)
            )
            session.add(AlertAction(
                alert_id=alert_id,
                action="notifications_reset",
                description="Delivery records cleared for re-notification",
                performed_by=actor,
            ))
            await session.commit()
        logger.info("alert_notifications_reset", alert_id=alert_id, actor=actor)

    async def archive_expired(self, now: Optional[datetime] = None) -> int:
        """Soft-delete every alert whose expiry has passed."""
        now = now or utcnow()
        async with self._db_session_factory() as session:
            result = await session.execute(
                update(Alert)
                .where(Alert.expires_at <= now, Alert.is_archived.is_(False))
                .values(is_archived=True)
            )
            await session.commit()
        if result.rowcount:
            logger.info("alerts_archived", count=result.rowcount)
        return result.rowcount

    async def get_stats(self, user_id: int) -> dict:
        """Dashboard counters for one user's live (non-archived) alerts."""
        async with self._db_session_factory() as session:
            live = (Alert.user_id == user_id, Alert.is_archived.is_(False))

            total = (await session.execute(
                select(func.count(Alert.id)).where(*live)
            )).scalar_one()
            unread = (await session.execute(
                select(func.count(Alert.id)).where(*live, Alert.is_read.is_(False))
            )).scalar_one()
            severity_rows = (await session.execute(
                select(Alert.severity, func.count(Alert.id)).where(*live).group_by(Alert.severity)
            )).all()
            type_rows = (await session.execute(
                select(Alert.type, func.count(Alert.id)).where(*live).group_by(Alert.type)
            )).all()
            total_domains = (await session.execute(
                select(func.count(MonitoredAsset.id)).where(MonitoredAsset.user_id == user_id)
            )).scalar_one()

        by_severity = {row[0]: row[1] for row in severity_rows}
        return {
            "total_alerts": total,
            "unread_alerts": unread,
            "critical_alerts": by_severity.get("critical", 0),
            "high_alerts": by_severity.get("high", 0),
            "alerts_by_type": {row[0]: row[1] for row in type_rows},
            "total_domains": total_domains,
        }
