"""Monitored asset (domain) model with its history and asset-scoped alerts."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UTCDateTime, utcnow


class MonitoredAsset(Base):
    __tablename__ = "monitored_assets"
    __table_args__ = (
        Index("ix_monitored_assets_domain_user", "domain", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), default="active", nullable=False, index=True
    )  # active, inactive, suspended
    monitoring_type: Mapped[str] = mapped_column(String(30), default="all", nullable=False)
    risk_level: Mapped[str] = mapped_column(String(20), default="low", nullable=False, index=True)

    # Registration info
    registrar: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    registration_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    expiration_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    name_servers: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    whois_status: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Snapshots
    dns_records: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    ssl_certificate: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    content_analysis: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    threat_indicators: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)

    tags: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_analyzed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class AssetMonitoringRecord(Base):
    __tablename__ = "asset_monitoring_history"
    __table_args__ = (
        Index("ix_asset_history_asset_check", "asset_id", "check_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asset_id: Mapped[int] = mapped_column(
        ForeignKey("monitored_assets.id", ondelete="CASCADE"), nullable=False
    )
    check_date: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # online, offline, redirecting, error
    response_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    changes: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)


class AssetAlert(Base):
    __tablename__ = "asset_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asset_id: Mapped[int] = mapped_column(
        ForeignKey("monitored_assets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(
        String(30), nullable=False
    )  # registration, content_change, ssl_expiry, threat_detected, status_change
    message: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), default="medium", nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
