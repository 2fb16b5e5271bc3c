"""SQLAlchemy models package."""

from .base import Base
from .user import User
from .asset import AssetAlert, AssetMonitoringRecord, MonitoredAsset
from .alert import Alert, AlertAction, AlertDelivery, AlertNote

__all__ = [
    "Base",
    "User",
    "MonitoredAsset",
    "AssetMonitoringRecord",
    "AssetAlert",
    "Alert",
    "AlertAction",
    "AlertNote",
    "AlertDelivery",
]
