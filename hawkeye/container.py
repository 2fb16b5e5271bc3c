"""Composition root: builds every long-lived service and wires them together."""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from .alerting.lifecycle import AlertLifecycleManager
from .analysis.domain_analyzer import DomainRiskAnalyzer
from .api.websockets.events import ConnectionManager
from .config import HawkeyeConfig
from .constants import CHANNEL_DISCORD, CHANNEL_SLACK, USER_SCAN_CATEGORIES
from .database import create_engine, create_session_factory
from .intel.shodan import ShodanProvider
from .intel.virustotal import VirusTotalProvider
from .notifications.dispatcher import NotificationDispatcher
from .notifications.smtp import EmailChannel
from .notifications.telegram import TelegramChannel
from .notifications.webhook import WebhookChannel
from .realtime.publisher import RealtimePublisher
from .scanning.orchestrator import ScanOrchestrator
from .scheduling.monitoring import MonitoringService
from .scheduling.scheduler import ScanScheduler
from .screenshots import ScreenshotService
from .sources.base import NullSourceAdapter, SourceAdapter
from .store.assets import AssetStore
from .store.users import UserStore
from .utils.logging import get_logger

logger = get_logger("container")


@dataclass
class Services:
    config: HawkeyeConfig
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    publisher: RealtimePublisher
    assets: AssetStore
    users: UserStore
    lifecycle: AlertLifecycleManager
    analyzer: DomainRiskAnalyzer
    orchestrator: ScanOrchestrator
    dispatcher: NotificationDispatcher
    scheduler: ScanScheduler
    monitoring: MonitoringService
    screenshots: Optional[ScreenshotService]
    ws_manager: ConnectionManager

    async def aclose(self) -> None:
        """Stop jobs and release the browser, sockets and database pool."""
        if self.monitoring.is_running:
            self.monitoring.stop()
        await self.ws_manager.close_all()
        await self.publisher.stop()
        if self.screenshots is not None:
            try:
                await self.screenshots.aclose()
            except Exception as e:
                logger.error("screenshot_service_close_failed", error=str(e))
        await self.engine.dispose()


def build_services(
    config: HawkeyeConfig,
    engine: Optional[AsyncEngine] = None,
    adapters: Optional[dict[str, SourceAdapter]] = None,
) -> Services:
    """Construct the service graph.

    ``adapters`` maps scan categories to source adapters; categories without
    one get a ``NullSourceAdapter``.
    """
    engine = engine or create_engine(config)
    session_factory = create_session_factory(engine)

    publisher = RealtimePublisher(queue_size=config.realtime_queue_size)
    assets = AssetStore(session_factory, history_cap=config.monitoring_history_cap)
    users = UserStore(session_factory)
    lifecycle = AlertLifecycleManager(session_factory, publisher=publisher)

    screenshots = ScreenshotService(output_dir=config.screenshots_dir) if config.screenshots_enabled else None

    analyzer = DomainRiskAnalyzer(
        assets,
        lifecycle,
        config,
        virustotal=VirusTotalProvider(config.virustotal_api_key),
        shodan=ShodanProvider(config.shodan_api_key),
        screenshots=screenshots,
    )

    source_adapters = {category: NullSourceAdapter(category) for category in USER_SCAN_CATEGORIES}
    source_adapters.update(adapters or {})

    orchestrator = ScanOrchestrator(
        assets,
        users,
        analyzer,
        lifecycle,
        source_adapters,
        publisher=publisher,
        concurrency=config.scan_concurrency,
    )

    dispatcher = NotificationDispatcher(
        lifecycle,
        users,
        config,
        email=EmailChannel(
            config.smtp_host,
            config.smtp_port,
            config.smtp_user,
            config.smtp_pass,
            config.smtp_from,
        ),
        slack=WebhookChannel(CHANNEL_SLACK),
        discord=WebhookChannel(CHANNEL_DISCORD),
        telegram=TelegramChannel(config.telegram_bot_token),
        publisher=publisher,
    )

    scheduler = ScanScheduler()
    monitoring = MonitoringService(scheduler, orchestrator, dispatcher, lifecycle, config)
    ws_manager = ConnectionManager(
        publisher,
        max_connections=config.ws_max_connections,
        queue_size=config.ws_queue_size,
        heartbeat_interval=config.ws_heartbeat_interval,
    )

    return Services(
        config=config,
        engine=engine,
        session_factory=session_factory,
        publisher=publisher,
        assets=assets,
        users=users,
        lifecycle=lifecycle,
        analyzer=analyzer,
        orchestrator=orchestrator,
        dispatcher=dispatcher,
        scheduler=scheduler,
        monitoring=monitoring,
        screenshots=screenshots,
        ws_manager=ws_manager,
    )
