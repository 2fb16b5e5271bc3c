"""HawkEye brand-protection monitor.

FastAPI entry point: the lifespan builds the service graph, starts the
realtime publisher and the scheduled monitoring jobs, and tears everything
down on shutdown.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI

from .api.router import api_router, websocket_router
from .config import HawkeyeConfig, get_config
from .container import Services, build_services
from .database import create_engine, create_tables
from .middleware.error_handler import register_error_handlers
from .utils.logging import get_logger, setup_logging

logger = get_logger("hawkeye.main")


def create_app(
    config: Optional[HawkeyeConfig] = None,
    services: Optional[Services] = None,
    start_monitoring: bool = True,
) -> FastAPI:
    """Build the FastAPI app.

    Passing ``services`` skips engine and table setup; the caller owns them.
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            debug=config.debug,
            log_dir=config.log_dir,
            log_max_bytes=config.log_max_bytes,
            log_backup_count=config.log_backup_count,
        )
        owned = services is None
        if owned:
            engine = create_engine(config)
            await create_tables(engine)
            svc = build_services(config, engine=engine)
        else:
            svc = services
        app.state.services = svc

        await svc.publisher.start()
        if start_monitoring:
            svc.monitoring.start()
        logger.info("hawkeye_started", app=config.app_name)

        yield

        logger.info("hawkeye_shutting_down")
        if svc.monitoring.is_running:
            svc.monitoring.stop()
        if owned:
            await svc.aclose()
        else:
            await svc.publisher.stop()
        logger.info("hawkeye_stopped")

    app = FastAPI(
        title="HawkEye",
        description="Brand protection monitoring and alerting",
        version="1.0.0",
        lifespan=lifespan,
    )
    register_error_handlers(app)
    app.include_router(api_router)
    app.include_router(websocket_router)

    @app.get("/health")
    async def health():
        svc = app.state.services
        return {
            "status": "ok",
            "monitoring": svc.monitoring.is_running,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


def run() -> None:
    config = get_config()
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    run()
