"""Evidence screenshots of suspicious sites using a shared headless Chromium."""

import asyncio
import re
from datetime import datetime, timezone
from pathlib import Path

from playwright.async_api import async_playwright

from .utils.logging import get_logger

logger = get_logger("screenshots")

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def screenshot_filename(domain: str, kind: str, when: datetime) -> str:
    stamp = when.isoformat().replace(":", "-").replace(".", "-").replace("+", "_")
    return f"{_UNSAFE_CHARS.sub('_', domain)}_{kind}_{stamp}.png"


class ScreenshotService:
    """Captures full-page PNGs.

    The browser is launched on first use and reused by every capture; each
    capture opens and closes its own page. ``aclose`` shuts the browser down.
    """

    def __init__(self, output_dir: str = "screenshots", navigation_timeout: float = 15.0):
        self._output_dir = Path(output_dir)
        self._navigation_timeout_ms = int(navigation_timeout * 1000)
        self._playwright = None
        self._browser = None
        self._launch_lock = asyncio.Lock()

    async def _get_browser(self):
        async with self._launch_lock:
            if self._browser is None:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=True,
                    args=["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"],
                )
                logger.info("screenshot_browser_launched")
            return self._browser

    async def capture(self, domain: str, kind: str = "general") -> str:
        """Load the site over HTTPS (falling back to HTTP) and save a screenshot.

        Returns the file path. Raises if neither scheme loads.
        """
        browser = await self._get_browser()
        context = await browser.new_context(
            viewport={"width": 1920, "height": 1080},
            user_agent=_USER_AGENT,
        )
        page = await context.new_page()
        try:
            try:
                await page.goto(
                    f"https://{domain}",
                    wait_until="domcontentloaded",
                    timeout=self._navigation_timeout_ms,
                )
            except Exception as e:
                logger.warning("screenshot_https_failed", domain=domain, error=str(e))
                await page.goto(
                    f"http://{domain}",
                    wait_until="domcontentloaded",
                    timeout=self._navigation_timeout_ms,
                )
            await page.wait_for_timeout(2000)

            self._output_dir.mkdir(parents=True, exist_ok=True)
            path = self._output_dir / screenshot_filename(domain, kind, datetime.now(timezone.utc))
            await page.screenshot(path=str(path), full_page=True, type="png")
        finally:
            await context.close()

        logger.info("screenshot_captured", domain=domain, path=str(path))
        return str(path)

    async def aclose(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

