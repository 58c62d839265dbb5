"""Headless Chrome rasterization engine driven by selenium."""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from selenium import webdriver
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.by import By
from selenium.webdriver.support.ui import WebDriverWait

from reel_maker.services.rendering import RasterEngine, RasterPage

_LOAD_SNAPSHOT_SCRIPT = """
return {
    loaded: document.readyState === "complete"
        && Array.from(document.images).every((img) => img.complete),
    resources: performance.getEntriesByType("resource").length,
};
"""
_FONTS_READY_SCRIPT = """
const done = arguments[arguments.length - 1];
document.fonts.ready.then(() => done(true));
"""
_TRANSPARENT = {"color": {"r": 0, "g": 0, "b": 0, "a": 0}}


class NetworkIdle:
    """Wait condition that holds once the page is loaded and quiet.

    Resource Timing entries only appear when a fetch completes, so the page
    counts as idle when the entry count has not changed for ``idle_seconds``.
    """

    def __init__(
        self, idle_seconds: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._resources: int | None = None
        self._quiet_since = 0.0

    def __call__(self, driver: webdriver.Chrome) -> bool:
        snapshot = driver.execute_script(_LOAD_SNAPSHOT_SCRIPT)
        now = self._clock()
        if not snapshot["loaded"]:
            self._resources = None
            return False
        if snapshot["resources"] != self._resources:
            self._resources = snapshot["resources"]
            self._quiet_since = now
            return False
        return now - self._quiet_since >= self.idle_seconds


@dataclass
class SeleniumRasterPage(RasterPage):
    """One Chrome instance; blocking driver calls run in worker threads."""

    driver: webdriver.Chrome
    timeout_seconds: float = 60.0
    idle_seconds: float = 0.5
    poll_seconds: float = 0.1

    async def open_document(
        self, document: Path, width: int, height: int, density: float
    ) -> None:
        """Load the document at a fixed viewport and device scale factor."""
        await asyncio.to_thread(self._open_document, document, width, height, density)

    def _open_document(
        self, document: Path, width: int, height: int, density: float
    ) -> None:
        self.driver.set_page_load_timeout(self.timeout_seconds)
        self.driver.execute_cdp_cmd(
            "Emulation.setDeviceMetricsOverride",
            {
                "width": width,
                "height": height,
                "deviceScaleFactor": density,
                "mobile": False,
            },
        )
        self.driver.get(document.resolve().as_uri())

    async def wait_for_quiescence(self) -> None:
        """Wait for the load event, then for no new fetches in the idle window."""
        wait = WebDriverWait(
            self.driver, self.timeout_seconds, poll_frequency=self.poll_seconds
        )
        await asyncio.to_thread(wait.until, NetworkIdle(self.idle_seconds))

    async def wait_for_fonts(self) -> None:
        """Wait on ``document.fonts.ready``."""
        await asyncio.to_thread(self._wait_for_fonts)

    def _wait_for_fonts(self) -> None:
        self.driver.set_script_timeout(self.timeout_seconds)
        self.driver.execute_async_script(_FONTS_READY_SCRIPT)

    async def capture_element(self, selector: str, transparent: bool) -> bytes:
        """Screenshot a single element as PNG bytes."""
        return await asyncio.to_thread(self._capture_element, selector, transparent)

    def _capture_element(self, selector: str, transparent: bool) -> bytes:
        if transparent:
            self.driver.execute_cdp_cmd(
                "Emulation.setDefaultBackgroundColorOverride", _TRANSPARENT
            )
        element = self.driver.find_element(By.CSS_SELECTOR, selector)
        return element.screenshot_as_png

    async def close(self) -> None:
        """Quit the browser."""
        await asyncio.to_thread(self.driver.quit)


@dataclass
class SeleniumRasterEngine(RasterEngine):
    """Launch headless Chrome instances."""

    chrome_binary: str | None = None
    timeout_seconds: float = 60.0
    width: int = 2560
    height: int = 2560
    density: float = 2.0

    def chrome_options(self) -> Options:
        """Build the Chrome options used for every launch."""
        options = Options()
        options.add_argument("--headless=new")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-setuid-sandbox")
        options.add_argument("--disable-gpu")
        options.add_argument("--hide-scrollbars")
        options.add_argument("--allow-file-access-from-files")
        options.add_argument(f"--window-size={self.width},{self.height}")
        options.add_argument(f"--force-device-scale-factor={self.density:g}")
        if self.chrome_binary:
            options.binary_location = self.chrome_binary
        return options

    async def launch(self) -> SeleniumRasterPage:
        """Start Chrome; a failed start leaves no browser process behind."""
        driver = await asyncio.to_thread(
            webdriver.Chrome, options=self.chrome_options()
        )
        return SeleniumRasterPage(driver=driver, timeout_seconds=self.timeout_seconds)
