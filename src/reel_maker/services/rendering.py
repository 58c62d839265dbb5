"""Preview rendering through a headless rasterization engine."""

import asyncio
import html
import logging
import os
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from reel_maker.app_logging import SUCCESS
from reel_maker.domain.errors import RenderError
from reel_maker.domain.posts import CaptionFields

CANVAS_WIDTH = 2560
CANVAS_HEIGHT = 2560
CANVAS_DENSITY = 2.0
TEMPLATE_SELECTOR = ".template"
PREVIEW_FILENAME = "preview.png"
DOCUMENT_FILENAME = "temp.html"

ProgressCallback = Callable[[str], Awaitable[None]]

logger = logging.getLogger(__name__)


class RasterPage(Protocol):
    """A launched engine instance holding one document."""

    async def open_document(
        self, document: Path, width: int, height: int, density: float
    ) -> None:
        """Load an HTML document at a fixed viewport and pixel density."""

    async def wait_for_quiescence(self) -> None:
        """Wait until the document stops fetching resources."""

    async def wait_for_fonts(self) -> None:
        """Wait until web fonts are ready."""

    async def capture_element(self, selector: str, transparent: bool) -> bytes:
        """Screenshot the element matching ``selector`` as PNG bytes."""

    async def close(self) -> None:
        """Tear down the engine instance."""


class RasterEngine(Protocol):
    """Factory for engine instances."""

    async def launch(self) -> RasterPage:
        """Start an engine instance."""


def load_template(path: Path) -> str:
    """Read the HTML template from disk."""
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RenderError(f"Cannot read template {path}: {exc}") from exc


def image_reference(image_path: Path, asset_base_url: str | None) -> str:
    """Return the URL the template uses to load the source image."""
    if asset_base_url:
        relative = Path(os.path.relpath(image_path.resolve(), Path.cwd()))
        return f"{asset_base_url.rstrip('/')}/{relative.as_posix()}"
    return image_path.resolve().as_uri()


def compose_document(template: str, fields: CaptionFields, image_url: str) -> str:
    """Substitute caption fields and the image URL into the template."""
    replacements = {
        "{{image}}": image_url,
        "{{title}}": fields.title,
        "{{content}}": fields.content,
        "{{hashtags}}": fields.hashtags,
        "{{date}}": fields.date,
    }
    document = template
    for placeholder, value in replacements.items():
        document = document.replace(placeholder, html.escape(value))
    return document


@dataclass
class RenderPipeline:
    """Render a preview bitmap from a template, caption fields and an image."""

    engine: RasterEngine
    asset_base_url: str | None = None
    launch_attempts: int = 3
    launch_backoff_seconds: float = 2.0
    max_concurrent: int = 2
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    _slots: asyncio.Semaphore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._slots = asyncio.Semaphore(self.max_concurrent)

    async def render(  # noqa: PLR0913
        self,
        template: str,
        fields: CaptionFields,
        image_path: Path,
        out_dir: Path,
        run_log: logging.Logger | None = None,
        progress: ProgressCallback | None = None,
    ) -> Path:
        """Render ``preview.png`` into ``out_dir`` and return its path.

        Engine launch failures are retried with a fixed backoff; failures
        after a successful launch are raised immediately. The engine instance
        is closed on every exit path.
        """
        log = run_log or logger
        document = compose_document(
            template, fields, image_reference(image_path, self.asset_base_url)
        )
        document_path = out_dir / DOCUMENT_FILENAME
        preview_path = out_dir / PREVIEW_FILENAME
        try:
            document_path.write_text(document, encoding="utf-8")
        except OSError as exc:
            raise RenderError(f"Cannot write document: {exc}") from exc

        if progress is not None:
            await progress("🎨 Taking screenshot...")
        try:
            async with self._slots, self._acquire(log) as page:
                try:
                    await page.open_document(
                        document_path, CANVAS_WIDTH, CANVAS_HEIGHT, CANVAS_DENSITY
                    )
                    await page.wait_for_quiescence()
                    await page.wait_for_fonts()
                    image = await page.capture_element(
                        TEMPLATE_SELECTOR, transparent=True
                    )
                    preview_path.write_bytes(image)
                except Exception as exc:
                    log.error("Capture failed: %s", exc)
                    raise RenderError(f"Capture failed: {exc}") from exc
        finally:
            document_path.unlink(missing_ok=True)
        log.log(SUCCESS, "Preview rendered: %s", preview_path)
        return preview_path

    @asynccontextmanager
    async def _acquire(self, log: logging.Logger) -> AsyncIterator[RasterPage]:
        page = await self._launch_with_retry(log)
        try:
            yield page
        finally:
            try:
                await page.close()
            except Exception:
                log.exception("Failed to close rasterization engine")

    async def _launch_with_retry(self, log: logging.Logger) -> RasterPage:
        for attempt in range(1, self.launch_attempts + 1):
            try:
                log.info("Launching rasterization engine (attempt %s)", attempt)
                return await self.engine.launch()
            except Exception as exc:
                log.warning("Browser launch attempt %s failed: %s", attempt, exc)
                if attempt == self.launch_attempts:
                    raise RenderError(
                        f"Engine launch failed after {attempt} attempts: {exc}"
                    ) from exc
                await self.sleep(self.launch_backoff_seconds)
        raise RenderError("Engine launch was not attempted")
