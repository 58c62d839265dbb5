"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from reel_maker.adapters.selenium_engine import SeleniumRasterEngine
from reel_maker.adapters.subprocess_runner import AsyncioCommandRunner
from reel_maker.adapters.telegram_client import (
    HttpxTelegramClient,
    TelegramClient,
)
from reel_maker.adapters.telegram_file_client import (
    HttpxTelegramFileClient,
    TelegramFileClient,
)
from reel_maker.app_logging import startup_logger
from reel_maker.config import Settings
from reel_maker.services.encoding import EncodePipeline
from reel_maker.services.rendering import RenderPipeline
from reel_maker.services.sessions import SessionStore
from reel_maker.services.storage import DirectoryAllocator
from reel_maker.services.workflow import WorkflowService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    telegram_client: TelegramClient
    telegram_file_client: TelegramFileClient
    session_store: SessionStore
    workflow_service: WorkflowService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    output_root = Path(resolved_settings.output_root)
    telegram_client = HttpxTelegramClient.create(resolved_settings.telegram_bot_token)
    telegram_file_client = HttpxTelegramFileClient.create(
        resolved_settings.telegram_bot_token,
        timeout_seconds=resolved_settings.download_timeout_seconds,
    )
    render_pipeline = RenderPipeline(
        engine=SeleniumRasterEngine(
            chrome_binary=resolved_settings.chrome_binary,
            timeout_seconds=resolved_settings.page_load_timeout_seconds,
        ),
        asset_base_url=resolved_settings.asset_base_url,
        launch_attempts=resolved_settings.browser_launch_attempts,
        launch_backoff_seconds=resolved_settings.browser_launch_backoff_seconds,
        max_concurrent=resolved_settings.render_concurrency,
    )
    encode_pipeline = EncodePipeline(
        runner=AsyncioCommandRunner(),
        ffmpeg_binary=resolved_settings.ffmpeg_binary,
    )
    session_store = SessionStore()
    workflow_service = WorkflowService(
        store=session_store,
        allocator=DirectoryAllocator(output_root),
        render_pipeline=render_pipeline,
        encode_pipeline=encode_pipeline,
        telegram_client=telegram_client,
        telegram_file_client=telegram_file_client,
        template_path=Path(resolved_settings.template_path),
        audio_dir=Path(resolved_settings.audio_dir),
        bot_log=startup_logger(output_root),
        debug_errors=resolved_settings.environment == "local",
    )

    async def close_resources() -> None:
        await telegram_client.close()
        await telegram_file_client.close()

    return AppContainer(
        settings=resolved_settings,
        telegram_client=telegram_client,
        telegram_file_client=telegram_file_client,
        session_store=session_store,
        workflow_service=workflow_service,
        close_resources=close_resources,
    )
