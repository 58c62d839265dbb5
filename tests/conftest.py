"""Shared test fixtures."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import pytest

from reel_maker.adapters.telegram_client import TelegramClient
from reel_maker.adapters.telegram_file_client import TelegramFile, TelegramFileClient
from reel_maker.config import Settings
from reel_maker.containers import AppContainer
from reel_maker.services.encoding import CommandResult, CommandRunner, EncodePipeline
from reel_maker.services.rendering import RasterEngine, RasterPage, RenderPipeline
from reel_maker.services.sessions import SessionStore
from reel_maker.services.storage import DirectoryAllocator
from reel_maker.services.workflow import WorkflowService

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-preview"
FIXED_NOW = datetime(2026, 10, 18, 14, 5, 0).astimezone()
TEMPLATE = (
    '<div class="template"><img src="{{image}}"><h1>{{title}}</h1>'
    "<p>{{content}}</p><span>{{hashtags}}</span><time>{{date}}</time></div>"
)


@dataclass
class FakeTelegramClient(TelegramClient):
    """Fake Telegram client that records outbound operations."""

    messages: list[tuple[int, str]] = field(default_factory=list)
    markups: list[dict | None] = field(default_factory=list)
    edits: list[tuple[int, int, str]] = field(default_factory=list)
    photos: list[tuple[int, Path, str]] = field(default_factory=list)
    videos: list[tuple[int, Path, str]] = field(default_factory=list)
    callbacks: list[tuple[str, str | None]] = field(default_factory=list)
    commands: list[dict[str, str]] | None = None
    menu_button: dict[str, object] | None = None
    next_message_id: int = 1000
    callback_error: Exception | None = None
    edit_error: Exception | None = None

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict | None = None
    ) -> int:
        self.messages.append((chat_id, text))
        self.markups.append(reply_markup)
        self.next_message_id += 1
        return self.next_message_id

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: dict | None = None,
    ) -> None:
        if self.edit_error is not None:
            raise self.edit_error
        self.edits.append((chat_id, message_id, text))

    async def send_photo(self, chat_id: int, photo: Path, caption: str) -> None:
        self.photos.append((chat_id, photo, caption))

    async def send_video(self, chat_id: int, video: Path, caption: str) -> None:
        self.videos.append((chat_id, video, caption))

    async def answer_callback_query(
        self, callback_query_id: str, text: str | None = None
    ) -> None:
        if self.callback_error is not None:
            raise self.callback_error
        self.callbacks.append((callback_query_id, text))

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        self.commands = commands

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        self.menu_button = menu_button

    @property
    def texts(self) -> list[str]:
        return [text for _, text in self.messages]


@dataclass
class FakeTelegramFileClient(TelegramFileClient):
    """Fake Telegram file client that returns static bytes."""

    content: bytes = b"fake-image-bytes"
    file_path: str = "photos/file_1.jpg"
    requested: list[str] = field(default_factory=list)

    async def download_file(self, file_id: str) -> TelegramFile:
        self.requested.append(file_id)
        return TelegramFile(content=self.content, file_path=self.file_path)


@dataclass
class FakeRasterPage(RasterPage):
    """Engine instance that records calls and returns fixed PNG bytes."""

    engine: "FakeRasterEngine"
    calls: list[str] = field(default_factory=list)

    async def open_document(
        self, document: Path, width: int, height: int, density: float
    ) -> None:
        self.calls.append(f"open:{width}x{height}@{density:g}")
        self.engine.documents.append(document.read_text(encoding="utf-8"))

    async def wait_for_quiescence(self) -> None:
        self.calls.append("quiescence")

    async def wait_for_fonts(self) -> None:
        self.calls.append("fonts")

    async def capture_element(self, selector: str, transparent: bool) -> bytes:
        self.calls.append(f"capture:{selector}:{transparent}")
        if self.engine.fail_capture:
            raise RuntimeError("element not found")
        return PNG_BYTES

    async def close(self) -> None:
        self.calls.append("close")
        self.engine.active -= 1


@dataclass
class FakeRasterEngine(RasterEngine):
    """Engine whose first ``launch_failures`` launches raise."""

    launch_failures: int = 0
    fail_capture: bool = False
    launch_attempts: int = 0
    active: int = 0
    pages: list[FakeRasterPage] = field(default_factory=list)
    documents: list[str] = field(default_factory=list)

    async def launch(self) -> FakeRasterPage:
        self.launch_attempts += 1
        if self.launch_attempts <= self.launch_failures:
            raise RuntimeError("browser crashed on startup")
        self.active += 1
        page = FakeRasterPage(engine=self)
        self.pages.append(page)
        return page


@dataclass
class FakeCommandRunner(CommandRunner):
    """Records encoder invocations and writes the output file on success."""

    returncode: int = 0
    stderr: str = ""
    invocations: list[list[str]] = field(default_factory=list)

    async def run(self, args: list[str]) -> CommandResult:
        self.invocations.append(args)
        if self.returncode == 0:
            Path(args[-1]).write_bytes(b"fake-mp4")
        return CommandResult(returncode=self.returncode, stderr=self.stderr)


@dataclass
class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    delays: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        telegram_bot_token="test-token",
        output_root=str(tmp_path / "output"),
        template_path=str(tmp_path / "index.html"),
        audio_dir=str(tmp_path / "audio"),
        environment="test",
    )


@pytest.fixture
def audio_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "audio"
    directory.mkdir()
    (directory / "audioI.mp3").write_bytes(b"ID3-audio-one")
    (directory / "audioII.mp3").write_bytes(b"ID3-audio-two")
    return directory


@pytest.fixture
def template_path(tmp_path: Path) -> Path:
    path = tmp_path / "index.html"
    path.write_text(TEMPLATE, encoding="utf-8")
    return path


@pytest.fixture
def output_root(tmp_path: Path) -> Path:
    return tmp_path / "output"


@pytest.fixture
def telegram_client() -> FakeTelegramClient:
    return FakeTelegramClient()


@pytest.fixture
def raster_engine() -> FakeRasterEngine:
    return FakeRasterEngine()


@pytest.fixture
def command_runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
def workflow_service(  # noqa: PLR0913
    output_root: Path,
    audio_dir: Path,
    template_path: Path,
    telegram_client: FakeTelegramClient,
    raster_engine: FakeRasterEngine,
    command_runner: FakeCommandRunner,
) -> WorkflowService:
    return WorkflowService(
        store=SessionStore(),
        allocator=DirectoryAllocator(output_root),
        render_pipeline=RenderPipeline(engine=raster_engine, sleep=RecordingSleep()),
        encode_pipeline=EncodePipeline(runner=command_runner),
        telegram_client=telegram_client,
        telegram_file_client=FakeTelegramFileClient(),
        template_path=template_path,
        audio_dir=audio_dir,
        bot_log=logging.getLogger("reel_maker.tests"),
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def container(
    settings: Settings,
    telegram_client: FakeTelegramClient,
    workflow_service: WorkflowService,
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        telegram_client=telegram_client,
        telegram_file_client=workflow_service.telegram_file_client,
        session_store=workflow_service.store,
        workflow_service=workflow_service,
        close_resources=close_resources,
    )
