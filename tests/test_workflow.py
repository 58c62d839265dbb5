"""Tests for the workflow orchestrator."""

import asyncio
import json
from pathlib import Path

import httpx
import pytest

from reel_maker.domain.sessions import WorkflowState
from reel_maker.services.workflow import (
    ENCODE_FAILED_TEXT,
    NO_PENDING_POST_TEXT,
    NOT_AVAILABLE_TEXT,
    RENDER_FAILED_TEXT,
    UNEXPECTED_PHOTO_TEXT,
    WorkflowService,
)
from reel_maker.telegram_commands import CallbackAction
from tests.conftest import FakeCommandRunner, FakeRasterEngine, FakeTelegramClient

USER_ID = 42
CHAT_ID = 4242
MENU_MESSAGE_ID = 7
CAPTION = "Title : Sunset\nContent : Nice view\nHashtags : #sunset #vibes"


async def _press(service: WorkflowService, data: str, callback_id: str = "cb") -> None:
    await service.handle_callback(
        user_id=USER_ID,
        chat_id=CHAT_ID,
        message_id=MENU_MESSAGE_ID,
        callback_id=callback_id,
        data=data,
    )


async def _select_audio(service: WorkflowService, key: str = "I") -> None:
    await service.handle_start(USER_ID, CHAT_ID)
    await _press(service, CallbackAction.CREATE_NEW.value)
    await _press(service, f"audio:{key}")


async def _send_photo(service: WorkflowService, caption: str | None = CAPTION) -> None:
    await service.handle_photo(
        user_id=USER_ID, chat_id=CHAT_ID, file_id="file-1", caption=caption
    )


def _state(service: WorkflowService) -> WorkflowState:
    session = service.store.get(USER_ID)
    assert session is not None
    return session.state


def test_start_shows_main_menu(
    workflow_service: WorkflowService, telegram_client: FakeTelegramClient
) -> None:
    asyncio.run(workflow_service.handle_start(USER_ID, CHAT_ID))

    assert _state(workflow_service) is WorkflowState.MENU_SHOWN
    assert telegram_client.texts[-1].startswith("👋 Welcome")
    buttons = telegram_client.markups[-1]["inline_keyboard"]
    callbacks = [button["callback_data"] for row in buttons for button in row]
    assert CallbackAction.CREATE_NEW.value in callbacks
    assert CallbackAction.VIEW_HISTORY.value in callbacks


def test_audio_selection_records_track(
    workflow_service: WorkflowService, telegram_client: FakeTelegramClient
) -> None:
    asyncio.run(_select_audio(workflow_service, "II"))

    session = workflow_service.store.get(USER_ID)
    assert session is not None
    assert session.state is WorkflowState.AWAITING_PHOTO
    assert session.selected_audio_ref == "audioII.mp3"
    assert ("cb", "✅ Selected: 🎶 Audio II") in telegram_client.callbacks
    assert "Now send me a photo" in telegram_client.edits[-1][2]


def test_full_run_produces_preview_video_and_metadata(
    workflow_service: WorkflowService,
    telegram_client: FakeTelegramClient,
    output_root: Path,
    command_runner: FakeCommandRunner,
) -> None:
    async def scenario() -> None:
        await _select_audio(workflow_service)
        await _send_photo(workflow_service)

    asyncio.run(scenario())

    run_dir = output_root / "2026-10-18" / "1_1405"
    assert (run_dir / "preview.png").exists()
    assert (run_dir / "original_image.jpg").read_bytes() == b"fake-image-bytes"
    assert not (run_dir / "temp.html").exists()
    assert _state(workflow_service) is WorkflowState.PREVIEW_READY
    _, photo, caption = telegram_client.photos[-1]
    assert photo == run_dir / "preview.png"
    assert "📌 Title: Sunset" in caption
    actions = telegram_client.markups[-1]["inline_keyboard"][0]
    assert [button["callback_data"] for button in actions] == [
        CallbackAction.CONFIRM_GENERATE.value,
        CallbackAction.CANCEL_POST.value,
    ]

    asyncio.run(_press(workflow_service, CallbackAction.CONFIRM_GENERATE.value))

    assert (run_dir / "video.mp4").exists()
    metadata = json.loads((run_dir / "metadata.json").read_text())
    assert metadata["title"] == "Sunset"
    assert metadata["audio"] == "audioI.mp3"
    assert metadata["date"] == "18 OCT 2026"
    assert telegram_client.videos[-1][1] == run_dir / "video.mp4"
    assert telegram_client.texts[-1] == "🎉 What's next?"
    assert _state(workflow_service) is WorkflowState.MENU_SHOWN
    assert command_runner.invocations[0][-1] == str(run_dir / "video.mp4")
    activity = (run_dir / "activity.log").read_text()
    assert "[SUCCESS]" in activity
    assert "Video generation complete" in activity


def test_progress_updates_edit_one_status_message_in_order(
    workflow_service: WorkflowService, telegram_client: FakeTelegramClient
) -> None:
    async def scenario() -> None:
        await _select_audio(workflow_service)
        await _send_photo(workflow_service)

    asyncio.run(scenario())

    status_index = telegram_client.texts.index("⏳ Processing...")
    status_id = 1001 + status_index
    status_edits = [
        text
        for _, message_id, text in telegram_client.edits
        if message_id == status_id
    ]
    assert status_edits == [
        "📥 Downloading image...",
        "🎨 Rendering preview...",
        "🎨 Taking screenshot...",
        "📸 Sending preview...",
    ]


def test_cancel_discards_preview_and_stale_confirm_is_rejected(
    workflow_service: WorkflowService,
    telegram_client: FakeTelegramClient,
    output_root: Path,
    command_runner: FakeCommandRunner,
) -> None:
    async def scenario() -> None:
        await _select_audio(workflow_service)
        await _send_photo(workflow_service)
        await _press(workflow_service, CallbackAction.CANCEL_POST.value, "cancel")
        await _press(workflow_service, CallbackAction.CONFIRM_GENERATE.value, "late")

    asyncio.run(scenario())

    run_dir = output_root / "2026-10-18" / "1_1405"
    assert not (run_dir / "preview.png").exists()
    assert _state(workflow_service) is WorkflowState.MENU_SHOWN
    assert ("cancel", "❌ Post cancelled") in telegram_client.callbacks
    assert ("late", NO_PENDING_POST_TEXT) in telegram_client.callbacks
    assert command_runner.invocations == []


def test_photo_in_menu_state_gets_notice(
    workflow_service: WorkflowService,
    telegram_client: FakeTelegramClient,
    output_root: Path,
) -> None:
    async def scenario() -> None:
        await workflow_service.handle_start(USER_ID, CHAT_ID)
        await _send_photo(workflow_service)

    asyncio.run(scenario())

    assert telegram_client.texts[-1] == UNEXPECTED_PHOTO_TEXT
    assert _state(workflow_service) is WorkflowState.MENU_SHOWN
    assert not output_root.exists()


def test_photo_from_unknown_user_shows_menu(
    workflow_service: WorkflowService, telegram_client: FakeTelegramClient
) -> None:
    asyncio.run(_send_photo(workflow_service))

    assert telegram_client.texts[0] == UNEXPECTED_PHOTO_TEXT
    assert telegram_client.texts[1].startswith("👋 Welcome")
    assert _state(workflow_service) is WorkflowState.MENU_SHOWN


def test_invalid_caption_reports_missing_field_without_allocating(
    workflow_service: WorkflowService,
    telegram_client: FakeTelegramClient,
    output_root: Path,
) -> None:
    async def scenario() -> None:
        await _select_audio(workflow_service)
        await _send_photo(workflow_service, "Title: Sunset\nHashtags: #sunset")

    asyncio.run(scenario())

    assert "Missing: Content" in telegram_client.texts[-1]
    assert _state(workflow_service) is WorkflowState.AWAITING_PHOTO
    assert not output_root.exists()


def test_missing_caption_keeps_waiting_for_photo(
    workflow_service: WorkflowService, telegram_client: FakeTelegramClient
) -> None:
    async def scenario() -> None:
        await _select_audio(workflow_service)
        await _send_photo(workflow_service, None)

    asyncio.run(scenario())

    assert telegram_client.texts[-1].startswith("❌ Please send a caption")
    assert _state(workflow_service) is WorkflowState.AWAITING_PHOTO


def test_concurrent_photos_allocate_one_directory(
    workflow_service: WorkflowService,
    telegram_client: FakeTelegramClient,
    output_root: Path,
) -> None:
    async def scenario() -> None:
        await _select_audio(workflow_service)
        await asyncio.gather(
            _send_photo(workflow_service), _send_photo(workflow_service)
        )

    asyncio.run(scenario())

    runs = list((output_root / "2026-10-18").iterdir())
    assert [run.name for run in runs] == ["1_1405"]
    assert telegram_client.texts.count(UNEXPECTED_PHOTO_TEXT) == 1
    assert _state(workflow_service) is WorkflowState.PREVIEW_READY


def test_render_failure_returns_to_awaiting_photo(
    workflow_service: WorkflowService,
    telegram_client: FakeTelegramClient,
    raster_engine: FakeRasterEngine,
    output_root: Path,
) -> None:
    raster_engine.fail_capture = True

    async def scenario() -> None:
        await _select_audio(workflow_service)
        await _send_photo(workflow_service)

    asyncio.run(scenario())

    session = workflow_service.store.get(USER_ID)
    assert session is not None
    assert session.state is WorkflowState.AWAITING_PHOTO
    assert session.selected_audio_ref == "audioI.mp3"
    assert session.pending_post is None
    assert telegram_client.texts[-1] == RENDER_FAILED_TEXT
    assert telegram_client.photos == []
    assert not (output_root / "2026-10-18" / "1_1405" / "preview.png").exists()
    assert raster_engine.active == 0


def test_encode_failure_resets_to_menu(
    workflow_service: WorkflowService,
    telegram_client: FakeTelegramClient,
    command_runner: FakeCommandRunner,
    output_root: Path,
) -> None:
    command_runner.returncode = 1
    command_runner.stderr = "Conversion failed!"

    async def scenario() -> None:
        await _select_audio(workflow_service)
        await _send_photo(workflow_service)
        await _press(workflow_service, CallbackAction.CONFIRM_GENERATE.value)

    asyncio.run(scenario())

    run_dir = output_root / "2026-10-18" / "1_1405"
    assert ENCODE_FAILED_TEXT in telegram_client.texts
    assert telegram_client.videos == []
    assert not (run_dir / "metadata.json").exists()
    session = workflow_service.store.get(USER_ID)
    assert session is not None
    assert session.state is WorkflowState.MENU_SHOWN
    assert session.pending_post is None
    assert "Conversion failed!" in (run_dir / "activity.log").read_text()


def test_missing_audio_file_is_encode_failure(
    workflow_service: WorkflowService,
    telegram_client: FakeTelegramClient,
    command_runner: FakeCommandRunner,
    audio_dir: Path,
) -> None:
    (audio_dir / "audioI.mp3").unlink()

    async def scenario() -> None:
        await _select_audio(workflow_service)
        await _send_photo(workflow_service)
        await _press(workflow_service, CallbackAction.CONFIRM_GENERATE.value)

    asyncio.run(scenario())

    assert ENCODE_FAILED_TEXT in telegram_client.texts
    assert command_runner.invocations == []
    assert _state(workflow_service) is WorkflowState.MENU_SHOWN


def test_second_post_same_day_gets_next_sequence(
    workflow_service: WorkflowService, output_root: Path
) -> None:
    async def scenario() -> None:
        for _ in range(2):
            await _select_audio(workflow_service)
            await _send_photo(workflow_service)
            await _press(workflow_service, CallbackAction.CONFIRM_GENERATE.value)

    asyncio.run(scenario())

    bucket = output_root / "2026-10-18"
    assert sorted(run.name for run in bucket.iterdir()) == ["1_1405", "2_1405"]
    assert (bucket / "2_1405" / "video.mp4").exists()


def test_out_of_order_callback_is_not_available(
    workflow_service: WorkflowService, telegram_client: FakeTelegramClient
) -> None:
    async def scenario() -> None:
        await workflow_service.handle_start(USER_ID, CHAT_ID)
        await _press(workflow_service, "audio:I", "early")

    asyncio.run(scenario())

    assert ("early", NOT_AVAILABLE_TEXT) in telegram_client.callbacks
    assert _state(workflow_service) is WorkflowState.MENU_SHOWN


def test_history_lists_recent_runs(
    workflow_service: WorkflowService,
    telegram_client: FakeTelegramClient,
    output_root: Path,
) -> None:
    (output_root / "2026-10-17" / "1_0900").mkdir(parents=True)
    (output_root / "2026-10-18" / "1_1405").mkdir(parents=True)

    async def scenario() -> None:
        await workflow_service.handle_start(USER_ID, CHAT_ID)
        await _press(workflow_service, CallbackAction.VIEW_HISTORY.value)

    asyncio.run(scenario())

    text = telegram_client.edits[-1][2]
    assert text.startswith("📚 Your Recent Posts:")
    assert text.index("📅 2026-10-18") < text.index("📅 2026-10-17")
    assert "  • 1_1405" in text
    assert _state(workflow_service) is WorkflowState.MENU_SHOWN


def test_back_from_audio_menu_returns_to_main_menu(
    workflow_service: WorkflowService, telegram_client: FakeTelegramClient
) -> None:
    async def scenario() -> None:
        await workflow_service.handle_start(USER_ID, CHAT_ID)
        await _press(workflow_service, CallbackAction.CREATE_NEW.value)
        await _press(workflow_service, CallbackAction.BACK_TO_MENU.value, "back")

    asyncio.run(scenario())

    assert ("back", "📋 Back to menu") in telegram_client.callbacks
    assert telegram_client.edits[-1][2].startswith("👋 Welcome")
    assert _state(workflow_service) is WorkflowState.MENU_SHOWN


def test_cancel_command_clears_pending_post(
    workflow_service: WorkflowService,
    telegram_client: FakeTelegramClient,
    output_root: Path,
) -> None:
    async def scenario() -> None:
        await _select_audio(workflow_service)
        await _send_photo(workflow_service)
        await workflow_service.handle_cancel_command(USER_ID, CHAT_ID)

    asyncio.run(scenario())

    assert not (output_root / "2026-10-18" / "1_1405" / "preview.png").exists()
    assert telegram_client.texts[-1].startswith("👋 Post cancelled")
    session = workflow_service.store.get(USER_ID)
    assert session is not None
    assert session.pending_post is None
    assert session.selected_audio_ref is None


def test_confirm_survives_failed_callback_acknowledgement(
    workflow_service: WorkflowService,
    telegram_client: FakeTelegramClient,
    output_root: Path,
) -> None:
    async def scenario() -> None:
        await _select_audio(workflow_service)
        await _send_photo(workflow_service)
        telegram_client.callback_error = httpx.HTTPError("query is too old")
        await _press(workflow_service, CallbackAction.CONFIRM_GENERATE.value)

    asyncio.run(scenario())

    run_dir = output_root / "2026-10-18" / "1_1405"
    assert (run_dir / "video.mp4").exists()
    assert telegram_client.videos[-1][1] == run_dir / "video.mp4"
    session = workflow_service.store.get(USER_ID)
    assert session is not None
    assert session.state is WorkflowState.MENU_SHOWN
    assert session.pending_post is None


def test_failed_menu_edit_leaves_state_unchanged(
    workflow_service: WorkflowService, telegram_client: FakeTelegramClient
) -> None:
    asyncio.run(workflow_service.handle_start(USER_ID, CHAT_ID))
    telegram_client.edit_error = httpx.HTTPError("message to edit not found")

    with pytest.raises(httpx.HTTPError):
        asyncio.run(_press(workflow_service, CallbackAction.CREATE_NEW.value))

    assert _state(workflow_service) is WorkflowState.MENU_SHOWN

    telegram_client.edit_error = None
    asyncio.run(_press(workflow_service, CallbackAction.CREATE_NEW.value))

    assert _state(workflow_service) is WorkflowState.AUDIO_SELECTION
