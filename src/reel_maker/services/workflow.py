"""Workflow orchestrator: routes transport events through the session machine."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from reel_maker.adapters.telegram_client import TelegramClient
from reel_maker.adapters.telegram_file_client import TelegramFileClient
from reel_maker.app_logging import SUCCESS, release_run_logger, run_logger
from reel_maker.domain.errors import FormatError, StorageError
from reel_maker.domain.posts import PostRecord, StorageLocation
from reel_maker.domain.sessions import (
    Session,
    WorkflowEvent,
    WorkflowState,
    find_audio_track,
)
from reel_maker.services import prompts
from reel_maker.services.captions import parse_caption
from reel_maker.services.encoding import EncodePipeline
from reel_maker.services.rendering import (
    PREVIEW_FILENAME,
    ProgressCallback,
    RenderPipeline,
    load_template,
)
from reel_maker.services.sessions import SessionStore, is_allowed
from reel_maker.services.storage import DirectoryAllocator
from reel_maker.telegram_commands import AUDIO_CALLBACK_PREFIX, CallbackAction

logger = logging.getLogger(__name__)


def _local_now() -> datetime:
    return datetime.now().astimezone()


NOT_AVAILABLE_TEXT = "⚠️ That action isn't available right now."
NO_PENDING_POST_TEXT = "❌ No pending post"
UNEXPECTED_PHOTO_TEXT = (
    "⚠️ I'm not expecting a photo right now. "
    "Use ➕ Create New Post and pick an audio track first."
)
MISSING_CAPTION_TEXT = "❌ Please send a caption with Title, Content, Hashtags."
RENDER_FAILED_TEXT = "❌ Error rendering preview. Try again."
ENCODE_FAILED_TEXT = "❌ Error creating video. Try again."
STORAGE_FAILED_TEXT = "❌ Error processing your request. Try again."

_MENU_PAGES = {
    CallbackAction.VIEW_HISTORY,
    CallbackAction.HELP,
    CallbackAction.SETTINGS,
}


@dataclass
class WorkflowService:
    """Sequence caption parsing, storage, rendering and encoding per user."""

    store: SessionStore
    allocator: DirectoryAllocator
    render_pipeline: RenderPipeline
    encode_pipeline: EncodePipeline
    telegram_client: TelegramClient
    telegram_file_client: TelegramFileClient
    template_path: Path
    audio_dir: Path
    bot_log: logging.Logger = field(default_factory=lambda: logger)
    clock: Callable[[], datetime] = _local_now
    debug_errors: bool = False

    async def handle_start(self, user_id: int, chat_id: int) -> None:
        """Show the main menu, dropping any unfinished post."""
        async with self.store.exclusive(user_id) as session:
            if session.state is WorkflowState.IDLE:
                self.bot_log.info("New user %s detected", user_id)
            self._discard_pending(session)
            self._reset_with(user_id, WorkflowEvent.FIRST_CONTACT)
            await self._send_prompt(chat_id, prompts.main_menu())
            self.bot_log.log(SUCCESS, "Start menu sent to user %s", user_id)

    async def handle_cancel_command(self, user_id: int, chat_id: int) -> None:
        """Cancel the current post from a text command."""
        async with self.store.exclusive(user_id) as session:
            self._discard_pending(session)
            self._reset_with(user_id, WorkflowEvent.CANCEL)
            await self._send_prompt(chat_id, prompts.main_menu(prompts.CANCELLED_TEXT))

    async def handle_help_command(self, chat_id: int) -> None:
        """Send the caption format guide."""
        prompt = prompts.help_page()
        await self.telegram_client.send_message(chat_id=chat_id, text=prompt.text)

    async def handle_text(self, user_id: int, chat_id: int, text: str) -> None:
        """Show the menu on first contact; otherwise nudge towards the next step."""
        if self.store.get(user_id) is None:
            await self.handle_start(user_id, chat_id)
            return
        async with self.store.exclusive(user_id) as session:
            if session.state is WorkflowState.AWAITING_PHOTO:
                message = "📸 Send a photo with the caption in the same message."
            else:
                message = "👆 Use the menu buttons or send /start."
            await self.telegram_client.send_message(chat_id=chat_id, text=message)

    async def handle_photo(
        self, user_id: int, chat_id: int, file_id: str, caption: str | None
    ) -> None:
        """Validate the caption, allocate storage and render a preview."""
        first_contact = self.store.get(user_id) is None
        async with self.store.exclusive(user_id) as session:
            if first_contact or not is_allowed(
                session.state, WorkflowEvent.PHOTO_ACCEPTED
            ):
                self.bot_log.warning(
                    "User %s sent a photo in state %s", user_id, session.state.value
                )
                await self.telegram_client.send_message(
                    chat_id=chat_id, text=UNEXPECTED_PHOTO_TEXT
                )
                if first_contact:
                    self.store.transition(user_id, WorkflowEvent.FIRST_CONTACT)
                    await self._send_prompt(chat_id, prompts.main_menu())
                return
            await self._process_photo(session, chat_id, file_id, caption)

    async def handle_callback(
        self, user_id: int, chat_id: int, message_id: int, callback_id: str, data: str
    ) -> None:
        """Route an inline keyboard press."""
        async with self.store.exclusive(user_id) as session:
            self.bot_log.info("User %s selected: %s", user_id, data)
            if data.startswith(AUDIO_CALLBACK_PREFIX):
                await self._choose_audio(
                    session,
                    chat_id,
                    message_id,
                    callback_id,
                    data.removeprefix(AUDIO_CALLBACK_PREFIX),
                )
                return
            try:
                action = CallbackAction(data)
            except ValueError:
                await self._answer(callback_id, NOT_AVAILABLE_TEXT)
                return

            if action is CallbackAction.CREATE_NEW:
                await self._create_new(session, chat_id, message_id, callback_id)
            elif action in _MENU_PAGES:
                await self._show_menu_page(
                    session, action, chat_id, message_id, callback_id
                )
            elif action is CallbackAction.CONFIRM_GENERATE:
                await self._confirm(session, chat_id, callback_id)
            else:
                await self._cancel(session, action, chat_id, message_id, callback_id)

    async def _create_new(
        self, session: Session, chat_id: int, message_id: int, callback_id: str
    ) -> None:
        if not await self._guard(session, WorkflowEvent.CREATE_NEW, callback_id):
            return
        self.bot_log.info("User %s starting new post creation", session.user_id)
        await self._answer(callback_id, "📸 Creating new post")
        await self._edit_prompt(chat_id, message_id, prompts.audio_menu())
        self.store.transition(session.user_id, WorkflowEvent.CREATE_NEW)

    async def _choose_audio(
        self,
        session: Session,
        chat_id: int,
        message_id: int,
        callback_id: str,
        key: str,
    ) -> None:
        track = find_audio_track(key)
        if track is None:
            await self._answer(callback_id, NOT_AVAILABLE_TEXT)
            return
        if not await self._guard(session, WorkflowEvent.AUDIO_CHOSEN, callback_id):
            return
        await self._answer(callback_id, f"✅ Selected: {track.label}")
        await self._edit_prompt(chat_id, message_id, prompts.awaiting_photo(track))
        self.store.transition(
            session.user_id,
            WorkflowEvent.AUDIO_CHOSEN,
            selected_audio_ref=track.filename,
        )
        self.bot_log.log(
            SUCCESS, "Audio %s set for user %s", track.filename, session.user_id
        )

    async def _show_menu_page(
        self,
        session: Session,
        action: CallbackAction,
        chat_id: int,
        message_id: int,
        callback_id: str,
    ) -> None:
        if not await self._guard(session, WorkflowEvent.VIEW_MENU_PAGE, callback_id):
            return
        if action is CallbackAction.VIEW_HISTORY:
            await self._answer(callback_id, "📚 Loading history")
            try:
                prompt = prompts.history_page(self.allocator.recent_runs())
            except OSError:
                self.bot_log.exception(
                    "Error loading history for user %s", session.user_id
                )
                prompt = prompts.history_error()
        elif action is CallbackAction.HELP:
            await self._answer(callback_id, "❓ Help")
            prompt = prompts.help_page()
        else:
            await self._answer(callback_id, "⚙️ Settings")
            prompt = prompts.settings_page()
        await self._edit_prompt(chat_id, message_id, prompt)

    async def _cancel(
        self,
        session: Session,
        action: CallbackAction,
        chat_id: int,
        message_id: int,
        callback_id: str,
    ) -> None:
        self._discard_pending(session)
        self._reset_with(session.user_id, WorkflowEvent.CANCEL)
        if action is CallbackAction.CANCEL_POST:
            await self._answer(callback_id, "❌ Post cancelled")
            await self._edit_prompt(
                chat_id, message_id, prompts.main_menu(prompts.CANCELLED_TEXT)
            )
            return
        self.bot_log.info("User %s going back to main menu", session.user_id)
        await self._answer(callback_id, "📋 Back to menu")
        await self._edit_prompt(chat_id, message_id, prompts.main_menu())

    async def _process_photo(
        self, session: Session, chat_id: int, file_id: str, caption: str | None
    ) -> None:
        user_id = session.user_id
        audio_ref = session.selected_audio_ref
        if audio_ref is None:
            self.bot_log.warning("User %s sent photo without selecting audio", user_id)
            self.store.reset(user_id)
            await self.telegram_client.send_message(
                chat_id=chat_id,
                text="⚠️ Please select an audio track first using /start",
            )
            return

        now = self.clock()
        try:
            fields = parse_caption(caption or "", now.date())
        except FormatError as exc:
            self.bot_log.warning(
                "Caption format incorrect for user %s: %s", user_id, exc
            )
            self.store.transition(user_id, WorkflowEvent.PHOTO_REJECTED)
            text = (
                MISSING_CAPTION_TEXT
                if not caption
                else prompts.format_error(exc.field)
            )
            await self.telegram_client.send_message(chat_id=chat_id, text=text)
            return

        try:
            location = self.allocator.allocate(now)
        except StorageError as exc:
            self.bot_log.error(
                "Storage allocation failed for user %s: %s", user_id, exc
            )
            self.store.reset(user_id)
            await self.telegram_client.send_message(
                chat_id=chat_id, text=self._user_error(STORAGE_FAILED_TEXT, exc)
            )
            await self._send_prompt(chat_id, prompts.main_menu())
            return

        run_log = run_logger(location.path)
        run_log.log(SUCCESS, "Post directory created: %s", location.path)
        run_log.log(SUCCESS, 'Caption parsed - Title: "%s"', fields.title)
        try:
            status_id = await self.telegram_client.send_message(
                chat_id=chat_id, text="⏳ Processing..."
            )
            progress = self._status_updater(chat_id, status_id, run_log)

            await progress("📥 Downloading image...")
            image_path = await self._download_image(file_id, location)
            run_log.log(SUCCESS, "Image downloaded: %s", image_path)

            await progress("🎨 Rendering preview...")
            preview_path = await self.render_pipeline.render(
                load_template(self.template_path),
                fields,
                image_path,
                location.path,
                run_log=run_log,
                progress=progress,
            )
            post = PostRecord.collected(
                fields, image_path, audio_ref, location
            ).with_preview(preview_path)

            await progress("📸 Sending preview...")
            run_log.info("Sending preview to user %s", user_id)
            await self.telegram_client.send_photo(
                chat_id=chat_id,
                photo=preview_path,
                caption=prompts.preview_caption(post),
            )
            await self._send_prompt(chat_id, prompts.preview_actions())
            self.store.transition(
                user_id, WorkflowEvent.PHOTO_ACCEPTED, pending_post=post
            )
            run_log.log(SUCCESS, "Preview sent to user %s", user_id)
        except Exception as exc:
            run_log.error(
                "Error rendering preview for user %s in %s: %s",
                user_id,
                location.path,
                exc,
            )
            self.bot_log.exception("Error processing photo for user %s", user_id)
            (location.path / PREVIEW_FILENAME).unlink(missing_ok=True)
            self.store.transition(user_id, WorkflowEvent.PHOTO_REJECTED)
            release_run_logger(location.path)
            await self.telegram_client.send_message(
                chat_id=chat_id, text=self._user_error(RENDER_FAILED_TEXT, exc)
            )

    async def _confirm(self, session: Session, chat_id: int, callback_id: str) -> None:
        post = session.pending_post
        if post is None or post.preview_image_path is None:
            await self._answer(callback_id, NO_PENDING_POST_TEXT)
            return
        if not await self._guard(session, WorkflowEvent.CONFIRM, callback_id):
            return
        user_id = session.user_id
        self.store.transition(user_id, WorkflowEvent.CONFIRM)

        directory = post.directory.path
        run_log = run_logger(directory)
        audio_path = self.audio_dir / post.audio_ref
        try:
            await self._answer(callback_id, "🎬 Generating video...")
            run_log.info("Creating video with audio: %s", post.audio_ref)
            run_log.info("Using rendered preview image: %s", post.preview_image_path)
            status_id = await self.telegram_client.send_message(
                chat_id=chat_id, text="🎬 Creating video..."
            )
            progress = self._status_updater(chat_id, status_id, run_log)
            video_path = await self.encode_pipeline.encode(
                post.preview_image_path, audio_path, directory, run_log=run_log
            )
            self.encode_pipeline.write_metadata(post, video_path, self.clock())
            run_log.log(SUCCESS, "Metadata saved")

            await progress("📤 Uploading video...")
            run_log.info("Uploading video to user %s", user_id)
            await self.telegram_client.send_video(
                chat_id=chat_id, video=video_path, caption=prompts.video_caption(post)
            )
            run_log.log(SUCCESS, "Video sent to user %s", user_id)
            await self._send_prompt(chat_id, prompts.completion_menu())
            run_log.log(SUCCESS, "Video generation complete")
        except Exception as exc:
            run_log.error(
                "Error generating video for user %s in %s: %s", user_id, directory, exc
            )
            self.bot_log.exception("Error generating video for user %s", user_id)
            await self.telegram_client.send_message(
                chat_id=chat_id, text=self._user_error(ENCODE_FAILED_TEXT, exc)
            )
            await self._send_prompt(chat_id, prompts.main_menu())
        finally:
            self._reset_with(user_id, WorkflowEvent.ENCODE_FINISHED)
            release_run_logger(directory)

    async def _download_image(self, file_id: str, location: StorageLocation) -> Path:
        downloaded = await self.telegram_file_client.download_file(file_id)
        image_path = location.path / f"original_image.{downloaded.extension}"
        image_path.write_bytes(downloaded.content)
        return image_path

    def _discard_pending(self, session: Session) -> None:
        """Delete the preview of an unconfirmed post."""
        post = session.pending_post
        if post is None or post.preview_image_path is None:
            return
        run_log = run_logger(post.directory.path)
        try:
            if post.preview_image_path.exists():
                post.preview_image_path.unlink()
                run_log.log(
                    SUCCESS, "Preview image deleted: %s", post.preview_image_path
                )
        except OSError as exc:
            run_log.error("Error deleting preview: %s", exc)
        finally:
            release_run_logger(post.directory.path)

    def _reset_with(self, user_id: int, event: WorkflowEvent) -> Session:
        """Apply a terminal event and clear the audio choice and pending post."""
        return self.store.transition(
            user_id, event, selected_audio_ref=None, pending_post=None
        )

    async def _guard(
        self, session: Session, event: WorkflowEvent, callback_id: str
    ) -> bool:
        if is_allowed(session.state, event):
            return True
        self.bot_log.warning(
            "Ignored %s for user %s in state %s",
            event.value,
            session.user_id,
            session.state.value,
        )
        await self._answer(callback_id, NOT_AVAILABLE_TEXT)
        return False

    def _status_updater(
        self, chat_id: int, message_id: int, run_log: logging.Logger
    ) -> ProgressCallback:
        async def update(text: str) -> None:
            run_log.info("Updating status: %s", text)
            try:
                await self.telegram_client.edit_message_text(
                    chat_id=chat_id, message_id=message_id, text=text
                )
            except Exception as exc:
                run_log.warning("Failed to update status message: %s", exc)

        return update

    async def _answer(self, callback_id: str, text: str) -> None:
        """Acknowledge a button press; a failed acknowledgement is only logged."""
        try:
            await self.telegram_client.answer_callback_query(callback_id, text=text)
        except Exception as exc:
            self.bot_log.warning("Failed to answer callback %s: %s", callback_id, exc)

    async def _send_prompt(self, chat_id: int, prompt: prompts.SessionPrompt) -> None:
        await self.telegram_client.send_message(
            chat_id=chat_id, text=prompt.text, reply_markup=prompt.reply_markup
        )

    async def _edit_prompt(
        self, chat_id: int, message_id: int, prompt: prompts.SessionPrompt
    ) -> None:
        await self.telegram_client.edit_message_text(
            chat_id=chat_id,
            message_id=message_id,
            text=prompt.text,
            reply_markup=prompt.reply_markup,
        )

    def _user_error(self, fallback: str, exc: Exception) -> str:
        """Return a user-facing error message with local debug info."""
        if self.debug_errors:
            detail = f"{type(exc).__name__}: {exc}".strip()
            if detail:
                return f"{fallback} (debug: {detail})"
        return fallback
