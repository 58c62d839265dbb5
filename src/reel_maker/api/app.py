"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, FastAPI, Request

from reel_maker.api.telegram_models import (
    TelegramMessage,
    TelegramPhotoSize,
    TelegramUpdate,
)
from reel_maker.app_logging import SUCCESS, configure_logging
from reel_maker.config import parse_allowed_user_ids
from reel_maker.containers import AppContainer
from reel_maker.telegram_commands import (
    CHAT_MENU_BUTTON,
    BotCommand,
    parse_command,
    telegram_commands,
)


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)
    allowed_user_ids = parse_allowed_user_ids(
        container.settings.telegram_allowed_user_ids
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        state_container.workflow_service.bot_log.log(SUCCESS, "Bot started")
        try:
            await state_container.telegram_client.set_my_commands(telegram_commands())
            await state_container.telegram_client.set_chat_menu_button(
                CHAT_MENU_BUTTON
            )
        except Exception:
            logger.exception("Failed to sync Telegram bot commands")
        yield
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/telegram/webhook")
    async def telegram_webhook(
        update: TelegramUpdate, request: Request, background_tasks: BackgroundTasks
    ) -> dict[str, str]:
        """Acknowledge a Telegram update and process it in the background."""
        state_container: AppContainer = request.app.state.container
        workflow = state_container.workflow_service
        user_id = _extract_user_id(update)
        if user_id is not None and not _is_user_allowed(user_id, allowed_user_ids):
            if update.callback_query:
                await state_container.telegram_client.answer_callback_query(
                    update.callback_query.id,
                    text="Not authorized.",
                )
                return {"status": "ok"}
            if update.message:
                await state_container.telegram_client.send_message(
                    chat_id=update.message.chat.id,
                    text="This bot is private.",
                )
                return {"status": "ok"}

        callback = update.callback_query
        if callback:
            if callback.data and callback.message:
                background_tasks.add_task(
                    workflow.handle_callback,
                    user_id=callback.from_user.id,
                    chat_id=callback.message.chat.id,
                    message_id=callback.message.message_id,
                    callback_id=callback.id,
                    data=callback.data,
                )
            else:
                await state_container.telegram_client.answer_callback_query(
                    callback.id
                )
            return {"status": "ok"}

        message = update.message
        if message is None or user_id is None:
            return {"status": "ok"}

        if message.photo:
            photo = _select_largest_photo(message.photo)
            background_tasks.add_task(
                workflow.handle_photo,
                user_id=user_id,
                chat_id=message.chat.id,
                file_id=photo.file_id,
                caption=message.caption,
            )
            return {"status": "ok"}

        if message.text:
            _dispatch_text(background_tasks, state_container, message, user_id)
        return {"status": "ok"}

    return app


def _dispatch_text(
    background_tasks: BackgroundTasks,
    container: AppContainer,
    message: TelegramMessage,
    user_id: int,
) -> None:
    workflow = container.workflow_service
    chat_id = message.chat.id
    command = parse_command(message.text or "")
    if command is BotCommand.START:
        background_tasks.add_task(workflow.handle_start, user_id, chat_id)
    elif command is BotCommand.CANCEL:
        background_tasks.add_task(workflow.handle_cancel_command, user_id, chat_id)
    elif command is BotCommand.HELP:
        background_tasks.add_task(workflow.handle_help_command, chat_id)
    else:
        background_tasks.add_task(
            workflow.handle_text, user_id, chat_id, message.text or ""
        )


def _select_largest_photo(photos: list[TelegramPhotoSize]) -> TelegramPhotoSize:
    """Select the largest photo size from the Telegram payload."""
    return max(photos, key=lambda photo: (photo.width * photo.height))


def _extract_user_id(update: TelegramUpdate) -> int | None:
    """Extract Telegram user id from update, if present."""
    if update.callback_query:
        return update.callback_query.from_user.id
    if update.message:
        if update.message.from_user:
            return update.message.from_user.id
        return update.message.chat.id
    return None


def _is_user_allowed(user_id: int, allowed: set[int] | None) -> bool:
    """Return true when the user is allowed to interact with the bot."""
    return allowed is None or user_id in allowed
