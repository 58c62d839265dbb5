"""Pydantic models for the Telegram webhook fields the bot reads."""

from pydantic import BaseModel, Field


class TelegramUser(BaseModel):
    """Sender identity."""

    id: int


class TelegramChat(BaseModel):
    """Chat the update belongs to."""

    id: int
    type: str


class TelegramPhotoSize(BaseModel):
    """One resolution of an uploaded photo."""

    file_id: str
    width: int
    height: int


class TelegramMessage(BaseModel):
    """Inbound text or photo message."""

    message_id: int
    chat: TelegramChat
    from_user: TelegramUser | None = Field(default=None, alias="from")
    text: str | None = None
    caption: str | None = None
    photo: list[TelegramPhotoSize] | None = None


class TelegramCallbackQuery(BaseModel):
    """Inline keyboard button press."""

    id: str
    from_user: TelegramUser = Field(alias="from")
    message: TelegramMessage | None = None
    data: str | None = None


class TelegramUpdate(BaseModel):
    """Telegram update payload."""

    update_id: int
    message: TelegramMessage | None = None
    callback_query: TelegramCallbackQuery | None = None
