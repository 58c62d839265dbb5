"""Telegram bot command and callback configuration."""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class TelegramCommand:
    """Declarative bot command definition."""

    command: str
    description: str


class BotCommand(Enum):
    """Enum of bot commands (single source of truth)."""

    START = TelegramCommand("start", "Show the main menu")
    CANCEL = TelegramCommand("cancel", "Cancel the current post")
    HELP = TelegramCommand("help", "Caption format and how it works")


class CallbackAction(str, Enum):
    """Inline keyboard callback payloads."""

    CREATE_NEW = "menu:create"
    VIEW_HISTORY = "menu:history"
    HELP = "menu:help"
    SETTINGS = "menu:settings"
    BACK_TO_MENU = "menu:back"
    CONFIRM_GENERATE = "post:confirm"
    CANCEL_POST = "post:cancel"


AUDIO_CALLBACK_PREFIX = "audio:"


def telegram_commands() -> list[dict[str, str]]:
    """Return commands formatted for Telegram API."""
    return [
        {"command": entry.value.command, "description": entry.value.description}
        for entry in BotCommand
    ]


def parse_command(text: str) -> BotCommand | None:
    """Return the bot command a message text starts with, if any."""
    words = text.split(maxsplit=1)
    if not words or not words[0].startswith("/"):
        return None
    name = words[0][1:].split("@", maxsplit=1)[0].lower()
    for entry in BotCommand:
        if entry.value.command == name:
            return entry
    return None


CHAT_MENU_BUTTON: dict[str, object] = {"type": "commands"}
