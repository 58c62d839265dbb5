"""User-facing texts and inline keyboards."""

from dataclasses import dataclass

from reel_maker.domain.posts import PostRecord, RunListing
from reel_maker.domain.sessions import AUDIO_TRACKS, AudioTrack
from reel_maker.services.captions import CAPTION_FORMAT_HINT
from reel_maker.telegram_commands import AUDIO_CALLBACK_PREFIX, CallbackAction


@dataclass(frozen=True)
class SessionPrompt:
    """Represents the next user-facing prompt."""

    text: str
    reply_markup: dict | None = None


def _inline_keyboard(rows: list[list[tuple[str, str]]]) -> dict:
    """Build a Telegram inline keyboard payload."""
    return {
        "inline_keyboard": [
            [{"text": label, "callback_data": callback} for label, callback in row]
            for row in rows
        ]
    }


def _back_keyboard(label: str = "⬅️ Back") -> dict:
    return _inline_keyboard([[(label, CallbackAction.BACK_TO_MENU.value)]])


WELCOME_TEXT = "👋 Welcome to Video Maker Bot!\n\nWhat would you like to do?"
CANCELLED_TEXT = "👋 Post cancelled. What would you like to do?"


def main_menu(text: str = WELCOME_TEXT) -> SessionPrompt:
    return SessionPrompt(
        text=text,
        reply_markup=_inline_keyboard(
            [
                [
                    ("➕ Create New Post", CallbackAction.CREATE_NEW.value),
                    ("📚 View History", CallbackAction.VIEW_HISTORY.value),
                ],
                [
                    ("❓ Help", CallbackAction.HELP.value),
                    ("⚙️ Settings", CallbackAction.SETTINGS.value),
                ],
            ]
        ),
    )


def completion_menu() -> SessionPrompt:
    return SessionPrompt(
        text="🎉 What's next?",
        reply_markup=_inline_keyboard(
            [
                [
                    ("➕ Create New Post", CallbackAction.CREATE_NEW.value),
                    ("📚 View History", CallbackAction.VIEW_HISTORY.value),
                ],
                [("❓ Help", CallbackAction.HELP.value)],
            ]
        ),
    )


def audio_menu() -> SessionPrompt:
    lines = [f"{track.label} - {track.filename}" for track in AUDIO_TRACKS]
    return SessionPrompt(
        text="🎵 Select an audio track for your video:\n\n" + "\n".join(lines),
        reply_markup=_inline_keyboard(
            [
                [
                    (track.label, f"{AUDIO_CALLBACK_PREFIX}{track.key}")
                    for track in AUDIO_TRACKS
                ],
                [("⬅️ Back", CallbackAction.BACK_TO_MENU.value)],
            ]
        ),
    )


def awaiting_photo(track: AudioTrack) -> SessionPrompt:
    return SessionPrompt(
        text=(
            f"✅ Audio selected: {track.label}\n\n"
            "📝 Now send me a photo with a caption.\n\n"
            f"Caption format:\n{CAPTION_FORMAT_HINT}"
        ),
        reply_markup=_back_keyboard("⬅️ Back to Menu"),
    )


def preview_caption(post: PostRecord) -> str:
    return (
        "✅ Preview of your post\n\n"
        f"📌 Title: {post.title}\n"
        f"📝 Content: {post.content[:50]}...\n"
        f"🏷️ Hashtags: {post.hashtags_raw}"
    )


def preview_actions() -> SessionPrompt:
    return SessionPrompt(
        text="What would you like to do?",
        reply_markup=_inline_keyboard(
            [
                [
                    ("✅ Generate Video", CallbackAction.CONFIRM_GENERATE.value),
                    ("❌ Cancel & Restart", CallbackAction.CANCEL_POST.value),
                ]
            ]
        ),
    )


def video_caption(post: PostRecord) -> str:
    return (
        "✅ Your video is ready!\n\n"
        f"📌 Title: {post.title}\n"
        f"🏷️ Hashtags: {post.hashtags_raw}"
    )


def format_error(field: str) -> str:
    return (
        f"❌ Caption format incorrect! Missing: {field.capitalize()}\n\n"
        f"Use:\n\n{CAPTION_FORMAT_HINT}"
    )


def history_error() -> SessionPrompt:
    return SessionPrompt(text="❌ Error loading history", reply_markup=_back_keyboard())


def history_page(listings: list[RunListing]) -> SessionPrompt:
    if not listings:
        return SessionPrompt(
            text="📚 No history found. Create a new post to get started!",
            reply_markup=_back_keyboard(),
        )
    lines = ["📚 Your Recent Posts:", ""]
    for listing in listings:
        lines.append(f"📅 {listing.date_bucket}")
        lines.extend(f"  • {run}" for run in listing.runs)
    return SessionPrompt(text="\n".join(lines), reply_markup=_back_keyboard())


def help_page() -> SessionPrompt:
    return SessionPrompt(
        text=(
            "📖 How to use this bot:\n\n"
            "1️⃣ Create New Post\n"
            "   • Select audio track\n"
            "   • Send photo with caption\n\n"
            f"2️⃣ Caption Format\n{CAPTION_FORMAT_HINT}\n\n"
            "3️⃣ Review & Generate\n"
            "   • Preview your post\n"
            "   • Approve to generate video\n"
            "   • Cancel to start over"
        ),
        reply_markup=_back_keyboard(),
    )


def settings_page() -> SessionPrompt:
    return SessionPrompt(
        text=(
            "⚙️ Bot Settings\n\n"
            "🎬 Video Duration: 8 seconds\n"
            f"🎵 Audio Tracks: {len(AUDIO_TRACKS)} available\n"
            "📸 Image Quality: High (2560x2560)\n"
            "🎥 Video Quality: 5000kbps"
        ),
        reply_markup=_back_keyboard(),
    )
