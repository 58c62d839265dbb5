"""Domain models for per-user workflow sessions."""

from dataclasses import dataclass
from enum import Enum

from reel_maker.domain.posts import PostRecord


class WorkflowState(str, Enum):
    """Closed set of workflow states."""

    IDLE = "IDLE"
    MENU_SHOWN = "MENU_SHOWN"
    AUDIO_SELECTION = "AUDIO_SELECTION"
    AWAITING_PHOTO = "AWAITING_PHOTO"
    PREVIEW_READY = "PREVIEW_READY"
    ENCODING = "ENCODING"


class WorkflowEvent(str, Enum):
    """Events the workflow reacts to."""

    FIRST_CONTACT = "first_contact"
    CREATE_NEW = "create_new"
    AUDIO_CHOSEN = "audio_chosen"
    PHOTO_ACCEPTED = "photo_accepted"
    PHOTO_REJECTED = "photo_rejected"
    CONFIRM = "confirm"
    ENCODE_FINISHED = "encode_finished"
    CANCEL = "cancel"
    VIEW_MENU_PAGE = "view_menu_page"


@dataclass(frozen=True)
class Session:
    """Per-user in-memory workflow state."""

    user_id: int
    state: WorkflowState = WorkflowState.IDLE
    selected_audio_ref: str | None = None
    pending_post: PostRecord | None = None


@dataclass(frozen=True)
class AudioTrack:
    """Selectable audio asset."""

    key: str
    label: str
    filename: str


AUDIO_TRACKS: tuple[AudioTrack, ...] = (
    AudioTrack(key="I", label="🎵 Audio I", filename="audioI.mp3"),
    AudioTrack(key="II", label="🎶 Audio II", filename="audioII.mp3"),
)


def find_audio_track(key: str) -> AudioTrack | None:
    """Return the audio track for a callback key."""
    for track in AUDIO_TRACKS:
        if track.key == key:
            return track
    return None
