"""Error taxonomy for a production run."""

from enum import Enum


class WorkflowError(Exception):
    """Base class for failures surfaced to the orchestrator."""


class FormatError(WorkflowError):
    """Caption is missing a mandatory labeled field."""

    def __init__(self, field: str) -> None:
        super().__init__(f"Caption is missing the {field!r} field")
        self.field = field


class StorageError(WorkflowError):
    """Run directory could not be allocated or written."""


class RenderError(WorkflowError):
    """Preview could not be rendered."""


class EncodeErrorKind(str, Enum):
    """Reason an encode failed."""

    MISSING_INPUT = "missing-input"
    ENCODER_FAILURE = "encoder-failure"


class EncodeError(WorkflowError):
    """Video could not be encoded."""

    def __init__(self, kind: EncodeErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
