from __future__ import annotations

from enum import StrEnum


class ProviderType(StrEnum):
    """Provider tags used to route configurations to adapters.

    Values match the ``type`` discriminator of provider configurations and the
    prefix of model-cache keys. Keep them stable.
    """

    OPENAI = "openai"
    DOUBAO = "doubao"


class ImageOperation(StrEnum):
    """Operations the orchestrator can fan out across configurations."""

    GENERATE = "generate"
    EDIT = "edit"
    VARIATION = "variation"

    @property
    def label(self) -> str:
        return {
            ImageOperation.GENERATE: "Image generation",
            ImageOperation.EDIT: "Image edit",
            ImageOperation.VARIATION: "Image variation",
        }[self]


class OpenAIModel(StrEnum):
    """Image models with first-class parameter handling on OpenAI-compatible APIs."""

    DALL_E_2 = "dall-e-2"
    DALL_E_3 = "dall-e-3"
    GPT_IMAGE_1 = "gpt-image-1"


class DoubaoModel(StrEnum):
    """Doubao (Volcengine visual) request keys."""

    # Synchronous text-to-image
    T2I_V30 = "high_aes_general_v30l_zt2i"
    # Asynchronous image edit
    SEEDEDIT_V30 = "seededit_v3.0"


class DoubaoAction(StrEnum):
    """``Action`` query values of the Doubao visual API."""

    PROCESS = "CVProcess"
    SUBMIT_TASK = "CVSync2AsyncSubmitTask"
    GET_RESULT = "CVSync2AsyncGetResult"


class TaskStatus(StrEnum):
    """Server-side status of a Doubao async task."""

    IN_QUEUE = "in_queue"
    GENERATING = "generating"
    DONE = "done"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"


class TaskState(StrEnum):
    """Client-side state of the submit/poll state machine."""

    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in {TaskState.COMPLETED, TaskState.FAILED, TaskState.TIMED_OUT}


class ElementKind(StrEnum):
    """Kinds of renderable items produced from provider responses."""

    IMAGE = "image"
    TEXT = "text"


__all__ = [
    "ProviderType",
    "ImageOperation",
    "OpenAIModel",
    "DoubaoModel",
    "DoubaoAction",
    "TaskStatus",
    "TaskState",
    "ElementKind",
]
