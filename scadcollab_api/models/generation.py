"""Generation request shapes, states and results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal


class GenerationState(str, Enum):
    """Lifecycle of a single generation request."""

    IDLE = "idle"
    AWAITING_PROVIDER = "awaiting_provider"
    EXTRACTING_CODE = "extracting_code"
    VALIDATING = "validating"
    RENDERING = "rendering"
    DONE = "done"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (GenerationState.DONE, GenerationState.ERROR)


@dataclass(frozen=True)
class TextPrompt:
    """Prompt without an image, served by the text provider."""

    text: str
    kind: Literal["text"] = "text"


@dataclass(frozen=True)
class ImagePrompt:
    """Prompt carrying an image, served by the vision provider."""

    text: str
    image_data_uri: str
    kind: Literal["image"] = "image"


Prompt = TextPrompt | ImagePrompt


def make_prompt(text: str, image: str | None = None) -> Prompt:
    return ImagePrompt(text, image) if image else TextPrompt(text)


@dataclass
class GenerationResult:
    """Outcome of one orchestrated generation."""

    state: GenerationState
    code: str | None = None
    error: str | None = None
    render_attempts: int = 0
    rendered: bool = False
    transitions: list[GenerationState] = field(default_factory=list)


@dataclass(frozen=True)
class CustomizerParameter:
    """A tunable value declared in the source's structured comments."""

    name: str
    default: str
    section: str
    kind: Literal["range", "options"]
    minimum: float | None = None
    maximum: float | None = None
    step: float | None = None
    options: tuple[str, ...] = ()
    description: str = ""
