"""Orthographic sketches (top, front, side) of the current model."""

import json
import logging
import re

import httpx
from pydantic import ValidationError

from ..config import settings
from ..errors import SketchParseError
from ..models import Sketch
from ..telemetry import TelemetryEvents, track_event
from .providers import ChatCompletionsProvider

logger = logging.getLogger(__name__)

SKETCH_INSTRUCTION = """You are a technical drawing expert. You MUST respond with ONLY valid JSON, no other text.

Generate 2D orthographic projection views (Top, Front, Side) with dimensions in SVG format.

RULES:
1. Generate exactly 3 views: Top View, Front View, and Side View (Right)
2. Each view shows the complete 3D model as a 2D projection
3. Include dimension lines with accurate measurements
4. Respond with ONLY this JSON structure:

{
  "sketches": [
    {
      "name": "Top View",
      "svg": "<svg xmlns='http://www.w3.org/2000/svg' viewBox='0 0 400 400'>...</svg>",
      "dimensions": [{"label": "Width", "value": "200mm"}]
    }
  ]
}

SVG must have black outlines (stroke #000, width 2), gray dimension lines
(stroke #666, width 1), dashed hidden edges (stroke-dasharray 5,5),
dimension text and a viewBox.

RESPOND WITH ONLY THE JSON OBJECT, NOTHING ELSE."""

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
_OUTER_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def parse_sketches(content: str) -> list[Sketch]:
    """Sketches from a model answer that may wrap its JSON in a fence or prose.

    Raises:
        SketchParseError: no JSON object, or no ``sketches`` list in it
    """
    fenced = _FENCED_JSON.search(content)
    text = fenced.group(1) if fenced else content

    match = _OUTER_OBJECT.search(text)
    if not match:
        raise SketchParseError("No valid JSON found in response")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise SketchParseError(f"Invalid JSON in response: {e}") from e

    sketches = data.get("sketches") if isinstance(data, dict) else None
    if not isinstance(sketches, list):
        raise SketchParseError("Invalid response format: missing sketches array")

    try:
        return [Sketch.model_validate(s) for s in sketches]
    except ValidationError as e:
        raise SketchParseError(f"Invalid sketch entry: {e}") from e


class SketcherProvider(ChatCompletionsProvider):
    """Chat completions client holding the sketcher credential."""

    name = "Sketcher"
    key_setting = "sketcher_api_key"


class SketchGenerator:
    """Asks a chat model for dimensioned orthographic views of OpenSCAD source."""

    def __init__(self, provider: ChatCompletionsProvider):
        self.provider = provider

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient | None = None) -> "SketchGenerator":
        provider = SketcherProvider(
            api_key=settings.sketcher_api_key,
            base_url=settings.sketcher_base_url,
            model=settings.sketcher_model,
            client=client,
            timeout=settings.provider_timeout_seconds,
        )
        return cls(provider)

    async def generate(self, source: str) -> list[Sketch]:
        """Top, front and side views for ``source``.

        Raises:
            ValueError: ``source`` is empty
            ProviderNotConfigured: no sketcher credential
            ProviderError: non-success response
            SketchParseError: the answer is not the expected JSON
        """
        if not source.strip():
            raise ValueError("No OpenSCAD code to analyze. Create a model first.")

        content = await self.provider.chat(
            [
                {"role": "system", "content": SKETCH_INSTRUCTION},
                {
                    "role": "user",
                    "content": "Generate Top, Front, and Side orthographic views with "
                    f"dimensions for this OpenSCAD model:\n\n{source}",
                },
            ],
            temperature=0.3,
            max_tokens=6000,
        )
        sketches = parse_sketches(content)
        track_event(TelemetryEvents.SKETCH_GENERATED, {"views": len(sketches)})
        return sketches
