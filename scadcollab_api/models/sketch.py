"""Orthographic sketch models."""

from pydantic import BaseModel, Field


class SketchDimension(BaseModel):
    label: str
    value: str


class Sketch(BaseModel):
    """One 2D projection of the current model."""

    name: str
    svg: str
    dimensions: list[SketchDimension] = Field(default_factory=list)
