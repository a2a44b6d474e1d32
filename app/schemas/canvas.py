"""Typed canvas elements and the normalised generation result."""
from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class _CompatModel(BaseModel):
    """Base model that ignores unknown fields and accepts both names and aliases."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _as_number(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip().lower().removesuffix("px").strip()
        try:
            return float(text)
        except ValueError:
            return None
    return None


class Position(_CompatModel):
    x: float = 0.0
    y: float = 0.0

    @field_validator("x", "y", mode="before")
    @classmethod
    def _coerce(cls, value: Any) -> Any:
        number = _as_number(value)
        return 0.0 if number is None else number


class Bounds(_CompatModel):
    width: Optional[float] = Field(None, gt=0)
    height: Optional[float] = Field(None, gt=0)

    @field_validator("width", "height", mode="before")
    @classmethod
    def _coerce(cls, value: Any) -> Any:
        number = _as_number(value)
        if number is None or number <= 0:
            return None
        return number


class TextStyle(_CompatModel):
    """Free-form style as sent by the job service; canonicalised downstream."""

    font_size: Optional[float] = Field(None, alias="fontSize")
    color: Optional[str] = None
    font_family: Optional[str] = Field(None, alias="fontFamily")

    @field_validator("font_size", mode="before")
    @classmethod
    def _coerce_size(cls, value: Any) -> Any:
        return _as_number(value)

    @field_validator("color", "font_family", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip():
            return value
        return None


def _lift_flat_geometry(data: dict[str, Any]) -> dict[str, Any]:
    """Accept ``x``/``y``/``width``/``height`` at the element's top level."""

    if "position" not in data and ("x" in data or "y" in data):
        data["position"] = {"x": data.get("x"), "y": data.get("y")}
    if "bounds" not in data and "width" in data:
        data["bounds"] = {"width": data.get("width"), "height": data.get("height")}
    return data


class TextElement(_CompatModel):
    type: Literal["text"] = "text"
    content: str
    position: Position = Field(default_factory=Position)
    style: TextStyle = Field(default_factory=TextStyle)
    bounds: Optional[Bounds] = None

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        data = _lift_flat_geometry(dict(value))
        if "content" not in data and isinstance(data.get("text"), str):
            data["content"] = data["text"]
        if not isinstance(data.get("style"), dict):
            data["style"] = {
                key: data[key] for key in ("fontSize", "color", "fontFamily") if key in data
            }
        return data

    @property
    def width(self) -> float | None:
        return self.bounds.width if self.bounds else None


class ShapeElement(_CompatModel):
    type: Literal["shape"] = "shape"
    kind: Literal["rect"] = "rect"
    position: Position = Field(default_factory=Position)
    bounds: Bounds
    color: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        return _lift_flat_geometry(dict(value))


CanvasElement = Annotated[Union[TextElement, ShapeElement], Field(discriminator="type")]


class GenerationResult(_CompatModel):
    image_url: Optional[str] = Field(None, alias="imageUrl")
    elements: List[CanvasElement] = Field(default_factory=list)
    reasoning: Optional[str] = None
    raw_text: Optional[str] = Field(None, alias="rawText")

    @property
    def has_image(self) -> bool:
        return bool(self.image_url)

    @property
    def is_empty(self) -> bool:
        return not self.image_url and not self.elements


__all__ = [
    "Bounds",
    "CanvasElement",
    "GenerationResult",
    "Position",
    "ShapeElement",
    "TextElement",
    "TextStyle",
]
