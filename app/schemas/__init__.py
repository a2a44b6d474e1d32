"""Request and response models for the poster assistant API."""
from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import Field, field_validator

from app.schemas.canvas import (
    Bounds,
    CanvasElement,
    GenerationResult,
    Position,
    ShapeElement,
    TextElement,
    TextStyle,
    _CompatModel,
)

GenerationMode = Literal["image", "text"]


class PosterGenRequest(_CompatModel):
    """Body accepted by ``POST /api/poster-gen``."""

    instruction: str = Field(..., description="Natural-language edit or generation request.")
    canvas_context: Optional[dict[str, Any]] = Field(
        None,
        alias="canvasContext",
        description="Snapshot of the current canvas (existingImageUrl, existingElements).",
    )

    @field_validator("instruction")
    @classmethod
    def _require_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("instruction must not be blank")
        return value


class PosterGenResponse(_CompatModel):
    success: bool = True
    mode: GenerationMode
    job_id: Optional[str] = Field(None, alias="jobId")
    image_url: Optional[str] = Field(None, alias="imageUrl")
    elements: List[CanvasElement] = Field(default_factory=list)
    reasoning: Optional[str] = None
    raw_text: Optional[str] = Field(None, alias="rawText")
    empty: bool = Field(False, description="True when neither an image nor elements came back.")


__all__ = [
    "Bounds",
    "CanvasElement",
    "GenerationMode",
    "GenerationResult",
    "Position",
    "PosterGenRequest",
    "PosterGenResponse",
    "ShapeElement",
    "TextElement",
    "TextStyle",
]
