"""Drawing-surface protocol and an in-memory surface that implements it."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence


@dataclass(frozen=True)
class Viewport:
    x: float
    y: float
    width: float
    height: float


@dataclass
class ImageAsset:
    id: str
    src: str
    width: int
    height: int
    mime_type: str = "image/png"


@dataclass
class ShapeRecord:
    id: str
    type: str
    x: float
    y: float
    props: Dict[str, Any] = field(default_factory=dict)


class DrawingSurface(Protocol):
    def viewport(self) -> Viewport:
        ...

    def create_asset(self, *, src: str, width: int, height: int, mime_type: str) -> str:
        ...

    def create_shape(self, shape_type: str, *, x: float, y: float, props: Dict[str, Any]) -> str:
        ...

    def select(self, ids: Sequence[str]) -> None:
        ...

    def zoom_to_selection(self) -> None:
        ...


class MemorySurface:
    """Keeps assets and shapes in insertion order; used by tests and local runs."""

    def __init__(self, viewport: Viewport | None = None) -> None:
        self._viewport = viewport or Viewport(0, 0, 1000, 800)
        self.assets: Dict[str, ImageAsset] = {}
        self.shapes: Dict[str, ShapeRecord] = {}
        self.selection: List[str] = []
        self.zoomed_to: List[str] = []
        self.selection_history: List[List[str]] = []

    def viewport(self) -> Viewport:
        return self._viewport

    def create_asset(self, *, src: str, width: int, height: int, mime_type: str) -> str:
        asset_id = f"asset:{uuid.uuid4().hex}"
        self.assets[asset_id] = ImageAsset(
            id=asset_id, src=src, width=width, height=height, mime_type=mime_type
        )
        return asset_id

    def create_shape(self, shape_type: str, *, x: float, y: float, props: Dict[str, Any]) -> str:
        shape_id = f"shape:{uuid.uuid4().hex}"
        self.shapes[shape_id] = ShapeRecord(id=shape_id, type=shape_type, x=x, y=y, props=dict(props))
        return shape_id

    def select(self, ids: Sequence[str]) -> None:
        missing = [item for item in ids if item not in self.shapes]
        if missing:
            raise KeyError(f"unknown shape ids: {missing}")
        self.selection = list(ids)
        self.selection_history.append(list(ids))

    def zoom_to_selection(self) -> None:
        self.zoomed_to = list(self.selection)

    def shapes_of_type(self, shape_type: str) -> List[ShapeRecord]:
        return [shape for shape in self.shapes.values() if shape.type == shape_type]

    def latest_image_url(self) -> Optional[str]:
        for shape in reversed(list(self.shapes.values())):
            if shape.type != "image":
                continue
            asset = self.assets.get(shape.props.get("assetId", ""))
            if asset is not None:
                return asset.src
        return None

    def snapshot(self) -> Optional[Dict[str, Any]]:
        """Canvas context for the next request, or ``None`` on an empty canvas."""

        if not self.shapes:
            return None
        elements = [
            {
                "type": "text",
                "content": shape.props.get("text", ""),
                "position": {"x": shape.x, "y": shape.y},
                "style": {
                    "color": shape.props.get("color"),
                    "fontFamily": shape.props.get("font"),
                    "size": shape.props.get("size"),
                },
            }
            for shape in self.shapes_of_type("text")
        ]
        context: Dict[str, Any] = {"existingElements": elements}
        image_url = self.latest_image_url()
        if image_url:
            context["existingImageUrl"] = image_url
        viewport = self._viewport
        context["viewport"] = {"width": viewport.width, "height": viewport.height}
        return context


__all__ = ["DrawingSurface", "ImageAsset", "MemorySurface", "ShapeRecord", "Viewport"]
