"""Apply a normalised generation result to a drawing surface.

The reconciler only ever adds: it never edits or deletes shapes that were on
the surface before the call, and it keeps no state between calls.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass, field
from io import BytesIO
from typing import Awaitable, Callable, List, Optional, Tuple

import httpx
from PIL import Image, UnidentifiedImageError

from app.errors import AssetLoadError
from app.schemas.canvas import GenerationResult, ShapeElement, TextElement
from app.services.style import color_token, to_canonical_style
from app.services.surface import DrawingSurface, Viewport

logger = logging.getLogger(__name__)

VIEWPORT_FILL_RATIO = 0.8
DEFAULT_LOAD_TIMEOUT_SECONDS = 15.0

ImageSizeLoader = Callable[[str], Awaitable[Tuple[int, int, str]]]


def _decode_data_url_to_bytes(data_url: str) -> Tuple[bytes, str]:
    if "," not in data_url:
        raise ValueError("Invalid data URL: missing comma separator")
    header, encoded = data_url.split(",", 1)
    header_lower = header.lower()
    if not header_lower.startswith("data:") or ";base64" not in header_lower:
        raise ValueError("Only base64-encoded data URLs are supported")
    mime_type = header_lower[len("data:") :].split(";", 1)[0] or "image/png"
    try:
        return base64.b64decode(encoded), mime_type
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Failed to decode data URL") from exc


def _measure(data: bytes) -> Tuple[int, int, str]:
    with Image.open(BytesIO(data)) as image:
        # decode the pixel data so truncated bodies fail here
        image.load()
        width, height = image.size
        mime_type = Image.MIME.get(image.format or "", "image/png")
    if width <= 0 or height <= 0:
        raise ValueError("image has no pixels")
    return width, height, mime_type


async def fetch_image_size(url: str, *, client: httpx.AsyncClient | None = None) -> Tuple[int, int, str]:
    """Download ``url`` (or decode a ``data:`` URL) and return width, height, MIME type."""

    if url.lower().startswith("data:"):
        data, _ = _decode_data_url_to_bytes(url)
        return await asyncio.to_thread(_measure, data)

    if client is not None:
        response = await client.get(url)
    else:
        async with httpx.AsyncClient(follow_redirects=True, timeout=30.0) as owned:
            response = await owned.get(url)
    response.raise_for_status()
    return await asyncio.to_thread(_measure, response.content)


def fit_to_viewport(
    image_width: float, image_height: float, viewport: Viewport, ratio: float = VIEWPORT_FILL_RATIO
) -> Tuple[float, float, float, float]:
    """Scale to fit ``ratio`` of the viewport without upscaling, then centre."""

    max_width = viewport.width * ratio
    max_height = viewport.height * ratio
    scale = min(max_width / image_width, max_height / image_height, 1.0)
    width = image_width * scale
    height = image_height * scale
    x = viewport.x + (viewport.width - width) / 2
    y = viewport.y + (viewport.height - height) / 2
    return x, y, width, height


@dataclass
class ApplicationOutcome:
    image_shape_id: Optional[str] = None
    asset_id: Optional[str] = None
    text_shape_ids: List[str] = field(default_factory=list)
    geo_shape_ids: List[str] = field(default_factory=list)
    reasoning: Optional[str] = None
    raw_text: Optional[str] = None
    message: str = ""

    @property
    def empty(self) -> bool:
        return not (self.image_shape_id or self.text_shape_ids or self.geo_shape_ids)

    @property
    def shape_ids(self) -> List[str]:
        ids = [self.image_shape_id] if self.image_shape_id else []
        return ids + self.text_shape_ids + self.geo_shape_ids

    @property
    def notable(self) -> bool:
        # an empty turn is not an error, but the user should see why
        return self.empty


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def describe(outcome: ApplicationOutcome) -> str:
    if outcome.empty:
        detail = outcome.reasoning or outcome.raw_text
        base = "The assistant finished but returned no image or text to place."
        return f"{base} {detail}" if detail else base

    parts: List[str] = []
    if outcome.image_shape_id:
        parts.append("a background image")
    if outcome.text_shape_ids:
        parts.append(_plural(len(outcome.text_shape_ids), "text element"))
    if outcome.geo_shape_ids:
        parts.append(_plural(len(outcome.geo_shape_ids), "shape"))
    summary = " and ".join(parts) if len(parts) < 3 else f"{parts[0]}, {parts[1]} and {parts[2]}"
    message = f"Added {summary} to the poster."
    if outcome.reasoning:
        message = f"{message} {outcome.reasoning}"
    return message


class CanvasReconciler:
    def __init__(
        self,
        image_loader: ImageSizeLoader | None = None,
        *,
        load_timeout: float = DEFAULT_LOAD_TIMEOUT_SECONDS,
    ) -> None:
        self._load = image_loader or fetch_image_size
        self.load_timeout = load_timeout

    async def _load_dimensions(self, url: str) -> Tuple[int, int, str]:
        try:
            return await asyncio.wait_for(self._load(url), timeout=self.load_timeout)
        except asyncio.TimeoutError as exc:
            raise AssetLoadError(url, f"image did not load within {self.load_timeout:g}s") from exc
        except (httpx.HTTPError, UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
            raise AssetLoadError(url, str(exc) or exc.__class__.__name__) from exc

    async def _place_image(self, surface: DrawingSurface, url: str, outcome: ApplicationOutcome) -> None:
        width, height, mime_type = await self._load_dimensions(url)
        asset_id = surface.create_asset(src=url, width=width, height=height, mime_type=mime_type)
        x, y, w, h = fit_to_viewport(width, height, surface.viewport())
        shape_id = surface.create_shape("image", x=x, y=y, props={"assetId": asset_id, "w": w, "h": h})
        surface.select([shape_id])
        surface.zoom_to_selection()
        outcome.asset_id = asset_id
        outcome.image_shape_id = shape_id
        logger.info(
            "placed generated image",
            extra={"shape_id": shape_id, "source_w": width, "source_h": height, "w": w, "h": h},
        )

    def _place_text(self, surface: DrawingSurface, element: TextElement) -> str:
        style = to_canonical_style(element.style)
        props = {
            "text": element.content,
            "size": style.size,
            "color": style.color,
            "font": style.font,
            "autoSize": element.width is None,
        }
        if element.width is not None:
            props["w"] = element.width
        return surface.create_shape("text", x=element.position.x, y=element.position.y, props=props)

    def _place_geo(self, surface: DrawingSurface, element: ShapeElement) -> str:
        width = element.bounds.width or element.bounds.height or 100.0
        height = element.bounds.height or width
        props = {
            "geo": "rectangle",
            "w": width,
            "h": height,
            "color": color_token(element.color),
            "fill": "solid",
        }
        return surface.create_shape("geo", x=element.position.x, y=element.position.y, props=props)

    async def apply(self, surface: DrawingSurface, result: GenerationResult) -> ApplicationOutcome:
        outcome = ApplicationOutcome(reasoning=result.reasoning, raw_text=result.raw_text)

        # the image is fully loaded and placed before any text is added
        if result.image_url:
            await self._place_image(surface, result.image_url, outcome)

        for element in result.elements:
            if isinstance(element, TextElement):
                outcome.text_shape_ids.append(self._place_text(surface, element))
            elif isinstance(element, ShapeElement):
                outcome.geo_shape_ids.append(self._place_geo(surface, element))

        created = outcome.text_shape_ids + outcome.geo_shape_ids
        if created:
            surface.select(created)

        outcome.message = describe(outcome)
        if outcome.empty:
            logger.info("nothing to apply", extra={"has_reasoning": bool(result.reasoning)})
        return outcome


async def apply(surface: DrawingSurface, result: GenerationResult) -> ApplicationOutcome:
    return await CanvasReconciler().apply(surface, result)


__all__ = [
    "ApplicationOutcome",
    "CanvasReconciler",
    "apply",
    "describe",
    "fetch_image_size",
    "fit_to_viewport",
]
