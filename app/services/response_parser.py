"""Normalise job-service payloads of varying shape into a ``GenerationResult``.

Producers have shipped several layouts over time: fields at the top level,
fields nested under ``output``, or a free-text answer whose JSON lives inside a
markdown code fence.  Each extractor below is independent and side-effect free;
the first one that yields a value wins.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError

from app.schemas.canvas import GenerationResult, ShapeElement, TextElement

logger = logging.getLogger(__name__)

_FENCE_RX = re.compile(r"```[ \t]*([A-Za-z0-9_+-]*)[ \t]*\r?\n?([\s\S]*?)```")
_SHAPE_TYPES = {"shape", "rect", "rectangle"}

_IMAGE_KEYS = ("imageUrl", "image_url")
_LOOSE_IMAGE_KEYS = ("image", "url", "image_uri")
_ELEMENT_KEYS = ("elements",)
_TEXT_KEYS = ("rawText", "raw_text", "text", "response", "content", "message")


def _scopes(payload: Any) -> List[dict[str, Any]]:
    """Top-level object first, then the ``output`` namespace and its ``result``."""

    scopes: List[dict[str, Any]] = []
    if not isinstance(payload, dict):
        return scopes
    scopes.append(payload)
    output = payload.get("output")
    if isinstance(output, dict):
        scopes.append(output)
        result = output.get("result")
        if isinstance(result, dict):
            scopes.append(result)
    return scopes


def _non_empty_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _looks_like_image_ref(value: str) -> bool:
    lowered = value.lower()
    return lowered.startswith(("http://", "https://", "data:image/"))


def extract_image_url(payload: Any) -> Optional[str]:
    for scope in _scopes(payload):
        for key in _IMAGE_KEYS:
            candidate = _non_empty_str(scope.get(key))
            if candidate:
                return candidate
        for key in _LOOSE_IMAGE_KEYS:
            candidate = _non_empty_str(scope.get(key))
            if candidate and _looks_like_image_ref(candidate):
                return candidate
        images = scope.get("images")
        if isinstance(images, list) and images:
            candidate = _non_empty_str(images[0])
            if candidate:
                return candidate
    if isinstance(payload, dict):
        output = payload.get("output")
        if isinstance(output, dict):
            candidate = _non_empty_str(output.get("result"))
            if candidate and _looks_like_image_ref(candidate):
                return candidate
        elif isinstance(output, str) and _looks_like_image_ref(output.strip()):
            return output.strip()
    return None


def extract_elements(payload: Any) -> Optional[list[Any]]:
    for scope in _scopes(payload):
        for key in _ELEMENT_KEYS:
            value = scope.get(key)
            if isinstance(value, list) and value:
                return value
    return None


def extract_reasoning(payload: Any) -> Optional[str]:
    for scope in _scopes(payload):
        candidate = _non_empty_str(scope.get("reasoning"))
        if candidate:
            return candidate
    return None


def extract_raw_text(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        output = payload.get("output")
        if isinstance(output, str) and not _looks_like_image_ref(output.strip()):
            return _non_empty_str(output)
    for scope in _scopes(payload):
        for key in _TEXT_KEYS:
            candidate = _non_empty_str(scope.get(key))
            if candidate:
                return candidate
        result = scope.get("result")
        if isinstance(result, str) and not _looks_like_image_ref(result.strip()):
            candidate = _non_empty_str(result)
            if candidate:
                return candidate
    return None


def extract_fenced_json(text: str) -> Optional[dict[str, Any]]:
    """Parse the first fenced code block in ``text`` as a JSON object."""

    match = _FENCE_RX.search(text or "")
    if not match:
        return None
    body = match.group(2).strip()
    if not body:
        return None
    try:
        data = json.loads(body)
    except ValueError:
        logger.debug("fenced block is not valid JSON", extra={"preview": body[:120]})
        return None
    return data if isinstance(data, dict) else None


def coerce_element(raw: Any) -> TextElement | ShapeElement | None:
    """Shallowly type one element; anything unrecognisable is dropped."""

    if not isinstance(raw, dict):
        return None
    kind = str(raw.get("type") or raw.get("op") or "").strip().lower()
    data = {key: value for key, value in raw.items() if key not in ("type", "op")}
    try:
        if kind in _SHAPE_TYPES or kind == "add_rect":
            return ShapeElement.model_validate(data)
        return TextElement.model_validate(data)
    except ValidationError as exc:
        logger.info(
            "dropping unrecognised canvas element",
            extra={"element_type": kind or "text", "errors": exc.error_count()},
        )
        return None


def _coerce_all(items: Iterable[Any]) -> list[TextElement | ShapeElement]:
    elements: list[TextElement | ShapeElement] = []
    for item in items:
        element = coerce_element(item)
        if element is not None:
            elements.append(element)
    return elements


def normalize(payload: Any) -> GenerationResult:
    image_url = extract_image_url(payload)
    raw_elements = extract_elements(payload)
    reasoning = extract_reasoning(payload)
    raw_text = extract_raw_text(payload)

    elements = _coerce_all(raw_elements or [])
    if not elements and raw_text:
        embedded = extract_fenced_json(raw_text)
        if embedded is not None:
            fenced = embedded.get("elements")
            if isinstance(fenced, list):
                elements = _coerce_all(fenced)
            reasoning = reasoning or _non_empty_str(embedded.get("reasoning"))

    result = GenerationResult(
        image_url=image_url,
        elements=elements,
        reasoning=reasoning,
        raw_text=raw_text,
    )
    if result.is_empty:
        logger.info(
            "job payload carried no image or elements",
            extra={"has_raw_text": bool(raw_text), "has_reasoning": bool(reasoning)},
        )
    return result


__all__ = [
    "coerce_element",
    "extract_elements",
    "extract_fenced_json",
    "extract_image_url",
    "extract_raw_text",
    "extract_reasoning",
    "normalize",
]
