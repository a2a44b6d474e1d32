"""Map free-form text styles onto the drawing surface's canonical tokens."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping

SizeClass = Literal["s", "m", "l", "xl"]
FontClass = Literal["serif", "mono", "sans"]

PALETTE = (
    "black",
    "grey",
    "light-violet",
    "violet",
    "blue",
    "light-blue",
    "yellow",
    "orange",
    "green",
    "light-green",
    "light-red",
    "red",
    "white",
)
DEFAULT_COLOR = "white"
DEFAULT_SIZE: SizeClass = "m"

_EXACT_COLORS: dict[str, str] = {token: token for token in PALETTE}
_EXACT_COLORS.update(
    {
        # hex codes, compared with '#' already stripped
        "000": "black",
        "000000": "black",
        "fff": "white",
        "ffffff": "white",
        "f00": "red",
        "ff0000": "red",
        "0f0": "green",
        "00ff00": "green",
        "008000": "green",
        "00f": "blue",
        "0000ff": "blue",
        "ff0": "yellow",
        "ffff00": "yellow",
        "ffa500": "orange",
        "800080": "violet",
        "8a2be2": "violet",
        "ee82ee": "light-violet",
        "808080": "grey",
        "c0c0c0": "grey",
        "ffc0cb": "light-red",
        "ff7f7f": "light-red",
        "add8e6": "light-blue",
        "87ceeb": "light-blue",
        "90ee90": "light-green",
        # common names outside the palette
        "gray": "grey",
        "silver": "grey",
        "purple": "violet",
        "magenta": "violet",
        "pink": "light-red",
        "gold": "yellow",
        "navy": "blue",
        "cyan": "light-blue",
        "lime": "light-green",
        "lightred": "light-red",
        "lightgreen": "light-green",
        "lightblue": "light-blue",
        "lightviolet": "light-violet",
        "lightpurple": "light-violet",
    }
)

# stem -> token, checked in order; longer or more specific stems first
_STEMS: tuple[tuple[str, str], ...] = (
    ("violet", "violet"),
    ("purple", "violet"),
    ("orange", "orange"),
    ("yellow", "yellow"),
    ("green", "green"),
    ("blue", "blue"),
    ("red", "red"),
    ("grey", "grey"),
    ("gray", "grey"),
    ("black", "black"),
    ("white", "white"),
)
_LIGHT_STEMS: tuple[tuple[str, str], ...] = (
    ("violet", "light-violet"),
    ("purple", "light-violet"),
    ("green", "light-green"),
    ("blue", "light-blue"),
    ("red", "light-red"),
)


@dataclass(frozen=True)
class CanonicalStyle:
    size: SizeClass
    color: str
    font: FontClass


def size_class(font_size: float | None) -> SizeClass:
    if font_size is None:
        return DEFAULT_SIZE
    if font_size <= 16:
        return "s"
    if font_size <= 24:
        return "m"
    if font_size <= 48:
        return "l"
    return "xl"


def color_token(raw: str | None) -> str:
    """Resolve any colour string to a palette token; never fails."""

    if not isinstance(raw, str):
        return DEFAULT_COLOR
    key = "".join(raw.lower().replace("#", "").split())
    if not key:
        return DEFAULT_COLOR

    exact = _EXACT_COLORS.get(key)
    if exact:
        return exact

    if "light" in key:
        for stem, token in _LIGHT_STEMS:
            if stem in key:
                return token
    for stem, token in _STEMS:
        if stem in key:
            return token
    return DEFAULT_COLOR


def font_class(raw: str | None) -> FontClass:
    if isinstance(raw, str):
        value = raw.strip().lower()
        if value == "serif":
            return "serif"
        if value == "mono":
            return "mono"
    return "sans"


def _read(style: Any, attr: str, alias: str) -> Any:
    if isinstance(style, Mapping):
        return style.get(alias, style.get(attr))
    return getattr(style, attr, None)


def to_canonical_style(raw_style: Any) -> CanonicalStyle:
    """Accepts a ``TextStyle`` model or a plain mapping using wire names."""

    font_size = _read(raw_style, "font_size", "fontSize")
    if isinstance(font_size, bool) or not isinstance(font_size, (int, float)):
        font_size = None
    return CanonicalStyle(
        size=size_class(font_size),
        color=color_token(_read(raw_style, "color", "color")),
        font=font_class(_read(raw_style, "font_family", "fontFamily")),
    )


__all__ = [
    "CanonicalStyle",
    "DEFAULT_COLOR",
    "PALETTE",
    "color_token",
    "font_class",
    "size_class",
    "to_canonical_style",
]
