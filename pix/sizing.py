"""Aspect-ratio handling: parsing --size, inferring from images, output formats."""

from __future__ import annotations

import json
import re
from typing import Union

import os

from PIL import Image

SUPPORTED_ASPECT_RATIOS = ("9:16", "1:1", "4:3", "16:9")

IMAGE_SIZE_PRESETS = {
    "9:16": "portrait_16_9",
    "16:9": "landscape_16_9",
    "4:3": "landscape_4_3",
    "1:1": "square_hd",
}

# 4:3 maps to 1536x1024 (really 3:2); kept as the service expects.
PIXEL_SIZES = {
    "9:16": "1024x1536",
    "16:9": "1536x1024",
    "4:3": "1536x1024",
    "1:1": "1024x1024",
}

_DECODABLE_FORMATS = ("PNG", "JPEG", "GIF")
_INT_RE = re.compile(r"[+-]?[0-9]+")


class SizeError(ValueError):
    """Raised for an unusable --size value."""


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def _split_ints(text: str, sep: str) -> tuple[int, int]:
    parts = text.split(sep, 1)
    if len(parts) != 2:
        raise ValueError(f"expected two integers separated by {_quote(sep)}")
    left, right = (part.strip() for part in parts)
    if not (_INT_RE.fullmatch(left) and _INT_RE.fullmatch(right)):
        raise ValueError("not an integer")
    return int(left), int(right)


def _ratio_value(ratio: str) -> float:
    width, height = _split_ints(ratio, ":")
    return width / height


def snap_to_supported_ratio(ratio: float) -> str:
    """Return the supported aspect ratio closest to the width/height value."""
    return min(SUPPORTED_ASPECT_RATIOS, key=lambda ar: abs(_ratio_value(ar) - ratio))


def parse_size_flag(value: str) -> str:
    """Parse 'W:H' or 'WIDTHxHEIGHT' into a supported aspect ratio.

    An empty value returns '' so the caller can fall back.
    """
    value = value.strip()
    if not value:
        return ""

    lowered = value.lower()
    if "x" in lowered:
        try:
            width, height = _split_ints(lowered, "x")
        except ValueError:
            raise SizeError(
                f"invalid --size {_quote(value)}: expected WIDTHxHEIGHT (e.g. 1024x1024)"
            ) from None
        if width <= 0 or height <= 0:
            raise SizeError(f"invalid --size {_quote(value)}: dimensions must be positive")
        return snap_to_supported_ratio(width / height)

    if ":" in value:
        try:
            width, height = _split_ints(value, ":")
        except ValueError:
            raise SizeError(
                f"invalid --size {_quote(value)}: expected W:H (e.g. 16:9)"
            ) from None
        if width <= 0 or height <= 0:
            raise SizeError(
                f"invalid --size {_quote(value)}: ratio components must be positive"
            )
        canonical = f"{width}:{height}"
        if canonical in SUPPORTED_ASPECT_RATIOS:
            return canonical
        return snap_to_supported_ratio(width / height)

    raise SizeError(f"invalid --size {_quote(value)}: expected W:H or WIDTHxHEIGHT")


def infer_aspect_ratio_from_ref(path: Union[str, "os.PathLike[str]"]) -> str:
    """Read an image's header and return the nearest supported ratio, or ''."""
    try:
        with Image.open(path, formats=_DECODABLE_FORMATS) as img:
            width, height = img.size
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError):
        return ""
    if width <= 0 or height <= 0:
        return ""
    return snap_to_supported_ratio(width / height)


def output_format_from_path(path: str) -> str:
    """Map the file extension to FAL's output_format, or '' if unknown."""
    dot = path.rfind(".")
    if dot < 0 or dot == len(path) - 1:
        return ""
    ext = path[dot + 1:].lower()
    if ext == "png":
        return "png"
    if ext in ("jpg", "jpeg"):
        return "jpeg"
    if ext == "webp":
        return "webp"
    return ""