"""Per-model-family request quirks and edit-endpoint routing."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Any, MutableMapping, Sequence

from .sizing import IMAGE_SIZE_PRESETS, PIXEL_SIZES

SIZING_IMAGE_SIZE = "image_size"
SIZING_ASPECT_RATIO = "aspect_ratio"
SIZING_PIXEL = "pixel"

_SINGULAR_REF_FIELDS = ("image_url", "reference_image_url")


@dataclass(frozen=True)
class ModelHandler:
    """Declarative quirks for one family of FAL models.

    ``patterns`` are lower-case substrings matched against the model id; an
    empty tuple matches every model. ``sizing`` is one of ``image_size``
    (FAL preset), ``aspect_ratio`` (raw ``W:H``), ``pixel`` (``WxH``) or ''
    (no sizing field is sent).
    """

    patterns: tuple[str, ...] = ()
    ref_field: str = "image_urls"
    safety_defaults: dict[str, Any] = field(default_factory=dict)
    sizing: str = ""
    t2i_endpoint_suffix: str = ""
    required_fields: dict[str, Any] = field(default_factory=dict)

    def matches(self, model: str) -> bool:
        """Return True if this handler applies to the model id."""
        if not self.patterns:
            return True
        lower = model.lower()
        return any(pattern in lower for pattern in self.patterns)

    def ref_payload(self, uris: Sequence[str], quiet: bool) -> tuple[str, Any]:
        """Return the payload key and value carrying the reference images.

        Singular fields take only the first URI and warn when others are
        dropped; plural fields take them all.
        """
        if self.ref_field in _SINGULAR_REF_FIELDS:
            if len(uris) > 1 and not quiet:
                print(
                    "Warning: model accepts a single reference image; "
                    f"using the first of {len(uris)} (others dropped)",
                    file=sys.stderr,
                )
            return self.ref_field, uris[0]
        if self.ref_field == "reference_image_urls":
            return self.ref_field, list(uris)
        return "image_urls", list(uris)

    def apply_sizing(self, payload: MutableMapping[str, Any], aspect_ratio: str) -> None:
        """Add the sizing field this family expects to the payload."""
        if not aspect_ratio or not self.sizing:
            return
        if self.sizing == SIZING_IMAGE_SIZE:
            preset = IMAGE_SIZE_PRESETS.get(aspect_ratio)
            if preset is not None:
                payload["image_size"] = preset
        elif self.sizing == SIZING_ASPECT_RATIO:
            payload["aspect_ratio"] = aspect_ratio
        elif self.sizing == SIZING_PIXEL:
            pixels = PIXEL_SIZES.get(aspect_ratio)
            if pixels is not None:
                payload["image_size"] = pixels


_NO_SAFETY_CHECKER = {"enable_safety_checker": False}
_SAFETY_TOLERANCE = {"safety_tolerance": "6"}
_STYLE_AUTO = {"style": "AUTO"}

# Order matters: more specific patterns first, catch-all last.
HANDLERS: tuple[ModelHandler, ...] = (
    ModelHandler(
        patterns=("kontext/max/multi",),
        ref_field="image_urls",
        safety_defaults=dict(_SAFETY_TOLERANCE),
        sizing=SIZING_ASPECT_RATIO,
    ),
    ModelHandler(
        patterns=("kontext",),
        ref_field="image_url",
        safety_defaults=dict(_SAFETY_TOLERANCE),
        sizing=SIZING_IMAGE_SIZE,
        t2i_endpoint_suffix="/text-to-image",
    ),
    ModelHandler(
        patterns=("ideogram/character",),
        ref_field="reference_image_urls",
        sizing=SIZING_IMAGE_SIZE,
        required_fields=dict(_STYLE_AUTO),
    ),
    ModelHandler(
        patterns=("ideogram/v3",),
        ref_field="image_urls",
        sizing=SIZING_IMAGE_SIZE,
        required_fields=dict(_STYLE_AUTO),
    ),
    ModelHandler(
        patterns=("flux-general",),
        ref_field="reference_image_url",
        safety_defaults=dict(_NO_SAFETY_CHECKER),
        sizing=SIZING_IMAGE_SIZE,
    ),
    ModelHandler(patterns=("reve",), ref_field="image_url", sizing=SIZING_ASPECT_RATIO),
    ModelHandler(patterns=("emu-3.5",), ref_field="image_url", sizing=SIZING_ASPECT_RATIO),
    ModelHandler(patterns=("nano-banana",), ref_field="image_urls", sizing=SIZING_ASPECT_RATIO),
    ModelHandler(patterns=("gpt-image",), ref_field="image_urls", sizing=SIZING_PIXEL),
    ModelHandler(
        patterns=("grok-imagine-image",), ref_field="image_urls", sizing=SIZING_ASPECT_RATIO
    ),
    ModelHandler(
        patterns=("flux-2",),
        ref_field="image_urls",
        safety_defaults=dict(_NO_SAFETY_CHECKER),
        sizing=SIZING_IMAGE_SIZE,
    ),
    ModelHandler(
        patterns=("seedream",),
        ref_field="image_urls",
        safety_defaults=dict(_NO_SAFETY_CHECKER),
        sizing=SIZING_IMAGE_SIZE,
    ),
    ModelHandler(
        patterns=("hunyuan-image",),
        ref_field="image_urls",
        safety_defaults=dict(_NO_SAFETY_CHECKER),
        sizing=SIZING_IMAGE_SIZE,
    ),
    ModelHandler(
        patterns=("recraft",),
        ref_field="image_urls",
        safety_defaults=dict(_NO_SAFETY_CHECKER),
        sizing=SIZING_IMAGE_SIZE,
    ),
    ModelHandler(
        patterns=("instant-character",),
        ref_field="image_url",
        safety_defaults=dict(_NO_SAFETY_CHECKER),
        sizing=SIZING_IMAGE_SIZE,
    ),
    ModelHandler(
        patterns=("flux-pro/v1", "flux/dev"),
        ref_field="image_urls",
        safety_defaults=dict(_NO_SAFETY_CHECKER),
        sizing=SIZING_IMAGE_SIZE,
    ),
    ModelHandler(),
)

# Text-to-image ids whose edit endpoint does not follow "<model>/edit".
EDIT_SIBLINGS = {
    # Kontext: the base endpoint already is the image-to-image endpoint.
    "fal-ai/flux-pro/kontext": "fal-ai/flux-pro/kontext",
    "fal-ai/flux-pro/kontext/max": "fal-ai/flux-pro/kontext/max",
    "fal-ai/flux-pro/kontext/max/multi": "fal-ai/flux-pro/kontext/max/multi",
    "fal-ai/flux-kontext/dev": "fal-ai/flux-kontext/dev",
    "fal-ai/glm-image": "fal-ai/glm-image/image-to-image",
    "fal-ai/bytedance/seedream/v4.5/text-to-image": "fal-ai/bytedance/seedream/v4.5/edit",
    "fal-ai/bytedance/seedream/v5/lite/text-to-image": "fal-ai/bytedance/seedream/v5/lite/edit",
    "fal-ai/emu-3.5-image/text-to-image": "fal-ai/emu-3.5-image/edit-image",
}


def handler_for(model: str) -> ModelHandler:
    """Return the first handler whose patterns match the model id."""
    return next((h for h in HANDLERS if h.matches(model)), ModelHandler())


def edit_endpoint_for(model: str) -> str:
    """Return the endpoint to use when reference images are sent."""
    return EDIT_SIBLINGS.get(model, model + "/edit")