"""FAL model catalogue: fetching, matching and the interactive model picker."""

from __future__ import annotations

import json
import os
import re
import shutil
import sys
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence
from urllib.parse import urlencode

import requests

from .config import Config, ConfigError, expand_tilde
from .fal import pricing_base_url
from .picker import invoke_picker, picker_first_token

TEXT_TO_IMAGE = "text-to-image"
IMAGE_TO_IMAGE = "image-to-image"
MODELS_TIMEOUT = 30


class ModelError(Exception):
    """Raised when the model catalogue cannot be fetched or matched."""


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def _text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key!r} is not a string")
    return value


@dataclass(frozen=True)
class ModelMetadata:
    """Descriptive fields FAL publishes for a model."""

    display_name: str = ""
    description: str = ""
    category: str = ""
    status: str = ""
    tags: tuple[str, ...] = ()
    model_url: str = ""
    license_type: str = ""
    updated_at: str = ""

    @classmethod
    def from_json(cls, data: Any) -> "ModelMetadata":
        """Build metadata from a decoded JSON object."""
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError("metadata is not an object")
        tags = data.get("tags") or []
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise ValueError("'tags' is not a list of strings")
        return cls(
            display_name=_text(data, "display_name"),
            description=_text(data, "description"),
            category=_text(data, "category"),
            status=_text(data, "status"),
            tags=tuple(tags),
            model_url=_text(data, "model_url"),
            license_type=_text(data, "license_type"),
            updated_at=_text(data, "updated_at"),
        )


@dataclass(frozen=True)
class ModelEntry:
    """One model in the FAL catalogue."""

    endpoint_id: str
    metadata: ModelMetadata = field(default_factory=ModelMetadata)

    @classmethod
    def from_json(cls, data: Any) -> "ModelEntry":
        """Build an entry from a decoded JSON object."""
        if not isinstance(data, Mapping):
            raise ValueError("model entry is not an object")
        return cls(
            endpoint_id=_text(data, "endpoint_id"),
            metadata=ModelMetadata.from_json(data.get("metadata")),
        )


def fetch_models(fal_key: str, category: str) -> list[ModelEntry]:
    """Return the active models in one category from FAL's /v1/models."""
    query = urlencode(sorted({"category": category, "status": "active", "limit": "100"}.items()))
    url = f"{pricing_base_url()}/v1/models?{query}"
    headers = {"Authorization": "Key " + fal_key} if fal_key else {}
    try:
        resp = requests.get(url, headers=headers, timeout=MODELS_TIMEOUT)
        body = resp.content
    except requests.RequestException as exc:
        raise ModelError(f"fetching /v1/models: {exc}") from exc

    if resp.status_code != 200:
        raise ModelError(
            f"FAL /v1/models returned HTTP {resp.status_code}: "
            f"{body.decode('utf-8', errors='replace')}"
        )

    try:
        doc = json.loads(body)
        if doc is None:
            return []
        if not isinstance(doc, dict):
            raise ValueError("expected a JSON object")
        entries = doc.get("models") or []
        if not isinstance(entries, list):
            raise ValueError("'models' is not a list")
        return [ModelEntry.from_json(entry) for entry in entries]
    except ValueError as exc:
        raise ModelError(f"parsing /v1/models response: {exc}") from exc


def fetch_all_image_models(fal_key: str) -> list[ModelEntry]:
    """Fetch both image categories in parallel, merged and sorted by id.

    Text-to-image entries win when an id appears in both. Fails only when
    both fetches fail.
    """

    def fetch(category: str) -> tuple[list[ModelEntry], Optional[ModelError]]:
        try:
            return fetch_models(fal_key, category), None
        except ModelError as exc:
            return [], exc

    with ThreadPoolExecutor(max_workers=2) as pool:
        (t2i, t2i_err), (i2i, i2i_err) = pool.map(fetch, (TEXT_TO_IMAGE, IMAGE_TO_IMAGE))

    if t2i_err is not None and i2i_err is not None:
        raise ModelError(
            f"fetching /v1/models: text-to-image: {t2i_err}; image-to-image: {i2i_err}"
        )

    merged: dict[str, ModelEntry] = {}
    for entry in [*t2i, *i2i]:
        merged.setdefault(entry.endpoint_id, entry)
    return sorted(merged.values(), key=lambda entry: entry.endpoint_id)


def resolve_model_by_substring(fal_key: str, pattern: str) -> str:
    """Return the single image model whose id matches the regex pattern."""
    if not pattern:
        raise ModelError("no model id or substring provided")
    models = fetch_all_image_models(fal_key)
    try:
        regex = re.compile(pattern)
    except re.error as exc:
        raise ModelError(f"model substring {_quote(pattern)} is not a valid regex: {exc}") from exc

    matches = [entry.endpoint_id for entry in models if regex.search(entry.endpoint_id)]
    if not matches:
        raise ModelError(f"no image model matches {_quote(pattern)}")
    if len(matches) > 1:
        raise ModelError(
            f"ambiguous: {len(matches)} models match {_quote(pattern)} (e.g. {matches[0]})"
        )
    return matches[0]


def reorder_preselect(models: Sequence[ModelEntry], preselect: str) -> list[ModelEntry]:
    """Move the first model matching the preselect regex to the front.

    The rest keep their order. An empty or invalid pattern (the latter with a
    warning), or no match, leaves the order unchanged.
    """
    ordered = list(models)
    if not preselect:
        return ordered
    try:
        regex = re.compile(preselect)
    except re.error as exc:
        print(
            f"Warning: model-picker.preselect {_quote(preselect)} is not a valid regex: "
            f"{exc} (proceeding without preselect)",
            file=sys.stderr,
        )
        return ordered
    for index, entry in enumerate(ordered):
        if regex.search(entry.endpoint_id):
            return [entry, *ordered[:index], *ordered[index + 1:]]
    return ordered


def write_model_details(temp_dir: str, model: ModelEntry) -> str:
    """Write a readable description of the model to <temp_dir>/<id>.md.

    Intermediate directories are created since ids contain slashes. Returns
    the path written.
    """
    path = os.path.normpath(
        os.path.join(os.fspath(temp_dir), model.endpoint_id.lstrip("/") + ".md")
    )
    os.makedirs(os.path.dirname(path), exist_ok=True)

    meta = model.metadata
    lines = []
    if meta.display_name:
        lines.append(meta.display_name + "\n")
        lines.append("-" * len(meta.display_name.encode("utf-8")) + "\n\n")
    lines.append(f"ID:       {model.endpoint_id}\n")
    if meta.category:
        lines.append(f"Category: {meta.category}\n")
    if meta.tags:
        lines.append(f"Tags:     {', '.join(meta.tags)}\n")
    if meta.license_type:
        lines.append(f"Licence:  {meta.license_type}\n")
    if meta.updated_at:
        lines.append(f"Updated:  {meta.updated_at}\n")
    if meta.description:
        lines.append(f"\n{meta.description}\n")
    docs = meta.model_url or f"https://fal.ai/models/{model.endpoint_id}"
    lines.append(f"\nDocs: {docs}\n")

    with open(path, "w", encoding="utf-8") as handle:
        handle.write("".join(lines))
    return path


def run_model_picker_flow(cfg: Config, fal_key: str, has_refs: bool) -> Optional[str]:
    """Let the user pick a FAL model; returns its endpoint id, or None if cancelled.

    The category is image-to-image when reference images are present,
    text-to-image otherwise.
    """
    picker = cfg.effective_picker()
    binary = picker_first_token(picker)
    if not binary:
        raise ModelError("picker is empty")
    try:
        expanded = expand_tilde(binary)
    except ConfigError as exc:
        raise ModelError(str(exc)) from exc
    if shutil.which(expanded) is None:
        raise ModelError(f"picker {_quote(binary)} not found on PATH")

    category = IMAGE_TO_IMAGE if has_refs else TEXT_TO_IMAGE
    models = fetch_models(fal_key, category)
    if not models:
        raise ModelError(f"FAL /v1/models returned no models for category={category}")

    pattern = cfg.interactive.model_picker.filter
    if pattern:
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            print(
                f"Warning: model-picker.filter {_quote(pattern)} is not a valid regex: "
                f"{exc} (proceeding without filter)",
                file=sys.stderr,
            )
        else:
            kept = [entry for entry in models if regex.search(entry.endpoint_id)]
            if not kept:
                raise ModelError(
                    f"no models match filter {_quote(pattern)} for category={category}"
                )
            models = kept

    models = reorder_preselect(models, cfg.interactive.model_picker.preselect)

    with tempfile.TemporaryDirectory(prefix="pix-model-info-") as temp_dir:
        for entry in models:
            try:
                write_model_details(temp_dir, entry)
            except OSError as exc:
                raise ModelError(f"writing model details: {exc}") from exc
        selected = invoke_picker(
            picker,
            [entry.endpoint_id for entry in models],
            f"--header='Select a FAL model ({category})'",
            f"--preview='cat {temp_dir}/{{}}.md'",
            "--preview-window=right:60%:wrap",
        )

    if selected is None:
        return None
    return selected.strip() or None