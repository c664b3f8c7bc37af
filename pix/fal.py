"""HTTP calls to FAL: image generation, unit pricing and cost estimates."""

from __future__ import annotations

import json
import os
import sys
from typing import Any, Mapping

import requests

from .fal_errors import format_fal_error_body

DEFAULT_FAL_BASE_URL = "https://fal.run"
DEFAULT_PRICING_BASE_URL = "https://api.fal.ai"
GENERATE_TIMEOUT = 120
PRICING_TIMEOUT = 30


class FalError(Exception):
    """Raised when a FAL API call fails."""


def fal_base_url() -> str:
    """Return the generation base URL, honouring FAL_BASE_URL."""
    return os.environ.get("FAL_BASE_URL") or DEFAULT_FAL_BASE_URL


def pricing_base_url() -> str:
    """Return the pricing base URL; FAL_BASE_URL overrides it too."""
    base = fal_base_url()
    return DEFAULT_PRICING_BASE_URL if base == DEFAULT_FAL_BASE_URL else base


def _auth(fal_key: str) -> dict[str, str]:
    return {"Authorization": "Key " + fal_key}


def _number(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise FalError(f"expected a number, got {value!r}")
    return float(value)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise FalError(f"expected a string, got {value!r}")
    return value


def _json_object(body: bytes) -> Mapping[str, Any]:
    try:
        doc = json.loads(body)
    except ValueError as exc:
        raise FalError(str(exc)) from exc
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise FalError("expected a JSON object")
    return doc


def generate_image(
    session: requests.Session,
    base_url: str,
    endpoint: str,
    payload: Mapping[str, Any],
    fal_key: str,
) -> tuple[bytes, str]:
    """POST the payload to the endpoint and download the first image.

    Returns the image bytes and the download's Content-Type.
    """
    url = f"{base_url}/{endpoint}"
    try:
        resp = session.post(
            url,
            data=json.dumps(payload),
            headers={"Content-Type": "application/json", **_auth(fal_key)},
            timeout=GENERATE_TIMEOUT,
        )
    except requests.RequestException as exc:
        raise FalError(f"FAL API request failed: {exc}") from exc

    if resp.status_code != 200:
        raise FalError(
            f"FAL API error (HTTP {resp.status_code}): {format_fal_error_body(resp.content)}"
        )

    try:
        doc = _json_object(resp.content)
        images = doc.get("images") or []
        if not isinstance(images, list):
            raise FalError("'images' is not a list")
        if images and not isinstance(images[0], dict):
            raise FalError("image entry is not an object")
        image_url = _text(images[0].get("url")) if images else ""
    except FalError as exc:
        raise FalError(f"failed to parse FAL API response: {exc}") from exc

    if not images:
        raise FalError("FAL API returned no images")

    try:
        image_resp = session.get(image_url, timeout=GENERATE_TIMEOUT)
        data = image_resp.content
    except requests.RequestException as exc:
        raise FalError(f"failed to download image: {exc}") from exc

    return data, image_resp.headers.get("Content-Type", "")


def fetch_unit_price(
    session: requests.Session, pricing_base: str, model: str, fal_key: str
) -> tuple[float, str]:
    """Return the unit price and unit for the model from FAL pricing."""
    url = f"{pricing_base}/v1/models/pricing?endpoint_id={model}"
    try:
        resp = session.get(url, headers=_auth(fal_key), timeout=PRICING_TIMEOUT)
    except requests.RequestException as exc:
        raise FalError(str(exc)) from exc

    if resp.status_code != 200:
        raise FalError(f"HTTP {resp.status_code}: {format_fal_error_body(resp.content)}")

    doc = _json_object(resp.content)
    prices = doc.get("prices") or []
    if not isinstance(prices, list):
        raise FalError("'prices' is not a list")
    if not prices:
        raise FalError("no pricing data")
    first = prices[0] or {}
    if not isinstance(first, dict):
        raise FalError("price entry is not an object")
    return _number(first.get("unit_price")), _text(first.get("unit"))


def fetch_historical_estimate(
    session: requests.Session, pricing_base: str, model: str, fal_key: str
) -> float:
    """Return FAL's per-call cost estimate for the model from usage history."""
    url = f"{pricing_base}/v1/models/pricing/estimate"
    body = {
        "estimate_type": "historical_api_price",
        "endpoints": {model: {"call_quantity": 1}},
    }
    try:
        resp = session.post(
            url,
            data=json.dumps(body),
            headers={"Content-Type": "application/json", **_auth(fal_key)},
            timeout=PRICING_TIMEOUT,
        )
    except requests.RequestException as exc:
        raise FalError(str(exc)) from exc

    if resp.status_code != 200:
        raise FalError(f"HTTP {resp.status_code}")

    return _number(_json_object(resp.content).get("total_cost"))


def report_cost(session: requests.Session, model: str, fal_key: str) -> None:
    """Print the model's unit price to stderr; failures are silently ignored."""
    try:
        price, unit = fetch_unit_price(session, pricing_base_url(), model, fal_key)
    except FalError:
        return
    print(
        f"Cost: ${price:.2f} (unit: {unit}) for model {model} (source: FAL API)",
        file=sys.stderr,
    )