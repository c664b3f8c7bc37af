"""The cost subcommand: look up FAL pricing without generating an image."""

from __future__ import annotations

import json
import sys
from typing import Sequence

import requests

from .config import Config, ConfigError, load_config, resolve_conf_dir, resolve_fal_key
from .fal import FalError, fetch_historical_estimate, fetch_unit_price, pricing_base_url
from .models import ModelError, resolve_model_by_substring, run_model_picker_flow
from .picker import PickerError, is_stdin_tty

USAGE = """Usage: pix cost [--dry-run] [MODEL]

Show FAL pricing for a model without generating an image.

MODEL is a full endpoint id (e.g. xai/grok-imagine-image). Without it the
'model' from config.yaml is used; a substring or regex there is resolved
against the live catalogue of image models.

Options:
  --dry-run   show the requests that would be made, without calling FAL
  -h, --help  show this help
"""


def _err(message: str) -> None:
    print(message, file=sys.stderr)


def _usage_error(message: str) -> int:
    """Report a command-line mistake followed by the usage text; return exit code 2."""
    sys.stderr.write(f"{message}\n{USAGE}")
    return 2


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def resolve_cost_endpoint(cfg: Config, positional: str, fal_key: str) -> str:
    """Decide which endpoint to price.

    An explicit argument wins; a configured model containing '/' is used
    verbatim; otherwise it is matched against the catalogue, falling back to
    the model picker on a terminal.
    """
    if positional:
        return positional

    if not cfg.model:
        raise ModelError(
            "no model: set 'model:' in config.yaml or pass a model id as an argument"
        )

    if "/" in cfg.model:
        return cfg.model

    try:
        return resolve_model_by_substring(fal_key, cfg.model)
    except ModelError as exc:
        resolution_error = exc

    if is_stdin_tty():
        try:
            picked = run_model_picker_flow(cfg, fal_key, False)
        except (ModelError, PickerError) as exc:
            raise ModelError(
                f"model picker failed: {exc} (after substring resolution: {resolution_error})"
            ) from exc
        if picked is None:
            raise ModelError("model picker cancelled")
        return picked

    raise resolution_error


def run_cost(args: Sequence[str], quiet: bool) -> int:
    """Run the cost subcommand and return the process exit code."""
    dry_run = False
    positional = ""
    for arg in args:
        if arg == "--dry-run":
            dry_run = True
        elif arg.startswith("-"):
            return _usage_error(f"Unknown flag: {arg}")
        elif positional:
            return _usage_error(
                "Error: only one model argument is accepted "
                f"(got {_quote(positional)} and {_quote(arg)})"
            )
        else:
            positional = arg

    if quiet:
        return 0

    try:
        conf_dir = resolve_conf_dir()
        cfg = load_config(conf_dir / "config.yaml")
    except ConfigError as exc:
        _err(f"Error: {exc}")
        return 1

    pricing_base = pricing_base_url()

    if dry_run:
        # No substring resolution here: a dry run must not contact FAL.
        model = positional or cfg.model
        _err(f"Model: {model}")
        _err(f"Would GET {pricing_base}/v1/models/pricing?endpoint_id={model}")
        _err(
            f"Would POST {pricing_base}/v1/models/pricing/estimate "
            f"(historical_api_price for {model})"
        )
        _err("(dry run -- no API calls made)")
        return 0

    try:
        fal_key = resolve_fal_key(cfg, conf_dir)
        endpoint = resolve_cost_endpoint(cfg, positional, fal_key)
    except (ConfigError, ModelError) as exc:
        _err(f"Error: {exc}")
        return 1

    _err(f"Model: {endpoint}")

    with requests.Session() as session:
        try:
            price, unit = fetch_unit_price(session, pricing_base, endpoint, fal_key)
        except FalError as exc:
            _err(f"Unit price: not available ({exc})")
        else:
            _err(f"Unit price: ${price:.2f} per {unit} (source: FAL API)")

        try:
            estimate = fetch_historical_estimate(session, pricing_base, endpoint, fal_key)
        except FalError:
            _err("Estimated cost: not available (no usage history for this model)")
        else:
            _err(
                f"Estimated cost: ${estimate:.4f} per call based on usage history "
                "(source: FAL API)"
            )

    return 0