"""The models subcommand: list FAL image-model endpoint ids."""

from __future__ import annotations

import json
import re
import sys
from typing import Sequence

from .config import ConfigError, load_config, resolve_conf_dir, resolve_fal_key
from .models import ModelError, fetch_all_image_models

USAGE = """Usage: pix models [FILTER]

List active FAL image models (text-to-image and image-to-image), one
endpoint id per line on stdout. FILTER is a regular expression matched
against the endpoint id.

Options:
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


def run_models_list(args: Sequence[str], quiet: bool) -> int:
    """Run the models subcommand and return the process exit code."""
    help_requested = False
    filter_arg = ""
    for arg in args:
        if arg in ("-h", "--help"):
            help_requested = True
        elif arg.startswith("-"):
            return _usage_error(f"Unknown flag: {arg}")
        elif filter_arg:
            return _usage_error(
                "Error: only one filter argument is accepted "
                f"(got {_quote(filter_arg)} and {_quote(arg)})"
            )
        else:
            filter_arg = arg

    if help_requested:
        sys.stderr.write(USAGE)
        return 0

    try:
        conf_dir = resolve_conf_dir()
        cfg = load_config(conf_dir / "config.yaml")
        fal_key = resolve_fal_key(cfg, conf_dir)
        models = fetch_all_image_models(fal_key)
    except (ConfigError, ModelError) as exc:
        _err(f"Error: {exc}")
        return 1

    regex = None
    if filter_arg:
        try:
            regex = re.compile(filter_arg)
        except re.error as exc:
            _err(f"Error: filter {_quote(filter_arg)} is not a valid regex: {exc}")
            return 2

    shown = [m.endpoint_id for m in models if regex is None or regex.search(m.endpoint_id)]
    for endpoint_id in shown:
        print(endpoint_id)

    if not shown and filter_arg:
        _err(f"(no image models match {_quote(filter_arg)})")
        return 1
    return 0