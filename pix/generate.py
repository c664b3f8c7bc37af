"""The generate subcommand: create or edit an image through FAL."""

from __future__ import annotations

import base64
import json
import os
import shutil
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import requests

from .config import ConfigError, load_config, resolve_conf_dir, resolve_fal_key
from .fal import FalError, fal_base_url, generate_image, report_cost
from .handlers import ModelHandler, edit_endpoint_for, handler_for
from .models import ModelError, run_model_picker_flow
from .picker import PickerError, is_stdin_tty, run_load_prompt_flow
from .sizing import (
    SizeError,
    infer_aspect_ratio_from_ref,
    output_format_from_path,
    parse_size_flag,
)

MAX_REF_IMAGES = 3
DEFAULT_ASPECT_RATIO = "1:1"
REF_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif")

_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
}

_CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


@dataclass(frozen=True)
class WriteResult:
    """Where an image was written and whether it was converted."""

    path: str
    converted: bool = False
    from_fmt: str = ""
    to_fmt: str = ""


@dataclass
class _Options:
    dry_run: bool = False
    preview: bool = False
    load_prompt: bool = False
    no_load_prompt: bool = False
    pick_model: bool = False
    no_pick_model: bool = False
    size: str = ""
    positionals: list[str] = field(default_factory=list)


class _UsageError(Exception):
    def __init__(self, message: str = "", show_usage: bool = True) -> None:
        super().__init__(message)
        self.message = message
        self.show_usage = show_usage


def _err(message: str) -> None:
    print(message, file=sys.stderr)


def _print_usage(subcommand_name: str) -> None:
    _err(
        f"Usage: pix {subcommand_name} [--dry-run] [-p|--preview] [--size W:H|WIDTHxHEIGHT]\n"
        "       [--load-prompt|--no-load-prompt] [--pick-model|--no-pick-model]\n"
        "       [REFERENCE ...] OUTPUT\n"
        "The prompt is read from stdin."
    )


def _extension(path: str) -> str:
    name = os.path.basename(path)
    dot = name.rfind(".")
    return name[dot:] if dot >= 0 else ""


def _parse_args(args: Sequence[str]) -> _Options:
    opts = _Options()
    remaining = iter(args)
    for arg in remaining:
        if arg == "--dry-run":
            opts.dry_run = True
        elif arg in ("-p", "--preview"):
            opts.preview = True
        elif arg == "--load-prompt":
            opts.load_prompt = True
        elif arg == "--no-load-prompt":
            opts.no_load_prompt = True
        elif arg == "--pick-model":
            opts.pick_model = True
        elif arg == "--no-pick-model":
            opts.no_pick_model = True
        elif arg == "--size":
            value = next(remaining, None)
            if value is None:
                raise _UsageError(
                    "Error: --size requires a value (e.g. 16:9 or 1024x1024)", show_usage=False
                )
            opts.size = value
        elif arg.startswith("--size="):
            opts.size = arg[len("--size="):]
        elif arg.startswith("-"):
            raise _UsageError(f"Unknown flag: {arg}")
        else:
            opts.positionals.append(arg)
    return opts


def read_prompt() -> str:
    """Read the prompt from stdin: one line on a terminal, everything when piped."""
    stdin = sys.stdin
    try:
        interactive = stdin.isatty()
    except (AttributeError, ValueError, OSError):
        interactive = False
    if interactive:
        print("Interactive terminal detected. Type your prompt and press Enter:", file=sys.stderr)
        print("> ", end="", file=sys.stderr, flush=True)
        return stdin.readline().strip()
    return stdin.read().strip()


def validate_ref_image(path: str) -> None:
    """Check that a reference image exists, is a file and has an image extension."""
    try:
        os.stat(path)
    except OSError as exc:
        raise ValueError(f"reference image {path}: {exc}") from exc
    if os.path.isdir(path):
        raise ValueError(f"reference image {path} is a directory")
    ext = _extension(path).lower()
    if ext not in REF_EXTENSIONS:
        raise ValueError(
            f"reference image {path}: unrecognised extension {ext} "
            "(supported: .jpg, .jpeg, .png, .webp, .gif)"
        )


def mime_from_ext(ext: str) -> str:
    """Map a file extension (with dot) to its MIME type."""
    return _MIME_TYPES.get(ext.lower(), "application/octet-stream")


def ref_to_data_uri(path: str) -> str:
    """Read an image file and return it as a base64 data URI."""
    try:
        with open(path, "rb") as handle:
            data = handle.read()
    except OSError as exc:
        raise OSError(f"reading reference {path}: {exc}") from exc
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_from_ext(_extension(path))};base64,{encoded}"


def default_preview_command() -> str:
    """Return the platform's usual image viewer command."""
    if sys.platform == "darwin":
        return "open"
    if sys.platform.startswith("win"):
        return 'cmd /c start ""'
    return "xdg-open"


def ext_from_content_type(content_type: str) -> str:
    """Map a Content-Type to a file extension (with dot); JPEG when unknown."""
    media = content_type.strip().lower().split(";", 1)[0]
    return _CONTENT_TYPE_EXTENSIONS.get(media, ".jpg")


def convert_with_magick(image_data: bytes, src_ext: str, output_path: str) -> None:
    """Convert image data to the format of output_path with ImageMagick."""
    magick = shutil.which("magick")
    if magick is None:
        api_format = src_ext.lstrip(".")
        user_format = _extension(output_path).lstrip(".")
        raise RuntimeError(
            f"API returned {api_format} but you requested {user_format}; "
            "install ImageMagick (magick) to convert automatically"
        )

    try:
        with tempfile.NamedTemporaryFile(prefix="pix-", suffix=src_ext, delete=False) as tmp:
            tmp_path = tmp.name
            tmp.write(image_data)
    except OSError as exc:
        raise RuntimeError(f"failed to write temp file: {exc}") from exc

    try:
        proc = subprocess.run(
            [magick, tmp_path, output_path],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
    except OSError as exc:
        raise RuntimeError(f"magick conversion failed: ({exc})") from exc
    finally:
        try:
            os.remove(tmp_path)
        except OSError:
            pass

    if proc.returncode != 0:
        output = proc.stdout.decode("utf-8", errors="replace").strip()
        raise RuntimeError(
            f"magick conversion failed: {output} (exit status {proc.returncode})"
        )


def write_image(image_data: bytes, content_type: str, output_path: str) -> WriteResult:
    """Write the image, adding or converting the extension as needed.

    No extension: the API format's extension is appended. A matching
    extension is written as-is. A different one is converted with magick.
    """
    api_ext = ext_from_content_type(content_type)
    user_ext = _extension(output_path)

    if not user_ext or user_ext.lower() == api_ext.lower():
        if not user_ext:
            output_path += api_ext
        try:
            with open(output_path, "wb") as handle:
                handle.write(image_data)
        except OSError as exc:
            raise OSError(f"writing output file: {exc}") from exc
        return WriteResult(path=output_path)

    convert_with_magick(image_data, api_ext, output_path)
    return WriteResult(
        path=output_path,
        converted=True,
        from_fmt=api_ext.lstrip("."),
        to_fmt=user_ext.lstrip("."),
    )


def _finish_payload(
    payload: dict[str, Any], handler: ModelHandler, aspect_ratio: str, output_path: str
) -> None:
    handler.apply_sizing(payload, aspect_ratio)
    # One output file, so one image.
    payload["num_images"] = 1
    output_format = output_format_from_path(output_path)
    if output_format:
        payload["output_format"] = output_format
    payload.update(handler.required_fields)
    payload.update(handler.safety_defaults)


def run_generate(args: Sequence[str], quiet: bool, subcommand_name: str) -> int:
    """Run the generate subcommand and return the process exit code."""
    try:
        opts = _parse_args(args)
    except _UsageError as exc:
        if exc.message:
            _err(exc.message)
        if exc.show_usage:
            _print_usage(subcommand_name)
        return 2

    if not opts.positionals:
        _print_usage(subcommand_name)
        return 2

    if quiet and opts.dry_run:
        _err("Error: --quiet and --dry-run cannot be used together")
        return 2

    *refs, output_path = opts.positionals

    if len(refs) > MAX_REF_IMAGES:
        _err(f"Error: maximum {MAX_REF_IMAGES} reference images supported (got {len(refs)})")
        return 1

    try:
        for ref in refs:
            validate_ref_image(ref)

        conf_dir = resolve_conf_dir()
        cfg = load_config(conf_dir / "config.yaml")
        fal_key = resolve_fal_key(cfg, conf_dir)
        base_url = fal_base_url()

        # Pick the model before the prompt: the tool frames what to feed it.
        picked_endpoint: Optional[str] = None
        use_pick_model = not opts.no_pick_model and (
            opts.pick_model or cfg.interactive.model_picker.always
        )
        if use_pick_model and is_stdin_tty():
            picked_endpoint = run_model_picker_flow(cfg, fal_key, bool(refs))

        prompt = ""
        prompt_picked = False
        use_load_prompt = not opts.no_load_prompt and (
            opts.load_prompt or cfg.interactive.prompt_picker.always
        )
        if use_load_prompt and is_stdin_tty():
            result = run_load_prompt_flow(cfg, quiet)
            if not result.cancelled:
                prompt = result.prompt
                prompt_picked = True
    except (ConfigError, ModelError, PickerError, ValueError, OSError) as exc:
        _err(f"Error: {exc}")
        return 1

    if not prompt_picked:
        try:
            prompt = read_prompt()
        except (OSError, ValueError) as exc:
            _err(f"Error reading stdin: {exc}")
            return 1
        if not prompt:
            _err("Error: no prompt provided on stdin")
            return 1

    endpoint = picked_endpoint or cfg.model
    payload: dict[str, Any] = {"prompt": prompt}
    if refs:
        if not picked_endpoint:
            endpoint = edit_endpoint_for(cfg.model)
        try:
            uris = [ref_to_data_uri(ref) for ref in refs]
        except OSError as exc:
            _err(f"Error: {exc}")
            return 1
        key, value = handler_for(endpoint).ref_payload(uris, quiet)
        payload[key] = value
    elif not picked_endpoint:
        suffix = handler_for(cfg.model).t2i_endpoint_suffix
        if suffix:
            endpoint = cfg.model + suffix

    handler = handler_for(endpoint)

    aspect_ratio = ""
    if opts.size:
        try:
            aspect_ratio = parse_size_flag(opts.size)
        except SizeError as exc:
            _err(f"Error: {exc}")
            return 2
    elif refs:
        aspect_ratio = infer_aspect_ratio_from_ref(refs[0])
    aspect_ratio = aspect_ratio or DEFAULT_ASPECT_RATIO

    _finish_payload(payload, handler, aspect_ratio, output_path)

    if opts.dry_run:
        display: dict[str, Any] = {"prompt": prompt}
        if refs:
            key, value = handler.ref_payload([f"<base64 of {ref}>" for ref in refs], True)
            display[key] = value
        _finish_payload(display, handler, aspect_ratio, output_path)
        _err(f"POST {base_url}/{endpoint}")
        _err(json.dumps(display, indent=2, sort_keys=True, ensure_ascii=False))
        _err(f"Output: {output_path}")
        _err("(dry run -- no API call made)")
        return 0

    preview_cmd = cfg.preview_command
    if opts.preview and not preview_cmd:
        preview_cmd = default_preview_command()

    if not quiet:
        for ref in refs:
            _err(f"⚠️  Using {ref} as reference image (will be sent to FAL)")

    with requests.Session() as session:
        try:
            image_data, content_type = generate_image(
                session, base_url, endpoint, payload, fal_key
            )
            written = write_image(image_data, content_type, output_path)
        except (FalError, OSError, RuntimeError) as exc:
            _err(f"Error: {exc}")
            return 1

        if not quiet:
            report_cost(session, cfg.model, fal_key)
            if written.converted:
                _err(f"Wrote {written.path} (converted {written.from_fmt} to {written.to_fmt})")
            else:
                _err(f"Wrote {written.path}")

    if opts.preview:
        try:
            proc = subprocess.run(["sh", "-c", preview_cmd + ' "$1"', "--", written.path])
        except OSError as exc:
            _err(f"Error running preview command: {exc}")
            return 1
        if proc.returncode != 0:
            _err(f"Error running preview command: exit status {proc.returncode}")
            return 1

    return 0