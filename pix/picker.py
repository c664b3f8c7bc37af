"""External picker invocation and the saved-prompt selection flow."""

from __future__ import annotations

import json
import os
import re
import shutil
import stat
import subprocess
import sys
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Union

from .config import Config, ConfigError, expand_tilde

PathLike = Union[str, "os.PathLike[str]"]

# Show only the basename in the list; {} in --preview still expands to the
# full path, so the preview pane can cat the file.
_PROMPT_FZF_OPTS = (
    "--header='Select a saved prompt'",
    "--delimiter=/",
    "--with-nth=-1",
    "--preview='cat {}'",
    "--preview-window=right:60%:wrap",
)


class PickerError(Exception):
    """Raised when the picker or the saved-prompt flow cannot run."""


@dataclass(frozen=True)
class LoadPromptResult:
    """Outcome of the saved-prompt flow."""

    prompt: str = ""
    cancelled: bool = False


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def shell_quote(value: str) -> str:
    """Wrap a string in single quotes so sh treats it as one literal word."""
    return "'" + value.replace("'", "'\\''") + "'"


def picker_first_token(picker_cmd: str) -> str:
    """Return the first whitespace-separated word of the picker command."""
    words = picker_cmd.split()
    return words[0] if words else ""


def invoke_picker(picker_cmd: str, candidates: Iterable[str], *args: str) -> Optional[str]:
    """Run the picker with one candidate per line on its stdin.

    Extra options in ``args`` are appended only when the picker is fzf; each
    must already be a single shell word. Returns the selected line, or None
    when the picker exits non-zero or selects nothing.
    """
    command = picker_cmd
    if args and picker_first_token(picker_cmd) == "fzf":
        command = f"{picker_cmd} {' '.join(args)}"

    data = "".join(f"{candidate}\n" for candidate in candidates).encode("utf-8")
    try:
        proc = subprocess.Popen(
            ["sh", "-c", command],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
        )
    except OSError as exc:
        raise PickerError(f"starting picker: {exc}") from exc

    try:
        out, _ = proc.communicate(data)
    except OSError as exc:
        proc.kill()
        proc.wait()
        raise PickerError(f"picker invocation failed: {exc}") from exc

    if proc.returncode != 0:
        return None
    selected = out.decode("utf-8", errors="replace").strip()
    return selected or None


def is_stdin_tty() -> bool:
    """Return True if stdin is a terminal (or PIX_TEST_TTY=1 forces it)."""
    if os.environ.get("PIX_TEST_TTY") == "1":
        return True
    try:
        return sys.stdin.isatty()
    except (AttributeError, ValueError, OSError):
        return False


def _extension(name: str) -> str:
    dot = name.rfind(".")
    return name[dot:] if dot >= 0 else ""


def _walk_markdown(directory: str) -> Iterator[str]:
    with os.scandir(directory) as entries:
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                # Hidden directories such as .git are skipped.
                if not entry.name.startswith("."):
                    yield from _walk_markdown(entry.path)
            elif entry.is_file(follow_symlinks=False) and _extension(entry.name).lower() == ".md":
                yield entry.path


def list_prompt_files(directory: PathLike) -> list[str]:
    """Return every .md file under the directory, recursively, sorted."""
    root = os.fspath(directory)
    try:
        info = os.stat(root)
    except OSError as exc:
        raise PickerError(f"load-prompt.path {root}: {exc}") from exc
    if not stat.S_ISDIR(info.st_mode):
        raise PickerError(f"load-prompt.path {root} is not a directory")
    try:
        return sorted(_walk_markdown(root))
    except OSError as exc:
        raise PickerError(f"walking load-prompt directory {root}: {exc}") from exc


def _expand(path: str) -> str:
    try:
        return expand_tilde(path)
    except ConfigError as exc:
        raise PickerError(str(exc)) from exc


def run_load_prompt_flow(cfg: Config, quiet: bool) -> LoadPromptResult:
    """Let the user pick a saved prompt and optionally append a line to it."""
    prompt_dir = cfg.interactive.load_prompt.path
    if not prompt_dir:
        raise PickerError("load-prompt.path is not configured in config.yaml")

    picker = cfg.effective_picker()
    binary = picker_first_token(picker)
    if not binary:
        raise PickerError("load-prompt.picker is empty")
    if shutil.which(_expand(binary)) is None:
        raise PickerError(f"load-prompt picker {_quote(binary)} not found on PATH")

    files = list_prompt_files(_expand(prompt_dir))
    if not files:
        raise PickerError(
            f"load-prompt directory {prompt_dir} contains no prompt files (empty)"
        )

    pattern = cfg.interactive.prompt_picker.filter
    if pattern:
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            print(
                f"Warning: prompt-picker.filter {_quote(pattern)} is not a valid regex: "
                f"{exc} (proceeding without filter)",
                file=sys.stderr,
            )
        else:
            kept = [name for name in files if regex.search(name)]
            if not kept:
                raise PickerError(
                    f"no prompts match filter {_quote(pattern)} (directory: {prompt_dir})"
                )
            files = kept

    selected = invoke_picker(picker, files, *_PROMPT_FZF_OPTS)
    if selected is None:
        return LoadPromptResult(cancelled=True)

    try:
        with open(selected, encoding="utf-8", errors="replace") as handle:
            base = handle.read().rstrip(" \t\r\n")
    except OSError as exc:
        raise PickerError(f"reading selected prompt {selected}: {exc}") from exc

    if not quiet:
        print("PROMPT: (type to add, Enter to send, Ctrl-C to cancel)", file=sys.stderr)
        print("", file=sys.stderr)
        print(base, file=sys.stderr)
        print("", file=sys.stderr)
        print("⭐ ", end="", file=sys.stderr, flush=True)

    try:
        addition = sys.stdin.readline().strip()
    except OSError as exc:
        raise PickerError(f"reading additional text from stdin: {exc}") from exc

    final = f"{base}\n\n{addition}" if addition else base
    return LoadPromptResult(prompt=final)