"""Command-line entry point: global flags and subcommand dispatch."""

from __future__ import annotations

import sys
from typing import Optional, Sequence

from . import cost, models_list
from .cost import run_cost
from .generate import run_generate
from .models_list import run_models_list

VERSION = "0.3.0"

HELP_FLAGS = ("-h", "--help")

_PIX_HELP = """Usage: pix [-q|--quiet] COMMAND [ARGS...]
       pix --version
       pix -h|--help

Generate and edit images with FAL.

Commands:
  generate, gen   generate an image from a prompt on stdin
  cost            show FAL pricing for a model
  models          list FAL image models

Global options:
  -q, --quiet     suppress status output
  --version       print the version
  -h, --help      show help (after a command: that command's help)
"""

_GENERATE_HELP = """Usage: pix generate [--dry-run] [-p|--preview] [--size W:H|WIDTHxHEIGHT]
                    [--load-prompt|--no-load-prompt] [--pick-model|--no-pick-model]
                    [REFERENCE ...] OUTPUT

Generate an image from the prompt on stdin and write it to OUTPUT. Up to three
reference images may precede OUTPUT to edit instead of generate.

Options:
  --dry-run          show the request that would be sent
  -p, --preview      open the result in the preview command
  --size VALUE       aspect ratio (16:9) or pixel size (1024x1024)
  --load-prompt      pick a saved prompt (needs a terminal)
  --no-load-prompt   never pick a saved prompt
  --pick-model       pick the model interactively (needs a terminal)
  --no-pick-model    never pick the model interactively
  -h, --help         show this help
"""

_HELP = {
    "pix": _PIX_HELP,
    "generate": _GENERATE_HELP,
    "cost": cost.USAGE,
    "models": models_list.USAGE,
}

_GENERATE_NAMES = ("generate", "gen")


def _print_help(name: str) -> None:
    print(_HELP[name], end="", file=sys.stderr)


def _err(message: str) -> None:
    print(message, file=sys.stderr)


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Parse the command line, run the subcommand and return its exit code."""
    args = list(sys.argv[1:] if argv is None else argv)

    if not args:
        _print_help("pix")
        return 0

    # Global flags are taken from any position; -h/--help is top-level only
    # before the subcommand. Everything else goes to the subcommand.
    quiet = False
    help_top_level = False
    version_requested = False
    subcommand = ""
    sub_args: list[str] = []

    for arg in args:
        if not arg.startswith("-"):
            if not subcommand:
                subcommand = arg
            else:
                sub_args.append(arg)
        elif arg in ("-q", "--quiet"):
            quiet = True
        elif arg == "--version":
            version_requested = True
        elif arg in HELP_FLAGS and not subcommand:
            help_top_level = True
        else:
            sub_args.append(arg)

    help_subcommand = any(a in HELP_FLAGS for a in sub_args)
    non_help_args = [a for a in sub_args if a not in HELP_FLAGS]

    if help_top_level:
        if version_requested or quiet or subcommand or sub_args:
            _err("Error: --help cannot be combined with other flags or arguments")
            _print_help("pix")
            return 2
        _print_help("pix")
        return 0

    if help_subcommand:
        if version_requested or quiet or non_help_args:
            _err("Error: --help cannot be combined with other flags or arguments")
            if subcommand in _GENERATE_NAMES:
                _print_help("generate")
            elif subcommand == "cost":
                _print_help("cost")
            else:
                _print_help("pix")
            return 2
        if subcommand in _GENERATE_NAMES:
            _print_help("generate")
        elif subcommand in ("cost", "models"):
            _print_help(subcommand)
        else:
            _err(f"Unknown subcommand: {subcommand}")
            _print_help("pix")
            return 2
        return 0

    if version_requested:
        if quiet or subcommand or sub_args:
            _err("Error: --version cannot be combined with other flags or arguments")
            _print_help("pix")
            return 2
        print(f"pix {VERSION}")
        return 0

    if not subcommand:
        if sub_args:
            _err(f"Unknown flag: {sub_args[0]}")
        _print_help("pix")
        return 2

    if subcommand in _GENERATE_NAMES:
        return run_generate(sub_args, quiet, subcommand)
    if subcommand == "cost":
        return run_cost(sub_args, quiet)
    if subcommand == "models":
        return run_models_list(sub_args, quiet)

    _err(f"Unknown subcommand: {subcommand}")
    _print_help("pix")
    return 2


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Run the command line and exit with its status."""
    sys.exit(run(argv))