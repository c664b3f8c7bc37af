"""Configuration loading and FAL API key resolution."""

from __future__ import annotations

import os
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Union

import yaml

PathLike = Union[str, "os.PathLike[str]"]

DEFAULT_PICKER = "fzf"


class ConfigError(Exception):
    """Raised when configuration or the API key cannot be resolved."""


@dataclass
class ApiKeyConfig:
    """How to obtain one provider's API key."""

    command: str = ""
    file: str = ""


@dataclass
class LoadPromptConfig:
    """Where saved prompt files live."""

    path: str = ""


@dataclass
class PromptPickerConfig:
    """Behaviour of the saved-prompt picker."""

    always: bool = False
    filter: str = ""


@dataclass
class ModelPickerConfig:
    """Behaviour of the model picker."""

    always: bool = False
    filter: str = ""
    preselect: str = ""


@dataclass
class InteractiveConfig:
    """Settings that only apply when stdin is a terminal."""

    picker: str = ""
    prompt_picker: PromptPickerConfig = field(default_factory=PromptPickerConfig)
    load_prompt: LoadPromptConfig = field(default_factory=LoadPromptConfig)
    model_picker: ModelPickerConfig = field(default_factory=ModelPickerConfig)


@dataclass
class Config:
    """The contents of config.yaml."""

    model: str = ""
    api_keys: dict[str, ApiKeyConfig] = field(default_factory=dict)
    preview_command: str = ""
    interactive: InteractiveConfig = field(default_factory=InteractiveConfig)

    def effective_picker(self) -> str:
        """Return the picker command, defaulting to fzf."""
        return self.interactive.picker or DEFAULT_PICKER


def _mapping(data: Mapping[str, Any], key: str, where: str) -> Mapping[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"invalid config.yaml: '{where}' must be a mapping")
    return value


def _string(data: Mapping[str, Any], key: str, where: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ConfigError(f"invalid config.yaml: '{where}' must be a string")


def _boolean(data: Mapping[str, Any], key: str, where: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    raise ConfigError(f"invalid config.yaml: '{where}' must be true or false")


def _parse_config(data: Mapping[str, Any]) -> Config:
    api_keys = {}
    for name, entry in _mapping(data, "api-keys", "api-keys").items():
        if entry is None:
            entry = {}
        if not isinstance(entry, Mapping):
            raise ConfigError(f"invalid config.yaml: 'api-keys.{name}' must be a mapping")
        api_keys[str(name)] = ApiKeyConfig(
            command=_string(entry, "command", f"api-keys.{name}.command"),
            file=_string(entry, "file", f"api-keys.{name}.file"),
        )

    inter = _mapping(data, "interactive", "interactive")
    pp = _mapping(inter, "prompt-picker", "interactive.prompt-picker")
    lp = _mapping(inter, "load-prompt", "interactive.load-prompt")
    mp = _mapping(inter, "model-picker", "interactive.model-picker")

    interactive = InteractiveConfig(
        picker=_string(inter, "picker", "interactive.picker"),
        prompt_picker=PromptPickerConfig(
            always=_boolean(pp, "always", "interactive.prompt-picker.always"),
            filter=_string(pp, "filter", "interactive.prompt-picker.filter"),
        ),
        load_prompt=LoadPromptConfig(
            path=_string(lp, "path", "interactive.load-prompt.path"),
        ),
        model_picker=ModelPickerConfig(
            always=_boolean(mp, "always", "interactive.model-picker.always"),
            filter=_string(mp, "filter", "interactive.model-picker.filter"),
            preselect=_string(mp, "preselect", "interactive.model-picker.preselect"),
        ),
    )
    return Config(
        model=_string(data, "model", "model"),
        api_keys=api_keys,
        preview_command=_string(data, "preview-command", "preview-command"),
        interactive=interactive,
    )


def load_config(path: PathLike) -> Config:
    """Read and validate config.yaml."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(
            f"cannot read config.yaml: {exc} (expected config at {path})"
        ) from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid config.yaml: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigError("invalid config.yaml: top level must be a mapping")

    cfg = _parse_config(data)
    if not cfg.model:
        raise ConfigError("config.yaml: 'model' field is required")
    return cfg


def has_config_files(directory: PathLike) -> bool:
    """Return True if the directory holds config.yaml or .env."""
    base = Path(directory)
    return (base / "config.yaml").exists() or (base / ".env").exists()


def config_dir(bin_dir: PathLike) -> Path:
    """Return the directory holding config files.

    The executable's directory wins; ~/.config/pix is the fallback. When
    neither holds config files the executable's directory is returned so
    error messages point at the expected place.
    """
    bin_path = Path(bin_dir)
    if has_config_files(bin_path):
        return bin_path
    try:
        home = Path.home()
    except RuntimeError:
        return bin_path
    candidate = home / ".config" / "pix"
    if has_config_files(candidate):
        return candidate
    return bin_path


def expand_tilde(path: str) -> str:
    """Expand a leading '~/' to the home directory; other forms are kept."""
    if not path.startswith("~/"):
        return path
    try:
        home = Path.home()
    except RuntimeError as exc:
        raise ConfigError(f"expanding ~/: {exc}") from exc
    return str(home / path[2:])


def load_fal_key(path: PathLike) -> str:
    """Read FAL_KEY from a .env file."""
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise ConfigError(
            f"cannot read .env: {exc} (expected FAL_KEY in {path})"
        ) from exc

    for raw in text.split("\n"):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        name, sep, value = line.partition("=")
        if sep and name.strip() == "FAL_KEY":
            value = value.strip()
            if value:
                return value

    raise ConfigError(f"FAL_KEY not found in {path}")


def resolve_fal_key(cfg: Config, conf_dir: PathLike) -> str:
    """Resolve the FAL key from env, configured command, file, then .env."""
    env_key = os.environ.get("FAL_KEY", "")
    if env_key:
        return env_key

    fal = cfg.api_keys.get("fal")
    if fal is not None:
        if fal.command:
            # The command comes from the user's own config file.
            try:
                completed = subprocess.run(
                    ["sh", "-c", fal.command],
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    check=True,
                )
            except (OSError, subprocess.CalledProcessError) as exc:
                raise ConfigError(f"api-keys.fal.command failed: {exc}") from exc
            key = completed.stdout.decode("utf-8", errors="replace").strip()
            if key:
                return key

        if fal.file:
            try:
                key_path = expand_tilde(fal.file)
                key = Path(key_path).read_text(encoding="utf-8", errors="replace").strip()
            except (OSError, ConfigError) as exc:
                raise ConfigError(f"api-keys.fal.file: {exc}") from exc
            if key:
                return key

    return load_fal_key(Path(conf_dir) / ".env")


def resolve_conf_dir() -> Path:
    """Return the directory where config files are expected."""
    launcher = sys.argv[0] if sys.argv else ""
    if not launcher or not os.path.isfile(launcher):
        launcher = sys.executable
    if not launcher:
        raise ConfigError("resolving executable path: executable location unknown")
    try:
        exe = Path(launcher).resolve(strict=True)
    except (OSError, RuntimeError) as exc:
        raise ConfigError(f"resolving symlinks: {exc}") from exc
    return config_dir(exe.parent)