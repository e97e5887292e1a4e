"""Configuration management for Pak Builder.

This module centralises all logic related to finding, loading and
saving the launcher configuration.  It supports both AppData and
portable installation modes, resolves the appropriate configuration
directory, normalises user typed paths and validates the JSON document
against :data:`CONFIG_SCHEMA` with ``jsonschema``.

The configuration is stored in a JSON file called ``config.json``::

    {
      "retoc_dir": "C:/Tools/retoc",
      "mods_dir": "G:/Modding/Mods",
      "pak_dir": "E:/SteamLibrary/steamapps/common/Game/Content/Paks"
    }

Clients can keep the file next to the application by passing
``--portable`` to the CLI or by placing a ``portable.flag`` file in the
application directory.  Otherwise the file lives under
``%APPDATA%\\PakBuilder`` on Windows and ``$XDG_CONFIG_HOME/PakBuilder``
or ``~/.config/PakBuilder`` elsewhere.

The build components never read this file themselves.  They receive a
:class:`BuildConfig` value built from the loaded dictionary.

Example usage::

    from pak_builder.config_service import BuildConfig, ConfigService

    config_service = ConfigService(app_dir=Path(__file__).parent)
    cfg = config_service.load_config()
    cfg["mods_dir"] = "G:/Modding/Mods"
    config_service.save_config(cfg)
    build_config = BuildConfig.from_dict(cfg)
"""

from __future__ import annotations

import json
import logging
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import jsonschema

from .errors import ConfigError

logger = logging.getLogger(__name__)

APP_NAME = "PakBuilder"

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "retoc_dir": {"type": "string", "minLength": 1},
        "mods_dir": {"type": "string"},
        "pak_dir": {"type": "string"},
        "tool_name": {"type": "string", "minLength": 1},
        "subcommand": {"type": "string", "minLength": 1},
        "format_flag": {"type": "string", "minLength": 1},
        "format_value": {"type": "string", "minLength": 1},
        "output_extension": {"type": "string", "pattern": "^\\.[^./\\\\]+$"},
    },
    "required": ["retoc_dir"],
    "additionalProperties": True,
}


def _get_appdata_root(app_name: str = APP_NAME) -> Path:
    """Return the platform‑specific base directory for config files."""
    system = platform.system().lower()
    if system == "windows":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / app_name
        return Path.home() / f"AppData/Roaming/{app_name}"
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / app_name
    return Path.home() / ".config" / app_name


def _load_json(file_path: Path) -> Any:
    if not file_path.exists():
        return None
    with file_path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _save_json(data: Any, file_path: Path) -> None:
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with file_path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def validate_config(data: Any) -> None:
    """Raise :class:`ConfigError` if ``data`` does not match the schema."""
    try:
        jsonschema.validate(instance=data, schema=CONFIG_SCHEMA)
    except jsonschema.ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc.message}") from exc


def normalize_path(text: str) -> Path:
    """Turn a user typed path into a clean absolute :class:`Path`.

    Surrounding whitespace and quotes (as produced by "Copy as path" on
    Windows) are stripped, environment variables and ``~`` are expanded
    and the result is made absolute.
    """
    cleaned = text.strip().strip('"').strip("'").strip()
    if not cleaned:
        raise ConfigError("directory is empty")
    cleaned = os.path.expanduser(os.path.expandvars(cleaned))
    return Path(os.path.abspath(cleaned))


def default_tool_name() -> str:
    return "retoc.exe" if os.name == "nt" else "retoc"


@dataclass(frozen=True)
class BuildConfig:
    """Everything the build components need, passed explicitly.

    ``tool_dir`` is both the location of the packaging executable and
    the working directory it runs in.  ``source_dir`` is scanned for mod
    folders and ``destination_dir`` receives the relocated artifacts.
    """

    tool_dir: Path
    source_dir: Path
    destination_dir: Path
    tool_name: str = field(default_factory=default_tool_name)
    subcommand: str = "to-zen"
    format_flag: str = "--version"
    format_value: str = "UE5_4"
    output_extension: str = ".utoc"

    @property
    def tool_path(self) -> Path:
        return self.tool_dir / self.tool_name

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "BuildConfig":
        """Build a value from a loaded ``config.json`` dictionary."""
        missing = [key for key in ("retoc_dir", "mods_dir", "pak_dir") if not cfg.get(key)]
        if missing:
            raise ConfigError(f"Missing configuration value(s): {', '.join(missing)}")
        optional = {
            key: cfg[key]
            for key in ("tool_name", "subcommand", "format_flag", "format_value", "output_extension")
            if cfg.get(key)
        }
        return cls(
            tool_dir=Path(cfg["retoc_dir"]),
            source_dir=Path(cfg["mods_dir"]),
            destination_dir=Path(cfg["pak_dir"]),
            **optional,
        )


@dataclass
class ConfigService:
    """Resolve and manage Pak Builder configuration."""

    app_dir: Path
    config_dir_override: Optional[Path] = None
    portable_flag_filename: str = "portable.flag"
    config_filename: str = "config.json"
    _cached_mode: Optional[bool] = field(default=None, init=False, repr=False)

    def _portable_flag_exists(self) -> bool:
        return (self.app_dir / self.portable_flag_filename).exists()

    def detect_mode(self, cli_portable: bool = False) -> bool:
        """Return ``True`` if portable mode should be used.

        Portable mode is selected if a ``portable.flag`` file exists in
        the application directory or ``cli_portable`` is truthy.  The
        check is performed once per instance and cached.
        """
        if self._cached_mode is None:
            self._cached_mode = cli_portable or self._portable_flag_exists()
        return self._cached_mode

    def get_config_dir(self, cli_portable: bool = False) -> Path:
        """Return the resolved configuration directory."""
        if self.config_dir_override is not None:
            return self.config_dir_override
        if self.detect_mode(cli_portable=cli_portable):
            return self.app_dir
        return _get_appdata_root()

    def get_config_path(self, cli_portable: bool = False) -> Path:
        return self.get_config_dir(cli_portable) / self.config_filename

    def get_logs_dir(self, cli_portable: bool = False) -> Path:
        return self.get_config_dir(cli_portable) / "logs"

    def default_config(self) -> Dict[str, Any]:
        return {"retoc_dir": str(self.app_dir / "retoc")}

    def load_config(self, cli_portable: bool = False) -> Dict[str, Any]:
        """Load configuration from the resolved path, validating against the schema.

        A missing, unreadable or invalid file yields the defaults so the
        caller can run first-time setup.
        """
        cfg_path = self.get_config_path(cli_portable)
        try:
            data = _load_json(cfg_path)
        except (OSError, ValueError) as exc:
            logger.warning("Could not read %s: %s. Falling back to defaults.", cfg_path, exc)
            return self.default_config()
        if data is None:
            return self.default_config()
        try:
            validate_config(data)
        except ConfigError as exc:
            logger.warning("%s. Falling back to defaults.", exc)
            return self.default_config()
        return data

    def save_config(self, config: Dict[str, Any], cli_portable: bool = False) -> Path:
        """Write configuration to disk, validating against the schema first."""
        validate_config(config)
        path = self.get_config_path(cli_portable)
        _save_json(config, path)
        return path
