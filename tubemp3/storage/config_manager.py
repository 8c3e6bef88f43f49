"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
import os
from pathlib import Path
from typing import Any, Mapping

from pydantic import ValidationError

from tubemp3.exceptions import ConfigurationError
from tubemp3.models.config import ServiceConfig

log = logging.getLogger(__name__)

ENV_PREFIX = "TUBEMP3_"


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "tubemp3"


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path, environ: Mapping[str, str] | None = None):
        self.config_file_path = config_file_path
        self._environ = os.environ if environ is None else environ
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> ServiceConfig:
        """
        Loads configuration from the INI file (if present), applies environment and
        CLI overrides, and validates it.

        Precedence, lowest first: model defaults, INI file, environment, CLI.

        Raises:
            ConfigurationError: If the file cannot be parsed or validation fails.
        """
        values: dict[str, Any] = {}

        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(f"Error parsing configuration file: {e}") from e

            if self._migrate_if_needed():
                log.info(
                    "[yellow]Configuration file was updated with new default values."
                    "[/yellow]"
                )
            values.update(self._get_config_as_dict())
        else:
            log.debug(f"No config file at '{self.config_file_path}', using defaults.")

        values.update(self._get_env_overrides())

        if cli_options:
            values.update({k: v for k, v in cli_options.items() if v is not None})

        try:
            return ServiceConfig(
                **values, config_path=str(self.config_file_path.parent)
            )
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any] | None = None) -> None:
        """Creates and saves a complete configuration file."""
        settings = settings or {}
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}
        defaults = ServiceConfig()

        for key in sorted(ServiceConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key))
            if isinstance(value, bool):
                config["DEFAULT"][key] = "true" if value else "false"
            else:
                config["DEFAULT"][key] = str(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the known keys of the 'DEFAULT' section into a dictionary."""
        section = self._parser["DEFAULT"]
        values: dict[str, Any] = {}
        for key in ServiceConfig.get_ini_keys():
            if key not in section:
                continue
            values[key] = self._coerce(key, section.get(key))
        return values

    def _get_env_overrides(self) -> dict[str, Any]:
        """
        Collects overrides from the environment. `PORT` is honoured as well as
        `TUBEMP3_<KEY>` for every configuration key.
        """
        values: dict[str, Any] = {}
        if port := self._environ.get("PORT"):
            values["port"] = port
        for key in ServiceConfig.get_ini_keys():
            env_value = self._environ.get(f"{ENV_PREFIX}{key.upper()}")
            if env_value is not None:
                values[key] = self._coerce(key, env_value)
        return values

    @staticmethod
    def _coerce(key: str, raw: str) -> Any:
        """Interprets INI/env booleans; pydantic handles numeric coercion."""
        if ServiceConfig.model_fields[key].annotation is bool:
            return raw.strip().lower() in ("1", "true", "yes", "on")
        return raw

    def get_config_as_dict(self) -> dict[str, Any]:
        """Returns the file's values, or an empty dict when no file exists."""
        if not self.config_file_path.is_file():
            return {}
        self._parser.read(self.config_file_path, encoding="utf-8")
        return self._get_config_as_dict()

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = ServiceConfig()
        needs_saving = False
        config_section = self._parser["DEFAULT"]

        for key in sorted(ServiceConfig.get_ini_keys()):
            if key not in config_section:
                default_value = getattr(defaults, key)
                if isinstance(default_value, bool):
                    config_section[key] = "true" if default_value else "false"
                else:
                    config_section[key] = str(default_value)
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{config_section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
