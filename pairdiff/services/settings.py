"""
User defaults for comparison runs.

An optional JSON file supplies defaults for a few options. It is looked up
at $PAIRDIFF_CONFIG, or else at <config dir>/pairdiff/settings.json.
Command-line options always take precedence.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional


CONFIG_ENV_VAR = 'PAIRDIFF_CONFIG'


@dataclass
class DefaultSettings:
    """Defaults applied to options the command line leaves unset."""
    width: Optional[int] = None
    tabsize: Optional[int] = None
    context: Optional[int] = None
    exclude_patterns: list[str] = field(default_factory=list)
    ignore_file_name_case: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class SettingsManager:
    """Manager for loading the defaults file."""

    def __init__(self, settings_path: Optional[Path] = None):
        self.settings_path = settings_path or self._get_default_path()
        self._settings: Optional[DefaultSettings] = None

    @staticmethod
    def _get_default_path() -> Path:
        """Get the default settings file path."""
        override = os.environ.get(CONFIG_ENV_VAR)
        if override:
            return Path(override)
        if os.name == 'nt':
            # Windows
            app_data = os.environ.get('APPDATA', os.path.expanduser('~'))
            return Path(app_data) / 'pairdiff' / 'settings.json'
        else:
            # Linux/Mac
            config_home = os.environ.get('XDG_CONFIG_HOME',
                                         os.path.expanduser('~/.config'))
            return Path(config_home) / 'pairdiff' / 'settings.json'

    @property
    def settings(self) -> DefaultSettings:
        """Get current settings, loading from disk if needed."""
        if self._settings is None:
            self._settings = self.load()
        return self._settings

    def load(self) -> DefaultSettings:
        """
        Load settings from disk.

        A missing file gives empty defaults. An unreadable or malformed
        file is logged and ignored.
        """
        if not self.settings_path.exists():
            return DefaultSettings()

        try:
            with open(self.settings_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            settings = self._from_dict(data)
            logging.debug(f"SettingsManager - Loaded defaults from {self.settings_path}")
            return settings
        except (OSError, ValueError, TypeError) as e:
            logging.warning(f"SettingsManager - Ignoring settings file {self.settings_path}: {e}")
            return DefaultSettings()

    def _from_dict(self, data: dict) -> DefaultSettings:
        """Convert dictionary to settings, validating value types."""
        if not isinstance(data, dict):
            raise TypeError("settings file must contain a JSON object")

        def get_positive(key: str, minimum: int) -> Optional[int]:
            value = data.get(key)
            if value is None:
                return None
            if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
                raise ValueError(f"invalid value for '{key}': {value!r}")
            return value

        patterns = data.get('exclude_patterns', [])
        if not isinstance(patterns, list) or not all(isinstance(p, str) for p in patterns):
            raise ValueError("'exclude_patterns' must be a list of strings")

        return DefaultSettings(
            width=get_positive('width', 1),
            tabsize=get_positive('tabsize', 1),
            context=get_positive('context', 0),
            exclude_patterns=patterns,
            ignore_file_name_case=bool(data.get('ignore_file_name_case', False)),
        )
