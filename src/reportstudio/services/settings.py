"""Settings dataclass and its JSON persistence."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

__all__ = ["StudioSettings", "SettingsStore", "DEFAULT_SETTINGS_PATH", "ENV_OVERRIDES"]

LOGGER = logging.getLogger(__name__)
DEFAULT_SETTINGS_PATH = Path.home() / ".reportstudio" / "settings.json"
_SETTINGS_VERSION = 1
_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_MIN_ZOOM = 50
_MAX_ZOOM = 200


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUE_VALUES


def _parse_int(raw: str) -> int:
    return int(raw.strip(), 10)


def _parse_float(raw: str) -> float:
    return float(raw.strip())


# env var -> (settings field, parser)
ENV_OVERRIDES: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "REPORTSTUDIO_AUTOSAVE_ENABLED": ("autosave_enabled", _parse_bool),
    "REPORTSTUDIO_AUTOSAVE_DELAY": ("autosave_delay", _parse_float),
    "REPORTSTUDIO_HISTORY_DEPTH": ("history_depth", _parse_int),
    "REPORTSTUDIO_STORAGE_DIR": ("storage_dir", str),
    "REPORTSTUDIO_DEFAULT_ZOOM": ("default_zoom", _parse_int),
    "REPORTSTUDIO_DEBUG_LOGGING": ("debug_logging", _parse_bool),
}


@dataclass(slots=True)
class StudioSettings:
    """User-tunable behaviour of the editing core."""

    autosave_enabled: bool = True
    autosave_delay: float = 30.0
    history_depth: int = 100
    storage_dir: str = "~/.reportstudio/reports"
    default_zoom: int = 100
    debug_logging: bool = False

    @property
    def storage_path(self) -> Path:
        return Path(self.storage_dir).expanduser()


class SettingsStore:
    """Reads and writes :class:`StudioSettings` as a versioned JSON document.

    Precedence when loading, lowest first: built-in defaults, the settings
    file, ``REPORTSTUDIO_*`` environment variables, explicit overrides.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> StudioSettings:
        """Return the effective settings.

        Unknown keys are dropped and a corrupt file counts as empty, so a bad
        settings file never prevents a report from opening.
        """

        settings = _merge(StudioSettings(), self._read_file(), source=str(self._path))
        settings = _merge(settings, _environment_values(), source="environment")
        if overrides:
            settings = _merge(settings, overrides, source="caller")
        return _sanitize(settings)

    def save(self, settings: StudioSettings) -> Path:
        """Write ``settings`` atomically and return the file path."""

        document = {"version": _SETTINGS_VERSION, **asdict(settings)}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._path.with_suffix(".tmp")
        staging.write_text(json.dumps(document, indent=2, sort_keys=True), encoding="utf-8")
        staging.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_file(self) -> Dict[str, Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON (%s); using defaults", self._path, exc)
            return {}
        if not isinstance(document, dict):
            LOGGER.warning("Settings file %s does not hold a JSON object; using defaults", self._path)
            return {}
        return document


def _merge(settings: StudioSettings, values: Mapping[str, Any], *, source: str) -> StudioSettings:
    known = {f.name for f in fields(StudioSettings)}
    changes = {key: value for key, value in values.items() if key in known and value is not None}
    ignored = sorted(key for key in values if key not in known and key != "version")
    if ignored:
        LOGGER.debug("Ignoring unknown settings keys from %s: %s", source, ignored)
    if not changes:
        return settings
    LOGGER.debug("Applying settings from %s: %s", source, sorted(changes))
    return replace(settings, **changes)


def _environment_values() -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for env_name, (field_name, parse) in ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        try:
            values[field_name] = parse(raw)
        except ValueError:
            LOGGER.warning("Ignoring %s=%r: cannot be read as %s", env_name, raw, field_name)
    return values


def _sanitize(settings: StudioSettings) -> StudioSettings:
    changes: Dict[str, Any] = {}
    if settings.history_depth < 1:
        LOGGER.warning("history_depth=%s is below 1; using 1", settings.history_depth)
        changes["history_depth"] = 1
    if settings.autosave_delay < 0:
        LOGGER.warning("autosave_delay=%s is negative; using 0", settings.autosave_delay)
        changes["autosave_delay"] = 0.0
    zoom = min(max(settings.default_zoom, _MIN_ZOOM), _MAX_ZOOM)
    if zoom != settings.default_zoom:
        changes["default_zoom"] = zoom
    return replace(settings, **changes) if changes else settings
