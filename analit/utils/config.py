"""
Configuration management for analit.

Loads configuration from YAML files with environment variable
interpolation, and turns the resulting dictionary into the frozen
``AnalysisConfig`` every component reads from.
"""

import copy
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv

from analit.core.models import Band
from analit.utils.errors import ConfigurationError

DEFAULT_BANDS = "20-60,60-120,120-250,250-500,500-2000,2000-5000,5000-10000,10000-20000"

REPORT_FORMATS = ("txt", "text", "json", "md", "markdown")
BPM_ENGINES = ("aubio", "none")
TRUE_STRINGS = ("true", "yes", "on", "1")
FALSE_STRINGS = ("false", "no", "off", "0")


class ConfigManager:
    """
    Manages application configuration loaded from YAML files.

    Features:
    - YAML configuration loading
    - Environment variable interpolation (${VAR_NAME})
    - Nested key access with dot notation
    - Default value support
    """

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration manager.

        Args:
            config_dict: Optional pre-loaded configuration dictionary
        """
        self._config: Dict[str, Any] = config_dict or {}
        self._env_pattern = re.compile(r'\$\{([^}]+)\}')

    @classmethod
    def from_file(cls, file_path: Path) -> "ConfigManager":
        """
        Create ConfigManager from YAML file.

        Raises:
            ConfigurationError: If file cannot be loaded or parsed
        """
        if not file_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {file_path}",
                config_key=str(file_path)
            )

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                config_dict = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Failed to parse YAML configuration: {e}",
                config_key=str(file_path)
            )

        if not isinstance(config_dict, dict):
            raise ConfigurationError(
                "Configuration root must be a mapping",
                config_key=str(file_path)
            )

        manager = cls(config_dict)
        manager._interpolate_env_vars()
        return manager

    def _interpolate_env_vars(self) -> None:
        """Replace ${ENV_VAR} patterns with environment variable values."""
        self._config = self._interpolate(self._config)

    def _interpolate(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: self._interpolate(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._interpolate(v) for v in value]
        if isinstance(value, str):
            return self._interpolate_string(value)
        return value

    def _interpolate_string(self, s: str) -> str:
        """Replace ${ENV_VAR} with environment variable value."""
        def replace(match: re.Match) -> str:
            value = os.environ.get(match.group(1))
            if value is None:
                return match.group(0)  # Keep original if not found
            return value

        return self._env_pattern.sub(replace, s)

    def get(
        self,
        key: str,
        default: Any = None,
        required: bool = False
    ) -> Any:
        """
        Get configuration value using dot notation.

        Example:
            config.get("analysis.silence_threshold_db", default=-45.0)
        """
        value = self._config

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                if required:
                    raise ConfigurationError(
                        f"Required configuration key not found: {key}",
                        config_key=key
                    )
                return default

        return value

    def get_section(self, key: str) -> Dict[str, Any]:
        """Get an entire configuration section (empty dict if not found)."""
        value = self.get(key, default={})
        if not isinstance(value, dict):
            return {}
        return value

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value using dot notation."""
        keys = key.split('.')
        current = self._config

        for k in keys[:-1]:
            if not isinstance(current.get(k), dict):
                current[k] = {}
            current = current[k]

        current[keys[-1]] = value

    def merge(self, overrides: Dict[str, Any]) -> None:
        """Deep-merge ``overrides`` on top of the current configuration."""
        self._config = _deep_merge(self._config, overrides)

    def to_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary."""
        return copy.deepcopy(self._config)


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    result = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from file layered on top of the defaults.

    A ``.env`` file in the working directory is loaded first so that
    ``${VAR}`` references in the YAML can resolve against it.

    Args:
        config_path: Optional path to config file.
                    If None, tries "config/analit.yaml" and "analit.yaml"

    Returns:
        Dict[str, Any]: Configuration dictionary
    """
    load_dotenv()

    if config_path is None:
        for path in (Path("config/analit.yaml"), Path("analit.yaml")):
            if path.exists():
                config_path = str(path)
                break

    manager = ConfigManager(get_default_config())
    if config_path:
        loaded = ConfigManager.from_file(Path(config_path))
        manager.merge(loaded.to_dict())

    return manager.to_dict()


def get_default_config() -> Dict[str, Any]:
    """Return default configuration values."""
    return {
        "output": {
            "path": "out.log",
            "format": "txt",
        },
        "tools": {
            "ffmpeg": "ffmpeg",
            "ffprobe": "ffprobe",
            "aubio": "aubio",
            "timeout": 600.0,
        },
        "analysis": {
            "bpm_engine": "none",
            "use_bands": True,
            "bands": DEFAULT_BANDS,
            "use_loudness": True,
            "stats_window": 0.0,
            "silence_threshold_db": -45.0,
            "silence_min_duration": 0.3,
        },
        "split": {
            "min_silence": 1.0,
            "trim": 0.0,
        },
        "logging": {
            "level": "INFO",
            "format": "text",
            "file": None,
        },
        "performance": {
            "max_workers": 4,
            "run_timeout": None,
        },
    }


def parse_bands(text: str) -> Tuple[Band, ...]:
    """
    Parse a band list such as ``"20-60,60-120"``.

    Entries that are malformed, start at or below 0 Hz, or are not strictly
    increasing are dropped.
    """
    bands = []
    for part in text.split(','):
        part = part.strip()
        if not part:
            continue
        chunks = part.split('-')
        if len(chunks) != 2:
            continue
        try:
            lo = float(chunks[0].strip())
            hi = float(chunks[1].strip())
        except ValueError:
            continue
        if lo > 0 and hi > lo:
            bands.append(Band(lo, hi))
    return tuple(bands)


@dataclass(frozen=True)
class AnalysisConfig:
    """Read-only run configuration shared by every component."""

    output_path: str = "out.log"
    report_format: str = "txt"

    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    aubio_bin: str = "aubio"
    tool_timeout: Optional[float] = 600.0

    bpm_engine: str = "none"
    use_bands: bool = True
    bands: Tuple[Band, ...] = parse_bands(DEFAULT_BANDS)
    use_loudness: bool = True
    stats_window: float = 0.0
    silence_threshold_db: float = -45.0
    silence_min_duration: float = 0.3

    split_min_silence: float = 1.0
    split_trim: float = 0.0

    max_workers: int = 4
    run_timeout: Optional[float] = None

    @property
    def tempo_enabled(self) -> bool:
        return self.bpm_engine == "aubio"

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "AnalysisConfig":
        """
        Build the run configuration from a (merged) configuration dict.

        Raises:
            ConfigurationError: On unknown enum values, non-numeric numbers or non-boolean flags
        """
        manager = ConfigManager(config)

        report_format = str(manager.get("output.format", "txt")).lower()
        if report_format not in REPORT_FORMATS:
            raise ConfigurationError(
                f"Unknown report format: {report_format}. Supported: {list(REPORT_FORMATS)}",
                config_key="output.format"
            )

        bpm_engine = str(manager.get("analysis.bpm_engine", "none")).lower()
        if bpm_engine not in BPM_ENGINES:
            raise ConfigurationError(
                f"Unknown bpm engine: {bpm_engine}. Supported: {list(BPM_ENGINES)}",
                config_key="analysis.bpm_engine"
            )

        bands = manager.get("analysis.bands", DEFAULT_BANDS)
        if isinstance(bands, (list, tuple)):
            bands = ",".join(str(b) for b in bands)

        max_workers = int(_number(manager, "performance.max_workers", 4))
        if max_workers < 1:
            raise ConfigurationError(
                "performance.max_workers must be at least 1",
                config_key="performance.max_workers"
            )

        return cls(
            output_path=str(manager.get("output.path", "out.log")),
            report_format=report_format,
            ffmpeg_bin=str(manager.get("tools.ffmpeg", "ffmpeg")),
            ffprobe_bin=str(manager.get("tools.ffprobe", "ffprobe")),
            aubio_bin=str(manager.get("tools.aubio", "aubio")),
            tool_timeout=_optional_number(manager, "tools.timeout"),
            bpm_engine=bpm_engine,
            use_bands=_flag(manager, "analysis.use_bands", True),
            bands=parse_bands(str(bands)),
            use_loudness=_flag(manager, "analysis.use_loudness", True),
            stats_window=_number(manager, "analysis.stats_window", 0.0),
            silence_threshold_db=_number(manager, "analysis.silence_threshold_db", -45.0),
            silence_min_duration=_number(manager, "analysis.silence_min_duration", 0.3),
            split_min_silence=_number(manager, "split.min_silence", 1.0),
            split_trim=_number(manager, "split.trim", 0.0),
            max_workers=max_workers,
            run_timeout=_optional_number(manager, "performance.run_timeout"),
        )


def _flag(manager: ConfigManager, key: str, default: bool) -> bool:
    """Boolean setting; interpolated env values arrive as strings like "false"."""
    value = manager.get(key, default)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    raise ConfigurationError(
        f"Invalid boolean for {key}: {value!r}",
        config_key=key
    )


def _number(manager: ConfigManager, key: str, default: float) -> float:
    value = manager.get(key, default)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Invalid number for {key}: {value!r}",
            config_key=key
        )


def _optional_number(manager: ConfigManager, key: str) -> Optional[float]:
    value = manager.get(key)
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Invalid number for {key}: {value!r}",
            config_key=key
        )
    return number if number > 0 else None
