"""
Utility modules for configuration, logging, and error handling.
"""

from analit.utils.errors import (
    AudioAnalysisError,
    ProbeFailure,
    MeasurementError,
    ToolNotFoundError,
    ConfigurationError,
    ReportWriteError,
    SegmentExtractionError,
)
from analit.utils.logging import get_logger, setup_logging, JSONFormatter
from analit.utils.config import AnalysisConfig, ConfigManager, load_config

__all__ = [
    "AudioAnalysisError",
    "ProbeFailure",
    "MeasurementError",
    "ToolNotFoundError",
    "ConfigurationError",
    "ReportWriteError",
    "SegmentExtractionError",
    "get_logger",
    "setup_logging",
    "JSONFormatter",
    "AnalysisConfig",
    "ConfigManager",
    "load_config",
]
