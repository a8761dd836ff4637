"""
Custom exceptions for analit.

Fatal conditions (the mandatory probe, report writing) and degraded
conditions (an optional measurement that could not be taken) are kept in
separate branches of the hierarchy so callers can tell them apart.
"""

from typing import Optional, Any


class AudioAnalysisError(Exception):
    """Base exception for all analit errors."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ProbeFailure(AudioAnalysisError):
    """Raised when the mandatory format/duration probe fails."""

    def __init__(
        self,
        message: str,
        input_path: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.input_path = input_path
        self.original_error = original_error
        self.details = {
            "input_path": input_path,
            "original_error": str(original_error) if original_error else None,
        }


class MeasurementError(AudioAnalysisError):
    """Raised when a single measurement (probe call) fails."""

    def __init__(
        self,
        message: str,
        probe_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.probe_name = probe_name
        self.original_error = original_error
        self.details = {
            "probe_name": probe_name,
            "original_error": str(original_error) if original_error else None,
        }


class ToolNotFoundError(MeasurementError):
    """Raised when an external tool binary cannot be located."""

    def __init__(self, tool: str):
        super().__init__(f"External tool not found: {tool}", probe_name=tool)
        self.tool = tool
        self.details = {"tool": tool}


class ConfigurationError(AudioAnalysisError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(message)
        self.config_key = config_key
        self.details = {"config_key": config_key}


class ReportWriteError(AudioAnalysisError):
    """Raised when a rendered report cannot be written to its destination."""

    def __init__(
        self,
        message: str,
        output_path: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.output_path = output_path
        self.original_error = original_error
        self.details = {
            "output_path": output_path,
            "original_error": str(original_error) if original_error else None,
        }


class SegmentExtractionError(AudioAnalysisError):
    """Raised when cutting a segment out of the input fails."""

    def __init__(
        self,
        message: str,
        output_path: Optional[str] = None,
        written: Optional[list] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.output_path = output_path
        self.written = list(written or [])
        self.original_error = original_error
        self.details = {"output_path": output_path, "written": len(self.written)}
