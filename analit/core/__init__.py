"""
Core module containing data models, derivation rules, and the analysis engine.

Uses lazy imports for modules that depend on the configuration layer.
"""

# Models are lightweight - import directly
from analit.core.models import (
    Band,
    ProbeInfo,
    LevelStats,
    Loudness,
    BandStat,
    StereoStats,
    SpectralStats,
    TempoStats,
    PitchStats,
    KeyInfo,
    SilenceSpan,
    Analysis,
    Diff,
    validate_confidence,
)

__all__ = [
    # Models (always available)
    "Band",
    "ProbeInfo",
    "LevelStats",
    "Loudness",
    "BandStat",
    "StereoStats",
    "SpectralStats",
    "TempoStats",
    "PitchStats",
    "KeyInfo",
    "SilenceSpan",
    "Analysis",
    "Diff",
    "validate_confidence",
    # Lazy loaded
    "AnalysisEngine",
    "create_analysis_engine",
    "compare",
    "segment_by_silence",
    "SilenceSplitter",
    "ReportRenderer",
    "create_renderer",
    "write_report",
]


def __getattr__(name: str):
    """Lazy load modules that import the configuration layer."""
    if name in ("AnalysisEngine", "create_analysis_engine"):
        from analit.core.engine import AnalysisEngine, create_analysis_engine
        return AnalysisEngine if name == "AnalysisEngine" else create_analysis_engine
    elif name == "compare":
        from analit.core.diff import compare
        return compare
    elif name in ("segment_by_silence", "SilenceSplitter"):
        from analit.core.segmenter import SilenceSplitter, segment_by_silence
        return segment_by_silence if name == "segment_by_silence" else SilenceSplitter
    elif name in ("ReportRenderer", "create_renderer", "write_report"):
        from analit.core.result_writer import ReportRenderer, create_renderer, write_report
        if name == "ReportRenderer":
            return ReportRenderer
        elif name == "create_renderer":
            return create_renderer
        else:
            return write_report
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
