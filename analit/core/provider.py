"""
Measurement provider contract for analit.

The engine never talks to external tools directly; it calls the capability
methods below, each of which either returns its measurement or raises
``MeasurementError``. Uses Protocol (structural subtyping), so test fakes do
not need to inherit from anything.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from analit.core.models import (
    Band,
    KeyInfo,
    Loudness,
    ProbeInfo,
    SilenceSpan,
    SpectralStats,
    StereoStats,
)


@dataclass(frozen=True)
class VolumeReading:
    """Peak and mean level of a (possibly filtered) signal."""

    peak_db: float
    rms_db: float


@dataclass(frozen=True)
class OnsetReading:
    """Number of onsets detected over the whole file."""

    count: int


class MeasurementProvider(Protocol):
    """
    Per-capability probes against one input file.

    Every method raises ``MeasurementError`` (or a subclass) on failure.
    """

    def probe(self, path: Path) -> ProbeInfo:
        """Container/stream facts. Mandatory for every analysis."""
        ...

    def level_volume(self, path: Path) -> VolumeReading:
        ...

    def extended_stats(self, path: Path, window: float = 0.0) -> Dict[str, float]:
        """Named overall statistics (dc_offset, noise_floor, ...)."""
        ...

    def loudness(self, path: Path) -> Loudness:
        ...

    def band_loudness(self, path: Path, band: Band) -> VolumeReading:
        ...

    def stereo_stats(self, path: Path) -> StereoStats:
        ...

    def spectral_stats(self, path: Path) -> SpectralStats:
        ...

    def silence_spans(
        self, path: Path, threshold_db: float, min_duration: float
    ) -> List[SilenceSpan]:
        ...

    def tempo_series(self, path: Path) -> List[float]:
        ...

    def onset_count(self, path: Path) -> OnsetReading:
        ...

    def pitch_series(self, path: Path) -> List[float]:
        ...

    def key_guess(self, path: Path) -> Optional[KeyInfo]:
        """Detected key, or None when the tool printed nothing recognisable."""
        ...

    def cut(self, path: Path, start: float, end: float, output: Path) -> None:
        """Extract [start, end) of ``path`` into ``output``."""
        ...

    def terminate_all(self) -> None:
        """Kill any tool invocation still running; its caller raises MeasurementError."""
        ...
