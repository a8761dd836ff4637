"""
Derivation rules for analit.

Pure functions that turn raw probe readings into the fields of an
``Analysis``. Nothing here performs I/O: the engine collects readings,
then ``assemble_analysis`` folds them into one record in a fixed order so
the result does not depend on which probes ran, or in which order they
finished.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from analit.core.models import (
    Analysis,
    Band,
    BandStat,
    KeyInfo,
    LevelStats,
    Loudness,
    PitchStats,
    ProbeInfo,
    SilenceSpan,
    SpectralStats,
    StereoStats,
    TempoStats,
    clip_percent,
)
from analit.core.provider import OnsetReading, VolumeReading

# Note thresholds
TRUE_PEAK_LIMIT_DBTP = -1.0
TRUE_PEAK_CEILING_DBTP = -1.5
FLATNESS_NOISE_THRESHOLD = 0.5
CORRELATION_WIDE_THRESHOLD = 0.2

# Keys of the extended statistics map, with the aliases different ffmpeg
# versions print them under
DC_OFFSET_KEYS = ("dc_offset",)
ZERO_CROSSING_KEYS = ("zero_crossings_rate", "zero_crossing_rate")
NOISE_FLOOR_KEYS = ("noise_floor_db", "noise_floor")
CLIPPED_SAMPLE_KEYS = ("number_of_clipped_samples", "number_of_clips", "clipped_samples")


@dataclass(frozen=True)
class Measurements:
    """
    Raw readings gathered for one input, each None when its probe failed.

    ``bands`` holds only the bands whose probe succeeded, in configured order.
    """

    volume: Optional[VolumeReading] = None
    extended: Optional[Dict[str, float]] = None
    loudness: Optional[Loudness] = None
    spectral: Optional[SpectralStats] = None
    stereo: Optional[StereoStats] = None
    bands: Tuple[Tuple[Band, VolumeReading], ...] = ()
    silence: Optional[Sequence[SilenceSpan]] = None
    tempo_series: Optional[Sequence[float]] = None
    onsets: Optional[OnsetReading] = None
    pitch_series: Optional[Sequence[float]] = None
    key: Optional[KeyInfo] = None


# Series statistics

def median_of(values: Sequence[float]) -> float:
    """Middle element of the sorted series (upper middle for even lengths)."""
    ordered = sorted(values)
    return float(ordered[len(ordered) // 2])


def mean_of(values: Sequence[float]) -> float:
    return float(np.mean(values))


def sample_std(values: Sequence[float]) -> float:
    """Standard deviation with Bessel's correction, 0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return float(np.std(values, ddof=1))


def onsets_per_minute(count: int, duration: float) -> Optional[float]:
    if duration <= 0:
        return None
    return count / (duration / 60.0)


def tempo_from_series(
    series: Optional[Sequence[float]],
    onsets: Optional[OnsetReading] = None,
    duration: float = 0.0,
) -> Optional[TempoStats]:
    """
    Summarise a BPM series.

    Returns None for a missing or empty series. When the onset probe failed
    the event count is 0 and the per-minute rate is absent.
    """
    if not series:
        return None
    events = onsets.count if onsets is not None else 0
    return TempoStats(
        bpm_median=median_of(series),
        bpm_mean=mean_of(series),
        bpm_std=sample_std(series),
        events=events,
        onsets_per_min=onsets_per_minute(events, duration) if onsets is not None else None,
    )


def pitch_from_series(series: Optional[Sequence[float]]) -> Optional[PitchStats]:
    """Summarise a pitch series; non-positive estimates are unvoiced frames."""
    voiced = sorted(float(hz) for hz in (series or ()) if hz > 0)
    if not voiced:
        return None
    return PitchStats(
        hz_median=voiced[len(voiced) // 2],
        hz_mean=mean_of(voiced),
        hz_min=voiced[0],
        hz_max=voiced[-1],
    )


# Levels

def _lookup(stats: Dict[str, float], keys: Sequence[str]) -> Optional[float]:
    for key in keys:
        if key in stats:
            return stats[key]
    return None


def build_level_stats(
    volume: Optional[VolumeReading],
    extended: Optional[Dict[str, float]],
    loudness: Optional[Loudness],
) -> LevelStats:
    """
    Build LevelStats from the volume and extended-statistics readings.

    Order: peak/RMS (crest and headroom follow as properties), clip
    count, then the true peak back-filled from the loudness probe.
    A failed volume probe leaves peak and RMS at 0 dBFS.
    """
    stats = extended or {}
    clipped = _lookup(stats, CLIPPED_SAMPLE_KEYS)
    clip_samples = int(clipped) if clipped is not None else None

    # Level probes report no true peak of their own
    true_peak = loudness.true_peak if loudness is not None else None

    return LevelStats(
        peak_db=volume.peak_db if volume else 0.0,
        rms_db=volume.rms_db if volume else 0.0,
        dc_offset=_lookup(stats, DC_OFFSET_KEYS) or 0.0,
        zero_crossing_rate=_lookup(stats, ZERO_CROSSING_KEYS) or 0.0,
        noise_floor_db=_lookup(stats, NOISE_FLOOR_KEYS) or 0.0,
        true_peak_dbtp=true_peak,
        clip_samples=clip_samples,
    )


# Notes

def generate_notes(
    level: LevelStats,
    spectral: SpectralStats,
    stereo: StereoStats,
    probe: ProbeInfo = ProbeInfo(),
) -> Tuple[str, ...]:
    """
    Diagnostic notes in fixed priority order: clipping, true peak,
    spectral flatness, stereo correlation. A rule whose field is absent
    is skipped; the clip percentage needs the probe geometry.
    """
    notes: List[str] = []

    if level.clip_samples is not None and level.clip_samples > 0:
        percent = clip_percent(level.clip_samples, probe)
        if percent is not None:
            notes.append(f"Clipping detected: {level.clip_samples} samples ({percent:.3f}%)")
        else:
            notes.append(f"Clipping detected: {level.clip_samples} samples")

    if level.true_peak_dbtp is not None and level.true_peak_dbtp > TRUE_PEAK_LIMIT_DBTP:
        notes.append(
            f"True peak dangerously high ({level.true_peak_dbtp:.2f} dBTP). "
            f"Consider {TRUE_PEAK_CEILING_DBTP:.1f} dBTP ceiling."
        )

    if spectral.flatness is not None and spectral.flatness > FLATNESS_NOISE_THRESHOLD:
        notes.append("High spectral flatness → noise-like content.")

    if stereo.correlation is not None and stereo.correlation < CORRELATION_WIDE_THRESHOLD:
        notes.append("Low L/R correlation → wide or phasey stereo.")

    return tuple(notes)


def assemble_analysis(
    input_path: str,
    timestamp: datetime,
    probe: ProbeInfo,
    measurements: Measurements,
) -> Analysis:
    """Fold raw readings into a complete, immutable Analysis."""
    level = build_level_stats(
        measurements.volume,
        measurements.extended,
        measurements.loudness,
    )
    stereo = measurements.stereo or StereoStats()
    spectral = measurements.spectral or SpectralStats()

    bands = tuple(
        BandStat(band=band, peak_db=reading.peak_db, rms_db=reading.rms_db)
        for band, reading in measurements.bands
    )
    silence = tuple(sorted(measurements.silence or (), key=lambda span: span.start))

    return Analysis(
        input_path=input_path,
        timestamp=timestamp,
        probe=probe,
        level=level,
        stereo=stereo,
        spectral=spectral,
        loudness=measurements.loudness,
        bands=bands,
        tempo=tempo_from_series(measurements.tempo_series, measurements.onsets, probe.duration),
        pitch=pitch_from_series(measurements.pitch_series),
        key=measurements.key,
        silence=silence,
        notes=generate_notes(level, spectral, stereo, probe),
    )
