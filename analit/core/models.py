"""
Core data models for analit.

Immutable records describing one multi-tool measurement of an audio file.
Absence is always ``None`` (never a zero stand-in), and derived values are
exposed as properties so they can never drift from the raw fields they are
computed from.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

NOTE_NAMES = ['C', 'C#', 'D', 'D#', 'E', 'F', 'F#', 'G', 'G#', 'A', 'A#', 'B']


@dataclass(frozen=True)
class Band:
    """Frequency band [lo, hi) in Hz."""

    lo: float
    hi: float

    @property
    def label(self) -> str:
        return f"{self.lo:.0f}-{self.hi:.0f}"

    def to_dict(self) -> Dict[str, Any]:
        return {'lo': self.lo, 'hi': self.hi}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Band:
        return cls(lo=float(data['lo']), hi=float(data['hi']))


@dataclass(frozen=True)
class ProbeInfo:
    """Container/stream facts from the mandatory probe (missing facts are 0)."""

    format_name: str = ""
    duration: float = 0.0  # seconds
    sample_rate: int = 0  # Hz
    channels: int = 0
    bit_rate: int = 0  # bits per second
    bit_depth: int = 0

    @property
    def total_samples(self) -> Optional[float]:
        """Sample count over all channels, if the geometry is known."""
        if self.duration > 0 and self.sample_rate > 0 and self.channels > 0:
            return self.duration * self.sample_rate * self.channels
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'format_name': self.format_name,
            'duration': self.duration,
            'sample_rate': self.sample_rate,
            'channels': self.channels,
            'bit_rate': self.bit_rate,
            'bit_depth': self.bit_depth,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ProbeInfo:
        return cls(
            format_name=str(data.get('format_name', "")),
            duration=float(data.get('duration', 0.0)),
            sample_rate=int(data.get('sample_rate', 0)),
            channels=int(data.get('channels', 0)),
            bit_rate=int(data.get('bit_rate', 0)),
            bit_depth=int(data.get('bit_depth', 0)),
        )


@dataclass(frozen=True)
class LevelStats:
    """Sample level statistics."""

    peak_db: float = 0.0  # dBFS
    rms_db: float = 0.0  # dBFS
    dc_offset: float = 0.0
    zero_crossing_rate: float = 0.0
    noise_floor_db: float = 0.0  # dBFS
    true_peak_dbtp: Optional[float] = None
    clip_samples: Optional[int] = None

    @property
    def crest_db(self) -> float:
        return self.peak_db - self.rms_db

    @property
    def headroom_db(self) -> float:
        return 0.0 - self.peak_db

    def to_dict(self) -> Dict[str, Any]:
        return {
            'peak_db': self.peak_db,
            'rms_db': self.rms_db,
            'crest_db': self.crest_db,
            'headroom_db': self.headroom_db,
            'true_peak_dbtp': self.true_peak_dbtp,
            'dc_offset': self.dc_offset,
            'zero_crossing_rate': self.zero_crossing_rate,
            'noise_floor_db': self.noise_floor_db,
            'clip_samples': self.clip_samples,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LevelStats:
        clip_samples = data.get('clip_samples')
        return cls(
            peak_db=_db(data.get('peak_db', 0.0)),
            rms_db=_db(data.get('rms_db', 0.0)),
            dc_offset=float(data.get('dc_offset', 0.0)),
            zero_crossing_rate=float(data.get('zero_crossing_rate', 0.0)),
            noise_floor_db=_db(data.get('noise_floor_db', 0.0)),
            true_peak_dbtp=_opt_float(data.get('true_peak_dbtp')),
            clip_samples=int(clip_samples) if clip_samples is not None else None,
        )


@dataclass(frozen=True)
class Loudness:
    """EBU R128 loudness summary."""

    integrated: float  # LUFS
    range: float  # LU
    true_peak: Optional[float] = None  # dBTP

    def to_dict(self) -> Dict[str, Any]:
        return {
            'integrated': self.integrated,
            'range': self.range,
            'true_peak': self.true_peak,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Loudness:
        return cls(
            integrated=float(data['integrated']),
            range=float(data.get('range', 0.0)),
            true_peak=_opt_float(data.get('true_peak')),
        )


@dataclass(frozen=True)
class BandStat:
    """Peak and RMS level of one successfully measured band."""

    band: Band
    peak_db: float
    rms_db: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'band': self.band.to_dict(),
            'peak_db': self.peak_db,
            'rms_db': self.rms_db,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BandStat:
        return cls(
            band=Band.from_dict(data['band']),
            peak_db=_db(data['peak_db']),
            rms_db=_db(data['rms_db']),
        )


@dataclass(frozen=True)
class StereoStats:
    """Mid/side levels and channel correlation."""

    mid_rms_db: float = 0.0
    side_rms_db: float = 0.0
    correlation: Optional[float] = None  # [-1.0, 1.0]

    def __post_init__(self) -> None:
        if self.correlation is not None and not (-1.0 <= self.correlation <= 1.0):
            raise ValueError(f"Correlation must be in [-1.0, 1.0], got {self.correlation}")

    @property
    def side_mid_ratio_db(self) -> float:
        return self.side_rms_db - self.mid_rms_db

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mid_rms_db': self.mid_rms_db,
            'side_rms_db': self.side_rms_db,
            'side_mid_ratio_db': self.side_mid_ratio_db,
            'correlation': self.correlation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> StereoStats:
        return cls(
            mid_rms_db=_db(data.get('mid_rms_db', 0.0)),
            side_rms_db=_db(data.get('side_rms_db', 0.0)),
            correlation=_opt_float(data.get('correlation')),
        )


@dataclass(frozen=True)
class SpectralStats:
    """Spectral descriptors; zero is a valid value, so each may be absent."""

    centroid: Optional[float] = None  # Hz
    rolloff95: Optional[float] = None  # Hz
    flatness: Optional[float] = None  # 0..1
    spread: Optional[float] = None
    skewness: Optional[float] = None
    kurtosis: Optional[float] = None

    def is_empty(self) -> bool:
        return all(v is None for v in self.to_dict().values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'centroid': self.centroid,
            'rolloff95': self.rolloff95,
            'flatness': self.flatness,
            'spread': self.spread,
            'skewness': self.skewness,
            'kurtosis': self.kurtosis,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SpectralStats:
        return cls(**{name: _opt_float(data.get(name)) for name in (
            'centroid', 'rolloff95', 'flatness', 'spread', 'skewness', 'kurtosis'
        )})


@dataclass(frozen=True)
class TempoStats:
    """Tempo summary built from a non-empty BPM series."""

    bpm_median: float
    bpm_mean: float
    bpm_std: float
    events: int = 0  # onset count
    onsets_per_min: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'bpm_median': self.bpm_median,
            'bpm_mean': self.bpm_mean,
            'bpm_std': self.bpm_std,
            'events': self.events,
            'onsets_per_min': self.onsets_per_min,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TempoStats:
        return cls(
            bpm_median=float(data['bpm_median']),
            bpm_mean=float(data['bpm_mean']),
            bpm_std=float(data['bpm_std']),
            events=int(data.get('events', 0)),
            onsets_per_min=_opt_float(data.get('onsets_per_min')),
        )


@dataclass(frozen=True)
class PitchStats:
    """Pitch summary built from a non-empty series of positive Hz values."""

    hz_median: float
    hz_mean: float
    hz_min: float
    hz_max: float

    @property
    def midi_median(self) -> float:
        return hz_to_midi(self.hz_median)

    @property
    def note(self) -> str:
        """Nearest equal-tempered note name, e.g. "A4"."""
        return midi_to_note_name(round_half_away(self.midi_median))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hz_median': self.hz_median,
            'hz_mean': self.hz_mean,
            'hz_min': self.hz_min,
            'hz_max': self.hz_max,
            'midi_median': self.midi_median,
            'note': self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PitchStats:
        return cls(
            hz_median=float(data['hz_median']),
            hz_mean=float(data['hz_mean']),
            hz_min=float(data['hz_min']),
            hz_max=float(data['hz_max']),
        )


@dataclass(frozen=True)
class KeyInfo:
    """Detected musical key."""

    key: Optional[str] = None  # e.g. "C", "F#"
    scale: Optional[str] = None  # e.g. "major", "minor"
    confidence: Optional[float] = None  # [0.0, 1.0]

    def __post_init__(self) -> None:
        if self.confidence is not None:
            validate_confidence(self.confidence)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'scale': self.scale,
            'confidence': self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> KeyInfo:
        return cls(
            key=data.get('key'),
            scale=data.get('scale'),
            confidence=_opt_float(data.get('confidence')),
        )


@dataclass(frozen=True)
class SilenceSpan:
    """A detected stretch of silence, in seconds from the start of the file."""

    start: float
    end: float

    def __post_init__(self) -> None:
        if not self.end > self.start:
            raise ValueError(f"Silence span must end after it starts: {self.start} -> {self.end}")

    @property
    def duration(self) -> float:
        return self.end - self.start

    def to_dict(self) -> Dict[str, Any]:
        return {'start': self.start, 'end': self.end}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SilenceSpan:
        return cls(start=float(data['start']), end=float(data['end']))


@dataclass(frozen=True)
class Analysis:
    """Complete measurement record for one input file."""

    # Identification
    input_path: str
    timestamp: datetime

    # Mandatory sections
    probe: ProbeInfo
    level: LevelStats
    stereo: StereoStats = field(default_factory=StereoStats)
    spectral: SpectralStats = field(default_factory=SpectralStats)

    # Optional sections (None when the measurement was unavailable)
    loudness: Optional[Loudness] = None
    bands: Tuple[BandStat, ...] = ()
    tempo: Optional[TempoStats] = None
    pitch: Optional[PitchStats] = None
    key: Optional[KeyInfo] = None
    silence: Tuple[SilenceSpan, ...] = ()

    notes: Tuple[str, ...] = ()

    @property
    def silence_total(self) -> Optional[float]:
        """Summed length of all silence spans, absent when there are none."""
        if not self.silence:
            return None
        return sum(span.duration for span in self.silence)

    @property
    def silence_ratio(self) -> Optional[float]:
        total = self.silence_total
        if total is None or self.probe.duration <= 0:
            return None
        return total / self.probe.duration

    @property
    def clip_percent(self) -> Optional[float]:
        return clip_percent(self.level.clip_samples, self.probe)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'file': self.input_path,
            'timestamp': self.timestamp.isoformat(),
            'probe': self.probe.to_dict(),
            'level': {**self.level.to_dict(), 'clip_percent': self.clip_percent},
            'loudness': self.loudness.to_dict() if self.loudness else None,
            'stereo': self.stereo.to_dict(),
            'spectral': self.spectral.to_dict(),
            'bands': [b.to_dict() for b in self.bands],
            'tempo': self.tempo.to_dict() if self.tempo else None,
            'pitch': self.pitch.to_dict() if self.pitch else None,
            'key': self.key.to_dict() if self.key else None,
            'silence': [s.to_dict() for s in self.silence],
            'silence_total': self.silence_total,
            'silence_ratio': self.silence_ratio,
            'notes': list(self.notes),
        }

    def to_json(self, indent: int = 2) -> str:
        """Export as strict JSON; non-finite levels (silence at -inf dB) become null."""
        return json.dumps(
            _json_safe(self.to_dict()), indent=indent, ensure_ascii=False, allow_nan=False
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Analysis:
        """Rebuild an Analysis from ``to_dict`` output (derived keys are ignored)."""
        return cls(
            input_path=str(data['file']),
            timestamp=datetime.fromisoformat(data['timestamp']),
            probe=ProbeInfo.from_dict(data['probe']),
            level=LevelStats.from_dict(data['level']),
            stereo=StereoStats.from_dict(data.get('stereo') or {}),
            spectral=SpectralStats.from_dict(data.get('spectral') or {}),
            loudness=_opt_section(Loudness, data.get('loudness')),
            bands=tuple(BandStat.from_dict(b) for b in data.get('bands') or []),
            tempo=_opt_section(TempoStats, data.get('tempo')),
            pitch=_opt_section(PitchStats, data.get('pitch')),
            key=_opt_section(KeyInfo, data.get('key')),
            silence=tuple(SilenceSpan.from_dict(s) for s in data.get('silence') or []),
            notes=tuple(data.get('notes') or []),
        )

    @classmethod
    def from_json(cls, text: str) -> Analysis:
        return cls.from_dict(json.loads(text))

    def get_summary(self) -> str:
        """Get a one-line human-readable summary."""
        parts = [
            f"Duration: {self.probe.duration:.3f}s",
            f"Peak: {self.level.peak_db:.2f} dBFS",
        ]
        if self.loudness:
            parts.append(f"Loudness: {self.loudness.integrated:.2f} LUFS")
        if self.tempo:
            parts.append(f"Tempo: {self.tempo.bpm_median:.2f} BPM")
        if self.pitch:
            parts.append(f"Note: {self.pitch.note}")
        if self.key and self.key.key:
            parts.append(f"Key: {' '.join(p for p in (self.key.key, self.key.scale) if p)}")
        if self.notes:
            parts.append(f"Notes: {len(self.notes)}")
        return " | ".join(parts)


@dataclass(frozen=True)
class Diff:
    """Per-metric deltas (B - A) over the metrics both analyses carry."""

    a: Analysis
    b: Analysis
    delta: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'a': self.a.to_dict(),
            'b': self.b.to_dict(),
            'delta': dict(self.delta),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(
            _json_safe(self.to_dict()), indent=indent, ensure_ascii=False, allow_nan=False
        )


# Level helpers

def clip_percent(clip_samples: Optional[int], probe: ProbeInfo) -> Optional[float]:
    """Clipped share of all samples, in percent, when count and geometry are known."""
    total = probe.total_samples
    if clip_samples is None or total is None:
        return None
    return 100.0 * clip_samples / total


# Pitch helpers

def hz_to_midi(hz: float) -> float:
    """Convert frequency to (fractional) MIDI note number, A4 = 440 Hz = 69."""
    return 69.0 + 12.0 * math.log2(hz / 440.0)


def round_half_away(value: float) -> int:
    """Round to nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def midi_to_note_name(midi: int) -> str:
    """Map an integer MIDI number to a note name with octave (60 -> "C4")."""
    return f"{NOTE_NAMES[midi % 12]}{midi // 12 - 1}"


# Validation helpers

def validate_confidence(confidence: float) -> None:
    """Validate confidence score is in valid range."""
    if not (0.0 <= confidence <= 1.0):
        raise ValueError(f"Confidence must be in [0.0, 1.0], got {confidence}")


def _opt_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def _db(value: Any) -> float:
    """Level in dB; null stands for -inf (digital silence) in JSON."""
    return float('-inf') if value is None else float(value)


def _json_safe(value: Any) -> Any:
    """Replace non-finite floats with None so the output is strict JSON."""
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _opt_section(section_cls: Any, data: Optional[Dict[str, Any]]) -> Any:
    if data is None:
        return None
    return section_cls.from_dict(data)
