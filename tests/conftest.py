"""Shared fixtures: a scriptable fake provider and ready-made analyses."""

import logging
from datetime import datetime, timezone
from pathlib import Path

import pytest

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
)
from analit.core.provider import OnsetReading, VolumeReading
from analit.utils.errors import MeasurementError

FIXED_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fake provider
# ---------------------------------------------------------------------------


def default_readings():
    return {
        "probe": ProbeInfo("wav", 20.0, 48000, 2, 1536000, 16),
        "volume": VolumeReading(peak_db=-1.0, rms_db=-15.0),
        "extended": {
            "dc_offset": 0.0001,
            "zero_crossings_rate": 0.05,
            "noise_floor_db": -80.0,
        },
        "loudness": Loudness(integrated=-14.0, range=6.0, true_peak=-1.2),
        "spectral": SpectralStats(centroid=1800.0, rolloff95=9000.0, flatness=0.2),
        "stereo": StereoStats(mid_rms_db=-16.0, side_rms_db=-28.0, correlation=0.8),
        "bands": {
            Band(20, 60): VolumeReading(-12.0, -30.0),
            Band(60, 120): VolumeReading(-10.0, -26.0),
        },
        "silence": [SilenceSpan(2.0, 4.0), SilenceSpan(10.0, 10.5)],
        "tempo": [120.0, 121.0, 119.0],
        "onset": OnsetReading(count=40),
        "pitch": [440.0, 441.0, 0.0, 439.0],
        "key": KeyInfo(key="A", scale="minor", confidence=0.8),
        "cut": None,
    }


class FakeProvider:
    """MeasurementProvider stand-in; probes named in ``fail`` raise MeasurementError."""

    def __init__(self, fail=(), **overrides):
        self.readings = default_readings()
        self.readings.update(overrides)
        self.fail = set(fail)
        self.calls = []
        self.cuts = []
        self.terminated = 0

    def _get(self, name):
        self.calls.append(name)
        if name in self.fail:
            raise MeasurementError(f"{name} unavailable", probe_name=name)
        return self.readings[name]

    def probe(self, path):
        return self._get("probe")

    def level_volume(self, path):
        return self._get("volume")

    def extended_stats(self, path, window=0.0):
        return self._get("extended")

    def loudness(self, path):
        return self._get("loudness")

    def band_loudness(self, path, band):
        bands = self._get("bands")
        if band not in bands:
            raise MeasurementError(f"band {band.label} unavailable", probe_name="band")
        return bands[band]

    def stereo_stats(self, path):
        return self._get("stereo")

    def spectral_stats(self, path):
        return self._get("spectral")

    def silence_spans(self, path, threshold_db, min_duration):
        return self._get("silence")

    def tempo_series(self, path):
        return self._get("tempo")

    def onset_count(self, path):
        return self._get("onset")

    def pitch_series(self, path):
        return self._get("pitch")

    def key_guess(self, path):
        return self._get("key")

    def cut(self, path, start, end, output):
        self._get("cut")
        self.cuts.append((Path(path), start, end, Path(output)))
        Path(output).write_bytes(b"")

    def terminate_all(self):
        self.terminated += 1


@pytest.fixture
def fake_provider():
    """FakeProvider where every probe succeeds."""
    return FakeProvider()


@pytest.fixture
def audio_file(tmp_path):
    """An (empty) input file; the fake provider never reads it."""
    path = tmp_path / "song.wav"
    path.write_bytes(b"RIFF")
    return path


# ---------------------------------------------------------------------------
# Analyses
# ---------------------------------------------------------------------------


@pytest.fixture
def full_analysis():
    """Analysis with every optional section present."""
    return Analysis(
        input_path="/music/song.wav",
        timestamp=FIXED_TIME,
        probe=ProbeInfo("wav", 20.0, 48000, 2, 1536000, 16),
        level=LevelStats(
            peak_db=-1.0,
            rms_db=-15.0,
            dc_offset=0.0001,
            zero_crossing_rate=0.05,
            noise_floor_db=-80.0,
            true_peak_dbtp=-0.5,
            clip_samples=100,
        ),
        stereo=StereoStats(mid_rms_db=-16.0, side_rms_db=-28.0, correlation=0.1),
        spectral=SpectralStats(centroid=1800.4, rolloff95=9000.0, flatness=0.7),
        loudness=Loudness(integrated=-14.0, range=6.0, true_peak=-0.5),
        bands=(
            BandStat(Band(20, 60), -12.0, -30.0),
            BandStat(Band(60, 120), -10.0, -26.0),
        ),
        tempo=TempoStats(bpm_median=120.0, bpm_mean=120.0, bpm_std=1.0, events=40, onsets_per_min=120.0),
        pitch=PitchStats(hz_median=440.0, hz_mean=440.0, hz_min=439.0, hz_max=441.0),
        key=KeyInfo(key="A", scale="minor", confidence=0.8),
        silence=(SilenceSpan(2.0, 4.0), SilenceSpan(10.0, 10.5)),
        notes=("Clipping detected: 100 samples (0.005%)",),
    )


@pytest.fixture
def minimal_analysis():
    """Analysis with only the mandatory sections."""
    return Analysis(
        input_path="/music/quiet.wav",
        timestamp=FIXED_TIME,
        probe=ProbeInfo("wav", 10.0, 44100, 1, 705600, 16),
        level=LevelStats(peak_db=-6.0, rms_db=-20.0),
    )


@pytest.fixture
def make_provider():
    """Factory for FakeProviders with failing probes or custom readings."""
    return FakeProvider


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Undo handler and level changes made by setup_logging."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)
