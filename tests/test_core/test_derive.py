"""Tests for derivation rules and note generation."""

from datetime import datetime, timezone

import pytest

from analit.core.derive import (
    Measurements,
    assemble_analysis,
    build_level_stats,
    generate_notes,
    pitch_from_series,
    tempo_from_series,
)
from analit.core.models import (
    Band,
    LevelStats,
    Loudness,
    ProbeInfo,
    SilenceSpan,
    SpectralStats,
    StereoStats,
    clip_percent,
)
from analit.core.provider import OnsetReading, VolumeReading

FIXED_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

PROBE = ProbeInfo("wav", 10.0, 48000, 2, 1536000, 16)


class TestTempo:
    def test_empty_series_has_no_tempo(self):
        assert tempo_from_series([]) is None
        assert tempo_from_series(None) is None

    def test_single_value_has_zero_std(self):
        tempo = tempo_from_series([128.0], OnsetReading(10), 60.0)
        assert tempo.bpm_median == 128.0
        assert tempo.bpm_mean == 128.0
        assert tempo.bpm_std == 0.0

    def test_statistics(self):
        tempo = tempo_from_series([120.0, 124.0, 116.0, 122.0], OnsetReading(30), 60.0)
        # median is the upper middle element of the sorted series
        assert tempo.bpm_median == 122.0
        assert tempo.bpm_mean == pytest.approx(120.5)
        assert tempo.bpm_std == pytest.approx(3.4156502, rel=1e-6)
        assert tempo.events == 30
        assert tempo.onsets_per_min == pytest.approx(30.0)

    def test_failed_onset_probe(self):
        tempo = tempo_from_series([120.0], None, 60.0)
        assert tempo.events == 0
        assert tempo.onsets_per_min is None

    def test_onset_rate_needs_duration(self):
        tempo = tempo_from_series([120.0], OnsetReading(12), 0.0)
        assert tempo.events == 12
        assert tempo.onsets_per_min is None


class TestPitch:
    def test_unvoiced_frames_ignored(self):
        pitch = pitch_from_series([0.0, 440.0, -1.0, 220.0, 880.0])
        assert pitch.hz_min == 220.0
        assert pitch.hz_max == 880.0
        assert pitch.hz_median == 440.0
        assert pitch.note == "A4"

    @pytest.mark.parametrize("series", [[], None, [0.0, -3.0]])
    def test_no_voiced_frames(self, series):
        assert pitch_from_series(series) is None


class TestClipPercent:
    def test_value(self):
        assert clip_percent(96, ProbeInfo(duration=1.0, sample_rate=48000, channels=2)) == pytest.approx(0.1)

    def test_needs_count(self):
        assert clip_percent(None, PROBE) is None

    def test_needs_geometry(self):
        assert clip_percent(10, ProbeInfo(duration=1.0, sample_rate=0, channels=2)) is None


class TestLevelStats:
    def test_reads_extended_stats(self):
        level = build_level_stats(
            VolumeReading(-1.0, -13.0),
            {"dc_offset": 0.002, "zero_crossings_rate": 0.1, "noise_floor_db": -70.0,
             "number_of_clipped_samples": 96.0},
            None,
        )
        assert level.peak_db == -1.0
        assert level.crest_db == 12.0
        assert level.dc_offset == 0.002
        assert level.noise_floor_db == -70.0
        assert level.clip_samples == 96
        assert level.true_peak_dbtp is None

    def test_true_peak_backfilled_from_loudness(self):
        level = build_level_stats(VolumeReading(-1.0, -13.0), {}, Loudness(-14.0, 5.0, -0.3))
        assert level.true_peak_dbtp == -0.3

    def test_failed_volume_probe(self):
        level = build_level_stats(None, None, None)
        assert level.peak_db == 0.0
        assert level.rms_db == 0.0
        assert level.clip_samples is None


class TestNotes:
    def test_all_four_in_priority_order(self):
        notes = generate_notes(
            LevelStats(true_peak_dbtp=-0.5, clip_samples=100),
            SpectralStats(flatness=0.7),
            StereoStats(correlation=0.1),
            ProbeInfo(duration=1.0, sample_rate=50000, channels=10),
        )
        assert notes == (
            "Clipping detected: 100 samples (0.020%)",
            "True peak dangerously high (-0.50 dBTP). Consider -1.5 dBTP ceiling.",
            "High spectral flatness → noise-like content.",
            "Low L/R correlation → wide or phasey stereo.",
        )

    def test_absent_fields_are_skipped(self):
        assert generate_notes(LevelStats(), SpectralStats(), StereoStats()) == ()

    def test_thresholds_are_strict(self):
        notes = generate_notes(
            LevelStats(true_peak_dbtp=-1.0, clip_samples=0),
            SpectralStats(flatness=0.5),
            StereoStats(correlation=0.2),
        )
        assert notes == ()

    def test_clip_note_without_percentage(self):
        notes = generate_notes(LevelStats(clip_samples=7), SpectralStats(), StereoStats())
        assert notes == ("Clipping detected: 7 samples",)


class TestAssemble:
    def test_full_assembly(self):
        measurements = Measurements(
            volume=VolumeReading(-1.0, -15.0),
            extended={"dc_offset": 0.0},
            loudness=Loudness(-14.0, 6.0, -0.5),
            spectral=SpectralStats(centroid=1000.0),
            stereo=StereoStats(-16.0, -28.0, 0.9),
            bands=((Band(60, 120), VolumeReading(-10.0, -26.0)),
                   (Band(20, 60), VolumeReading(-12.0, -30.0))),
            silence=[SilenceSpan(10.0, 10.5), SilenceSpan(2.0, 4.0)],
            tempo_series=[120.0, 121.0],
            onsets=OnsetReading(20),
            pitch_series=[440.0],
        )
        analysis = assemble_analysis("in.wav", FIXED_TIME, PROBE, measurements)

        assert analysis.level.true_peak_dbtp == -0.5
        assert [b.band for b in analysis.bands] == [Band(60, 120), Band(20, 60)]
        assert [s.start for s in analysis.silence] == [2.0, 10.0]
        assert analysis.silence_ratio == pytest.approx(0.25)
        assert analysis.tempo.onsets_per_min == pytest.approx(120.0)
        assert analysis.pitch.note == "A4"
        assert analysis.key is None
        assert analysis.notes == ("True peak dangerously high (-0.50 dBTP). Consider -1.5 dBTP ceiling.",)

    def test_nothing_but_probe(self):
        analysis = assemble_analysis("in.wav", FIXED_TIME, PROBE, Measurements())
        assert analysis.stereo == StereoStats()
        assert analysis.spectral.is_empty()
        assert analysis.loudness is None
        assert analysis.bands == ()
        assert analysis.tempo is None
        assert analysis.silence_total is None
        assert analysis.notes == ()

    def test_clip_percentage_from_probe_geometry(self):
        measurements = Measurements(extended={"number_of_clipped_samples": 96.0})
        analysis = assemble_analysis("in.wav", FIXED_TIME, PROBE, measurements)
        assert analysis.level.clip_samples == 96
        assert analysis.clip_percent == pytest.approx(0.01)
        assert analysis.notes == ("Clipping detected: 96 samples (0.010%)",)
