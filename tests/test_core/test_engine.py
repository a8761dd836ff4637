"""Tests for AnalysisEngine aggregation and failure tolerance."""

import sys
import threading
import time
from datetime import timezone

import pytest

from analit.core.engine import AnalysisEngine, create_analysis_engine
from analit.core.models import Band, StereoStats
from analit.providers.runner import CommandRunner
from analit.utils.config import AnalysisConfig
from analit.utils.errors import MeasurementError, ProbeFailure

BANDS = (Band(20, 60), Band(60, 120), Band(120, 250))


def _config(**overrides):
    defaults = dict(bands=BANDS, bpm_engine="aubio", max_workers=4)
    defaults.update(overrides)
    return AnalysisConfig(**defaults)


def _analyze(provider, path, **overrides):
    with AnalysisEngine(provider, _config(**overrides)) as engine:
        return engine.analyze(path)


class TestAnalyze:
    def test_all_probes_succeed(self, fake_provider, audio_file):
        analysis = _analyze(fake_provider, audio_file)

        assert analysis.input_path == str(audio_file)
        assert analysis.probe.duration == 20.0
        assert analysis.level.crest_db == 14.0
        assert analysis.level.true_peak_dbtp == -1.2
        assert analysis.loudness.integrated == -14.0
        assert analysis.stereo.correlation == 0.8
        assert analysis.spectral.centroid == 1800.0
        assert analysis.tempo.bpm_median == 120.0
        assert analysis.tempo.events == 40
        assert analysis.pitch.note == "A4"
        assert analysis.key.scale == "minor"
        assert analysis.silence_total == pytest.approx(2.5)
        assert analysis.notes == ()

    def test_failing_band_is_dropped_in_order(self, fake_provider, audio_file):
        analysis = _analyze(fake_provider, audio_file)
        # 120-250 has no reading in the fake provider
        assert [b.band for b in analysis.bands] == [Band(20, 60), Band(60, 120)]

    def test_timestamp_is_utc_seconds(self, fake_provider, audio_file):
        analysis = _analyze(fake_provider, audio_file)
        assert analysis.timestamp.tzinfo == timezone.utc
        assert analysis.timestamp.microsecond == 0


class TestFatalProbe:
    def test_missing_input(self, fake_provider, tmp_path):
        with pytest.raises(ProbeFailure):
            _analyze(fake_provider, tmp_path / "missing.wav")
        assert fake_provider.calls == []

    def test_probe_failure_carries_cause(self, make_provider, audio_file):
        provider = make_provider(fail={"probe"})
        with pytest.raises(ProbeFailure) as exc_info:
            _analyze(provider, audio_file)
        assert isinstance(exc_info.value.original_error, MeasurementError)
        assert exc_info.value.input_path == str(audio_file)
        assert provider.calls == ["probe"]


class TestDegradedProbes:
    def test_every_optional_probe_fails(self, make_provider, audio_file):
        provider = make_provider(fail={
            "volume", "extended", "loudness", "spectral", "stereo", "bands",
            "silence", "tempo", "onset", "pitch", "key",
        })
        analysis = _analyze(provider, audio_file)

        assert analysis.level.peak_db == 0.0
        assert analysis.level.true_peak_dbtp is None
        assert analysis.stereo == StereoStats()
        assert analysis.spectral.is_empty()
        assert analysis.loudness is None
        assert analysis.bands == ()
        assert analysis.tempo is None
        assert analysis.pitch is None
        assert analysis.key is None
        assert analysis.silence == ()
        assert analysis.notes == ()

    def test_onset_failure_keeps_tempo(self, make_provider, audio_file):
        analysis = _analyze(make_provider(fail={"onset"}), audio_file)
        assert analysis.tempo.bpm_median == 120.0
        assert analysis.tempo.events == 0
        assert analysis.tempo.onsets_per_min is None

    def test_unexpected_exception_is_absorbed(self, make_provider, audio_file):
        class BrokenKey(make_provider):
            def key_guess(self, path):
                raise RuntimeError("boom")

        analysis = _analyze(BrokenKey(), audio_file)
        assert analysis.key is None
        assert analysis.pitch is not None

    def test_empty_tempo_series(self, make_provider, audio_file):
        analysis = _analyze(make_provider(tempo=[]), audio_file)
        assert analysis.tempo is None


class TestConfiguredProbes:
    def test_tempo_engine_none(self, fake_provider, audio_file):
        analysis = _analyze(fake_provider, audio_file, bpm_engine="none")
        assert analysis.tempo is None
        assert "tempo" not in fake_provider.calls
        assert "onset" not in fake_provider.calls
        # pitch and key do not depend on the tempo engine
        assert analysis.pitch is not None

    def test_loudness_disabled(self, fake_provider, audio_file):
        analysis = _analyze(fake_provider, audio_file, use_loudness=False)
        assert analysis.loudness is None
        assert analysis.level.true_peak_dbtp is None
        assert "loudness" not in fake_provider.calls

    def test_bands_disabled(self, fake_provider, audio_file):
        analysis = _analyze(fake_provider, audio_file, use_bands=False)
        assert analysis.bands == ()
        assert "bands" not in fake_provider.calls


class TestRunTimeout:
    def test_unfinished_probe_is_absent(self, make_provider, audio_file):
        release = threading.Event()

        class SlowKey(make_provider):
            def key_guess(self, path):
                release.wait(timeout=5)
                return super().key_guess(path)

            def terminate_all(self):
                super().terminate_all()
                release.set()

        provider = SlowKey()
        engine = AnalysisEngine(provider, _config(run_timeout=0.3))
        try:
            analysis = engine.analyze(audio_file)
        finally:
            release.set()
            engine.shutdown()

        assert analysis.key is None
        assert analysis.loudness is not None
        assert provider.terminated >= 1

    def test_hanging_tool_is_killed(self, make_provider, audio_file):
        runner = CommandRunner(timeout=60)

        class HangingStereo(make_provider):
            def stereo_stats(self, path):
                runner.run(sys.executable, ["-c", "import time; time.sleep(30)"])
                return super().stereo_stats(path)

            def terminate_all(self):
                super().terminate_all()
                runner.terminate_all()

        started = time.monotonic()
        with create_analysis_engine(_config(run_timeout=0.3), provider=HangingStereo()) as engine:
            analysis = engine.analyze(audio_file)
        elapsed = time.monotonic() - started

        assert elapsed < 5
        assert analysis.stereo == StereoStats()
        assert analysis.loudness is not None

    def test_shutdown_kills_running_tools(self, fake_provider):
        engine = AnalysisEngine(fake_provider, _config())
        engine.shutdown()
        assert fake_provider.terminated == 1


class TestLifecycle:
    def test_context_manager_shuts_down(self, fake_provider):
        with AnalysisEngine(fake_provider, _config()) as engine:
            pass
        with pytest.raises(RuntimeError):
            engine.executor.submit(lambda: None)

    def test_factory_uses_given_provider(self, fake_provider):
        engine = create_analysis_engine(_config(max_workers=2), provider=fake_provider)
        try:
            assert engine.provider is fake_provider
            assert engine.executor._max_workers == 2
        finally:
            engine.shutdown()
