"""
Analysis engine for analit.

Runs the mandatory probe, fans the independent probes out over a thread
pool, and folds whatever came back into one Analysis.
"""

import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set, Tuple, Union

from analit.core.derive import Measurements, assemble_analysis
from analit.core.models import Analysis, ProbeInfo
from analit.core.provider import MeasurementProvider, OnsetReading
from analit.utils.config import AnalysisConfig
from analit.utils.errors import ProbeFailure
from analit.utils.logging import create_logger_with_context, get_logger

ProbeJob = Callable[[], Any]

# terminate_all rounds after a run timeout, and seconds to wait after each
ABORT_ATTEMPTS = 10
ABORT_GRACE = 0.2


class AnalysisEngine:
    """
    Main analysis engine - orchestrates one aggregation pass per input.

    Design:
    - Dependency Injection: provider and config are injected (testable)
    - Parallel Execution: independent probes run concurrently
    - Error Handling: only the mandatory probe can fail the analysis; any
      other failing probe leaves its section absent
    """

    def __init__(
        self,
        provider: MeasurementProvider,
        config: AnalysisConfig,
        max_workers: Optional[int] = None,
    ):
        """
        Initialize analysis engine.

        Args:
            provider: Measurement provider the probes are delegated to
            config: Read-only run configuration
            max_workers: Max parallel probes (defaults to config.max_workers)
        """
        self.provider = provider
        self.config = config
        self.executor = ThreadPoolExecutor(max_workers=max_workers or config.max_workers)
        self.logger = get_logger('engine')

    def analyze(self, file_path: Union[str, Path]) -> Analysis:
        """
        Analyze one audio file.

        Args:
            file_path: Path to audio file

        Returns:
            Analysis: Complete (possibly partial) analysis

        Raises:
            ProbeFailure: If the input is missing or cannot be probed
        """
        file_path = Path(file_path)
        logger = create_logger_with_context('engine', {'input': str(file_path)})
        start_time = time.time()

        if not file_path.exists():
            raise ProbeFailure(f"Input not found: {file_path}", input_path=str(file_path))

        # Step 1: Mandatory probe gates everything else
        logger.info(f"Probing: {file_path}")
        try:
            probe = self.provider.probe(file_path)
        except Exception as e:
            raise ProbeFailure(
                f"Probe failed for {file_path}: {e}",
                input_path=str(file_path),
                original_error=e
            ) from e

        # Step 2: Independent probes
        jobs = self._build_jobs(file_path, probe)
        logger.info(f"Running {len(jobs)} probes in parallel")
        readings = self._run_probes_parallel(jobs, logger)

        # Step 3: Fold into one record
        analysis = assemble_analysis(
            str(file_path),
            datetime.now(timezone.utc).replace(microsecond=0),
            probe,
            self._to_measurements(readings),
        )

        elapsed = time.time() - start_time
        logger.info(
            f"Analysis complete in {elapsed:.3f}s "
            f"({len(readings)}/{len(jobs)} probes succeeded)"
        )
        return analysis

    def _build_jobs(self, path: Path, probe: ProbeInfo) -> Dict[str, ProbeJob]:
        """Enabled probes, keyed by name. Band jobs are keyed by band index."""
        cfg = self.config
        provider = self.provider

        jobs: Dict[str, ProbeJob] = {
            'volume': lambda: provider.level_volume(path),
            'extended': lambda: provider.extended_stats(path, cfg.stats_window),
            'spectral': lambda: provider.spectral_stats(path),
            'stereo': lambda: provider.stereo_stats(path),
            'silence': lambda: provider.silence_spans(
                path, cfg.silence_threshold_db, cfg.silence_min_duration
            ),
            'pitch': lambda: provider.pitch_series(path),
            'key': lambda: provider.key_guess(path),
        }
        if cfg.use_loudness:
            jobs['loudness'] = lambda: provider.loudness(path)
        if cfg.use_bands:
            for index, band in enumerate(cfg.bands):
                jobs[f'band:{index}'] = (lambda b=band: provider.band_loudness(path, b))
        if cfg.tempo_enabled:
            jobs['tempo'] = lambda: self._measure_tempo(path)
        return jobs

    def _measure_tempo(self, path: Path) -> Tuple[Any, Optional[OnsetReading]]:
        """BPM series plus onset reading; a failed onset probe only drops the onsets."""
        series = self.provider.tempo_series(path)
        try:
            onsets = self.provider.onset_count(path)
        except Exception as e:
            self.logger.debug(f"onset probe unavailable: {e}")
            onsets = None
        return series, onsets

    def _run_probes_parallel(self, jobs: Dict[str, ProbeJob], logger: Any) -> Dict[str, Any]:
        """
        Run all probe jobs on the pool.

        A probe that raises, or that has not finished when the run timeout
        expires, is left out of the returned readings; the tools an unfinished
        probe is running are killed. Failures never cancel sibling probes.

        Returns:
            dict: {name: reading} for completed probes only
        """
        futures: Dict[Future, str] = {
            self.executor.submit(job): name for name, job in jobs.items()
        }

        done, not_done = wait(futures, timeout=self.config.run_timeout)
        if not_done:
            for future in not_done:
                future.cancel()
                logger.warning(f"{futures[future]} probe did not finish before the run timeout")
            self._abort(not_done, logger)

        readings: Dict[str, Any] = {}
        for future in done:
            name = futures[future]
            try:
                readings[name] = future.result()
                logger.debug(f"{name} complete")
            except Exception as e:
                logger.debug(f"{name} unavailable: {e}")
        return readings

    def _abort(self, pending: Set[Future], logger: Any) -> None:
        """Kill the tools behind unfinished probes until their workers return."""
        running = {future for future in pending if not future.cancelled()}
        for _ in range(ABORT_ATTEMPTS):
            self.provider.terminate_all()
            _, running = wait(running, timeout=ABORT_GRACE)
            if not running:
                return
        logger.warning(f"{len(running)} probe worker(s) still busy after the run timeout")

    def _to_measurements(self, readings: Dict[str, Any]) -> Measurements:
        bands = tuple(
            (band, readings[f'band:{index}'])
            for index, band in enumerate(self.config.bands)
            if f'band:{index}' in readings
        )
        tempo_series, onsets = readings.get('tempo', (None, None))
        return Measurements(
            volume=readings.get('volume'),
            extended=readings.get('extended'),
            loudness=readings.get('loudness'),
            spectral=readings.get('spectral'),
            stereo=readings.get('stereo'),
            bands=bands,
            silence=readings.get('silence'),
            tempo_series=tempo_series,
            onsets=onsets,
            pitch_series=readings.get('pitch'),
            key=readings.get('key'),
        )

    def shutdown(self) -> None:
        """Shutdown thread pool, killing running tools and dropping probes that have not started."""
        self.logger.debug("Shutting down analysis engine")
        self.provider.terminate_all()
        self.executor.shutdown(wait=True, cancel_futures=True)

    def __enter__(self) -> "AnalysisEngine":
        """Context manager support."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Cleanup on context exit."""
        self.shutdown()


def create_analysis_engine(
    config: AnalysisConfig,
    provider: Optional[MeasurementProvider] = None,
) -> AnalysisEngine:
    """
    Factory function to create a configured analysis engine.

    Args:
        config: Run configuration
        provider: Optional provider; defaults to the ffmpeg/aubio toolchain

    Returns:
        AnalysisEngine: Configured engine
    """
    if provider is None:
        from analit.providers.toolchain import create_toolchain_provider
        provider = create_toolchain_provider(config)

    return AnalysisEngine(provider=provider, config=config)
