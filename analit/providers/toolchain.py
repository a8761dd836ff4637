"""
Toolchain provider: the ffmpeg and aubio backends behind one
``MeasurementProvider``.
"""

import dataclasses
from pathlib import Path
from typing import Dict, List, Optional

from analit.core.models import Band, KeyInfo, Loudness, ProbeInfo, SilenceSpan, SpectralStats, StereoStats
from analit.core.provider import OnsetReading, VolumeReading
from analit.providers.aubio import AubioBackend
from analit.providers.ffmpeg import FFmpegBackend
from analit.providers.runner import CommandRunner
from analit.utils.config import AnalysisConfig
from analit.utils.errors import ToolNotFoundError
from analit.utils.logging import get_logger


class ToolchainProvider:
    """Dispatches each capability to the backend that owns it."""

    def __init__(self, ffmpeg: FFmpegBackend, aubio: AubioBackend):
        self.ffmpeg = ffmpeg
        self.aubio = aubio

    # ffprobe / ffmpeg

    def probe(self, path: Path) -> ProbeInfo:
        return self.ffmpeg.probe(path)

    def level_volume(self, path: Path) -> VolumeReading:
        return self.ffmpeg.level_volume(path)

    def extended_stats(self, path: Path, window: float = 0.0) -> Dict[str, float]:
        return self.ffmpeg.extended_stats(path, window)

    def loudness(self, path: Path) -> Loudness:
        return self.ffmpeg.loudness(path)

    def band_loudness(self, path: Path, band: Band) -> VolumeReading:
        return self.ffmpeg.band_loudness(path, band)

    def stereo_stats(self, path: Path) -> StereoStats:
        return self.ffmpeg.stereo_stats(path)

    def spectral_stats(self, path: Path) -> SpectralStats:
        return self.ffmpeg.spectral_stats(path)

    def silence_spans(
        self, path: Path, threshold_db: float, min_duration: float
    ) -> List[SilenceSpan]:
        return self.ffmpeg.silence_spans(path, threshold_db, min_duration)

    def cut(self, path: Path, start: float, end: float, output: Path) -> None:
        self.ffmpeg.cut(path, start, end, output)

    # aubio

    def tempo_series(self, path: Path) -> List[float]:
        return self.aubio.tempo_series(path)

    def onset_count(self, path: Path) -> OnsetReading:
        return self.aubio.onset_count(path)

    def pitch_series(self, path: Path) -> List[float]:
        return self.aubio.pitch_series(path)

    def key_guess(self, path: Path) -> Optional[KeyInfo]:
        return self.aubio.key_guess(path)

    def terminate_all(self) -> None:
        self.ffmpeg.runner.terminate_all()
        if self.aubio.runner is not self.ffmpeg.runner:
            self.aubio.runner.terminate_all()


def resolve_toolchain(
    config: AnalysisConfig,
    runner: Optional[CommandRunner] = None,
) -> AnalysisConfig:
    """
    Check the configured binaries before a run.

    Returns:
        The config, with the tempo engine switched off when aubio is missing

    Raises:
        ToolNotFoundError: If ffmpeg or ffprobe cannot be found
    """
    runner = runner or CommandRunner(timeout=config.tool_timeout)
    logger = get_logger('providers.toolchain')

    for binary in (config.ffmpeg_bin, config.ffprobe_bin):
        if not runner.available(binary):
            raise ToolNotFoundError(binary)

    if config.tempo_enabled and not runner.available(config.aubio_bin):
        logger.warning(f"{config.aubio_bin} not found, tempo analysis disabled")
        return dataclasses.replace(config, bpm_engine="none")

    return config


def create_toolchain_provider(
    config: AnalysisConfig,
    runner: Optional[CommandRunner] = None,
) -> ToolchainProvider:
    """
    Factory function to create the ffmpeg/aubio provider for a run.

    Args:
        config: Run configuration (binary names and tool timeout)
        runner: Optional shared runner; one is created from the config otherwise
    """
    runner = runner or CommandRunner(timeout=config.tool_timeout)
    return ToolchainProvider(
        ffmpeg=FFmpegBackend(runner, ffmpeg_bin=config.ffmpeg_bin, ffprobe_bin=config.ffprobe_bin),
        aubio=AubioBackend(runner, aubio_bin=config.aubio_bin),
    )
