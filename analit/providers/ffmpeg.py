"""
ffprobe/ffmpeg measurement backend.

Each capability runs one ffmpeg filter pass over the input (``-f null``)
and parses the filter's report from the log. The ``parse_*`` functions are
pure and raise ``ValueError`` when the output holds nothing usable; the
backend's ``measure`` template turns that into a ``MeasurementError``.
"""

import json
import math
import re
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from analit.core.models import Band, Loudness, ProbeInfo, SilenceSpan, SpectralStats, StereoStats
from analit.core.provider import VolumeReading
from analit.providers.base import ToolBackend
from analit.providers.runner import CommandRunner
from analit.utils.errors import MeasurementError

# Log line prefix, e.g. "[Parsed_astats_0 @ 0x55d0c8a3c5c0] "
_LOG_PREFIX = re.compile(r'^\[([^\]]*)\]\s*')
_NUMBER = r'(-?inf|[-+]?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)'

_MAX_VOLUME = re.compile(r'max_volume:\s*' + _NUMBER + r'\s*dB')
_MEAN_VOLUME = re.compile(r'mean_volume:\s*' + _NUMBER + r'\s*dB')

_ASTATS_OVERALL_INLINE = re.compile(r'^Overall ([A-Za-z0-9 /\-]+):\s*(\S+)')
_ASTATS_KEY_VALUE = re.compile(r'^([A-Za-z][A-Za-z0-9 /\-]*):\s*(\S+)')

_EBUR128_INTEGRATED = re.compile(r'Integrated loudness:\s*(?:I:\s*)?' + _NUMBER + r'\s*LUFS')
_EBUR128_RANGE = re.compile(r'Loudness range:\s*(?:LRA:\s*)?' + _NUMBER + r'\s*LU')
_EBUR128_TRUE_PEAK = re.compile(r'True peak:\s*(?:Peak:\s*)?' + _NUMBER + r'\s*dB(?:TP|FS)')

_SILENCE_START = re.compile(r'silence_start:\s*' + _NUMBER)
_SILENCE_END = re.compile(r'silence_end:\s*' + _NUMBER)

MID_PAN = "pan=mono|c0=0.5*c0+0.5*c1"
SIDE_PAN = "pan=mono|c0=0.5*c0-0.5*c1"

SPECTRAL_KEYS = {
    'centroid': 'centroid',
    'rolloff': 'rolloff95',
    'flatness': 'flatness',
    'spread': 'spread',
    'skewness': 'skewness',
    'kurtosis': 'kurtosis',
}


# Parsers

def _to_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_int(value) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def parse_probe_json(text: str) -> ProbeInfo:
    """
    Parse ``ffprobe -show_format -show_streams -of json`` output.

    Stream facts come from the first audio stream. Missing facts are 0.
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("ffprobe output is not a JSON object")

    fmt = data.get('format') or {}
    stream = next(
        (s for s in data.get('streams') or [] if s.get('codec_type') == 'audio'),
        {}
    )

    bit_depth = _to_int(stream.get('bits_per_sample'))
    if bit_depth <= 0:
        bit_depth = _to_int(stream.get('bits_per_raw_sample'))

    return ProbeInfo(
        format_name=str(fmt.get('format_name', "")),
        duration=_to_float(fmt.get('duration')),
        sample_rate=_to_int(stream.get('sample_rate')),
        channels=_to_int(stream.get('channels')),
        bit_rate=_to_int(fmt.get('bit_rate')),
        bit_depth=bit_depth,
    )


def parse_volumedetect(text: str) -> VolumeReading:
    """Peak (max_volume) and mean (mean_volume) level from volumedetect."""
    max_match = _MAX_VOLUME.search(text)
    mean_match = _MEAN_VOLUME.search(text)
    if not max_match or not mean_match:
        raise ValueError("volumedetect report not found")
    return VolumeReading(peak_db=float(max_match.group(1)), rms_db=float(mean_match.group(1)))


def normalize_stat_key(name: str) -> str:
    """'Zero crossings rate' -> 'zero_crossings_rate'."""
    return re.sub(r'[^a-z0-9]+', '_', name.strip().lower()).strip('_')


def _store_stat(stats: Dict[str, float], name: str, value: str) -> None:
    try:
        stats[normalize_stat_key(name)] = float(value)
    except ValueError:
        pass  # non-numeric entries such as "Bit depth: 16/16"


def parse_astats_overall(text: str) -> Dict[str, float]:
    """
    Overall statistics from an astats report, keyed by normalized name.

    Handles both the block layout (an "Overall" line followed by
    "Name: value" lines) and single-line "Overall Name: value" entries.
    """
    stats: Dict[str, float] = {}
    in_overall = False

    for raw in text.splitlines():
        line = raw.strip()
        prefix = _LOG_PREFIX.match(line)
        if prefix:
            if 'astats' not in prefix.group(1):
                in_overall = False
                continue
            line = line[prefix.end():].strip()
        if not line:
            continue

        inline = _ASTATS_OVERALL_INLINE.match(line)
        if inline:
            _store_stat(stats, inline.group(1), inline.group(2))
            continue
        if line == 'Overall':
            in_overall = True
            continue
        if line.startswith('Channel:'):
            in_overall = False
            continue
        if in_overall:
            entry = _ASTATS_KEY_VALUE.match(line)
            if entry:
                _store_stat(stats, entry.group(1), entry.group(2))

    return stats


def parse_ebur128(text: str) -> Loudness:
    """Integrated loudness (required), loudness range and true peak from the ebur128 summary."""
    start = text.rfind('Summary:')
    summary = text[start:] if start >= 0 else text

    integrated = _EBUR128_INTEGRATED.search(summary)
    if not integrated:
        raise ValueError("ebur128 summary has no integrated loudness")
    loudness_range = _EBUR128_RANGE.search(summary)
    true_peak = _EBUR128_TRUE_PEAK.search(summary)

    return Loudness(
        integrated=float(integrated.group(1)),
        range=float(loudness_range.group(1)) if loudness_range else 0.0,
        true_peak=float(true_peak.group(1)) if true_peak else None,
    )


def parse_metadata_means(text: str, filter_name: str) -> Dict[str, float]:
    """
    Per-key mean of ``lavfi.<filter_name>[.<channel>].<key>=<value>`` frame metadata.

    Values from every frame and channel are pooled; NaN frames are skipped.
    """
    pattern = re.compile(
        r'lavfi\.' + re.escape(filter_name) + r'\.(?:\d+\.)?([A-Za-z_]+)=(\S+)'
    )
    values: Dict[str, List[float]] = defaultdict(list)
    for match in pattern.finditer(text):
        try:
            value = float(match.group(2))
        except ValueError:
            continue
        if math.isfinite(value):
            values[match.group(1).lower()].append(value)

    return {key: sum(vals) / len(vals) for key, vals in values.items() if vals}


def parse_spectral(text: str) -> SpectralStats:
    """Frame-averaged aspectralstats descriptors; descriptors not reported stay absent."""
    means = parse_metadata_means(text, 'aspectralstats')
    fields = {attr: means[key] for key, attr in SPECTRAL_KEYS.items() if key in means}
    if not fields:
        raise ValueError("no aspectralstats metadata found")
    return SpectralStats(**fields)


def parse_phase(text: str) -> float:
    """Mean aphasemeter phase, used as the L/R correlation in [-1, 1]."""
    means = parse_metadata_means(text, 'aphasemeter')
    if 'phase' not in means:
        raise ValueError("no aphasemeter phase found")
    return max(-1.0, min(1.0, means['phase']))


def parse_silencedetect(text: str) -> List[SilenceSpan]:
    """Pair silence_start/silence_end lines into spans, in log order."""
    spans: List[SilenceSpan] = []
    start: Optional[float] = None

    for line in text.splitlines():
        start_match = _SILENCE_START.search(line)
        if start_match:
            start = float(start_match.group(1))
        end_match = _SILENCE_END.search(line)
        if end_match and start is not None:
            end = float(end_match.group(1))
            if end > start:
                spans.append(SilenceSpan(start=max(0.0, start), end=end))
            start = None

    return spans


def _stat(stats: Dict[str, float], keys: Sequence[str], what: str) -> float:
    for key in keys:
        if key in stats:
            return stats[key]
    raise ValueError(f"astats report has no {what}")


class FFmpegBackend(ToolBackend):
    """Probe, level, loudness, band, stereo, spectral, silence and cut via ffmpeg."""

    def __init__(
        self,
        runner: CommandRunner,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
    ):
        super().__init__(name="ffmpeg", runner=runner)
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin

    def _filter_pass(self, path: Path, filter_args: Sequence[str]) -> str:
        """Decode ``path`` through a filter graph and return the log."""
        args = ['-hide_banner', '-nostats', '-vn', '-i', str(path), *filter_args, '-f', 'null', '-']
        return self.runner.run(self.ffmpeg_bin, args).output

    # Capabilities

    def probe(self, path: Path) -> ProbeInfo:
        return self.measure('probe', self._probe, path)

    def _probe(self, path: Path) -> ProbeInfo:
        args = ['-v', 'error', '-show_format', '-show_streams', '-of', 'json', str(path)]
        result = self.runner.run(self.ffprobe_bin, args, check=True)
        return parse_probe_json(result.stdout)

    def level_volume(self, path: Path) -> VolumeReading:
        return self.measure(
            'volume', lambda: parse_volumedetect(self._filter_pass(path, ['-af', 'volumedetect']))
        )

    def extended_stats(self, path: Path, window: float = 0.0) -> Dict[str, float]:
        return self.measure('extended_stats', self._extended_stats, path, window)

    def _extended_stats(self, path: Path, window: float) -> Dict[str, float]:
        astats = "astats=measure_overall=1:reset=0"
        if window > 0:
            astats += f":length={window:.2f}"
        stats = parse_astats_overall(self._filter_pass(path, ['-af', astats]))
        if not stats:
            raise ValueError("no astats parsed")
        return stats

    def loudness(self, path: Path) -> Loudness:
        return self.measure(
            'loudness',
            lambda: parse_ebur128(self._filter_pass(path, ['-filter_complex', 'ebur128=peak=true']))
        )

    def band_loudness(self, path: Path, band: Band) -> VolumeReading:
        chain = f"highpass=f={band.lo:g},lowpass=f={band.hi:g},volumedetect"
        return self.measure(
            f'band {band.label}',
            lambda: parse_volumedetect(self._filter_pass(path, ['-af', chain]))
        )

    def stereo_stats(self, path: Path) -> StereoStats:
        return self.measure('stereo', self._stereo_stats, path)

    def _stereo_stats(self, path: Path) -> StereoStats:
        mid = self._downmix_rms(path, MID_PAN)
        side = self._downmix_rms(path, SIDE_PAN)

        correlation = None
        try:
            correlation = self.measure('phase', self._phase, path)
        except MeasurementError as e:
            self.logger.debug(f"correlation unavailable: {e}")

        return StereoStats(mid_rms_db=mid, side_rms_db=side, correlation=correlation)

    def _downmix_rms(self, path: Path, pan: str) -> float:
        chain = f"{pan},astats=measure_overall=1:reset=0"
        stats = parse_astats_overall(self._filter_pass(path, ['-af', chain]))
        return _stat(stats, ('rms_level_db', 'rms_level'), 'RMS level')

    def _phase(self, path: Path) -> float:
        chain = "aphasemeter=video=0,ametadata=mode=print:key=lavfi.aphasemeter.phase"
        return parse_phase(self._filter_pass(path, ['-af', chain]))

    def spectral_stats(self, path: Path) -> SpectralStats:
        chain = "aspectralstats,ametadata=mode=print"
        return self.measure(
            'spectral', lambda: parse_spectral(self._filter_pass(path, ['-af', chain]))
        )

    def silence_spans(
        self, path: Path, threshold_db: float, min_duration: float
    ) -> List[SilenceSpan]:
        chain = f"silencedetect=noise={threshold_db:.1f}dB:d={min_duration:g}"
        return self.measure(
            'silence', lambda: parse_silencedetect(self._filter_pass(path, ['-af', chain]))
        )

    def cut(self, path: Path, start: float, end: float, output: Path) -> None:
        args = [
            '-hide_banner', '-nostats', '-y', '-i', str(path),
            '-ss', f"{start:.3f}", '-to', f"{end:.3f}",
            '-c', 'copy', str(output),
        ]
        self.measure('cut', self.runner.run, self.ffmpeg_bin, args, True)
