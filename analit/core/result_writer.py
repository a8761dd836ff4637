"""
Report renderers for analit.

Follows SOLID principles:
- Single Responsibility: Renderers only turn records into report text
- Open/Closed: New formats can be added without modifying existing code
- Interface Segregation: One method per record kind

Rendering is pure: the same Analysis or Diff always renders to the same
text. Absent sections are omitted from text and Markdown output; JSON
emits them as ``null``.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Type, Union

from analit.core.diff import METRICS_BY_NAME
from analit.core.models import Analysis, Diff
from analit.utils.errors import ConfigurationError, ReportWriteError
from analit.utils.logging import get_logger


class ReportRenderer(ABC):
    """Abstract base class for report renderers (Strategy Pattern)."""

    @abstractmethod
    def render_analysis(self, analysis: Analysis) -> str:
        """Render a single analysis."""
        pass

    @abstractmethod
    def render_diff(self, diff: Diff) -> str:
        """Render the comparison of two analyses."""
        pass


class JSONRenderer(ReportRenderer):
    """Renders records as indented JSON documents."""

    def __init__(self, indent: int = 2):
        """
        Initialize JSON renderer.

        Args:
            indent: JSON indentation level
        """
        self.indent = indent

    def render_analysis(self, analysis: Analysis) -> str:
        return analysis.to_json(indent=self.indent) + "\n"

    def render_diff(self, diff: Diff) -> str:
        return diff.to_json(indent=self.indent) + "\n"


class TextRenderer(ReportRenderer):
    """Renders records as line-oriented plain text."""

    def render_analysis(self, analysis: Analysis) -> str:
        a = analysis
        lines: List[str] = [
            f"File: {a.input_path}",
            f"When: {a.timestamp.isoformat()}",
            "",
            f"Format: {a.probe.format_name} | Duration: {a.probe.duration:.3f}s | "
            f"SR: {a.probe.sample_rate} Hz | Ch: {a.probe.channels} | "
            f"Bitrate: {a.probe.bit_rate} bps | BitDepth: {a.probe.bit_depth}",
        ]

        # Levels
        level = a.level
        parts = [
            f"Levels: Peak {level.peak_db:.2f} dBFS",
            f"RMS {level.rms_db:.2f} dBFS",
            f"Crest {level.crest_db:.2f} dB",
            f"Headroom {level.headroom_db:.2f} dB",
        ]
        if level.true_peak_dbtp is not None:
            parts.append(f"TruePeak {level.true_peak_dbtp:.2f} dBTP")
        if level.clip_samples is not None:
            parts.append(f"Clips {_clip_count(a)}")
        parts.extend([
            f"DC {level.dc_offset:.4f}",
            f"ZeroX {level.zero_crossing_rate:.2f}",
            f"NoiseFloor {level.noise_floor_db:.2f} dBFS",
        ])
        lines.append(" | ".join(parts))

        if a.loudness:
            parts = [
                f"LUFS: Integrated {a.loudness.integrated:.2f} LUFS",
                f"Range {a.loudness.range:.2f} LU",
            ]
            if a.loudness.true_peak is not None:
                parts.append(f"TruePeak {a.loudness.true_peak:.2f} dBTP")
            lines.append(" | ".join(parts))

        parts = [
            f"Stereo: Mid RMS {a.stereo.mid_rms_db:.2f} dB",
            f"Side RMS {a.stereo.side_rms_db:.2f} dB",
            f"Side/Mid {a.stereo.side_mid_ratio_db:.2f} dB",
        ]
        if a.stereo.correlation is not None:
            parts.append(f"Corr {a.stereo.correlation:.2f}")
        lines.append(" | ".join(parts))

        if not a.spectral.is_empty():
            sp = a.spectral
            parts = []
            if sp.centroid is not None:
                parts.append(f"Centroid {sp.centroid:.0f} Hz")
            if sp.rolloff95 is not None:
                parts.append(f"Rolloff95 {sp.rolloff95:.0f} Hz")
            if sp.flatness is not None:
                parts.append(f"Flatness {sp.flatness:.3f}")
            if sp.spread is not None:
                parts.append(f"Spread {sp.spread:.3f}")
            if sp.skewness is not None:
                parts.append(f"Skew {sp.skewness:.3f}")
            if sp.kurtosis is not None:
                parts.append(f"Kurt {sp.kurtosis:.3f}")
            lines.append("Spectral: " + " | ".join(parts))

        if a.tempo:
            parts = [
                f"Tempo: BPM med {a.tempo.bpm_median:.2f}",
                f"mean {a.tempo.bpm_mean:.2f}",
                f"std {a.tempo.bpm_std:.2f}",
                f"events {a.tempo.events}",
            ]
            if a.tempo.onsets_per_min is not None:
                parts.append(f"onsets/min {a.tempo.onsets_per_min:.2f}")
            lines.append(" | ".join(parts))

        if a.pitch:
            lines.append(" | ".join([
                f"Pitch: median {a.pitch.hz_median:.2f} Hz",
                f"mean {a.pitch.hz_mean:.2f} Hz",
                f"min/max {a.pitch.hz_min:.2f}/{a.pitch.hz_max:.2f} Hz",
                f"MIDI {a.pitch.midi_median:.1f}",
                f"note {a.pitch.note}",
            ]))

        if a.key and (a.key.key or a.key.scale):
            text = " ".join(p for p in (a.key.key, a.key.scale) if p)
            if a.key.confidence is not None:
                text += f" (conf {a.key.confidence:.2f})"
            lines.append(f"Key: {text}")

        if a.bands:
            lines.extend(["", "Band Loudness (dBFS):"])
            for stat in a.bands:
                lines.append(
                    f"  {stat.band.lo:6.0f}-{stat.band.hi:<6.0f} Hz : "
                    f"peak {stat.peak_db:7.2f} | rms {stat.rms_db:7.2f}"
                )

        if a.silence:
            lines.extend(["", "Silence spans:"])
            for span in a.silence:
                lines.append(f"  {span.start:.3f} → {span.end:.3f} ({span.duration:.3f}s)")
            lines.append(f"Total silence: {a.silence_total:.3f}s")
            if a.silence_ratio is not None:
                lines.append(f"Silence ratio: {a.silence_ratio * 100:.2f}% of duration")

        if a.notes:
            lines.extend(["", "Notes:"])
            lines.extend(f"  - {note}" for note in a.notes)

        return "\n".join(lines) + "\n"

    def render_diff(self, diff: Diff) -> str:
        lines = [f"COMPARE: {diff.a.input_path} vs {diff.b.input_path}", ""]
        for name, value in diff.delta.items():
            lines.append(f"{name:<20} : {value:+8.3f}")
        return "\n".join(lines) + "\n"


class MarkdownRenderer(ReportRenderer):
    """Renders records as Markdown with bullet lists and tables."""

    def render_analysis(self, analysis: Analysis) -> str:
        a = analysis
        lines: List[str] = [
            f"# Analysis: {Path(a.input_path).name}",
            "",
            f"- When: `{a.timestamp.isoformat()}`",
            f"- Format: `{a.probe.format_name}`",
            f"- Duration: `{a.probe.duration:.3f}s`",
            f"- Sample Rate: `{a.probe.sample_rate} Hz`",
            f"- Channels: `{a.probe.channels}`",
            f"- Bit Depth: `{a.probe.bit_depth}`",
            "",
        ]

        level = a.level
        lines.extend([
            "## Levels",
            f"- Peak: `{level.peak_db:.2f} dBFS`",
            f"- RMS: `{level.rms_db:.2f} dBFS`",
            f"- Crest: `{level.crest_db:.2f} dB`",
            f"- Headroom: `{level.headroom_db:.2f} dB`",
        ])
        if level.true_peak_dbtp is not None:
            lines.append(f"- True Peak: `{level.true_peak_dbtp:.2f} dBTP`")
        if level.clip_samples is not None:
            lines.append(f"- Clipped samples: `{_clip_count(a)}`")
        lines.extend([
            f"- DC Offset: `{level.dc_offset:.4f}`",
            f"- Zero-Crossing Rate: `{level.zero_crossing_rate:.2f}`",
            f"- Noise Floor: `{level.noise_floor_db:.2f} dBFS`",
            "",
        ])

        if a.loudness:
            lines.extend([
                "## Loudness (EBU R128)",
                f"- Integrated: `{a.loudness.integrated:.2f} LUFS`",
                f"- Range: `{a.loudness.range:.2f} LU`",
            ])
            if a.loudness.true_peak is not None:
                lines.append(f"- True Peak: `{a.loudness.true_peak:.2f} dBTP`")
            lines.append("")

        lines.extend([
            "## Stereo",
            f"- Mid RMS: `{a.stereo.mid_rms_db:.2f} dB`",
            f"- Side RMS: `{a.stereo.side_rms_db:.2f} dB`",
            f"- Side/Mid: `{a.stereo.side_mid_ratio_db:.2f} dB`",
        ])
        if a.stereo.correlation is not None:
            lines.append(f"- Correlation: `{a.stereo.correlation:.2f}`")
        lines.append("")

        if not a.spectral.is_empty():
            sp = a.spectral
            lines.append("## Spectral")
            if sp.centroid is not None:
                lines.append(f"- Centroid: `{sp.centroid:.0f} Hz`")
            if sp.rolloff95 is not None:
                lines.append(f"- Rolloff (95%): `{sp.rolloff95:.0f} Hz`")
            if sp.flatness is not None:
                lines.append(f"- Flatness: `{sp.flatness:.3f}`")
            if sp.spread is not None:
                lines.append(f"- Spread: `{sp.spread:.3f}`")
            if sp.skewness is not None:
                lines.append(f"- Skewness: `{sp.skewness:.3f}`")
            if sp.kurtosis is not None:
                lines.append(f"- Kurtosis: `{sp.kurtosis:.3f}`")
            lines.append("")

        if a.tempo:
            lines.extend([
                "## Tempo",
                f"- BPM (median): `{a.tempo.bpm_median:.2f}`",
                f"- BPM (mean): `{a.tempo.bpm_mean:.2f}`",
                f"- BPM (stddev): `{a.tempo.bpm_std:.2f}`",
                f"- Tempo events: `{a.tempo.events}`",
            ])
            if a.tempo.onsets_per_min is not None:
                lines.append(f"- Onsets/min: `{a.tempo.onsets_per_min:.2f}`")
            lines.append("")

        if a.pitch:
            lines.extend([
                "## Pitch",
                f"- Median: `{a.pitch.hz_median:.2f} Hz`",
                f"- Mean: `{a.pitch.hz_mean:.2f} Hz`",
                f"- Min/Max: `{a.pitch.hz_min:.2f} / {a.pitch.hz_max:.2f} Hz`",
                f"- MIDI: `{a.pitch.midi_median:.1f}`",
                f"- Note: `{a.pitch.note}`",
                "",
            ])

        if a.key and (a.key.key or a.key.scale):
            lines.append("## Key")
            if a.key.key:
                lines.append(f"- Key: `{a.key.key}`")
            if a.key.scale:
                lines.append(f"- Scale: `{a.key.scale}`")
            if a.key.confidence is not None:
                lines.append(f"- Confidence: `{a.key.confidence:.2f}`")
            lines.append("")

        if a.bands:
            lines.extend([
                "## Band Loudness",
                "",
                "| Band (Hz) | Peak (dBFS) | RMS (dBFS) |",
                "|---:|---:|---:|",
            ])
            for stat in a.bands:
                lines.append(f"| {stat.band.label} | {stat.peak_db:.2f} | {stat.rms_db:.2f} |")
            lines.append("")

        if a.silence:
            lines.append("## Silence")
            for span in a.silence:
                lines.append(f"- `{span.start:.3f} → {span.end:.3f}` ({span.duration:.3f}s)")
            lines.append(f"- Total silence: `{a.silence_total:.3f}s`")
            if a.silence_ratio is not None:
                lines.append(f"- Silence ratio: `{a.silence_ratio * 100:.2f}%`")
            lines.append("")

        if a.notes:
            lines.append("## Notes")
            lines.extend(f"- {note}" for note in a.notes)
            lines.append("")

        return "\n".join(lines) + "\n"

    def render_diff(self, diff: Diff) -> str:
        name_a = Path(diff.a.input_path).name
        name_b = Path(diff.b.input_path).name
        lines = [
            f"# Compare: {name_a} ↔ {name_b}",
            "",
            f"| Metric | {name_a} | {name_b} | Δ (B-A) |",
            "|---|---:|---:|---:|",
        ]
        for name, value in diff.delta.items():
            metric = METRICS_BY_NAME[name]
            p = metric.precision
            lines.append(
                f"| {metric.label} | {metric.value(diff.a):.{p}f} | "
                f"{metric.value(diff.b):.{p}f} | {value:.{p}f} |"
            )
        return "\n".join(lines) + "\n"


def _clip_count(analysis: Analysis) -> str:
    """Clipped sample count, with its percentage when the geometry is known."""
    percent = analysis.clip_percent
    if percent is None:
        return str(analysis.level.clip_samples)
    return f"{analysis.level.clip_samples} ({percent:.3f}%)"


RENDERERS: Dict[str, Type[ReportRenderer]] = {
    "json": JSONRenderer,
    "txt": TextRenderer,
    "text": TextRenderer,
    "md": MarkdownRenderer,
    "markdown": MarkdownRenderer,
}


def create_renderer(format: str = "txt", **kwargs) -> ReportRenderer:
    """
    Factory function to create the renderer for a report format.

    Args:
        format: Output format ("json", "txt"/"text" or "md"/"markdown")
        **kwargs: Additional arguments for the renderer

    Raises:
        ConfigurationError: If the format is unknown
    """
    renderer_class = RENDERERS.get(format.lower())
    if renderer_class is None:
        raise ConfigurationError(
            f"Unknown format: {format}. Supported: {list(RENDERERS.keys())}",
            config_key="output.format"
        )

    return renderer_class(**kwargs)


def write_report(text: str, output_path: Union[str, Path]) -> Path:
    """
    Write rendered report text to ``output_path`` (UTF-8).

    Raises:
        ReportWriteError: If the file cannot be written
    """
    output_path = Path(output_path)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(text)
    except OSError as e:
        raise ReportWriteError(
            f"Failed to write report to {output_path}: {e}",
            output_path=str(output_path),
            original_error=e
        ) from e

    get_logger('result_writer').info(f"Report written to: {output_path}")
    return output_path
