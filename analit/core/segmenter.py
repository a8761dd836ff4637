"""
Silence-based segmentation for analit.

``segment_by_silence`` turns detected silence spans into the list of
(start, end) segments between them; ``SilenceSplitter`` writes each segment
to its own file through the provider's cut operation.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from analit.core.models import Analysis, SilenceSpan
from analit.core.provider import MeasurementProvider
from analit.utils.errors import SegmentExtractionError
from analit.utils.logging import get_logger


@dataclass(frozen=True)
class Segment:
    """A [start, end) stretch of the input, in seconds."""

    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


def segment_by_silence(
    spans: Sequence[SilenceSpan],
    total_duration: float,
    min_silence: float,
    trim: float = 0.0,
) -> List[Segment]:
    """
    Split [0, total_duration) at every silence span of at least ``min_silence``.

    Spans are expected in chronological order. Returns an empty list when
    fewer than two segments result, since there is nothing to split. With
    ``trim > 0`` each segment loses ``trim`` seconds at both ends, clamped
    so it never inverts.
    """
    segments: List[Segment] = []
    cursor = 0.0

    for span in spans:
        if span.duration < min_silence:
            continue
        segments.append(Segment(cursor, span.start))
        cursor = span.end

    if cursor < total_duration:
        segments.append(Segment(cursor, total_duration))

    if len(segments) <= 1:
        return []

    if trim > 0:
        segments = [_trim(segment, trim) for segment in segments]
    return segments


def _trim(segment: Segment, trim: float) -> Segment:
    start = min(segment.end, segment.start + trim)
    end = max(start, segment.end - trim)
    return Segment(start, end)


def segment_path(input_path: Path, index: int) -> Path:
    """Output path of the ``index``-th (1-based) segment: ``<stem>-partNN<ext>``."""
    return input_path.with_name(f"{input_path.stem}-part{index:02d}{input_path.suffix}")


class SilenceSplitter:
    """Cuts an analysed file into the segments between its silences."""

    def __init__(self, provider: MeasurementProvider):
        self.provider = provider
        self.logger = get_logger('segmenter')

    def split(
        self,
        input_path: Path,
        analysis: Analysis,
        min_silence: float,
        trim: float = 0.0,
    ) -> List[Path]:
        """
        Write every segment of ``input_path`` next to it.

        Returns:
            List of written segment files (empty when there is nothing to split)

        Raises:
            SegmentExtractionError: If a cut fails; earlier segments stay on disk
        """
        input_path = Path(input_path)
        segments = segment_by_silence(
            analysis.silence, analysis.probe.duration, min_silence, trim
        )
        if not segments:
            self.logger.info(f"No qualifying silence in {input_path}, nothing to split")
            return []

        written: List[Path] = []
        for index, segment in enumerate(segments, start=1):
            output = segment_path(input_path, index)
            self.logger.debug(
                f"Cutting {segment.start:.3f}-{segment.end:.3f}s into {output.name}"
            )
            try:
                self.provider.cut(input_path, segment.start, segment.end, output)
            except Exception as e:
                raise SegmentExtractionError(
                    f"Failed to extract segment {index} of {input_path}: {e}",
                    output_path=str(output),
                    written=[str(p) for p in written],
                    original_error=e
                ) from e
            written.append(output)

        self.logger.info(f"Split {input_path} into {len(written)} segments")
        return written
