"""
Analysis comparison for analit.

``compare`` computes B - A over a fixed metric catalogue. A metric missing
from either side is left out of the delta map rather than defaulted.
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from analit.core.models import Analysis, Diff


@dataclass(frozen=True)
class Metric:
    """One comparable quantity of an Analysis."""

    name: str
    label: str
    precision: int
    extract: Callable[[Analysis], Optional[float]]

    def value(self, analysis: Analysis) -> Optional[float]:
        value = self.extract(analysis)
        if value is None or not math.isfinite(value):
            return None
        return float(value)


METRIC_CATALOGUE: Tuple[Metric, ...] = (
    Metric('peak_db', 'Peak dBFS', 2, lambda a: a.level.peak_db),
    Metric('rms_db', 'RMS dBFS', 2, lambda a: a.level.rms_db),
    Metric('crest_db', 'Crest dB', 2, lambda a: a.level.crest_db),
    Metric('lufs_integrated', 'LUFS (integr.)', 2,
           lambda a: a.loudness.integrated if a.loudness else None),
    Metric('lufs_range', 'LUFS Range', 2,
           lambda a: a.loudness.range if a.loudness else None),
    Metric('stereo_side_mid_db', 'Side/Mid dB', 2, lambda a: a.stereo.side_mid_ratio_db),
    Metric('bpm_median', 'BPM (median)', 2,
           lambda a: a.tempo.bpm_median if a.tempo else None),
    Metric('duration_s', 'Duration (s)', 3, lambda a: a.probe.duration),
)

METRICS_BY_NAME: Dict[str, Metric] = {metric.name: metric for metric in METRIC_CATALOGUE}


def compare(a: Analysis, b: Analysis) -> Diff:
    """
    Compare two analyses.

    Returns:
        Diff whose delta map holds, in catalogue order, B - A for every
        metric that is present and finite in both analyses
    """
    delta: Dict[str, float] = {}
    for metric in METRIC_CATALOGUE:
        value_a = metric.value(a)
        value_b = metric.value(b)
        if value_a is None or value_b is None:
            continue
        delta[metric.name] = value_b - value_a
    return Diff(a=a, b=b, delta=delta)
