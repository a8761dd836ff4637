"""
aubio measurement backend: tempo, onsets, pitch and key.
"""

import re
from pathlib import Path
from typing import List, Optional

from analit.core.models import KeyInfo
from analit.core.provider import OnsetReading
from analit.providers.base import ToolBackend
from analit.providers.runner import CommandRunner

_BPM = re.compile(r'(\d+(?:\.\d+)?)\s*bpm', re.IGNORECASE)
_KEY = re.compile(
    r'\b([A-G][#b]?)'
    r'(?:\s+((?i:major|minor|dorian|mixolydian|lydian|phrygian|locrian)))?'
    r'(?![A-Za-z0-9])'
)
_CONFIDENCE = re.compile(r'confidence\s*[:=]?\s*(\d+(?:\.\d+)?)', re.IGNORECASE)


def _leading_float(line: str) -> Optional[float]:
    fields = line.split()
    if not fields:
        return None
    try:
        return float(fields[0])
    except ValueError:
        return None


def parse_bpm_series(text: str) -> List[float]:
    """Every ``<n> bpm`` estimate, in output order."""
    return [float(m.group(1)) for m in _BPM.finditer(text)]


def parse_onset_count(text: str) -> int:
    """Number of lines starting with a timestamp."""
    return sum(1 for line in text.splitlines() if _leading_float(line) is not None)


def parse_pitch_series(text: str) -> List[float]:
    """Last column of each line; unvoiced (non-positive) frames are dropped."""
    series = []
    for line in text.splitlines():
        fields = line.split()
        if not fields:
            continue
        try:
            hz = float(fields[-1])
        except ValueError:
            continue
        if hz > 0:
            series.append(hz)
    return series


def parse_key(text: str) -> Optional[KeyInfo]:
    """Key letter, mode and confidence; None when nothing recognisable was printed."""
    key = scale = None
    match = _KEY.search(text)
    if match:
        token = match.group(1)
        key = token[0].upper() + token[1:].lower()
        if match.group(2):
            scale = match.group(2).lower()

    confidence = None
    conf_match = _CONFIDENCE.search(text)
    if conf_match:
        value = float(conf_match.group(1))
        if 0.0 <= value <= 1.0:
            confidence = value

    if key is None and scale is None and confidence is None:
        return None
    return KeyInfo(key=key, scale=scale, confidence=confidence)


class AubioBackend(ToolBackend):
    """Runs the aubio command line tools."""

    def __init__(self, runner: CommandRunner, aubio_bin: str = "aubio"):
        super().__init__(name="aubio", runner=runner)
        self.aubio_bin = aubio_bin

    def _run(self, command: str, path: Path) -> str:
        return self.runner.run(self.aubio_bin, [command, '-i', str(path)]).output

    def tempo_series(self, path: Path) -> List[float]:
        return self.measure('tempo', self._tempo_series, path)

    def _tempo_series(self, path: Path) -> List[float]:
        series = parse_bpm_series(self._run('tempo', path))
        if not series:
            raise ValueError("no bpm estimates")
        return series

    def onset_count(self, path: Path) -> OnsetReading:
        return self.measure('onset', lambda: OnsetReading(parse_onset_count(self._run('onset', path))))

    def pitch_series(self, path: Path) -> List[float]:
        return self.measure('pitch', lambda: parse_pitch_series(self._run('pitch', path)))

    def key_guess(self, path: Path) -> Optional[KeyInfo]:
        return self.measure('key', lambda: parse_key(self._run('key', path)))
