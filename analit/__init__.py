"""
analit - multi-tool audio analysis

Runs independent external measurement tools (ffprobe, ffmpeg, aubio)
against one audio file, merges whatever they return into a single
Analysis record, derives secondary metrics and renders a report.
"""

__version__ = "1.0.0"
__author__ = "Audio Analysis Team"
