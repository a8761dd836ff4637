"""
Measurement providers backed by external command line tools.
"""

from analit.providers.runner import CommandResult, CommandRunner
from analit.providers.ffmpeg import FFmpegBackend
from analit.providers.aubio import AubioBackend
from analit.providers.toolchain import (
    ToolchainProvider,
    create_toolchain_provider,
    resolve_toolchain,
)

__all__ = [
    "CommandResult",
    "CommandRunner",
    "FFmpegBackend",
    "AubioBackend",
    "ToolchainProvider",
    "create_toolchain_provider",
    "resolve_toolchain",
]
