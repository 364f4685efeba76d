"""CLI command handlers."""

from mewt.cli.commands.classify import run_classify
from mewt.cli.commands.info import run_info
from mewt.cli.commands.replay import run_replay

__all__ = [
    "run_info",
    "run_classify",
    "run_replay",
]
