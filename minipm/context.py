"""
Per-invocation state shared between the ``minipm`` group and its commands.

The group callback in :mod:`minipm.cli` fills a :class:`MinipmContext`;
commands receive it through :data:`pass_context`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from minipm.config import MinipmConfig


class MinipmContext:
    """Options and settings for one ``minipm`` run.

    Attributes:
        config_path: The ``minipm.toml`` that was loaded, or ``None``.
        verbose: Number of ``-v`` flags given.
        color: ``False`` after ``--no-color``.
        config: Effective settings; defaults when no file was found.
        project_dir: Where ``package.json``, the lockfile and the modules
            directory live. Always the working directory at startup.
    """

    __slots__ = ("config_path", "verbose", "color", "config", "project_dir")

    def __init__(self) -> None:
        self.config_path: Optional[Path] = None
        self.verbose: int = 0
        self.color: bool = True
        self.config: MinipmConfig = MinipmConfig()
        self.project_dir: Path = Path.cwd()

    def resolve(self, value: str) -> Path:
        """Turn a configured path into one anchored at :attr:`project_dir`.

        ``~`` is expanded; absolute paths are returned unchanged.
        """
        path = Path(value).expanduser()
        if path.is_absolute():
            return path
        return self.project_dir / path


pass_context = click.make_pass_decorator(MinipmContext, ensure=True)
