"""
Entry point of the ``minipm`` command.

The click group parses the global flags, sets up logging and colour,
loads ``minipm.toml`` and hands a :class:`~minipm.context.MinipmContext`
to the ``add``, ``install`` and ``delete`` subcommands. :func:`main`
turns whatever escapes a command into a process exit code.
"""

from __future__ import annotations

import os
import sys
import logging
from pathlib import Path
from typing import Optional

import click

from minipm.config import load_config
from minipm.__version__ import __version__
from minipm.context import MinipmContext
from minipm.commands.add import add
from minipm.commands.delete import delete
from minipm.commands.install import install
from minipm.exceptions import ConfigError, MinipmError
from minipm.utils.logger import get_logger, level_for_verbosity, setup_logging
from minipm.utils.console import print_error, print_warning, reconfigure_console

logger = get_logger("cli")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="MINIPM_CONFIG",
    help="Read settings from this TOML file instead of ./minipm.toml.",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Log more detail: -v for progress, -vv for debugging.",
)
@click.option(
    "--color/--no-color",
    default=True,
    envvar="MINIPM_COLOR",
    help="Enable or disable coloured output.",
)
@click.version_option(
    version=__version__,
    prog_name="minipm",
    message="%(prog)s %(version)s",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Optional[Path],
    verbose: int,
    color: bool,
) -> None:
    """minipm: a minimal npm-compatible package manager.

    \b
    Commands:
      minipm add NAME[@RANGE]     Record a dependency in package.json
      minipm install              Resolve, lock and install dependencies
      minipm delete NAME          Drop a dependency and its installed files

    \b
    Examples:
      minipm add left-pad@^1.0.0
      minipm install
      minipm -v install --frozen-lockfile

    Run ``minipm COMMAND --help`` for the options of a command.
    """
    _apply_color_choice(color)
    _configure_logging(verbose, color)

    try:
        settings = load_config(config)
    except ConfigError as exc:
        print_error(str(exc))
        raise SystemExit(EXIT_FAILURE) from exc

    state = MinipmContext()
    state.config_path = config or settings.source_path
    state.verbose = verbose
    state.color = color
    state.config = settings
    ctx.obj = state

    logger.debug("minipm v%s in %s", __version__, state.project_dir)
    logger.debug("Config file: %s", state.config_path or "<none>")
    logger.debug("Settings: %s", settings.to_log_dict())


def _apply_color_choice(color: bool) -> None:
    """Export the colour choice as ``NO_COLOR`` and rebuild the console."""
    if color:
        os.environ.pop("NO_COLOR", None)
    else:
        os.environ["NO_COLOR"] = "1"
    reconfigure_console()


def _configure_logging(verbose: int, color: bool) -> None:
    level = level_for_verbosity(verbose)
    setup_logging(level=level, verbose=verbose >= 2, color=color)
    logger.debug("Logging at %s", logging.getLevelName(level))


for _command in (add, install, delete):
    cli.add_command(_command)


def main() -> int:
    """Run the CLI and map the outcome to an exit code.

    Returns:
        0 on success, 1 for minipm or unexpected errors, the click exit
        code (2) for usage errors, and 130 when interrupted.
    """
    try:
        cli(standalone_mode=False)
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except (click.exceptions.Abort, KeyboardInterrupt):
        print_warning("\nInterrupted")
        return EXIT_INTERRUPTED
    except MinipmError as exc:
        print_error(str(exc))
        logger.debug("Error details: %s", exc.details or "<none>", exc_info=True)
        return EXIT_FAILURE
    except Exception as exc:
        print_error(f"Unexpected error: {exc}")
        logger.exception("Unhandled exception in CLI")
        return EXIT_FAILURE
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
