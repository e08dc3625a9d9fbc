"""``python -m minipm``: same behaviour as the ``minipm`` console script."""

from __future__ import annotations

import sys


def main() -> int:
    # The CLI pulls in click, rich and httpx; a broken install should still
    # produce a readable message instead of a traceback.
    try:
        from minipm.cli import main as cli_main
    except ImportError as exc:
        _print_startup_error(exc)
        return 1

    return cli_main()


def _print_startup_error(exc: ImportError) -> None:
    """Explain on stderr why the CLI could not start."""
    lines = (
        "minipm CLI could not be loaded.",
        f"Python version : {sys.version}",
        f"ImportError: {exc}",
    )
    for line in lines:
        sys.stderr.write(line + "\n")


if __name__ == "__main__":
    sys.exit(main())
