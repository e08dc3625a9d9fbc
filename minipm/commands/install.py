"""Install command implementation for minipm.

Brings the modules directory in line with ``package.json``.

The command orchestrates four core components:

1. **Manifest**: reads the root requirements.
2. **Lockfile**: reused as-is when its roots match the manifest, so no
   registry traffic is needed for resolution.
3. **Resolver**: otherwise builds a fresh graph from the registry and
   the new lockfile is written.
4. **InstallScheduler**: fetches, verifies and extracts every package
   with bounded concurrency; packages already installed with the same
   integrity are skipped.

Typical usage::

    $ minipm install
    $ minipm install --frozen-lockfile       # CI: fail if the lock is stale
    $ minipm install --concurrency 16
"""

from __future__ import annotations

import sys
import signal
import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click

from minipm.constants import MANIFEST_FILE
from minipm.context import pass_context, MinipmContext
from minipm.exceptions import MinipmError
from minipm.models import DependencyGraph, InstallReport
from minipm.core.lockfile import is_lockfile_current, read_lockfile, write_lockfile
from minipm.core import (
    ArtifactCache,
    HttpTransport,
    InstallScheduler,
    Manifest,
    NpmRegistry,
    Resolver,
)
from minipm.utils import (
    HTTPClient,
    colorize_update_type,
    get_logger,
    get_update_type,
    print_error,
    print_success,
    print_table,
    print_warning,
)

logger = get_logger("commands.install")


@click.command()
@click.option(
    "--frozen-lockfile",
    is_flag=True,
    help="Fail instead of re-resolving when the lockfile is missing or stale.",
)
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Number of packages fetched and extracted at once.",
)
@click.option(
    "--no-lockfile-write",
    is_flag=True,
    help="Resolve and install without writing the lockfile.",
)
@pass_context
def install(
    ctx: MinipmContext,
    frozen_lockfile: bool,
    concurrency: Optional[int],
    no_lockfile_write: bool,
) -> None:
    """Resolve, lock and install all dependencies.

    Exits:
        0 if every package was installed or already present, 1 on a
        resolution, lockfile or I/O error or if any package failed,
        130 if interrupted.
    """
    try:
        report, cancelled = asyncio.run(
            _install_async(
                ctx,
                frozen_lockfile=frozen_lockfile,
                concurrency=concurrency or ctx.config.max_concurrency,
                write_lock=not no_lockfile_write,
            )
        )
    except MinipmError as e:
        print_error(f"{e}")
        sys.exit(1)

    if cancelled:
        print_warning("Installation cancelled; finished packages were kept")
        sys.exit(130)
    if not report.ok:
        for line in report.failure_lines():
            print_error(line)
        sys.exit(1)


# ---------------------------------------------------------------------------
# Async orchestration
# ---------------------------------------------------------------------------


async def _install_async(
    ctx: MinipmContext,
    *,
    frozen_lockfile: bool,
    concurrency: int,
    write_lock: bool,
) -> Tuple[InstallReport, bool]:
    """Async implementation of the install command.

    Returns:
        The install report and whether the run was cancelled.

    Raises:
        MinipmError: The manifest, lockfile or resolution failed.
    """
    config = ctx.config
    manifest = Manifest.load(ctx.project_dir / MANIFEST_FILE)
    roots = manifest.root_specs()
    lock_path = ctx.resolve(config.lockfile)
    modules_dir = ctx.resolve(config.modules_dir)

    # ── Step 1: Lockfile or fresh resolution ──────────────────────────
    previous = read_lockfile(lock_path) if lock_path.is_file() else None
    lock_is_current = previous is not None and is_lockfile_current(previous, roots)

    if frozen_lockfile and not lock_is_current:
        raise MinipmError(
            f"{lock_path.name} is missing or does not match {MANIFEST_FILE}; "
            "run 'minipm install' without --frozen-lockfile",
            {"lockfile": str(lock_path)},
        )

    if previous is not None and lock_is_current:
        logger.info("Using %s (%d packages)", lock_path.name, len(previous))
        graph = previous
    else:
        logger.info("Resolving %d root dependencies", len(roots))
        async with HTTPClient(timeout=config.timeout) as http:
            registry = NpmRegistry(http, config.registry)
            graph = await Resolver(registry).resolve(roots)

        if write_lock:
            write_lockfile(lock_path, graph)
            logger.info("Wrote %s", lock_path)

    if not graph.nodes:
        print_success("No dependencies to install.")
        return InstallReport(), False

    # ── Step 2: Install ───────────────────────────────────────────────
    cancel_event = asyncio.Event()
    _install_interrupt_handler(cancel_event)

    cache = ArtifactCache(Path(config.cache_dir).expanduser()) if config.cache_dir else None
    async with HTTPClient(timeout=config.timeout, max_retries=0) as http:
        scheduler = InstallScheduler(
            HttpTransport(http),
            max_concurrency=concurrency,
            max_attempts=config.fetch_attempts,
            backoff=config.retry_backoff,
            cache=cache,
        )
        report = await scheduler.install(graph, modules_dir, cancel_event)

    # ── Step 3: Report ────────────────────────────────────────────────
    baseline = None if lock_is_current else (previous or DependencyGraph())
    _display_report(graph, baseline, report)
    summary = report.summary()
    (print_success if report.ok else print_warning)(f"\n{summary}")

    return report, cancel_event.is_set()


def _install_interrupt_handler(cancel_event: asyncio.Event) -> None:
    """Make Ctrl+C stop new downloads instead of killing the run."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unsupported; Ctrl+C aborts immediately")


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------


def _status(report: InstallReport, name: str, version: str) -> str:
    if (name, version) in report.installed:
        return "[green]installed[/green]"
    if (name, version) in report.skipped:
        return "[dim]up to date[/dim]"
    if name in report.failed:
        return "[red]failed[/red]"
    if (name, version) in report.cancelled:
        return "[yellow]cancelled[/yellow]"
    return "-"


def _display_report(
    graph: DependencyGraph,
    previous: Optional[DependencyGraph],
    report: InstallReport,
) -> None:
    """Render one row per package, plus rows for packages dropped from the lock.

    The ``Change`` column compares against the previous lockfile and is
    only shown when the graph was re-resolved.
    """
    old_versions: Dict[str, str] = previous.versions() if previous is not None else {}
    new_versions = graph.versions()

    data: List[Dict[str, str]] = []
    for name, version in new_versions.items():
        row = {"Package": name, "Version": version, "Status": _status(report, name, version)}
        if previous is not None:
            row["Change"] = colorize_update_type(
                get_update_type(old_versions.get(name), version)
            )
        data.append(row)

    if previous is not None:
        for name in sorted(set(old_versions) - set(new_versions)):
            data.append(
                {
                    "Package": name,
                    "Version": old_versions[name],
                    "Status": "-",
                    "Change": colorize_update_type("removed"),
                }
            )

    column_styles: Dict[str, Dict[str, Any]] = {
        "Package": {"style": "bold cyan", "no_wrap": True},
        "Version": {"justify": "center"},
        "Status": {"justify": "center"},
        "Change": {"justify": "center"},
    }
    print_table(data, title="Installed Packages", column_styles=column_styles)
