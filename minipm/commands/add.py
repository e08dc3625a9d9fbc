"""Add command implementation for minipm.

Records a requirement in ``package.json``. Nothing is resolved or
downloaded; run ``minipm install`` afterwards.

Typical usage::

    $ minipm add left-pad            # records "left-pad": "latest"
    $ minipm add left-pad@^1.0.0
    $ minipm add @types/node@~20.1
"""

from __future__ import annotations

import sys

import click

from minipm.core import Manifest, VersionRange
from minipm.constants import MANIFEST_FILE
from minipm.exceptions import MinipmError
from minipm.models import PackageSpec
from minipm.context import pass_context, MinipmContext
from minipm.utils import get_logger, print_error, print_success

logger = get_logger("commands.add")


@click.command()
@click.argument("package")
@pass_context
def add(ctx: MinipmContext, package: str) -> None:
    """Add PACKAGE (``name`` or ``name@range``) to dependencies.

    A missing range is recorded as ``latest``. The range is validated
    before the manifest is touched; an invalid one leaves the file
    unchanged.

    Exits:
        0 on success, 1 if the spec is invalid or the manifest cannot be
        read or written.
    """
    try:
        spec = PackageSpec.parse(package)
        VersionRange.parse(spec.range)

        manifest = Manifest.load(ctx.project_dir / MANIFEST_FILE, create=True)
        previous = manifest.add_dependency(spec.name, spec.range)
        manifest.save()

    except MinipmError as e:
        print_error(f"{e}")
        sys.exit(1)

    if previous is not None and previous != spec.range:
        logger.info("Replaced %s@%s", spec.name, previous)
        print_success(f"Updated {spec.name}: {previous} -> {spec.range}")
    else:
        print_success(f"Added {spec} to dependencies.")
