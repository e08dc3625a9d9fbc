"""Delete command implementation for minipm.

Removes a requirement from ``package.json`` and deletes its directory
from the modules folder. The lockfile is left alone; the next
``minipm install`` notices the manifest changed and re-resolves.
"""

from __future__ import annotations

import sys

import click

from minipm.core import Manifest
from minipm.constants import MANIFEST_FILE
from minipm.exceptions import MinipmError
from minipm.models import validate_name
from minipm.context import pass_context, MinipmContext
from minipm.utils import (
    get_logger,
    print_error,
    print_info,
    print_success,
    print_warning,
    remove_tree,
    validate_path,
)

logger = get_logger("commands.delete")


@click.command()
@click.argument("name")
@pass_context
def delete(ctx: MinipmContext, name: str) -> None:
    """Remove NAME from dependencies and from the modules directory.

    A package that is not listed is reported with a warning and nothing
    changes.

    Exits:
        0 on success or no-op, 1 if the manifest or directory cannot be
        updated.
    """
    try:
        validate_name(name)
        manifest = Manifest.load(ctx.project_dir / MANIFEST_FILE)

        if not manifest.remove_dependency(name):
            print_warning(f"{name} is not listed as a dependency.")
            return

        manifest.save()
        print_success(f"Removed {name} from dependencies.")

        modules_dir = ctx.resolve(ctx.config.modules_dir)
        target = validate_path(modules_dir / name, base_dir=modules_dir)
        if remove_tree(target):
            print_success(f"Deleted {name} from {modules_dir.name}.")
        else:
            print_info(f"{name} is not found in {modules_dir.name}.")

    except MinipmError as e:
        print_error(f"{e}")
        sys.exit(1)
