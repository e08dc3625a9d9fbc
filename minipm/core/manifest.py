"""Project manifest (``package.json``) handling.

Only the ``dependencies`` object is interpreted; every other key is
carried through :meth:`Manifest.save` untouched and in its original
order.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from minipm.exceptions import ParseError
from minipm.utils.logger import get_logger
from minipm.models.spec import PackageSpec, validate_name
from minipm.utils.filesystem import safe_read_file, safe_write_file

logger = get_logger("manifest")

__all__ = ["Manifest"]


class Manifest:
    """In-memory view of a ``package.json`` file.

    Args:
        path: Location the manifest is saved to.
        data: Parsed JSON object.
    """

    def __init__(self, path: Union[str, Path], data: Optional[Dict[str, Any]] = None) -> None:
        self.path = Path(path)
        self.data: Dict[str, Any] = data if data is not None else {"dependencies": {}}

    @classmethod
    def load(cls, path: Union[str, Path], *, create: bool = False) -> "Manifest":
        """Read the manifest at ``path``.

        Args:
            path: Manifest file.
            create: Return an empty manifest instead of failing when the
                file does not exist.

        Raises:
            ParseError: The file is not a JSON object or its
                ``dependencies`` entry is malformed.
            FileOperationError: The file cannot be read.
        """
        path = Path(path)
        if create and not path.exists():
            logger.debug("No manifest at %s; starting a new one", path)
            return cls(path)

        text = safe_read_file(path)
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise ParseError(f"Invalid JSON in {path}: {exc}", file_path=str(path)) from exc

        if not isinstance(data, dict):
            raise ParseError(f"{path} must contain a JSON object", file_path=str(path))

        deps = data.get("dependencies", {})
        if not isinstance(deps, dict) or not all(isinstance(v, str) for v in deps.values()):
            raise ParseError(
                f"'dependencies' in {path} must map names to range strings",
                file_path=str(path),
            )
        return cls(path, data)

    @property
    def dependencies(self) -> Dict[str, str]:
        return self.data.setdefault("dependencies", {})

    def root_specs(self) -> List[PackageSpec]:
        """Declared dependencies as specs, in file order."""
        return [PackageSpec(validate_name(name), rng) for name, rng in self.dependencies.items()]

    def add_dependency(self, name: str, range_: str) -> Optional[str]:
        """Set ``name`` to ``range_``; return the range it replaced, if any."""
        previous = self.dependencies.get(validate_name(name))
        self.dependencies[name] = range_
        return previous

    def remove_dependency(self, name: str) -> bool:
        """Drop ``name``; ``False`` when it was not declared."""
        if name not in self.dependencies:
            return False
        del self.dependencies[name]
        return True

    def save(self) -> None:
        safe_write_file(self.path, json.dumps(self.data, indent=2, ensure_ascii=False) + "\n")
        logger.debug("Wrote manifest %s", self.path)
