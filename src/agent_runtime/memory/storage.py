"""Key-value file storage used by the checkpoint store."""

import logging
import os
from pathlib import Path
from typing import List, Protocol, Union

logger = logging.getLogger(__name__)


class StorageAdapter(Protocol):
    """
    Durable file surface addressed by relative paths.

    PATTERN: paths are forward-slash separated and relative to the adapter root
    """

    def exists(self, path: str) -> bool:
        ...

    def read(self, path: str) -> str:
        ...

    def write(self, path: str, data: str) -> None:
        ...

    def remove(self, path: str) -> None:
        ...

    def list(self, folder: str) -> List[str]:
        ...

    def rename(self, source: str, target: str) -> None:
        ...


class LocalStorageAdapter:
    """Storage adapter backed by a directory on the local filesystem."""

    def __init__(self, root: Union[str, Path]):
        """
        Initialize local storage.

        Args:
            root: Directory every relative path is resolved against
        """
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        return self.root / path

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def read(self, path: str) -> str:
        return self._resolve(path).read_text(encoding="utf-8")

    def write(self, path: str, data: str) -> None:
        """
        Write text atomically.

        CRITICAL: data goes to a sibling temp file first, then replaces the target
        """
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(f".{target.name}.tmp")
        tmp.write_text(data, encoding="utf-8")
        os.replace(tmp, target)

    def remove(self, path: str) -> None:
        self._resolve(path).unlink()

    def list(self, folder: str) -> List[str]:
        """List files (not directories) directly inside a folder."""
        directory = self._resolve(folder)
        if not directory.is_dir():
            return []
        return sorted(
            f"{folder}/{entry.name}" if folder else entry.name
            for entry in directory.iterdir()
            if entry.is_file()
        )

    def rename(self, source: str, target: str) -> None:
        destination = self._resolve(target)
        destination.parent.mkdir(parents=True, exist_ok=True)
        os.replace(self._resolve(source), destination)
