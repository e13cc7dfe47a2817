"""Mapping from media identifiers to files inside the store root."""

from pathlib import Path
from typing import Dict, Iterable, Union

from .exceptions import ConfigurationError

ORIGINAL_SUFFIX = ".jpg"
# ExifTool keeps a copy of the untouched file under this suffix.
SIDECAR_SUFFIX = "_original"
# In-progress output ExifTool renames over the file when it finishes.
TOOL_TMP_SUFFIX = "_exiftool_tmp"


class StorePathResolver:
    """Pure path arithmetic for one store root; performs no I/O."""

    def __init__(self, root: Union[str, Path], size_ids: Iterable[str] = ()):
        root = Path(root)
        if not root.is_absolute():
            raise ConfigurationError(f"Store root must be absolute: {root}")
        self._root = root
        self._size_ids = list(size_ids)

    @property
    def root(self) -> Path:
        return self._root

    def original_path(self, media_id: str) -> Path:
        return self._root / f"{media_id}{ORIGINAL_SUFFIX}"

    def derivative_path(self, media_id: str, size_id: str) -> Path:
        return self._root / f"{media_id}-{size_id}{ORIGINAL_SUFFIX}"

    def derivative_paths(self, media_id: str) -> Dict[str, Path]:
        """Derivative path for every configured size, in size-table order."""
        return {
            size_id: self.derivative_path(media_id, size_id)
            for size_id in self._size_ids
        }

    def sidecar_path(self, media_id: str) -> Path:
        return sidecar_for(self.original_path(media_id))

    def tool_tmp_path(self, media_id: str) -> Path:
        original = self.original_path(media_id)
        return original.with_name(original.name + TOOL_TMP_SUFFIX)


def sidecar_for(path: Path) -> Path:
    """Backup file the metadata tool leaves next to ``path``."""
    return path.with_name(path.name + SIDECAR_SUFFIX)
