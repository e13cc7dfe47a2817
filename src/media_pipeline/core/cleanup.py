"""Scoped ownership of the files one ingestion creates."""

import threading
from pathlib import Path
from typing import List, Tuple, Union

from .protocols import LoggerProtocol


class ArtifactScope:
    """
    Context manager that owns every file an ingestion creates.

    Paths are registered before the step that writes them. On a clean exit
    only transient files (tool sidecars) are released; on any exception every
    registered file is released in reverse order of registration. Exceptions
    are never suppressed.
    """

    def __init__(self, logger: LoggerProtocol, operation_name: str = "ingest"):
        self.operation_name = operation_name
        self._logger = logger
        self._artifacts: List[Tuple[Path, bool]] = []
        self._lock = threading.Lock()
        self.failed_releases: List[Path] = []

    def __enter__(self) -> "ArtifactScope":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.release(transient_only=True)
        else:
            self._logger.warning(
                f"{self.operation_name} failed, rolling back "
                f"{len(self._artifacts)} artifact(s): {exc_val}"
            )
            self.release(transient_only=False)
        return False

    def track(self, path: Union[str, Path]) -> Path:
        """Register a file that should survive a successful run."""
        return self._register(Path(path), transient=False)

    def track_transient(self, path: Union[str, Path]) -> Path:
        """Register a file that must never outlive the scope."""
        return self._register(Path(path), transient=True)

    def _register(self, path: Path, transient: bool) -> Path:
        with self._lock:
            self._artifacts.append((path, transient))
        return path

    @property
    def tracked(self) -> List[Path]:
        with self._lock:
            return [path for path, _ in self._artifacts]

    def release(self, transient_only: bool = False) -> None:
        with self._lock:
            artifacts = list(reversed(self._artifacts))
            self._artifacts = []

        for path, transient in artifacts:
            if transient_only and not transient:
                continue
            self._remove(path)

    def _remove(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            # Must not mask the error that triggered the rollback.
            self.failed_releases.append(path)
            self._logger.warning(f"Could not remove {path}: {exc}")
            return
        self._logger.debug(f"Removed {path}")
