"""Protocol definitions for dependency injection and testability."""

from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from .models import SizeSpec


class TagWriterProtocol(Protocol):
    """Capability that writes metadata tags into an image file in place.

    Implementations may leave a sidecar backup next to the file; the caller
    owns its removal.
    """

    def write_tags(
        self, path: Path, tags: Dict[str, Any], timeout: Optional[float] = None
    ) -> None:
        """Write ``tags`` into ``path``."""
        ...


class ResizerProtocol(Protocol):
    """Protocol for producing one derivative file from an original."""

    def write_derivative(
        self, source: Path, destination: Path, size: SizeSpec, quality: int
    ) -> None:
        """Resize ``source`` according to ``size`` and save it at ``destination``."""
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None:
        """Log debug message."""
        ...

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        """Log info message."""
        ...

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None:
        """Log warning message."""
        ...

    def error(self, message: str, *args: Any, **kwargs: Any) -> None:
        """Log error message."""
        ...
