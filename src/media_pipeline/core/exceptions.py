"""Custom exceptions and error handling utilities for the media pipeline."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Type


class MediaPipelineError(Exception):
    """Base exception for all media pipeline errors."""


class ConfigurationError(MediaPipelineError):
    """Error raised for invalid configuration options."""


class DecodeError(MediaPipelineError):
    """Error raised when the inbound payload is not a decodable image."""


class WriteError(MediaPipelineError):
    """Error raised when the filesystem refuses a write."""


class TagError(MediaPipelineError):
    """Error raised when embedding metadata into the original fails."""


class ResizeError(MediaPipelineError):
    """Error raised when producing a derivative fails."""


class IngestTimeoutError(MediaPipelineError, TimeoutError):
    """Error raised when a caller-imposed deadline expires mid-pipeline."""


@contextmanager
def translate_errors(
    error_cls: Type[MediaPipelineError], message: str
) -> Iterator[None]:
    """Re-raise anything that is not already a pipeline error as ``error_cls``."""
    try:
        yield
    except MediaPipelineError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise error_cls(f"{message}: {exc}") from exc


def is_client_error(exc: Any) -> bool:
    """Return True when the failure was caused by the caller's input."""
    return isinstance(exc, DecodeError)
