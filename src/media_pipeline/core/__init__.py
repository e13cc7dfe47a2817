"""Core components of the media ingestion pipeline."""

from .cleanup import ArtifactScope
from .config import load_config
from .exceptions import (
    ConfigurationError,
    DecodeError,
    IngestTimeoutError,
    MediaPipelineError,
    ResizeError,
    TagError,
    WriteError,
    is_client_error,
)
from .factories import MediaStoreFactory
from .logging_config import get_logger, setup_logger
from .models import FitPolicy, GeoTagInput, IngestResult, MediaConfig, SizeSpec
from .paths import StorePathResolver
from .services import MediaStore
from .tag_writers import ExifToolTagWriter, PillowTagWriter
from .urls import MediaUrlResolver

__all__ = [
    "ArtifactScope",
    "load_config",
    "MediaPipelineError",
    "ConfigurationError",
    "DecodeError",
    "WriteError",
    "TagError",
    "ResizeError",
    "IngestTimeoutError",
    "is_client_error",
    "MediaStoreFactory",
    "setup_logger",
    "get_logger",
    "FitPolicy",
    "SizeSpec",
    "GeoTagInput",
    "MediaConfig",
    "IngestResult",
    "StorePathResolver",
    "MediaStore",
    "ExifToolTagWriter",
    "PillowTagWriter",
    "MediaUrlResolver",
]
