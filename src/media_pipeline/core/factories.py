"""Factory classes for creating configured service instances."""

from typing import Optional

from .config import load_config
from .exceptions import ConfigurationError
from .models import MediaConfig
from .observability import MetricsCollector, StructuredLogger
from .protocols import LoggerProtocol, TagWriterProtocol
from .services import MediaStore
from .tag_writers import ExifToolTagWriter, PillowTagWriter

TAGGERS = ("exiftool", "pillow")


class LoggerFactory:
    """Factory for creating logger instances."""

    @staticmethod
    def create_logger(
        name: str = "media-pipeline", level: Optional[str] = None
    ) -> LoggerProtocol:
        """Create a configured structured logger."""
        return StructuredLogger(name, level=level)


class TagWriterFactory:
    """Factory for creating tag writer instances."""

    @staticmethod
    def create_tag_writer(
        tagger: str = "exiftool", config: Optional[MediaConfig] = None
    ) -> TagWriterProtocol:
        """Create the tag writer named by ``tagger``."""
        if tagger == "exiftool":
            return ExifToolTagWriter(config.exiftool_path if config else None)
        if tagger == "pillow":
            return PillowTagWriter()
        raise ConfigurationError(
            f"Unknown tagger '{tagger}', expected one of {', '.join(TAGGERS)}"
        )


class MediaStoreFactory:
    """Factory for creating the complete ingestion pipeline."""

    @staticmethod
    def create_store(
        config: Optional[MediaConfig] = None,
        tag_writer: Optional[TagWriterProtocol] = None,
        logger: Optional[LoggerProtocol] = None,
        metrics_collector: Optional[MetricsCollector] = None,
        tagger: str = "exiftool",
    ) -> MediaStore:
        """Create a fully configured media store."""
        if config is None:
            config = load_config()

        if logger is None:
            logger = LoggerFactory.create_logger()

        if tag_writer is None:
            tag_writer = TagWriterFactory.create_tag_writer(tagger, config)

        return MediaStore(
            config=config,
            tag_writer=tag_writer,
            logger=logger,
            metrics_collector=metrics_collector,
        )
