"""Service implementations for the media ingestion pipeline."""

import shutil
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from PIL import Image

from .cleanup import ArtifactScope
from .exceptions import (
    ConfigurationError,
    IngestTimeoutError,
    MediaPipelineError,
    ResizeError,
    TagError,
    WriteError,
    translate_errors,
)
from .image_utils import decode_payload, resize_to_fit, to_jpeg_bytes
from .models import GeoTagInput, IngestResult, MediaConfig, SizeSpec
from .observability import LogContext, MetricsCollector, measure
from .paths import StorePathResolver
from .protocols import LoggerProtocol, ResizerProtocol, TagWriterProtocol
from .tag_writers import geotag_tags
from .urls import MediaUrlResolver


class Deadline:
    """Caller-imposed time limit for one ingestion."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._expires_at = None if timeout is None else time.monotonic() + timeout

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def check(self, step: str) -> None:
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise IngestTimeoutError(
                f"Deadline of {self.timeout}s exceeded before {step}"
            )


class OriginalWriter:
    """Decodes an inbound payload and persists it as the canonical original."""

    def __init__(self, logger: LoggerProtocol, quality: int = 90):
        self._logger = logger
        self._quality = quality

    def write(self, destination: Path, payload: Union[str, bytes]) -> Path:
        raw = decode_payload(payload)
        jpeg = to_jpeg_bytes(raw, self._quality)

        try:
            destination.write_bytes(jpeg)
        except OSError as exc:
            raise WriteError(f"Could not write {destination}: {exc}") from exc

        self._logger.debug(f"Wrote original {destination} ({len(jpeg)} bytes)")
        return destination


class GeotagEmbedder:
    """Stamps capture time, position and heading into an original."""

    def __init__(self, tag_writer: TagWriterProtocol, logger: LoggerProtocol):
        self._tag_writer = tag_writer
        self._logger = logger

    def embed(
        self, path: Path, geo: GeoTagInput, timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        tags = geotag_tags(geo)
        with translate_errors(TagError, f"Could not tag {path.name}"):
            self._tag_writer.write_tags(path, tags, timeout=timeout)
        self._logger.debug(f"Tagged {path.name}: {tags}")
        return tags


class PillowResizer:
    """Writes one derivative with Pillow, carrying EXIF and ICC data across."""

    def write_derivative(
        self, source: Path, destination: Path, size: SizeSpec, quality: int
    ) -> None:
        with translate_errors(ResizeError, f"Could not resize to '{size.id}'"):
            with Image.open(source) as image:
                image.load()
                exif = image.info.get("exif")
                icc_profile = image.info.get("icc_profile")
                resized = resize_to_fit(image, size)

        save_kwargs: Dict[str, Any] = {"format": "JPEG", "quality": quality}
        if exif:
            save_kwargs["exif"] = exif
        if icc_profile:
            save_kwargs["icc_profile"] = icc_profile

        try:
            resized.save(destination, **save_kwargs)
        except OSError as exc:
            raise WriteError(f"Could not write {destination}: {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            raise ResizeError(f"Could not encode '{size.id}': {exc}") from exc


class DerivativeGenerator:
    """Produces every configured size from a tagged original."""

    def __init__(
        self,
        resizer: ResizerProtocol,
        logger: LoggerProtocol,
        workers: int = 1,
        quality: int = 90,
    ):
        self._resizer = resizer
        self._logger = logger
        self._workers = workers
        self._quality = quality

    def generate(
        self,
        source: Path,
        targets: List[Tuple[SizeSpec, Path]],
        scope: ArtifactScope,
        deadline: Optional[Deadline] = None,
    ) -> Dict[str, Path]:
        """
        Write one derivative per ``(size, destination)`` pair.

        Every destination is registered with ``scope`` before it is written,
        so a failure leaves the scope knowing about every file that may exist.
        """
        deadline = deadline or Deadline()
        if self._workers > 1 and len(targets) > 1:
            return self._generate_parallel(source, targets, scope, deadline)

        written: Dict[str, Path] = {}
        for size, destination in targets:
            deadline.check(f"derivative '{size.id}'")
            scope.track(destination)
            self._write_one(source, destination, size)
            written[size.id] = destination
        return written

    def _write_one(self, source: Path, destination: Path, size: SizeSpec) -> None:
        with translate_errors(ResizeError, f"Could not resize to '{size.id}'"):
            self._resizer.write_derivative(source, destination, size, self._quality)
        self._logger.debug(f"Wrote derivative '{size.id}' to {destination.name}")

    def _generate_parallel(
        self,
        source: Path,
        targets: List[Tuple[SizeSpec, Path]],
        scope: ArtifactScope,
        deadline: Deadline,
    ) -> Dict[str, Path]:
        deadline.check("derivatives")
        for _, destination in targets:
            scope.track(destination)

        max_workers = min(self._workers, len(targets))
        futures: List[Tuple[SizeSpec, Path, Future]] = []

        # Leaving the executor block waits for running writes, so nothing can
        # land on disk after the scope has rolled back.
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            for size, destination in targets:
                futures.append(
                    (
                        size,
                        destination,
                        executor.submit(self._write_one, source, destination, size),
                    )
                )

            done, pending = wait(
                [future for _, _, future in futures],
                timeout=deadline.remaining(),
                return_when=FIRST_EXCEPTION,
            )
            for future in pending:
                future.cancel()

        for size, _, future in futures:
            if future in done and future.exception() is not None:
                raise future.exception()  # type: ignore[misc]

        if pending:
            raise IngestTimeoutError(
                f"Deadline of {deadline.timeout}s exceeded while generating derivatives"
            )

        return {size.id: destination for size, destination, _ in futures}


class MediaStore:
    """
    Ingestion pipeline bound to one store root and one size table.

    ``ingest`` writes the original, tags it, then produces every derivative,
    all inside an :class:`ArtifactScope`: on success only the metadata tool's
    sidecar is removed, on failure nothing belonging to the media id remains.
    """

    def __init__(
        self,
        config: MediaConfig,
        tag_writer: TagWriterProtocol,
        logger: LoggerProtocol,
        resizer: Optional[ResizerProtocol] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self.config = config
        self.paths = StorePathResolver(config.store_root, config.size_ids)
        self.urls = MediaUrlResolver(config.base_url, config.size_ids)
        self._logger = logger
        self._metrics_collector = metrics_collector

        self.original_writer = OriginalWriter(logger, quality=config.jpeg_quality)
        self.geotag_embedder = GeotagEmbedder(tag_writer, logger)
        self.derivative_generator = DerivativeGenerator(
            resizer or PillowResizer(),
            logger,
            workers=config.derivative_workers,
            quality=config.jpeg_quality,
        )

        try:
            self.paths.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigurationError(
                f"Cannot create store root {self.paths.root}: {exc}"
            ) from exc

    def ingest(
        self,
        media_id: str,
        payload: Union[str, bytes],
        geo: Union[GeoTagInput, Mapping[str, Any]],
        timeout: Optional[float] = None,
    ) -> IngestResult:
        """
        Store, tag and resize one uploaded image.

        Raises:
            DecodeError: payload is not valid base64 or not an image
            WriteError: the filesystem refused a write
            TagError: the metadata tool failed
            ResizeError: a derivative could not be produced
            IngestTimeoutError: ``timeout`` seconds elapsed first
        """
        if not isinstance(geo, GeoTagInput):
            geo = GeoTagInput.model_validate(geo)

        deadline = Deadline(timeout)
        log_context = LogContext(
            operation="ingest", component="media_store"
        ).with_metadata(media_id=media_id)
        start_time = time.time()
        original = self.paths.original_path(media_id)
        targets = [
            (size, self.paths.derivative_path(media_id, size.id))
            for size in self.config.sizes
        ]

        self._logger.info("Starting ingestion", log_context)
        try:
            with measure("ingest", self._metrics_collector, media_id=media_id):
                with ArtifactScope(self._logger, f"ingest {media_id}") as scope:
                    deadline.check("write_original")
                    scope.track(original)
                    with measure("write_original", self._metrics_collector):
                        self.original_writer.write(original, payload)

                    deadline.check("embed_geotag")
                    scope.track_transient(self.paths.sidecar_path(media_id))
                    scope.track_transient(self.paths.tool_tmp_path(media_id))
                    with measure("embed_geotag", self._metrics_collector):
                        self.geotag_embedder.embed(
                            original, geo, timeout=deadline.remaining()
                        )

                    with measure("generate_derivatives", self._metrics_collector):
                        derivatives = self.derivative_generator.generate(
                            original, targets, scope, deadline
                        )

                    deadline.check("completing ingestion")
        except MediaPipelineError as exc:
            self._logger.error(
                "Ingestion failed",
                log_context.with_metadata(error_type=type(exc).__name__, error=str(exc)),
            )
            raise

        processing_time = time.time() - start_time
        self._logger.info(
            "Ingestion complete",
            log_context,
            derivatives=len(derivatives),
            processing_time_ms=round(processing_time * 1000, 1),
        )
        return IngestResult(
            media_id=media_id,
            original_path=str(original),
            derivative_paths={size_id: str(path) for size_id, path in derivatives.items()},
            urls=self.urls.all_urls_for(media_id),
            processing_time=processing_time,
        )

    def url_for(self, media_id: str, size_id: str) -> str:
        return self.urls.url_for(media_id, size_id)

    def all_urls_for(self, media_id: str) -> Dict[str, str]:
        return self.urls.all_urls_for(media_id)

    def reset_store(self) -> None:
        """Delete everything under the store root.

        Must not run while any ingestion is in flight.
        """
        root = self.paths.root
        with translate_errors(WriteError, f"Could not reset store {root}"):
            root.mkdir(parents=True, exist_ok=True)
            removed = 0
            for entry in root.iterdir():
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                removed += 1
        self._logger.warning(f"Reset media store {root} ({removed} entries removed)")
