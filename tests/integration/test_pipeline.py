"""Integration tests for the complete ingestion pipeline."""

import base64
import sys
import time

import pytest
from PIL import Image

from media_pipeline.core.exceptions import (
    DecodeError,
    IngestTimeoutError,
    ResizeError,
    TagError,
)
from media_pipeline.core.factories import MediaStoreFactory
from media_pipeline.core.image_utils import read_geotag
from media_pipeline.core.models import GeoTagInput, MediaConfig
from media_pipeline.core.observability import MetricsCollector
from media_pipeline.core.services import MediaStore, PillowResizer
from media_pipeline.core.tag_writers import ExifToolTagWriter, PillowTagWriter
from media_pipeline.testing.fakes import (
    FailingResizer,
    FakeLogger,
    FakeTagWriter,
    create_test_image,
    encode_test_payload,
    files_for,
)

BASE_URL = "https://cdn.example.com/media"

GEO = GeoTagInput(lon=30, lat=-30, heading=8, createdAt="2023-01-01T00:00:00Z")


def _config(tmp_path, sizes, **overrides) -> MediaConfig:
    return MediaConfig(
        store_path=str(tmp_path / "media"),
        base_url=BASE_URL,
        sizes=sizes,
        **overrides,
    )


THUMB = {"id": "thumb", "width": 50, "height": 50, "fit": "cover"}
LARGE = {"id": "large", "width": 80, "height": 80, "fit": "inside"}


class TestPipelineIntegration:
    """End-to-end ingestion against a temporary store."""

    def test_tagged_original_and_thumbnail(self, tmp_path):
        """One size with real metadata: tagged original plus an exact thumbnail."""
        store = MediaStoreFactory.create_store(
            config=_config(tmp_path, [THUMB]),
            tag_writer=PillowTagWriter(),
            logger=FakeLogger(),
        )

        result = store.ingest("abc", encode_test_payload(100, 100), GEO)

        root = store.paths.root
        assert files_for(root, "abc") == ["abc-thumb.jpg", "abc.jpg"]

        info = read_geotag(root / "abc.jpg")
        assert info["latitude_ref"] == "S"
        assert info["latitude"] == pytest.approx(-30)
        assert info["longitude_ref"] == "E"
        assert info["longitude"] == pytest.approx(30)
        assert info["bearing"] == pytest.approx(8)
        assert info["datetime_original"] == "2023:01:01 00:00:00"

        with Image.open(root / "abc-thumb.jpg") as thumb:
            assert thumb.size == (50, 50)

        assert result.urls == {"thumb": f"{BASE_URL}/abc-thumb.jpg"}
        assert result.derivative_paths == {"thumb": str(root / "abc-thumb.jpg")}

    def test_invalid_payload_leaves_no_files(self, tmp_path):
        """An undecodable payload is rejected before anything is written."""
        store = MediaStore(_config(tmp_path, [THUMB]), FakeTagWriter(), FakeLogger())

        with pytest.raises(DecodeError):
            store.ingest("abc", "!!!not-base64!!!", GEO)

        assert list(store.paths.root.iterdir()) == []

    def test_tagging_failure_leaves_no_files(self, tmp_path):
        """The metadata tool fails after writing its backup."""
        tag_writer = FakeTagWriter()
        tag_writer.set_failure_mode(True)
        store = MediaStore(_config(tmp_path, [THUMB]), tag_writer, FakeLogger())

        with pytest.raises(TagError):
            store.ingest("abc", encode_test_payload(), GEO)

        assert len(tag_writer.calls) == 1
        assert list(store.paths.root.iterdir()) == []

    def test_second_derivative_failure_leaves_no_files(self, tmp_path):
        """The first size is written, then the second fails."""
        resizer = FailingResizer({"large"})
        store = MediaStore(
            _config(tmp_path, [THUMB, LARGE]),
            FakeTagWriter(),
            FakeLogger(),
            resizer=resizer,
        )

        with pytest.raises(ResizeError):
            store.ingest("abc", encode_test_payload(), GEO)

        assert resizer.attempted == ["thumb", "large"]
        assert list(store.paths.root.iterdir()) == []

    def test_parallel_derivative_failure_leaves_no_files(self, tmp_path):
        sizes = [
            THUMB,
            LARGE,
            {"id": "wide", "width": 90, "height": 30, "fit": "fill"},
        ]
        store = MediaStore(
            _config(tmp_path, sizes, derivative_workers=3),
            FakeTagWriter(),
            FakeLogger(),
            resizer=FailingResizer({"wide"}),
        )

        with pytest.raises(ResizeError):
            store.ingest("abc", encode_test_payload(), GEO)

        assert list(store.paths.root.iterdir()) == []

    def test_parallel_derivatives_succeed(self, tmp_path):
        store = MediaStore(
            _config(tmp_path, [THUMB, LARGE], derivative_workers=2),
            FakeTagWriter(),
            FakeLogger(),
        )

        store.ingest("abc", encode_test_payload(), GEO)

        assert files_for(store.paths.root, "abc") == [
            "abc-large.jpg",
            "abc-thumb.jpg",
            "abc.jpg",
        ]

    def test_timeout_cleans_up(self, tmp_path):
        tag_writer = FakeTagWriter()
        tag_writer.set_delay(0.3)
        store = MediaStore(_config(tmp_path, [THUMB]), tag_writer, FakeLogger())

        with pytest.raises(IngestTimeoutError) as exc_info:
            store.ingest("abc", encode_test_payload(), GEO, timeout=0.1)

        assert isinstance(exc_info.value, TimeoutError)
        assert list(store.paths.root.iterdir()) == []

    def test_overrun_in_last_derivative_rolls_back(self, tmp_path):
        class SlowResizer(PillowResizer):
            def write_derivative(self, source, destination, size, quality):
                time.sleep(0.3)
                super().write_derivative(source, destination, size, quality)

        store = MediaStore(
            _config(tmp_path, [THUMB]),
            FakeTagWriter(),
            FakeLogger(),
            resizer=SlowResizer(),
        )

        with pytest.raises(IngestTimeoutError):
            store.ingest("abc", encode_test_payload(), GEO, timeout=0.1)

        assert list(store.paths.root.iterdir()) == []

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    def test_exiftool_timeout_removes_tool_files(self, tmp_path):
        script = tmp_path / "exiftool"
        script.write_text(
            "#!/bin/sh\n"
            'for last; do :; done\n'
            'cp "$last" "${last}_original"\n'
            ': > "${last}_exiftool_tmp"\n'
            "exec sleep 5\n"
        )
        script.chmod(0o755)
        store = MediaStore(
            _config(tmp_path, [THUMB]),
            ExifToolTagWriter(str(script)),
            FakeLogger(),
        )

        with pytest.raises(IngestTimeoutError):
            store.ingest("abc", encode_test_payload(), GEO, timeout=0.5)

        assert list(store.paths.root.iterdir()) == []

    def test_oversized_payload_is_a_decode_error(self, tmp_path, monkeypatch):
        logger = FakeLogger()
        store = MediaStore(_config(tmp_path, [THUMB]), FakeTagWriter(), logger)
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

        with pytest.raises(DecodeError):
            store.ingest("abc", encode_test_payload(100, 100, image_format="PNG"), GEO)

        assert list(store.paths.root.iterdir()) == []
        assert logger.get_logs("ERROR")[0]["error_type"] == "DecodeError"

    def test_inside_never_upscales(self, tmp_path):
        sizes = [{"id": "large", "width": 1200, "height": 1200, "fit": "inside"}]
        store = MediaStore(_config(tmp_path, sizes), FakeTagWriter(), FakeLogger())

        store.ingest("abc", encode_test_payload(120, 90), GEO)

        with Image.open(store.paths.root / "abc-large.jpg") as image:
            assert image.size == (120, 90)

    def test_derivatives_carry_geotag(self, tmp_path):
        store = MediaStore(
            _config(tmp_path, [THUMB]), PillowTagWriter(), FakeLogger()
        )

        store.ingest("abc", encode_test_payload(), GEO)

        info = read_geotag(store.paths.root / "abc-thumb.jpg")
        assert info["latitude"] == pytest.approx(-30)
        assert info["longitude"] == pytest.approx(30)

    def test_png_payload_is_stored_as_jpeg(self, tmp_path):
        store = MediaStore(_config(tmp_path, [THUMB]), FakeTagWriter(), FakeLogger())

        store.ingest("abc", encode_test_payload(60, 40, image_format="PNG"), GEO)

        with Image.open(store.paths.root / "abc.jpg") as image:
            assert image.format == "JPEG"

    def test_geo_as_mapping(self, tmp_path):
        tag_writer = FakeTagWriter()
        store = MediaStore(_config(tmp_path, [THUMB]), tag_writer, FakeLogger())

        store.ingest(
            "abc",
            encode_test_payload(),
            {"lon": -73.5, "lat": 45.5, "heading": 90, "createdAt": "2023-06-01T12:00:00Z"},
        )

        tags = tag_writer.calls[0]["tags"]
        assert tags["GPSLatitudeRef"] == "N"
        assert tags["GPSLongitudeRef"] == "W"

    def test_other_media_ids_untouched_by_rollback(self, tmp_path):
        store = MediaStore(_config(tmp_path, [THUMB]), FakeTagWriter(), FakeLogger())
        store.ingest("keep", encode_test_payload(), GEO)

        with pytest.raises(DecodeError):
            store.ingest("drop", base64.b64encode(b"not an image").decode(), GEO)

        assert files_for(store.paths.root, "keep") == ["keep-thumb.jpg", "keep.jpg"]
        assert files_for(store.paths.root, "drop") == []

    def test_metrics_recorded_per_step(self, tmp_path):
        collector = MetricsCollector()
        store = MediaStore(
            _config(tmp_path, [THUMB]),
            FakeTagWriter(),
            FakeLogger(),
            metrics_collector=collector,
        )

        store.ingest("abc", encode_test_payload(), GEO)

        operations = {metric.operation for metric in collector.get_metrics()}
        assert operations == {
            "ingest",
            "write_original",
            "embed_geotag",
            "generate_derivatives",
        }
        assert collector.get_summary("ingest")["success_rate"] == 1.0

    def test_failure_is_logged(self, tmp_path):
        logger = FakeLogger()
        store = MediaStore(_config(tmp_path, [THUMB]), FakeTagWriter(), logger)

        with pytest.raises(DecodeError):
            store.ingest("abc", "!!!not-base64!!!", GEO)

        [error] = logger.get_logs("ERROR")
        assert error["error_type"] == "DecodeError"
        assert error["media_id"] == "abc"


class TestUrlsAndReset:
    """URL derivation and store reset."""

    def test_urls_are_stable_across_ingestion(self, tmp_path):
        store = MediaStore(
            _config(tmp_path, [THUMB, LARGE]), FakeTagWriter(), FakeLogger()
        )
        before = store.all_urls_for("abc")

        store.ingest("abc", encode_test_payload(), GEO)

        assert store.all_urls_for("abc") == before
        assert list(before) == ["thumb", "large"]
        assert store.url_for("abc", "large") == f"{BASE_URL}/abc-large.jpg"

    def test_reset_store(self, tmp_path):
        store = MediaStore(_config(tmp_path, [THUMB]), FakeTagWriter(), FakeLogger())
        store.ingest("abc", encode_test_payload(), GEO)
        (store.paths.root / "nested").mkdir()
        (store.paths.root / "nested" / "stray.jpg").write_bytes(create_test_image(4, 4))

        store.reset_store()

        assert store.paths.root.is_dir()
        assert list(store.paths.root.iterdir()) == []

    def test_reset_store_recreates_missing_root(self, tmp_path):
        store = MediaStore(_config(tmp_path, [THUMB]), FakeTagWriter(), FakeLogger())
        store.paths.root.rmdir()

        store.reset_store()

        assert store.paths.root.is_dir()
