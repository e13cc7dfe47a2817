"""Testing utilities and fakes for the media pipeline."""

from .fakes import (
    FakeTagWriter,
    FailingResizer,
    FakeLogger,
    create_test_image,
    encode_test_payload,
    files_for,
)

__all__ = [
    "FakeTagWriter",
    "FailingResizer",
    "FakeLogger",
    "create_test_image",
    "encode_test_payload",
    "files_for",
]
