"""Shared data models for the media pipeline."""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"


class FitPolicy(str, Enum):
    """How a derivative reconciles the source aspect ratio with its target box."""

    COVER = "cover"
    CONTAIN = "contain"
    FILL = "fill"
    INSIDE = "inside"
    OUTSIDE = "outside"


class SizeSpec(BaseModel):
    """One entry of the configured derivative size table."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    fit: FitPolicy = FitPolicy.COVER


class GeoTagInput(BaseModel):
    """Geolocation and capture time to embed into an original.

    Coordinate ranges are validated by the caller.
    """

    model_config = ConfigDict(populate_by_name=True)

    lon: float
    lat: float
    heading: float
    created_at: datetime = Field(alias="createdAt")

    @property
    def latitude_ref(self) -> str:
        return "N" if self.lat >= 0 else "S"

    @property
    def longitude_ref(self) -> str:
        return "E" if self.lon >= 0 else "W"

    @property
    def abs_latitude(self) -> float:
        return abs(self.lat)

    @property
    def abs_longitude(self) -> float:
        return abs(self.lon)

    @property
    def exif_timestamp(self) -> str:
        """Capture time in EXIF notation, normalised to UTC when zone-aware."""
        created_at = self.created_at
        if created_at.tzinfo is not None:
            created_at = created_at.astimezone(timezone.utc)
        return created_at.strftime(EXIF_DATETIME_FORMAT)


class MediaConfig(BaseModel):
    """Process-wide media configuration, immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    store_path: str = Field(min_length=1)
    base_dir: str = "."
    base_url: str = Field(min_length=1)
    sizes: List[SizeSpec] = Field(default_factory=list)
    derivative_workers: int = Field(default=1, ge=1)
    jpeg_quality: int = Field(default=90, ge=1, le=95)
    exiftool_path: Optional[str] = None

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @model_validator(mode="after")
    def _check_unique_size_ids(self) -> "MediaConfig":
        seen = set()
        for size in self.sizes:
            if size.id in seen:
                raise ValueError(f"duplicate size id: {size.id}")
            seen.add(size.id)
        return self

    @property
    def store_root(self) -> Path:
        """Absolute store directory (``store_path`` relative to ``base_dir``)."""
        return (Path(self.base_dir) / self.store_path).resolve()

    @property
    def size_ids(self) -> List[str]:
        return [size.id for size in self.sizes]


class IngestResult(BaseModel):
    """Permanent artifacts produced by one successful ingestion."""

    media_id: str
    original_path: str
    derivative_paths: Dict[str, str] = Field(default_factory=dict)
    urls: Dict[str, str] = Field(default_factory=dict)
    processing_time: float = 0.0
