"""Writers that embed geotag metadata into an original image."""

from __future__ import annotations

import io
import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, Optional

from PIL import ExifTags, Image
from PIL.TiffImagePlugin import IFDRational

from .exceptions import IngestTimeoutError, TagError, translate_errors
from .image_utils import decimal_to_dms
from .models import GeoTagInput
from .paths import sidecar_for

EXIFTOOL_ENV_VAR = "MEDIA_PIPELINE_EXIFTOOL"
_EXIFTOOL_CANDIDATES = (
    "/opt/homebrew/bin/exiftool",
    "/usr/local/bin/exiftool",
    "/usr/bin/exiftool",
)


def geotag_tags(geo: GeoTagInput) -> Dict[str, Any]:
    """ExifTool-style tag assignments for one geotag."""
    return {
        "AllDates": geo.exif_timestamp,
        "GPSLatitudeRef": geo.latitude_ref,
        "GPSLatitude": geo.abs_latitude,
        "GPSLongitudeRef": geo.longitude_ref,
        "GPSLongitude": geo.abs_longitude,
        "GPSDestBearingRef": "T",
        "GPSDestBearing": geo.heading,
    }


class ExifToolTagWriter:
    """Writes tags by running the ``exiftool`` executable.

    ExifTool is run without ``-overwrite_original`` and therefore leaves a
    ``<file>_original`` backup beside the target.
    """

    def __init__(self, exiftool_path: Optional[str] = None):
        self.exiftool_path = exiftool_path or resolve_exiftool_path()

    def build_command(self, path: Path, tags: Dict[str, Any]) -> list[str]:
        return [
            self.exiftool_path,
            *(f"-{name}={value}" for name, value in tags.items()),
            str(path),
        ]

    def write_tags(
        self, path: Path, tags: Dict[str, Any], timeout: Optional[float] = None
    ) -> None:
        cmd = self.build_command(path, tags)
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError as exc:
            raise TagError(_exiftool_missing_message()) from exc
        except subprocess.TimeoutExpired as exc:
            raise IngestTimeoutError(
                f"ExifTool did not finish within {timeout:.2f}s"
            ) from exc
        except OSError as exc:
            raise TagError(f"Could not run ExifTool: {exc}") from exc

        if proc.returncode != 0:
            raise TagError(
                proc.stderr.strip() or "ExifTool returned non-zero exit code."
            )


class PillowTagWriter:
    """Writes the geotag tag set in-process with Pillow.

    Mirrors ExifTool's behaviour of keeping a ``<file>_original`` backup so
    both writers leave the same on-disk footprint. Only the tags produced by
    :func:`geotag_tags` are understood.
    """

    def write_tags(
        self, path: Path, tags: Dict[str, Any], timeout: Optional[float] = None
    ) -> None:
        path = Path(path)
        with translate_errors(TagError, f"Could not tag {path.name}"):
            data = path.read_bytes()
            shutil.copy2(path, sidecar_for(path))

            image = Image.open(io.BytesIO(data))
            image.load()
            exif = image.getexif()
            _apply_tags(exif, tags)

            save_kwargs: Dict[str, Any] = {"format": "JPEG", "exif": exif}
            if image.format == "JPEG":
                save_kwargs["quality"] = "keep"
            if image.info.get("icc_profile"):
                save_kwargs["icc_profile"] = image.info["icc_profile"]
            image.save(path, **save_kwargs)


def _apply_tags(exif: Image.Exif, tags: Dict[str, Any]) -> None:
    # Nested IFDs are rewritten as dicts; stale Interop offsets would dangle.
    exif_ifd = {
        key: value
        for key, value in exif.get_ifd(ExifTags.IFD.Exif).items()
        if key != ExifTags.IFD.Interop
    }
    gps_ifd = dict(exif.get_ifd(ExifTags.IFD.GPSInfo))

    if "AllDates" in tags:
        exif[ExifTags.Base.DateTime] = tags["AllDates"]
        exif_ifd[ExifTags.Base.DateTimeOriginal] = tags["AllDates"]
        exif_ifd[ExifTags.Base.DateTimeDigitized] = tags["AllDates"]

    if "GPSLatitude" in tags:
        gps_ifd[ExifTags.GPS.GPSLatitudeRef] = tags["GPSLatitudeRef"]
        gps_ifd[ExifTags.GPS.GPSLatitude] = decimal_to_dms(tags["GPSLatitude"])
    if "GPSLongitude" in tags:
        gps_ifd[ExifTags.GPS.GPSLongitudeRef] = tags["GPSLongitudeRef"]
        gps_ifd[ExifTags.GPS.GPSLongitude] = decimal_to_dms(tags["GPSLongitude"])
    if "GPSDestBearing" in tags:
        # RATIONAL is unsigned; bearings are stored in [0, 360).
        bearing = round((float(tags["GPSDestBearing"]) % 360) * 100)
        gps_ifd[ExifTags.GPS.GPSDestBearingRef] = tags.get("GPSDestBearingRef", "T")
        gps_ifd[ExifTags.GPS.GPSDestBearing] = IFDRational(bearing, 100)

    if exif_ifd:
        exif[ExifTags.IFD.Exif] = exif_ifd
    if gps_ifd:
        exif[ExifTags.IFD.GPSInfo] = gps_ifd


def resolve_exiftool_path(configured: Optional[str] = None) -> str:
    """Resolve an ExifTool executable path.

    Resolution order:
    1) explicitly configured path
    2) MEDIA_PIPELINE_EXIFTOOL env var
    3) PATH lookup
    4) Common install locations
    5) Fallback: "exiftool" (fails at write time with a TagError)
    """
    for explicit in (configured, os.environ.get(EXIFTOOL_ENV_VAR)):
        if explicit and Path(explicit).exists():
            return str(explicit)

    which = shutil.which("exiftool")
    if which:
        return which

    for cand in _EXIFTOOL_CANDIDATES:
        if Path(cand).exists():
            return cand

    return "exiftool"


def is_exiftool_available(configured: Optional[str] = None) -> bool:
    path = resolve_exiftool_path(configured)
    if path == "exiftool":
        return shutil.which("exiftool") is not None
    return Path(path).exists()


def _exiftool_missing_message() -> str:
    return (
        "ExifTool not found. Install ExifTool, set "
        f"{EXIFTOOL_ENV_VAR} or configure media.exiftoolPath."
    )
