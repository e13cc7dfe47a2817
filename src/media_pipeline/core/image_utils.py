"""Image processing utilities for the media pipeline."""

import base64
import binascii
import io
from fractions import Fraction
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from PIL import ExifTags, Image, ImageOps
from PIL.TiffImagePlugin import IFDRational

from .exceptions import DecodeError, translate_errors
from .models import FitPolicy, SizeSpec

RESAMPLE = Image.Resampling.LANCZOS
LETTERBOX_COLOR = (0, 0, 0)


def decode_payload(payload: Union[str, bytes]) -> bytes:
    """
    Decode a base64 image payload into raw bytes.

    Whitespace is ignored and a leading ``data:<mime>;base64,`` prefix is
    stripped. Any other character outside the base64 alphabet is rejected.

    Raises:
        DecodeError: If the payload is empty or not valid base64
    """
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("ascii")
        except UnicodeDecodeError as exc:
            raise DecodeError("Payload is not valid base64") from exc

    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]

    compact = "".join(payload.split())
    if not compact:
        raise DecodeError("Payload is empty")

    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Payload is not valid base64: {exc}") from exc


def to_jpeg_bytes(raw: bytes, quality: int = 90) -> bytes:
    """
    Return ``raw`` as JPEG bytes, keeping any embedded metadata.

    JPEG input is returned untouched. Other formats are re-encoded and carry
    their EXIF block and ICC profile across. Oversized images (Pillow's
    decompression-bomb guard) are rejected like unreadable ones.

    Raises:
        DecodeError: If the bytes are not a readable image
    """
    with translate_errors(DecodeError, "Payload is not a readable image"):
        image = Image.open(io.BytesIO(raw))
        image.load()

        if image.format == "JPEG":
            return raw

        save_kwargs: Dict[str, Any] = {"format": "JPEG", "quality": quality}
        exif = image.getexif()
        if len(exif):
            save_kwargs["exif"] = exif
        if image.info.get("icc_profile"):
            save_kwargs["icc_profile"] = image.info["icc_profile"]

        output = io.BytesIO()
        _as_rgb(image).save(output, **save_kwargs)
        return output.getvalue()


def target_dimensions(source: Tuple[int, int], size: SizeSpec) -> Tuple[int, int]:
    """
    Output dimensions of a derivative for a source of ``source`` pixels.

    ``cover``, ``contain`` and ``fill`` always produce the exact target box.
    ``inside`` shrinks to fit the box and never enlarges. ``outside`` enlarges
    until the box is covered and never shrinks.
    """
    src_w, src_h = source
    if size.fit in (FitPolicy.COVER, FitPolicy.CONTAIN, FitPolicy.FILL):
        return size.width, size.height

    if size.fit == FitPolicy.INSIDE:
        scale = min(size.width / src_w, size.height / src_h)
        if scale >= 1:
            return src_w, src_h
    else:
        scale = max(size.width / src_w, size.height / src_h)
        if scale <= 1:
            return src_w, src_h

    return max(1, round(src_w * scale)), max(1, round(src_h * scale))


def resize_to_fit(image: "Image.Image", size: SizeSpec) -> "Image.Image":
    """Apply ``size.fit`` to ``image`` and return a new image."""
    image = _as_rgb(image)
    box = (size.width, size.height)

    if size.fit == FitPolicy.COVER:
        return ImageOps.fit(image, box, method=RESAMPLE)
    if size.fit == FitPolicy.CONTAIN:
        return ImageOps.pad(image, box, method=RESAMPLE, color=LETTERBOX_COLOR)
    if size.fit == FitPolicy.FILL:
        return image.resize(box, RESAMPLE)

    dimensions = target_dimensions(image.size, size)
    if dimensions == image.size:
        return image.copy()
    return image.resize(dimensions, RESAMPLE)


def _as_rgb(image: "Image.Image") -> "Image.Image":
    if image.mode == "RGB":
        return image
    return image.convert("RGB")


def decimal_to_dms(value: float) -> Tuple[IFDRational, IFDRational, IFDRational]:
    """Split an unsigned decimal degree into EXIF degree/minute/second rationals."""
    value = abs(value)
    degrees = int(value)
    minutes_full = (value - degrees) * 60
    minutes = int(minutes_full)
    seconds = Fraction(round((minutes_full - minutes) * 60 * 10000), 10000)
    return (
        IFDRational(degrees, 1),
        IFDRational(minutes, 1),
        IFDRational(seconds.numerator, seconds.denominator),
    )


def dms_to_decimal(dms: Any, ref: Optional[str] = None) -> float:
    """Inverse of :func:`decimal_to_dms`, signed by the hemisphere reference."""
    degrees, minutes, seconds = (float(part) for part in dms)
    value = degrees + minutes / 60 + seconds / 3600
    if ref in ("S", "W"):
        value = -value
    return value


def read_geotag(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read the geotag fields back from an image file.

    Returns:
        Dictionary with width, height and whichever of latitude, longitude,
        their references, bearing and capture time the file carries
    """
    with Image.open(path) as image:
        info: Dict[str, Any] = {"width": image.width, "height": image.height}
        exif = image.getexif()

    gps = exif.get_ifd(ExifTags.IFD.GPSInfo)
    if ExifTags.GPS.GPSLatitude in gps:
        info["latitude_ref"] = gps.get(ExifTags.GPS.GPSLatitudeRef)
        info["latitude"] = dms_to_decimal(
            gps[ExifTags.GPS.GPSLatitude], info["latitude_ref"]
        )
    if ExifTags.GPS.GPSLongitude in gps:
        info["longitude_ref"] = gps.get(ExifTags.GPS.GPSLongitudeRef)
        info["longitude"] = dms_to_decimal(
            gps[ExifTags.GPS.GPSLongitude], info["longitude_ref"]
        )
    if ExifTags.GPS.GPSDestBearing in gps:
        info["bearing_ref"] = gps.get(ExifTags.GPS.GPSDestBearingRef)
        info["bearing"] = float(gps[ExifTags.GPS.GPSDestBearing])

    exif_ifd = exif.get_ifd(ExifTags.IFD.Exif)
    if ExifTags.Base.DateTimeOriginal in exif_ifd:
        info["datetime_original"] = exif_ifd[ExifTags.Base.DateTimeOriginal]

    return info
