"""
Image orientation correction.

Two independent operations:
  - pixel rotation driven by the EXIF Orientation value (Pillow)
  - resetting the Orientation tag of a JPEG to 1 with an in-place byte patch

The byte patch deliberately does not rewrite the TIFF structure: it finds
the first 0x0112 tag id in the EXIF payload and overwrites the two bytes
that hold its value, so the rest of the file stays byte-identical.
"""
import logging
import struct
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image
from pillow_heif import register_heif_opener

from .. import config
from ..exceptions import OrientationError
from .extract import ExifReader

register_heif_opener()


class Orientation(Enum):
    NORMAL = 1
    ROTATE_180 = 3
    ROTATE_90_CW = 6
    ROTATE_90_CCW = 8
    UNKNOWN = 0

    @classmethod
    def from_exif(cls, value: Optional[int]) -> "Orientation":
        # Mirrored variants (2, 4, 5, 7) are not corrected
        for member in cls:
            if member is not cls.UNKNOWN and member.value == value:
                return member
        return cls.UNKNOWN

    @property
    def needs_correction(self) -> bool:
        return self in (Orientation.ROTATE_180, Orientation.ROTATE_90_CW, Orientation.ROTATE_90_CCW)


@dataclass
class OrientationInfo:
    orientation: Orientation
    needs_correction: bool


# Pillow's ROTATE_90 turns counter-clockwise
_TRANSPOSE = {
    Orientation.ROTATE_180: Image.Transpose.ROTATE_180,
    Orientation.ROTATE_90_CW: Image.Transpose.ROTATE_270,
    Orientation.ROTATE_90_CCW: Image.Transpose.ROTATE_90,
}


def get_orientation(path: Path) -> OrientationInfo:
    """Reads the Orientation tag; missing or unreadable EXIF counts as Normal."""
    exif = ExifReader().read(path)
    if exif is None or exif.orientation is None:
        return OrientationInfo(Orientation.NORMAL, False)
    orientation = Orientation.from_exif(exif.orientation)
    return OrientationInfo(orientation, orientation.needs_correction)


def correct_orientation(image: Image.Image, orientation: Orientation) -> Image.Image:
    method = _TRANSPOSE.get(orientation)
    if method is None:
        return image
    return image.transpose(method)


def rotate_image_file(path: Path, exif_orientation: Optional[int]) -> bool:
    """
    Rotates the pixels of path according to exif_orientation and overwrites
    the file. Returns False without touching the file when no rotation applies.
    """
    orientation = Orientation.from_exif(exif_orientation)
    if not orientation.needs_correction:
        return False

    try:
        with Image.open(path) as im:
            im.load()
            fmt = im.format
            exif_bytes = im.info.get("exif")
            rotated = correct_orientation(im, orientation)

        save_kwargs = {}
        if exif_bytes:
            save_kwargs["exif"] = exif_bytes
        if fmt in ("JPEG", "MPO"):
            save_kwargs["quality"] = 95
        rotated.save(path, format=fmt, **save_kwargs)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise OrientationError(f"Failed to rotate {path}: {e}") from e

    logging.debug(f"Rotated {path} ({orientation.name})")
    return True


def find_exif_segment(data: bytes) -> Optional[Tuple[int, int]]:
    """
    Returns the (start, end) byte range of the APP1 Exif payload in a JPEG,
    header included, or None.
    """
    if data[:2] != b'\xff\xd8':
        return None

    i = 2
    while i + 4 <= len(data):
        if data[i] != 0xFF:
            return None
        marker = data[i + 1]
        if marker == 0xFF:
            # Fill byte
            i += 1
            continue
        if marker in (0xD9, 0xDA):
            # EOI / start of scan: no more metadata segments
            return None
        if 0xD0 <= marker <= 0xD7 or marker == 0x01:
            i += 2
            continue

        length = struct.unpack('>H', data[i + 2:i + 4])[0]
        start = i + 4
        end = min(i + 2 + length, len(data))
        if marker == 0xE1 and data[start:start + config.EXIF_HEADER_SIZE] == config.EXIF_HEADER:
            return start, end
        i = i + 2 + length
    return None


def patch_orientation_value(exif: bytearray) -> bool:
    """
    Sets the first Orientation entry in an Exif payload to 1, in place.
    Returns False if the payload is too short, has no valid byte-order
    marker, or contains no Orientation tag.
    """
    tiff_start = config.EXIF_HEADER_SIZE
    if len(exif) < tiff_start + 2:
        return False

    byte_order = bytes(exif[tiff_start:tiff_start + 2])
    if byte_order == b'II':
        endian = '<'
    elif byte_order == b'MM':
        endian = '>'
    else:
        return False

    tag_id = struct.pack(endian + 'H', config.ORIENTATION_TAG_ID)
    for i in range(tiff_start, len(exif) - 1):
        if exif[i:i + 2] == tag_id:
            value_at = i + config.ORIENTATION_VALUE_OFFSET
            if value_at + 2 > len(exif):
                return False
            exif[value_at:value_at + 2] = struct.pack(endian + 'H', 1)
            return True
    return False


def reset_orientation_tag(path: Path) -> bool:
    """
    Rewrites the EXIF Orientation of a JPEG to 1 (Normal). Anything that
    isn't a patchable JPEG is left alone. Returns whether the file changed.
    """
    if path.suffix.lower().lstrip('.') not in config.JPEG_EXTS:
        return False

    data = path.read_bytes()
    segment = find_exif_segment(data)
    if segment is None:
        return False

    start, end = segment
    exif = bytearray(data[start:end])
    if not patch_orientation_value(exif):
        return False

    path.write_bytes(data[:start] + bytes(exif) + data[end:])
    return True


class OrientationRewriter:
    """Rotates an image file and then marks its EXIF orientation as Normal."""

    def correct_file(self, path: Path, exif_orientation: Optional[int]) -> bool:
        if not rotate_image_file(path, exif_orientation):
            return False
        try:
            reset_orientation_tag(path)
        except OSError as e:
            raise OrientationError(f"Failed to reset orientation tag of {path}: {e}") from e
        return True
