import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Any

import exifread
from pymediainfo import MediaInfo

from .. import config
from ..exceptions import VideoMetadataError
from ..models import VideoMetadata

QUICKTIME_EPOCH = datetime(1904, 1, 1)


@dataclass
class ExifData:
    """The subset of EXIF tags the timestamp chain cares about."""
    date_taken: Optional[datetime] = None
    subsecond: Optional[int] = None
    timezone: Optional[str] = None
    orientation: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None


class ExifReader:
    """
    Reads EXIF tags with 'exifread'.

    A corrupt or missing EXIF container is reported as None ("no EXIF"),
    never as an error.
    """

    def read(self, path: Path) -> Optional[ExifData]:
        try:
            with path.open('rb') as f:
                # details=False skips MakerNotes and thumbnails
                tags = exifread.process_file(f, details=False)
        except Exception as e:
            logging.debug(f"EXIF read failed for {path}: {e}")
            return None

        if not tags:
            logging.debug("No EXIF tags found for %s", path)
            return None

        return ExifData(
            date_taken=self._parse_exif_date(tags),
            subsecond=self._parse_subsecond(tags),
            timezone=self._first_text(tags, config.OFFSET_TAGS),
            orientation=self._parse_orientation(tags),
            width=self._first_int(tags, config.WIDTH_TAG),
            height=self._first_int(tags, config.HEIGHT_TAG),
        )

    def _parse_exif_date(self, tags) -> Optional[datetime]:
        for tag in config.DATE_TAGS:
            if tag in tags:
                try:
                    return datetime.strptime(str(tags[tag]).strip(), config.EXIF_DATE_FORMAT)
                except ValueError:
                    continue
        return None

    def _parse_subsecond(self, tags) -> Optional[int]:
        """
        SubSecTime holds the digits after the decimal point, so "5" is 500ms
        and "123456" is 123ms.
        """
        raw = self._first_text(tags, config.SUBSEC_TAGS)
        if raw is None:
            return None
        digits = raw.strip().rstrip('\x00').strip()
        if not digits.isdigit():
            return None
        return int(digits[:3].ljust(3, '0'))

    def _parse_orientation(self, tags) -> Optional[int]:
        value = self._first_int(tags, config.ORIENTATION_TAG)
        if value is not None and 1 <= value <= 8:
            return value
        return None

    def _first_text(self, tags, names) -> Optional[str]:
        for name in names:
            if name in tags:
                text = str(tags[name]).strip()
                if text:
                    return text
        return None

    def _first_int(self, tags, name: str) -> Optional[int]:
        tag = tags.get(name)
        if tag is None:
            return None
        values = getattr(tag, 'values', None)
        try:
            if isinstance(values, (list, tuple)) and values:
                return int(values[0])
            return int(str(tag))
        except (TypeError, ValueError):
            return None


class VideoMetadataExtractor:
    """
    Container-level metadata for MP4/QuickTime files via 'pymediainfo'.

    MediaInfo reports the movie header creation time as a calendar date; it
    is turned back into QuickTime seconds so the 1904 epoch conversion and
    its validity checks stay in one place.
    """

    def extract(self, path: Path) -> VideoMetadata:
        try:
            media_info = MediaInfo.parse(str(path))
        except Exception as e:
            raise VideoMetadataError(f"Failed to parse video container {path}: {e}") from e

        general = None
        first_track = None
        for track in media_info.tracks:
            if track.track_type == "General" and general is None:
                general = track
            elif str(getattr(track, "track_id", "")) == "1":
                first_track = track

        if general is None:
            raise VideoMetadataError(f"No container header found in {path}")

        creation = self._movie_header_seconds(general)
        if creation is None:
            raise VideoMetadataError(f"No creation time in {path}")

        width = height = 0
        if first_track is not None:
            width = self._as_int(getattr(first_track, "width", None))
            height = self._as_int(getattr(first_track, "height", None))

        return VideoMetadata(
            creation_time=quicktime_to_datetime(creation),
            width=width,
            height=height,
            duration_ms=self._as_int(getattr(general, "duration", None)),
        )

    def _movie_header_seconds(self, general: Any) -> Optional[int]:
        for field in ("encoded_date", "tagged_date"):
            raw = getattr(general, field, None)
            if not raw:
                continue
            dt = _parse_mediainfo_utc(str(raw))
            if dt is not None:
                return int((dt - QUICKTIME_EPOCH).total_seconds())
        return None

    def _as_int(self, value: Any) -> int:
        if value is None:
            return 0
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return 0


def quicktime_to_datetime(creation_time: int) -> datetime:
    """Converts mvhd seconds-since-1904 to an aware UTC datetime."""
    if creation_time <= 0:
        raise VideoMetadataError("Creation time is unset")
    unix_timestamp = creation_time - config.QUICKTIME_EPOCH_OFFSET
    try:
        return datetime.fromtimestamp(unix_timestamp, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise VideoMetadataError(f"Invalid timestamp in video metadata: {unix_timestamp}") from e


def _parse_mediainfo_utc(dt_str: str) -> Optional[datetime]:
    """
    MediaInfo writes "UTC 2020-01-01 12:00:00" or "2020-01-01 12:00:00 UTC".
    Returns a naive UTC datetime.
    """
    s = dt_str.replace("UTC", "").strip()
    if "." in s:
        s = s.split(".")[0]
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        try:
            dt = datetime.strptime(s, "%Y-%m-%d %H:%M:%S")
        except ValueError:
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt
