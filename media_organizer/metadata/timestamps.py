import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

from .. import config
from ..exceptions import VideoMetadataError
from ..models import DateCandidates, DateSource, MediaRecord, MediaType
from .extract import ExifData, ExifReader, VideoMetadataExtractor


class TimestampResolver:
    """
    Resolves the capture timestamp of a media file.

    Priority chain (first success wins):
      1. Embedded metadata: EXIF DateTimeOriginal -> DateTime for photos,
         the movie header creation time for videos.
      2. A date encoded in the filename.
      3. Filesystem creation time (where the platform records it).
      4. Filesystem modification time.

    A file for which every tier fails gets no record at all.
    """

    def __init__(self,
                 exif_reader: Optional[ExifReader] = None,
                 video_extractor: Optional[VideoMetadataExtractor] = None):
        self.exif = exif_reader or ExifReader()
        self.video = video_extractor or VideoMetadataExtractor()

    def resolve(self, path: Path, media_type: MediaType) -> Optional[MediaRecord]:
        try:
            stat_result = path.stat()
        except OSError as e:
            logging.warning(f"Cannot stat {path}: {e}")
            return None

        candidates = DateCandidates(
            filename_date=parse_filename_date(path.name),
            file_created_date=_birth_time(stat_result),
            file_modified_date=_safe_fromtimestamp(stat_result.st_mtime),
        )

        exif: Optional[ExifData] = None
        width = height = duration_ms = None

        if media_type == MediaType.VIDEO:
            try:
                meta = self.video.extract(path)
            except VideoMetadataError as e:
                logging.debug(f"No container date for {path}: {e}")
            else:
                # Store as naive local time like every other tier
                candidates.exif_date = meta.creation_time.astimezone().replace(tzinfo=None)
                width = meta.width or None
                height = meta.height or None
                duration_ms = meta.duration_ms or None
        else:
            exif = self.exif.read(path)
            if exif is not None:
                candidates.exif_date = exif.date_taken
                width, height = exif.width, exif.height

        picked = _pick_tier(candidates)
        if picked is None:
            logging.debug("No resolvable date for %s; skipping", path)
            return None
        date_taken, source = picked

        record = MediaRecord(
            original_path=path,
            file_name=path.name,
            media_type=media_type,
            date_taken=date_taken,
            date_source=source,
            file_size=stat_result.st_size,
            exif_orientation=exif.orientation if exif else None,
            width=width,
            height=height,
            duration_ms=duration_ms,
            candidates=candidates,
        )
        # Subsecond and offset only travel with an EXIF-sourced date
        if source == DateSource.EXIF and exif is not None:
            record.subsecond = exif.subsecond
            record.timezone = exif.timezone
        return record


def _pick_tier(candidates: DateCandidates) -> Optional[Tuple[datetime, DateSource]]:
    chain = [
        (candidates.exif_date, DateSource.EXIF),
        (candidates.filename_date, DateSource.FILE_NAME),
        (candidates.file_created_date, DateSource.FILE_CREATED),
        (candidates.file_modified_date, DateSource.FILE_MODIFIED),
    ]
    for value, source in chain:
        if value is not None:
            return value, source
    return None


def parse_filename_date(name: str) -> Optional[datetime]:
    """
    Tries each filename pattern in order. A match with impossible calendar
    values (month 13, hour 25, ...) is rejected and the next match tried.
    """
    for pattern in config.FILENAME_DATE_PATTERNS:
        for m in pattern.finditer(name):
            parts = [int(g) for g in m.groups()]
            try:
                return datetime(*parts)
            except ValueError:
                continue
    return None


def _birth_time(stat_result: os.stat_result) -> Optional[datetime]:
    # Only BSD/macOS and Windows (Python 3.12+) expose the real creation time
    birth = getattr(stat_result, 'st_birthtime', None)
    if birth is None:
        return None
    return _safe_fromtimestamp(birth)


def _safe_fromtimestamp(ts: float) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(ts)
    except (OverflowError, OSError, ValueError):
        return None
