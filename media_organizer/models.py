import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

from . import config


class MediaType(str, Enum):
    PHOTO = "Photo"
    VIDEO = "Video"


class DateSource(str, Enum):
    """Which tier of the timestamp chain produced date_taken."""
    EXIF = "Exif"
    FILE_NAME = "FileName"
    FILE_CREATED = "FileCreated"
    FILE_MODIFIED = "FileModified"


@dataclass
class DateCandidates:
    """
    Every tier's result for one file, whether or not it won.
    """
    exif_date: Optional[datetime] = None
    filename_date: Optional[datetime] = None
    file_created_date: Optional[datetime] = None
    file_modified_date: Optional[datetime] = None


@dataclass
class MediaRecord:
    """
    Represents a media file with a resolved capture timestamp.
    """
    original_path: Path
    file_name: str
    media_type: MediaType
    date_taken: datetime
    date_source: DateSource
    file_size: int

    # Only the EXIF tier fills these
    subsecond: Optional[int] = None      # milliseconds, 0-999
    timezone: Optional[str] = None       # raw offset, e.g. "+09:00"

    exif_orientation: Optional[int] = None
    rotation_applied: bool = False
    width: Optional[int] = None
    height: Optional[int] = None
    duration_ms: Optional[int] = None

    candidates: DateCandidates = field(default_factory=DateCandidates)

    # Burst annotation
    burst_group_id: Optional[int] = None
    burst_index: Optional[int] = None    # 1-based

    # Naming / copy stages
    new_name: str = ""
    new_path: Optional[Path] = None

    @property
    def sort_key(self):
        return (self.date_taken, self.subsecond or 0)


@dataclass
class BurstGroup:
    id: int
    photo_indices: List[int]
    start_time: datetime
    end_time: datetime
    count: int


@dataclass
class ProcessResult:
    success: bool
    total_files: int
    processed_files: int
    media: List[MediaRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class VideoMetadata:
    creation_time: datetime     # UTC
    width: int
    height: int
    duration_ms: int


@dataclass
class ProcessOptions:
    parallel: bool = True
    include_videos: bool = True
    backup_dir: Optional[Path] = None
    # Reserved: accepted but not applied to resolution
    timezone_offset: Optional[int] = None
    # Reserved: no effect
    cleanup_temp: bool = False
    auto_correct_orientation: bool = False

    max_workers: int = min(config.DEFAULT_MAX_WORKERS, os.cpu_count() or 1)
    max_interval_seconds: int = config.BURST_MAX_INTERVAL_SECONDS
    min_count: int = config.BURST_MIN_COUNT
    show_progress: bool = False
