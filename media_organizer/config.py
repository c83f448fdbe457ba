"""
Configuration constants for the media organizer.
"""
import re

# --- File Type Definitions ---
PHOTO_EXTS = {'jpg', 'jpeg', 'png', 'gif', 'bmp', 'heic', 'heif', 'webp', 'tiff', 'tif'}
VIDEO_EXTS = {'mp4', 'mov', 'avi', 'mkv', 'm4v', '3gp', 'wmv', 'flv', 'webm', 'mpeg', 'mpg'}
JPEG_EXTS = {'jpg', 'jpeg'}

# Extension to Type Mapping (video entries only apply when videos are enabled)
EXT_TO_TYPE = {}
for ext in PHOTO_EXTS: EXT_TO_TYPE[ext] = 'photo'
for ext in VIDEO_EXTS: EXT_TO_TYPE[ext] = 'video'

# --- Metadata Parsing ---
# exifread names; first match wins
DATE_TAGS = [
    'EXIF DateTimeOriginal',
    'Image DateTime',
]
SUBSEC_TAGS = [
    'EXIF SubSecTimeOriginal',
    'EXIF SubSecTime',
]
OFFSET_TAGS = [
    'EXIF OffsetTimeOriginal',
    'EXIF OffsetTime',
]
ORIENTATION_TAG = 'Image Orientation'
# PixelXDimension / PixelYDimension
WIDTH_TAG = 'EXIF ExifImageWidth'
HEIGHT_TAG = 'EXIF ExifImageLength'

EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"

# Filename date patterns, tried in order
FILENAME_DATE_PATTERNS = [
    # 20240617_143052 / 20240617-143052
    re.compile(r'(\d{4})(\d{2})(\d{2})[_-](\d{2})(\d{2})(\d{2})'),
    # 2024-06-17_14-30-52 / 2024-06-17T14-30-52
    re.compile(r'(\d{4})-(\d{2})-(\d{2})[_T](\d{2})-(\d{2})-(\d{2})'),
    # 20240617 (midnight)
    re.compile(r'(\d{4})(\d{2})(\d{2})'),
]

# --- Video Containers ---
# Seconds between 1904-01-01 (QuickTime epoch) and 1970-01-01
QUICKTIME_EPOCH_OFFSET = 2082844800

# --- Orientation Patch ---
EXIF_HEADER = b'Exif\x00\x00'
EXIF_HEADER_SIZE = 6
ORIENTATION_TAG_ID = 0x0112
# The value field sits 8 bytes after the tag id (tag, type, count precede it)
ORIENTATION_VALUE_OFFSET = 8

# --- Burst Detection ---
BURST_MAX_INTERVAL_SECONDS = 3
BURST_MIN_COUNT = 3

# --- Organization ---
NAME_DATE_FORMAT = "%Y-%m-%d_%H-%M-%S"
DEFAULT_EXTENSION = "jpg"
FOLDER_PARTS = ("{year:04d}", "{year:04d}-{month:02d}", "{year:04d}-{month:02d}-{day:02d}")

# --- Concurrency ---
DEFAULT_MAX_WORKERS = 8
