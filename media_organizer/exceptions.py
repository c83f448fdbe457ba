"""
Custom exception hierarchy for the media organizer.

Per-file failures are caught at the pipeline seams and reported as error
strings; only ScanError escapes a scan/process call.
"""


class MediaOrganizerError(Exception):
    """Base exception for all media organizer errors."""
    pass


class ScanError(MediaOrganizerError):
    """Raised when the input root cannot be enumerated at all."""
    pass


class MetadataExtractionError(MediaOrganizerError):
    """Raised when metadata cannot be extracted from a file."""
    pass


class VideoMetadataError(MetadataExtractionError):
    """Raised when a video container cannot be parsed or has no usable creation time."""
    pass


class FileOperationError(MediaOrganizerError):
    """Raised when backup/copy operations fail."""
    pass


class OrientationError(MediaOrganizerError):
    """Raised when an image cannot be decoded, rotated or re-encoded."""
    pass
