import os
import logging
from pathlib import Path
from typing import Iterator, List, Optional
from concurrent.futures import ThreadPoolExecutor, as_completed

from tqdm import tqdm

from .. import config
from ..exceptions import ScanError
from ..models import MediaRecord, MediaType, ProcessOptions
from ..metadata.timestamps import TimestampResolver


def classify_extension(path: Path, include_videos: bool = True) -> Optional[MediaType]:
    """Photo, Video (when enabled) or None for everything else."""
    ext = path.suffix.lower().lstrip('.')
    ftype = config.EXT_TO_TYPE.get(ext)
    if ftype == 'photo':
        return MediaType.PHOTO
    if ftype == 'video' and include_videos:
        return MediaType.VIDEO
    return None


class MediaScanner:
    def __init__(self, resolver: Optional[TimestampResolver] = None):
        self.resolver = resolver or TimestampResolver()

    def scan(self, root: Path, options: ProcessOptions) -> List[MediaRecord]:
        """
        Returns a record for every media file under root whose timestamp could
        be resolved, in enumeration order.

        Raises:
            ScanError: if root itself cannot be listed.
        """
        files = list(self.iter_media_files(root, options.include_videos))
        logging.info(f"Found {len(files)} media files under {root}")

        if options.parallel and options.max_workers > 1 and len(files) > 1:
            slots = self._scan_parallel(files, options)
        else:
            slots = self._scan_sequential(files, options)

        # Unresolvable files leave an empty slot
        records = [r for r in slots if r is not None]
        logging.info(f"Resolved timestamps for {len(records)}/{len(files)} files")
        return records

    def _scan_sequential(self, files: List[tuple], options: ProcessOptions) -> List[Optional[MediaRecord]]:
        return [
            self._process_single_file(path, media_type)
            for path, media_type in tqdm(files, desc="Scanning", disable=not options.show_progress)
        ]

    def _scan_parallel(self, files: List[tuple], options: ProcessOptions) -> List[Optional[MediaRecord]]:
        """
        One task per file. Each task owns the slot at its enumeration index,
        so completion order does not matter and no lock is needed.
        """
        slots: List[Optional[MediaRecord]] = [None] * len(files)

        with ThreadPoolExecutor(max_workers=options.max_workers) as executor:
            future_to_index = {
                executor.submit(self._process_single_file, path, media_type): idx
                for idx, (path, media_type) in enumerate(files)
            }
            for future in tqdm(as_completed(future_to_index), total=len(future_to_index),
                               desc="Scanning", disable=not options.show_progress):
                idx = future_to_index[future]
                slots[idx] = future.result()

        return slots

    def _process_single_file(self, path: Path, media_type: MediaType) -> Optional[MediaRecord]:
        """Resolves a single file; returns None when no record can be built."""
        try:
            return self.resolver.resolve(path, media_type)
        except Exception as e:
            logging.error(f"Failed to scan {path}: {e}")
            return None

    def iter_media_files(self, root: Path, include_videos: bool = True) -> Iterator[tuple]:
        """Yields (path, media_type) for every classifiable file under root."""
        for path in self._iter_files(root):
            media_type = classify_extension(path, include_videos)
            if media_type is not None:
                yield path, media_type

    def _iter_files(self, root: Path) -> Iterator[Path]:
        """Depth-first walker using os.scandir; symlinks are never followed."""
        try:
            with os.scandir(root) as it:
                root_entries = list(it)
        except OSError as e:
            raise ScanError(f"Cannot read input directory {root}: {e}") from e

        stack = [(root, root_entries)]
        while stack:
            current, entries = stack.pop()

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            files = []
            for e in entries:
                try:
                    if e.is_dir(follow_symlinks=False):
                        dirs.append(Path(e.path))
                    elif e.is_file(follow_symlinks=False):
                        files.append(Path(e.path))
                except OSError:
                    continue

            for f in files:
                yield f

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                try:
                    with os.scandir(d) as it:
                        stack.append((d, list(it)))
                except OSError:
                    logging.warning(f"Permission denied: {d}")
