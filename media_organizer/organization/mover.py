import shutil
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional

from tqdm import tqdm

from ..exceptions import FileOperationError, OrientationError
from ..metadata.orientation import Orientation, OrientationRewriter
from ..models import MediaRecord, MediaType, ProcessOptions
from .rules import FilenameBuilder, HierarchyPathBuilder


class CopyPipeline:
    """
    Copies named records into the date hierarchy.

    Every record is handled on its own: a failed backup or copy is recorded
    as an error string and the batch carries on. Originals are only read.
    """

    def __init__(self, output_root: Path, options: ProcessOptions,
                 rewriter: Optional[OrientationRewriter] = None):
        self.options = options
        self.paths = HierarchyPathBuilder(output_root)
        self.rewriter = rewriter or OrientationRewriter()

        self.errors: List[str] = []
        self.processed = 0
        self._lock = threading.Lock()
        self._backup_locks: Dict[Path, threading.Lock] = {}

    def execute(self, records: List[MediaRecord]) -> int:
        """Processes all records; returns the number copied successfully."""
        if not records:
            logging.info("No files need copying.")
            return 0

        if self.options.backup_dir is not None:
            try:
                self.options.backup_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                # Each record's backup will fail and be reported on its own
                logging.warning(f"Cannot create backup directory {self.options.backup_dir}: {e}")

        logging.info(f"Copying {len(records)} files (Parallel={self.options.parallel})...")
        progress = tqdm(total=len(records), desc="Organizing", disable=not self.options.show_progress)

        def run(record: MediaRecord):
            try:
                self.process_record(record)
            except Exception as e:
                # One bad file never aborts the batch
                self._fail(f"Unexpected error processing {record.original_path}: {e}")
            finally:
                progress.update(1)

        try:
            if self.options.parallel and self.options.max_workers > 1:
                with ThreadPoolExecutor(max_workers=self.options.max_workers) as executor:
                    list(executor.map(run, records))
            else:
                for record in records:
                    run(record)
        finally:
            progress.close()

        logging.info(f"Copied {self.processed}/{len(records)} files, {len(self.errors)} errors")
        return self.processed

    def process_record(self, record: MediaRecord):
        src = record.original_path

        if self.options.backup_dir is not None:
            try:
                self.backup(record)
            except FileOperationError as e:
                self._fail(str(e))
                return

        try:
            folder = self.paths.ensure(record.date_taken)
        except OSError as e:
            self._fail(f"Failed to create directory for {src}: {e}")
            return

        try:
            target = self.copy_to(record, folder)
        except FileOperationError as e:
            self._fail(str(e))
            return

        record.new_path = target
        with self._lock:
            self.processed += 1

        if self.options.auto_correct_orientation:
            self._correct_orientation(record)

    def backup(self, record: MediaRecord) -> Path:
        """Flat copy into the backup directory; same-named files are overwritten."""
        dest = self.options.backup_dir / record.file_name
        # Same-named files from different folders share a backup target
        with self._lock:
            dest_lock = self._backup_locks.setdefault(dest, threading.Lock())
        try:
            with dest_lock:
                shutil.copy2(str(record.original_path), str(dest))
        except OSError as e:
            raise FileOperationError(f"Failed to back up {record.original_path}: {e}") from e
        return dest

    def copy_to(self, record: MediaRecord, folder: Path) -> Path:
        name = record.new_name or FilenameBuilder().build(record)
        target = self._claim_target(folder, name, record.original_path)
        try:
            shutil.copy2(str(record.original_path), str(target))
        except OSError as e:
            target.unlink(missing_ok=True)
            raise FileOperationError(f"Failed to copy {record.original_path}: {e}") from e
        return target

    def _claim_target(self, folder: Path, name: str, src: Path) -> Path:
        """
        Finds the first free name (name, name_01, name_02, ...) and creates it
        exclusively, so two workers can never pick the same target.
        """
        candidate = folder / name
        counter = 1
        while True:
            try:
                with open(candidate, 'xb'):
                    return candidate
            except FileExistsError:
                candidate = folder / FilenameBuilder.with_counter(name, counter)
                counter += 1
            except OSError as e:
                raise FileOperationError(f"Failed to copy {src}: {e}") from e

    def _correct_orientation(self, record: MediaRecord):
        if record.media_type != MediaType.PHOTO:
            return
        if not Orientation.from_exif(record.exif_orientation).needs_correction:
            return
        try:
            record.rotation_applied = self.rewriter.correct_file(record.new_path, record.exif_orientation)
        except OrientationError as e:
            self._fail(str(e))

    def _fail(self, message: str):
        logging.error(message)
        with self._lock:
            self.errors.append(message)
