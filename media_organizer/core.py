import logging
from pathlib import Path
from typing import List, Optional

from .models import MediaRecord, ProcessOptions, ProcessResult
from .scanning.filesystem import MediaScanner
from .organization.burst import BurstDetector
from .organization.rules import FilenameBuilder
from .organization.mover import CopyPipeline


class MediaOrganizerApp:
    def __init__(self, scanner: Optional[MediaScanner] = None):
        self.scanner = scanner or MediaScanner()
        self.names = FilenameBuilder()

    def scan(self, input_dir: Path, options: Optional[ProcessOptions] = None) -> List[MediaRecord]:
        """
        Scan & plan without writing anything.
        1. Resolve timestamps (parallel fan-out, enumeration order restored)
        2. Order chronologically
        3. Detect bursts
        4. Assign output names

        Raises:
            ScanError: if input_dir cannot be read.
        """
        options = options or ProcessOptions()

        logging.info(f"Scanning {input_dir} (Videos={options.include_videos}, Parallel={options.parallel})...")
        records = self.scanner.scan(input_dir, options)

        # Burst detection walks neighbours, so the sequence must be in time order.
        # sort() is stable: equal timestamps keep their enumeration order.
        records.sort(key=lambda r: r.sort_key)

        detector = BurstDetector(options.max_interval_seconds, options.min_count)
        detector.annotate(records)
        self.names.assign(records)
        return records

    def process(self, input_dir: Path, output_dir: Path,
                options: Optional[ProcessOptions] = None) -> ProcessResult:
        """
        Full pipeline: scan & plan, then copy every record into
        output_dir/YYYY/YYYY-MM/YYYY-MM-DD (with optional backup and
        orientation correction of the copies).
        """
        options = options or ProcessOptions()
        records = self.scan(input_dir, options)

        pipeline = CopyPipeline(output_dir, options)
        processed = pipeline.execute(records)

        logging.info("Organization complete.")
        return ProcessResult(
            success=processed > 0,
            total_files=len(records),
            processed_files=processed,
            media=records,
            errors=list(pipeline.errors),
        )
