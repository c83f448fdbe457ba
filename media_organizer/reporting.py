import csv
import logging
from pathlib import Path

from .models import MediaRecord, ProcessResult


class ReportGenerator:
    HEADERS = [
        "Source Path",
        "Media Type",
        "Date Taken",
        "Date Source",
        "Burst Group",
        "Burst Index",
        "Destination Path",
        "Status",
    ]

    def write_process_report(self, result: ProcessResult, output_csv: Path):
        """
        One row per record, then one row per error message.
        """
        logging.info(f"Writing report -> {output_csv}")

        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(self.HEADERS)

            for record in result.media:
                writer.writerow(self._record_row(record))

            for message in result.errors:
                writer.writerow(["", "", "", "", "", "", "", f"Error: {message}"])

        logging.info(f"Report complete. {len(result.media)} records, {len(result.errors)} errors.")

    def _record_row(self, record: MediaRecord) -> list:
        taken = record.date_taken.isoformat(sep=" ")
        if record.subsecond is not None:
            taken += f".{record.subsecond:03d}"

        status = "Copied" if record.new_path else "Not Copied"
        if record.rotation_applied:
            status += " (Rotated)"

        return [
            str(record.original_path),
            record.media_type.value,
            taken,
            record.date_source.value,
            "" if record.burst_group_id is None else record.burst_group_id,
            "" if record.burst_index is None else record.burst_index,
            str(record.new_path) if record.new_path else "",
            status,
        ]
