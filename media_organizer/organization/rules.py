from pathlib import Path
from datetime import datetime

from .. import config
from ..models import MediaRecord


class FilenameBuilder:
    """
    Deterministic output names:

        2024-06-17_14-30-52.jpg          plain
        2024-06-17_14-30-52-045.jpg      with subsecond
        2024-06-17_14-30-52-045_03.jpg   third shot of a burst
    """

    def build(self, record: MediaRecord) -> str:
        stem = record.date_taken.strftime(config.NAME_DATE_FORMAT)
        if record.subsecond is not None:
            stem += f"-{record.subsecond:03d}"
        if record.burst_index is not None:
            stem += f"_{record.burst_index:02d}"
        return f"{stem}.{self.extension_of(record.original_path)}"

    def assign(self, records):
        for record in records:
            record.new_name = self.build(record)

    @staticmethod
    def extension_of(path: Path) -> str:
        ext = path.suffix.lower().lstrip('.')
        return ext or config.DEFAULT_EXTENSION

    @staticmethod
    def with_counter(name: str, counter: int) -> str:
        """Inserts a 2-digit collision counter before the extension."""
        p = Path(name)
        return f"{p.stem}_{counter:02d}{p.suffix}"


class HierarchyPathBuilder:
    """Maps a timestamp to output_root/YYYY/YYYY-MM/YYYY-MM-DD."""

    def __init__(self, output_root: Path):
        self.output_root = output_root

    def folder_for(self, dt: datetime) -> Path:
        parts = [p.format(year=dt.year, month=dt.month, day=dt.day) for p in config.FOLDER_PARTS]
        return self.output_root.joinpath(*parts)

    def ensure(self, dt: datetime) -> Path:
        """Creates the folder for dt (idempotent) and returns it."""
        folder = self.folder_for(dt)
        folder.mkdir(parents=True, exist_ok=True)
        return folder
