from datetime import datetime
from pathlib import Path
from typing import Optional

import pytest
from PIL import Image

from media_organizer.models import DateSource, MediaRecord, MediaType, ProcessOptions


def make_jpeg(path: Path, size=(40, 20), orientation: Optional[int] = None,
              date: Optional[str] = None, color="red") -> Path:
    """Writes a real JPEG, optionally carrying IFD0 Orientation/DateTime tags."""
    path.parent.mkdir(parents=True, exist_ok=True)
    exif = Image.Exif()
    if orientation is not None:
        exif[0x0112] = orientation
    if date is not None:
        exif[0x0132] = date
    with Image.new("RGB", size, color=color) as im:
        if len(exif):
            im.save(path, format="JPEG", exif=exif.tobytes())
        else:
            im.save(path, format="JPEG")
    return path


def make_record(path: Path, dt: datetime, **kwargs) -> MediaRecord:
    fields = dict(
        original_path=path,
        file_name=path.name,
        media_type=MediaType.PHOTO,
        date_taken=dt,
        date_source=DateSource.FILE_NAME,
        file_size=path.stat().st_size if path.exists() else 0,
    )
    fields.update(kwargs)
    return MediaRecord(**fields)


@pytest.fixture
def sequential():
    return ProcessOptions(parallel=False)


@pytest.fixture
def parallel():
    return ProcessOptions(parallel=True, max_workers=4)
