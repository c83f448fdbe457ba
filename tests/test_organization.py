import pytest
from pathlib import Path
from datetime import datetime, timedelta

from PIL import Image

from media_organizer.models import MediaType, ProcessOptions
from media_organizer.organization.burst import (
    BurstDetector,
    annotate_records,
    create_photo_to_group_map,
    detect_burst_groups,
)
from media_organizer.organization.rules import FilenameBuilder, HierarchyPathBuilder
from media_organizer.organization.mover import CopyPipeline

from conftest import make_jpeg, make_record

T = datetime(2024, 6, 17, 14, 30, 0)


def seconds(*offsets):
    return [T + timedelta(seconds=s) for s in offsets]


# --- Burst detection ---

def test_detect_burst_groups():
    groups = detect_burst_groups(seconds(0, 1, 2, 3, 10, 11, 12, 13))

    assert len(groups) == 2
    assert groups[0].photo_indices == [0, 1, 2, 3]
    assert groups[1].photo_indices == [4, 5, 6, 7]
    # A 7s gap opens the second group; every later step is 1s
    assert [g.count for g in groups] == [4, 4]
    assert [g.id for g in groups] == [0, 1]
    assert groups[0].start_time == T
    assert groups[0].end_time == T + timedelta(seconds=3)


def test_min_count_filter():
    assert detect_burst_groups(seconds(0, 1, 10)) == []


def test_gap_exactly_max_interval_joins():
    groups = detect_burst_groups(seconds(0, 3, 6))
    assert len(groups) == 1
    assert groups[0].photo_indices == [0, 1, 2]


def test_backwards_step_closes_group():
    groups = detect_burst_groups(seconds(0, 1, 2, 1, 2, 3))
    assert [g.photo_indices for g in groups] == [[0, 1, 2], [3, 4, 5]]


def test_identical_timestamps_form_burst():
    groups = detect_burst_groups(seconds(5, 5, 5))
    assert groups[0].count == 3


def test_custom_thresholds():
    stamps = seconds(0, 5, 10, 30)
    assert detect_burst_groups(stamps, max_interval_seconds=5, min_count=2)[0].photo_indices == [0, 1, 2]
    assert detect_burst_groups([], max_interval_seconds=5, min_count=2) == []


def test_create_photo_to_group_map():
    groups = detect_burst_groups(seconds(0, 1, 2, 20, 40, 41, 42))
    mapping = create_photo_to_group_map(groups)

    assert len(mapping) == sum(g.count for g in groups) == 6
    for group in groups:
        for idx in group.photo_indices:
            assert mapping[idx] == group.id
    assert 3 not in mapping


def test_burst_detector_annotates_records(tmp_path):
    records = [make_record(tmp_path / f"{i}.jpg", dt) for i, dt in enumerate(seconds(0, 1, 2, 50))]

    groups = BurstDetector().annotate(records)

    assert len(groups) == 1
    assert [r.burst_group_id for r in records] == [0, 0, 0, None]
    assert [r.burst_index for r in records] == [1, 2, 3, None]


def test_annotate_records_with_precomputed_groups(tmp_path):
    records = [make_record(tmp_path / f"{i}.jpg", dt) for i, dt in enumerate(seconds(0, 30, 31, 32, 33))]
    groups = detect_burst_groups([r.date_taken for r in records])

    annotate_records(records, groups)

    assert [r.burst_group_id for r in records] == [None, 0, 0, 0, 0]
    assert [r.burst_index for r in records] == [None, 1, 2, 3, 4]


# --- Naming ---

def test_filename_plain():
    rec = make_record(Path("/src/IMG_1.JPG"), T)
    assert FilenameBuilder().build(rec) == "2024-06-17_14-30-00.jpg"


def test_filename_with_subsecond_and_burst():
    rec = make_record(Path("/src/a.heic"), T, subsecond=45, burst_group_id=0, burst_index=3)
    assert FilenameBuilder().build(rec) == "2024-06-17_14-30-00-045_03.heic"


def test_filename_without_extension_defaults_to_jpg():
    rec = make_record(Path("/src/noext"), T)
    assert FilenameBuilder().build(rec) == "2024-06-17_14-30-00.jpg"


def test_filename_is_deterministic():
    rec = make_record(Path("/src/a.jpg"), T, subsecond=0)
    builder = FilenameBuilder()
    assert builder.build(rec) == builder.build(rec) == "2024-06-17_14-30-00-000.jpg"


def test_with_counter():
    assert FilenameBuilder.with_counter("2024-06-17_14-30-00.jpg", 1) == "2024-06-17_14-30-00_01.jpg"
    assert FilenameBuilder.with_counter("2024-06-17_14-30-00_02.mp4", 12) == "2024-06-17_14-30-00_02_12.mp4"


def test_hierarchy_path(tmp_path):
    builder = HierarchyPathBuilder(tmp_path)
    dt = datetime(2024, 3, 5, 1, 2, 3)

    assert builder.folder_for(dt) == tmp_path / "2024" / "2024-03" / "2024-03-05"
    assert not builder.folder_for(dt).exists()

    folder = builder.ensure(dt)
    assert folder.is_dir()
    # Idempotent
    assert builder.ensure(dt) == folder


# --- Copy pipeline ---

def _named(records):
    FilenameBuilder().assign(records)
    return records


def test_copy_into_hierarchy(tmp_path, sequential):
    src = tmp_path / "src" / "IMG_1.jpg"
    src.parent.mkdir()
    src.write_bytes(b"content")
    rec = _named([make_record(src, T)])[0]

    pipeline = CopyPipeline(tmp_path / "out", sequential)
    assert pipeline.execute([rec]) == 1

    expected = tmp_path / "out" / "2024" / "2024-06" / "2024-06-17" / "2024-06-17_14-30-00.jpg"
    assert rec.new_path == expected
    assert expected.read_bytes() == b"content"
    assert src.exists()
    assert pipeline.errors == []


@pytest.mark.parametrize("use_parallel", [False, True])
def test_collision_gets_counter_suffix(tmp_path, use_parallel):
    src_dir = tmp_path / "src"
    src_dir.mkdir()
    a = src_dir / "a.jpg"
    b = src_dir / "b.jpg"
    a.write_bytes(b"A")
    b.write_bytes(b"B")
    records = _named([make_record(a, T), make_record(b, T)])

    options = ProcessOptions(parallel=use_parallel, max_workers=2)
    pipeline = CopyPipeline(tmp_path / "out", options)
    assert pipeline.execute(records) == 2

    folder = tmp_path / "out" / "2024" / "2024-06" / "2024-06-17"
    names = sorted(p.name for p in folder.iterdir())
    assert names == ["2024-06-17_14-30-00.jpg", "2024-06-17_14-30-00_01.jpg"]
    assert {r.new_path.read_bytes() for r in records} == {b"A", b"B"}
    assert a.read_bytes() == b"A" and b.read_bytes() == b"B"


def test_collision_with_existing_files(tmp_path, sequential):
    folder = tmp_path / "out" / "2024" / "2024-06" / "2024-06-17"
    folder.mkdir(parents=True)
    (folder / "2024-06-17_14-30-00.jpg").write_bytes(b"old")
    (folder / "2024-06-17_14-30-00_01.jpg").write_bytes(b"old")

    src = tmp_path / "a.jpg"
    src.write_bytes(b"new")
    rec = _named([make_record(src, T)])[0]

    CopyPipeline(tmp_path / "out", sequential).execute([rec])

    assert rec.new_path == folder / "2024-06-17_14-30-00_02.jpg"
    assert (folder / "2024-06-17_14-30-00.jpg").read_bytes() == b"old"


def test_backup_is_flat_and_overwrites(tmp_path):
    backup = tmp_path / "backup"
    backup.mkdir()
    (backup / "a.jpg").write_bytes(b"stale")
    src = tmp_path / "src" / "deep" / "a.jpg"
    src.parent.mkdir(parents=True)
    src.write_bytes(b"fresh")
    rec = _named([make_record(src, T)])[0]

    options = ProcessOptions(parallel=False, backup_dir=backup)
    CopyPipeline(tmp_path / "out", options).execute([rec])

    assert (backup / "a.jpg").read_bytes() == b"fresh"
    assert sorted(p.name for p in backup.iterdir()) == ["a.jpg"]


def test_backup_failure_skips_record(tmp_path):
    backup = tmp_path / "backup"
    backup.write_bytes(b"not a directory")
    src = tmp_path / "a.jpg"
    src.write_bytes(b"x")
    rec = _named([make_record(src, T)])[0]

    options = ProcessOptions(parallel=False, backup_dir=backup)
    pipeline = CopyPipeline(tmp_path / "out", options)

    assert pipeline.execute([rec]) == 0
    assert rec.new_path is None
    assert len(pipeline.errors) == 1
    assert "a.jpg" in pipeline.errors[0]


@pytest.mark.parametrize("use_parallel", [False, True])
def test_partial_failure_is_isolated(tmp_path, use_parallel):
    src_dir = tmp_path / "src"
    src_dir.mkdir()
    records = []
    for i in range(4):
        p = src_dir / f"f{i}.jpg"
        p.write_bytes(b"x")
        records.append(make_record(p, T + timedelta(minutes=i)))
    _named(records)
    # Vanishes between scan and copy
    records[2].original_path.unlink()

    options = ProcessOptions(parallel=use_parallel, max_workers=3)
    pipeline = CopyPipeline(tmp_path / "out", options)

    assert pipeline.execute(records) == 3
    assert len(pipeline.errors) == 1
    assert "f2.jpg" in pipeline.errors[0]
    assert records[2].new_path is None
    # The placeholder for the failed copy is removed
    folder = tmp_path / "out" / "2024" / "2024-06" / "2024-06-17"
    assert len(list(folder.iterdir())) == 3


def test_auto_orientation_rotates_copy_only(tmp_path):
    src = make_jpeg(tmp_path / "src" / "portrait.jpg", size=(40, 20), orientation=6)
    rec = _named([make_record(src, T, exif_orientation=6)])[0]

    options = ProcessOptions(parallel=False, auto_correct_orientation=True)
    pipeline = CopyPipeline(tmp_path / "out", options)
    pipeline.execute([rec])

    assert rec.rotation_applied is True
    with Image.open(rec.new_path) as im:
        assert im.size == (20, 40)
        assert im.getexif().get(0x0112) == 1
    with Image.open(src) as im:
        assert im.size == (40, 20)
        assert im.getexif().get(0x0112) == 6


def test_auto_orientation_skips_videos_and_normal(tmp_path):
    vid = tmp_path / "clip.mp4"
    vid.write_bytes(b"video")
    photo = make_jpeg(tmp_path / "p.jpg", orientation=1)
    records = _named([
        make_record(vid, T, media_type=MediaType.VIDEO, exif_orientation=6),
        make_record(photo, T + timedelta(seconds=1), exif_orientation=1),
    ])

    options = ProcessOptions(parallel=False, auto_correct_orientation=True)
    pipeline = CopyPipeline(tmp_path / "out", options)
    pipeline.execute(records)

    assert [r.rotation_applied for r in records] == [False, False]
    assert pipeline.errors == []


def test_same_name_backups_in_parallel_keep_one_whole_file(tmp_path):
    big = b"A" * (8 * 1024 * 1024)
    small = b"B" * 10
    x = tmp_path / "src" / "x" / "20240101_000000.jpg"
    y = tmp_path / "src" / "y" / "20240101_000000.jpg"
    for p, data in ((x, big), (y, small)):
        p.parent.mkdir(parents=True)
        p.write_bytes(data)
    records = _named([make_record(x, T), make_record(y, T)])
    backup = tmp_path / "backup"

    options = ProcessOptions(parallel=True, max_workers=2, backup_dir=backup)
    assert CopyPipeline(tmp_path / "out", options).execute(records) == 2

    assert (backup / "20240101_000000.jpg").read_bytes() in (big, small)


def test_oversized_image_rotation_is_a_record_error(tmp_path, monkeypatch):
    src = make_jpeg(tmp_path / "src" / "huge.jpg", size=(40, 20), orientation=6)
    rec = _named([make_record(src, T, exif_orientation=6)])[0]
    # 800 pixels is over twice this limit, so Pillow refuses to decode
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)

    options = ProcessOptions(parallel=False, auto_correct_orientation=True)
    pipeline = CopyPipeline(tmp_path / "out", options)

    assert pipeline.execute([rec]) == 1
    assert rec.new_path.exists()
    assert rec.rotation_applied is False
    assert len(pipeline.errors) == 1
    assert "huge.jpg" in pipeline.errors[0]


class _ExplodingRewriter:
    def correct_file(self, path, exif_orientation):
        raise RuntimeError("codec crashed")


@pytest.mark.parametrize("use_parallel", [False, True])
def test_unexpected_error_does_not_abort_batch(tmp_path, use_parallel):
    records = []
    for i in range(3):
        p = make_jpeg(tmp_path / "src" / f"p{i}.jpg", orientation=6)
        records.append(make_record(p, T + timedelta(minutes=i), exif_orientation=6))
    _named(records)

    options = ProcessOptions(parallel=use_parallel, max_workers=3, auto_correct_orientation=True)
    pipeline = CopyPipeline(tmp_path / "out", options, rewriter=_ExplodingRewriter())

    assert pipeline.execute(records) == 3
    assert len(pipeline.errors) == 3
    assert all("codec crashed" in e for e in pipeline.errors)
    assert all(r.new_path.exists() for r in records)
