"""
Burst detection: groups photos shot in rapid succession.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Sequence

from .. import config
from ..models import BurstGroup, MediaRecord


def detect_burst_groups(timestamps: Sequence[datetime],
                        max_interval_seconds: int = config.BURST_MAX_INTERVAL_SECONDS,
                        min_count: int = config.BURST_MIN_COUNT) -> List[BurstGroup]:
    """
    Segments an ordered timestamp sequence into burst groups.

    Consecutive items join the open group while the gap to the previous
    member is between 0 and max_interval_seconds inclusive. A backwards step
    closes the group just like a large gap does; the sequence is not sorted
    here. Only groups with at least min_count members are emitted, with ids
    assigned in emission order.
    """
    groups: List[BurstGroup] = []
    max_gap = timedelta(seconds=max_interval_seconds)

    def close(indices: List[int]):
        if len(indices) >= min_count:
            groups.append(BurstGroup(
                id=len(groups),
                photo_indices=list(indices),
                start_time=timestamps[indices[0]],
                end_time=timestamps[indices[-1]],
                count=len(indices),
            ))

    current: List[int] = []
    last = None
    for i, ts in enumerate(timestamps):
        if last is not None:
            delta = ts - last
            if timedelta(0) <= delta <= max_gap:
                current.append(i)
                last = ts
                continue
            close(current)
        current = [i]
        last = ts

    if current:
        close(current)

    return groups


def create_photo_to_group_map(groups: Sequence[BurstGroup]) -> Dict[int, int]:
    """Maps every member index to the id of its group."""
    mapping = {}
    for group in groups:
        for idx in group.photo_indices:
            mapping[idx] = group.id
    return mapping


def annotate_records(records: Sequence[MediaRecord], groups: Sequence[BurstGroup]):
    """Writes group id and 1-based position onto each burst member."""
    for group in groups:
        for position, idx in enumerate(group.photo_indices, start=1):
            records[idx].burst_group_id = group.id
            records[idx].burst_index = position


class BurstDetector:
    def __init__(self,
                 max_interval_seconds: int = config.BURST_MAX_INTERVAL_SECONDS,
                 min_count: int = config.BURST_MIN_COUNT):
        self.max_interval_seconds = max_interval_seconds
        self.min_count = min_count

    def detect(self, records: Sequence[MediaRecord]) -> List[BurstGroup]:
        return detect_burst_groups(
            [r.date_taken for r in records],
            self.max_interval_seconds,
            self.min_count,
        )

    def annotate(self, records: Sequence[MediaRecord]) -> List[BurstGroup]:
        """Detects bursts and annotates their members."""
        groups = self.detect(records)
        annotate_records(records, groups)

        if groups:
            members = sum(g.count for g in groups)
            logging.info(f"Detected {len(groups)} burst groups ({members} files)")
        return groups
