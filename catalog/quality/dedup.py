"""Title-based deduplication of cataloged datasets."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import structlog

from catalog.quality.config import DeduplicationConfig
from catalog.quality.keys import GroupKey, group_key
from catalog.storage.models import UNIQUE, Dataset, DeduplicationInfo

LOGGER = structlog.get_logger(__name__)


@dataclass(slots=True)
class RemovedDuplicate:
    """A dataset hidden by deduplication and the survivor that replaced it."""

    id: str
    title: str
    last_modified: Optional[datetime]
    kept_instead_id: str

    def as_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "lastModified": self.last_modified.isoformat() if self.last_modified else None,
            "keptInsteadId": self.kept_instead_id,
        }


@dataclass(slots=True)
class TitleGroup:
    """A title shared by more than one dataset."""

    normalized_title: str
    kept_id: str
    member_ids: List[str]


@dataclass
class DeduplicationResult:
    """Annotated datasets plus the aggregate counters of one pass."""

    datasets: List[Dataset]
    survivors: List[Dataset]
    removed: List[RemovedDuplicate] = field(default_factory=list)
    duplicates_found: int = 0
    duplicates_removed: int = 0
    processing_time_ms: float = 0.0
    groups: List[TitleGroup] = field(default_factory=list)


def _freshness(dataset: Dataset) -> float:
    if dataset.last_modified is None:
        return float("-inf")
    return dataset.last_modified.timestamp()


def select_survivor(group: Sequence[Dataset], *, keep_latest: bool = True) -> Dataset:
    """Pick the dataset to keep from a title group.

    With ``keep_latest`` the most recently modified record wins and ties
    (including two unknown timestamps) go to the lexicographically smallest
    id. Otherwise the first record in input order is kept.
    """
    if not group:
        raise ValueError("Duplicate group must not be empty")
    if not keep_latest or len(group) == 1:
        return group[0]
    return min(group, key=lambda dataset: (-_freshness(dataset), dataset.id))


def deduplicate(datasets: Sequence[Dataset], config: DeduplicationConfig) -> DeduplicationResult:
    """Annotate every dataset with its deduplication outcome.

    Inputs are never mutated; the returned records are copies. The output
    list has the same length and order as the input, survivors keep input
    order too.
    """
    if not config.enabled:
        annotated = [dataset.annotated(UNIQUE) for dataset in datasets]
        return DeduplicationResult(datasets=annotated, survivors=list(annotated))

    start = time.perf_counter()
    groups: Dict[GroupKey, List[int]] = {}
    for position, dataset in enumerate(datasets):
        key = group_key(dataset, position, case_sensitive=config.case_sensitive)
        groups.setdefault(key, []).append(position)

    infos: List[DeduplicationInfo] = [UNIQUE] * len(datasets)
    removed: List[RemovedDuplicate] = []
    duplicate_groups: List[TitleGroup] = []

    for (_, normalised), positions in groups.items():
        if len(positions) == 1:
            continue
        members = [datasets[position] for position in positions]
        survivor = select_survivor(members, keep_latest=config.keep_latest)
        survivor_position = next(
            position for position, member in zip(positions, members) if member is survivor
        )
        size = len(members)
        duplicate_groups.append(
            TitleGroup(
                normalized_title=normalised,
                kept_id=survivor.id,
                member_ids=[member.id for member in members],
            )
        )
        for position, member in zip(positions, members):
            if position == survivor_position:
                infos[position] = DeduplicationInfo(duplicate_count=size)
                continue
            infos[position] = DeduplicationInfo(
                is_duplicate=True,
                duplicate_count=size,
                kept_instead_id=survivor.id,
            )
            removed.append(
                RemovedDuplicate(
                    id=member.id,
                    title=member.title,
                    last_modified=member.last_modified,
                    kept_instead_id=survivor.id,
                )
            )

    annotated = [dataset.annotated(info) for dataset, info in zip(datasets, infos)]
    survivors = [dataset for dataset in annotated if not dataset.deduplication_info.is_duplicate]
    elapsed_ms = (time.perf_counter() - start) * 1000
    LOGGER.info(
        "deduplication_pass",
        datasets=len(datasets),
        duplicate_groups=len(duplicate_groups),
        duplicates_removed=len(removed),
        elapsed_ms=round(elapsed_ms, 2),
    )
    return DeduplicationResult(
        datasets=annotated,
        survivors=survivors,
        removed=removed,
        duplicates_found=len(duplicate_groups),
        duplicates_removed=len(removed),
        processing_time_ms=elapsed_ms,
        groups=duplicate_groups,
    )


def build_report(result: DeduplicationResult, config: DeduplicationConfig) -> Dict[str, object]:
    """Summarise a deduplication pass for display or export."""
    removed_by_id = {entry.id: entry for entry in result.removed}
    groups = []
    for group in result.groups:
        groups.append({
            "normalizedTitle": group.normalized_title,
            "count": len(group.member_ids),
            "keptId": group.kept_id,
            "removed": [
                removed_by_id[member].as_dict()
                for member in group.member_ids
                if member != group.kept_id and member in removed_by_id
            ],
        })
    return {
        "summary": {
            "originalDatasets": len(result.datasets),
            "finalDatasets": len(result.survivors),
            "duplicatesRemoved": result.duplicates_removed,
            "duplicateGroups": result.duplicates_found,
            "processingTime": f"{round(result.processing_time_ms)}ms",
            "strategy": "latest" if config.keep_latest else "first",
        },
        "duplicateGroups": groups,
        "configuration": config.as_dict(),
    }
