"""
Chronological Sequencer

Turns walked records and synthesized deletions into the replay queue.

PIPELINE (pure, lazy, restartable):
===================================
    records --sort--> dedup --merge(deletions)--> EventQueue

ORDERING:
=========
- Events are ordered by (timestamp, uri, kind rank)
- Within one timestamp the URI order of retained events is preserved
- A resource's own snapshot sorts before its checkpoint at the same instant

DEDUPLICATION:
==============
A version snapshot is dropped when an earlier resource event at the same
timestamp has the same mapped URI. Only URIs are compared: two different
bodies at the same instant for the same URI collapse into the first.
"""

from __future__ import annotations
from heapq import merge
from typing import Iterable, Iterator, Set, Tuple

import structlog

from .contracts import (
    DeletionRecord,
    EventKind,
    ImportEvent,
    ResourceEvent,
    sort_key,
)


logger = structlog.get_logger(__name__)


def sort_records(records: Iterable[ImportEvent]) -> Tuple[ImportEvent, ...]:
    return tuple(sorted(records, key=sort_key))


def is_unmodified_duplicate(event: ResourceEvent, bucket: Set[str]) -> bool:
    """
    True when `event` is a version snapshot whose mapped URI was already
    seen among resource events at its timestamp.

    `bucket` holds the mapped URIs of resource events sharing the
    timestamp, in queue order up to (not including) `event`.
    """
    return event.is_version_snapshot and event.mapped_uri in bucket


def deduplicate(
    records: Iterable[ImportEvent],
    include_versions: bool
) -> Iterator[ImportEvent]:
    """
    Drop unmodified version snapshots from sorted `records`.

    Checkpoints and deletions always pass. Without versions this is the
    identity.
    """
    if not include_versions:
        yield from records
        return

    current_timestamp = None
    bucket: Set[str] = set()

    for event in records:
        if event.kind is not EventKind.RESOURCE:
            yield event
            continue

        if event.timestamp != current_timestamp:
            current_timestamp = event.timestamp
            bucket = set()

        if is_unmodified_duplicate(event, bucket):
            logger.debug("unmodified_version_skipped", uri=event.mapped_uri, timestamp=event.timestamp)
        else:
            yield event
        bucket.add(event.mapped_uri)


def merge_deletions(
    events: Iterable[ImportEvent],
    deletions: Iterable[DeletionRecord]
) -> Iterator[ImportEvent]:
    """Merge two streams, each already in replay order, into one."""
    return merge(events, deletions, key=sort_key)


class EventQueue:
    """
    The replay queue.

    Holds only immutable inputs; each iteration re-runs the pipeline, so
    iterating twice yields the same events.
    """

    def __init__(
        self,
        records: Iterable[ImportEvent],
        deletions: Iterable[DeletionRecord] = (),
        include_versions: bool = False
    ):
        self._records = sort_records(records)
        self._deletions = tuple(sorted(deletions, key=sort_key))
        self.include_versions = include_versions

    def __iter__(self) -> Iterator[ImportEvent]:
        retained = deduplicate(self._records, self.include_versions)
        return merge_deletions(retained, self._deletions)

    def __len__(self) -> int:
        return sum(1 for _ in self)


def build_event_queue(
    records: Iterable[ImportEvent],
    deletions: Iterable[DeletionRecord] = (),
    include_versions: bool = False
) -> EventQueue:
    return EventQueue(records, deletions, include_versions)
