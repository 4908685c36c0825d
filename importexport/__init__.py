"""
Chronological Import/Replay
===========================

Replays an exported repository snapshot, including its version history
and removed children, into a target repository.

INVARIANTS:
- One global order: (timestamp, uri), resource before its own checkpoint
- Same snapshot -> same queue (deterministic, restartable)
- Checkpoints are applied only after the state they capture
- Binary failures are reported, never fatal; everything else aborts

Modules:
- walker: Snapshot tree -> timed records
- differ: Version history -> deletion records
- sequencer: Sort, dedup and merge into the replay queue
- engine: Apply the queue to the target repository
- service: End-to-end run
"""

from .config import ImportConfig
from .contracts import (
    DeletionRecord,
    EventKind,
    ImportReport,
    ResourceEvent,
    VersionCheckpoint,
)
from .differ import SnapshotDiffer
from .engine import ReplayEngine
from .sequencer import EventQueue, build_event_queue
from .service import ImportService
from .walker import SnapshotTreeWalker

__all__ = [
    'ImportConfig',
    'DeletionRecord',
    'EventKind',
    'ImportReport',
    'ResourceEvent',
    'VersionCheckpoint',
    'SnapshotDiffer',
    'ReplayEngine',
    'EventQueue',
    'build_event_queue',
    'ImportService',
    'SnapshotTreeWalker',
]
