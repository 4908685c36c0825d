"""
Import Contracts

Immutable records flowing from the snapshot walk to the replay engine.

BOUNDARY:
=========
- Records are created once during a single synchronous tree walk
- They live for one import run and are never persisted
- `mapped_uri` is derived exactly once, at creation

EVENT VARIANTS (tagged by `kind`):
- ResourceEvent      a resource snapshot to write
- VersionCheckpoint  "version <label> of R was created at T"
- DeletionRecord     "R existed in the previous snapshot, not in this one"
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union
import re

from .errors import MalformedVersionUriError
from .uris import add_relative_path, remap_resource_uri, strip_version_path
from .vocabulary import FCR_METADATA, FCR_VERSIONS


_VERSION_URI = re.compile(r".+/" + re.escape(FCR_VERSIONS) + r"/([^/]+)(/.+)?")

# Sorts after every path beneath a resource at the same instant.
_AFTER_CHILDREN = "/\U0010ffff"


class EventKind(Enum):
    """
    Event variants. The value is the tie-break rank used only when two
    events share both timestamp and URI.
    """
    RESOURCE = 0
    DELETION = 1
    CHECKPOINT = 2


def last_segment(uri: str) -> str:
    return uri.rstrip("/").rsplit("/", 1)[-1]


# =============================================================================
# EVENTS
# =============================================================================

@dataclass(frozen=True)
class ResourceEvent:
    """
    One resource snapshot read from a description file.

    `timestamp` is the snapshot's last-modified instant in epoch millis
    (0 when the description carries none).
    """
    id: str
    source_uri: str
    mapped_uri: str
    timestamp: int
    is_binary: bool
    is_version_snapshot: bool
    description_file: Path
    binary_file: Optional[Path] = None
    created: int = 0

    kind = EventKind.RESOURCE

    @classmethod
    def create(
        cls,
        source_uri: str,
        description_file: Path,
        timestamp: int,
        is_binary: bool,
        is_version_snapshot: bool,
        source: Optional[str] = None,
        destination: Optional[str] = None,
        binary_file: Optional[Path] = None,
        created: int = 0
    ) -> 'ResourceEvent':
        return cls(
            id=last_segment(source_uri),
            source_uri=source_uri,
            mapped_uri=remap_resource_uri(source_uri, source, destination),
            timestamp=timestamp,
            is_binary=is_binary,
            is_version_snapshot=is_version_snapshot,
            description_file=description_file,
            binary_file=binary_file,
            created=created
        )

    @property
    def sort_uri(self) -> str:
        return self.source_uri

    @property
    def description_uri(self) -> str:
        """Endpoint the RDF description is written to."""
        if self.is_binary:
            return add_relative_path(self.mapped_uri, FCR_METADATA)
        return self.mapped_uri


@dataclass(frozen=True)
class VersionCheckpoint:
    """
    A named version of a resource, created at `timestamp`.

    `version_uri` is the URI as listed in the snapshot
    (".../R/fcr:versions/<label>"); `resource_uri` is the destination
    URI of R itself.
    """
    id: str
    version_uri: str
    resource_uri: str
    label: str
    timestamp: int

    kind = EventKind.CHECKPOINT

    @classmethod
    def create(
        cls,
        version_uri: str,
        timestamp: int,
        source: Optional[str] = None,
        destination: Optional[str] = None
    ) -> 'VersionCheckpoint':
        """
        Build a checkpoint, parsing the label from the version URI.

        Raises MalformedVersionUriError when no label segment follows the
        version-collection marker; such a version cannot be replayed.
        """
        match = _VERSION_URI.fullmatch(version_uri)
        if match is None:
            raise MalformedVersionUriError(version_uri)

        return cls(
            id=last_segment(version_uri),
            version_uri=version_uri,
            resource_uri=remap_resource_uri(version_uri, source, destination),
            label=match.group(1),
            timestamp=timestamp
        )

    @property
    def mapped_uri(self) -> str:
        return self.resource_uri

    @property
    def sort_uri(self) -> str:
        """
        After every snapshot and deletion at or beneath the resource at
        the same instant, so the version captures the converged state.
        Checkpoints of one resource sharing an instant order by label.
        """
        return strip_version_path(self.version_uri) + _AFTER_CHILDREN + self.label


@dataclass(frozen=True)
class DeletionRecord:
    """
    A resource absent from the snapshot taken at `timestamp`.

    `source_uri` is the removed resource's URI in the snapshot namespace,
    used for ordering alongside snapshot events; it defaults to the target.
    """
    target_uri: str
    timestamp: int
    source_uri: Optional[str] = field(default=None, compare=False)

    kind = EventKind.DELETION

    @property
    def mapped_uri(self) -> str:
        return self.target_uri

    @property
    def sort_uri(self) -> str:
        return self.source_uri or self.target_uri


ImportEvent = Union[ResourceEvent, VersionCheckpoint, DeletionRecord]


def sort_key(event: ImportEvent) -> Tuple[int, str, int]:
    """Global replay order: timestamp, then URI, then variant rank."""
    return (event.timestamp, event.sort_uri, event.kind.value)


# =============================================================================
# VERSION HISTORY
# =============================================================================

@dataclass(frozen=True)
class VersionEntry:
    version_uri: str
    created: int


@dataclass(frozen=True)
class VersionHistory:
    """
    The version listing of one resource, as read from its
    version-collection description file.
    """
    resource_uri: str
    entries: Tuple[VersionEntry, ...]
    listing_file: Optional[Path] = None


@dataclass(frozen=True)
class SnapshotWalk:
    """Result of walking a snapshot tree."""
    records: Tuple[ImportEvent, ...]
    histories: Tuple[VersionHistory, ...] = ()


# =============================================================================
# TRANSPORT
# =============================================================================

SUCCESS_CODES = frozenset({200, 201, 204})


@dataclass(frozen=True)
class TransferResponse:
    """Status, body and Link relations of one repository call."""
    status_code: int
    url: str
    body: bytes = b""
    links: Tuple[Tuple[str, str], ...] = ()

    @property
    def is_success(self) -> bool:
        return self.status_code in SUCCESS_CODES

    def link(self, rel: str) -> Optional[str]:
        for link_rel, target in self.links:
            if link_rel == rel:
                return target
        return None

    def text(self) -> str:
        return self.body.decode('utf-8', errors='replace') if self.body else "<no response>"


# =============================================================================
# REPORTING
# =============================================================================

@dataclass(frozen=True)
class ImportReport:
    """Outcome of one import run."""
    repository_root: str
    events_applied: int
    success_count: int
    failed_binaries: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def clean(self) -> bool:
        return not self.failed_binaries
