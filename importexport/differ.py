"""
Snapshot Differ

Synthesizes DeletionRecords from a resource's version history.

ALGORITHM:
==========
1. Sort the listed versions by creation time; append the live resource as a
   trailing "head" one millisecond after the newest version
2. For each state, collect the description files beneath its directory
   (relative paths; the head excludes its own version collection)
3. Every file present in one state and missing from the next is a child
   removed at the later state's timestamp

One call covers one resource. Merging the results into the global queue is
done by sequencer.merge_deletions.
"""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, List
import os

import structlog

from .config import ImportConfig
from .contracts import DeletionRecord, VersionHistory
from .uris import directory_for_container, rebase, strip_version_path, uri_path
from .vocabulary import FCR_METADATA_ESCAPED, FCR_VERSIONS, FCR_VERSIONS_ESCAPED


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _SnapshotState:
    timestamp: int
    uri: str
    files: FrozenSet[str]


class SnapshotDiffer:
    """Computes removed children between consecutive historical snapshots."""

    def __init__(self, config: ImportConfig):
        self.config = config
        self._binary_description = "/" + FCR_METADATA_ESCAPED + config.rdf_extension

    def generate_deletions(self, history: VersionHistory) -> List[DeletionRecord]:
        if not history.entries:
            return []

        ordered = sorted(history.entries, key=lambda entry: (entry.created, entry.version_uri))
        pairs = [(entry.created, entry.version_uri) for entry in ordered]
        pairs.append((ordered[-1].created + 1, history.resource_uri))

        states = [
            _SnapshotState(timestamp=timestamp, uri=uri, files=self._collect_files(uri))
            for timestamp, uri in pairs
        ]

        deletions: List[DeletionRecord] = []
        for previous, current in zip(states, states[1:]):
            for relative in sorted(previous.files - current.files):
                removed = self._relative_uri(relative)
                if removed is None:
                    continue
                source = strip_version_path(previous.uri + "/" + removed)
                target = rebase(source, self.config.source, self.config.destination)
                logger.debug("version_deletion_added", uri=target, timestamp=current.timestamp)
                deletions.append(DeletionRecord(
                    target_uri=target,
                    timestamp=current.timestamp,
                    source_uri=source
                ))

        return deletions

    def _collect_files(self, uri: str) -> FrozenSet[str]:
        """Relative description-file paths beneath the state's directory."""
        directory = directory_for_container(uri, self.config.base_directory)
        if not directory.is_dir():
            return frozenset()

        exclude_versions = FCR_VERSIONS not in uri
        files = set()
        for parent, subdirectories, filenames in os.walk(directory):
            for filename in filenames:
                if not filename.endswith(self.config.rdf_extension):
                    continue
                relative = Path(os.path.relpath(Path(parent) / filename, directory)).as_posix()
                if exclude_versions and FCR_VERSIONS_ESCAPED in relative:
                    continue
                files.add(relative)
        return frozenset(files)

    def _relative_uri(self, relative: str):
        """Resource path for a relative description file; None for the state itself."""
        if relative.endswith(self._binary_description):
            relative = relative[:-len(self._binary_description)]
        elif relative == self._binary_description[1:]:
            return None
        elif relative.endswith(self.config.rdf_extension):
            relative = relative[:-len(self.config.rdf_extension)]
        return uri_path(relative)
