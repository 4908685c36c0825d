"""
Snapshot Tree Walker

Walks an exported snapshot directory and emits timed records.

GUARANTEES:
===========
1. Only description files (configured RDF extension) are read
2. Version-collection listings yield VersionCheckpoints, never resources
3. With versions disabled, nothing under a version collection is visible
4. Output is sorted by the global replay key; same tree, same records

FAILURES:
=========
- A listed version URI without a label aborts the walk
  (MalformedVersionUriError); the version cannot be replayed without it
"""

from __future__ import annotations
from itertools import chain
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple
import os

import structlog
from rdflib import Graph, URIRef

from .config import ImportConfig
from .contracts import (
    ImportEvent,
    ResourceEvent,
    SnapshotWalk,
    VersionCheckpoint,
    VersionEntry,
    VersionHistory,
    sort_key,
)
from .rdf import list_subjects_with_property, parse_file, timestamp_millis
from .uris import file_for_uri, remap_resource_uri, uri_for_file
from .vocabulary import (
    BINARY_EXTENSION,
    CREATED_DATE,
    EXTERNAL_RESOURCE_EXTENSION,
    FCR_VERSIONS_ESCAPED,
    HAS_MEMBER_RELATION,
    HAS_VERSION,
    HAS_VERSIONS,
    LAST_MODIFIED_DATE,
    MEMBERSHIP_RESOURCE,
    NON_RDF_SOURCE,
    RDF_TYPE,
    VERSION_RESOURCE,
)


logger = structlog.get_logger(__name__)


def iter_description_files(root: Path, extension: str) -> Iterator[Path]:
    """Description files under `root`, in a stable depth-first order."""
    for directory, subdirectories, filenames in os.walk(root):
        subdirectories.sort()
        for filename in sorted(filenames):
            if filename.endswith(extension):
                yield Path(directory) / filename


def _read_millis(graph: Graph, subject: URIRef, predicate: URIRef) -> int:
    value = graph.value(subject, predicate)
    return 0 if value is None else timestamp_millis(value)


class SnapshotTreeWalker:
    """
    Reads a snapshot tree into ResourceEvents, VersionCheckpoints and
    per-resource VersionHistories.

    URIs are kept in the namespace the snapshot was exported from; only
    `mapped_uri` on each record is rebased onto the destination.
    """

    def __init__(self, config: ImportConfig):
        self.config = config
        self._listing_name = FCR_VERSIONS_ESCAPED + config.rdf_extension
        self._uri_base = config.source or config.resource

    def walk(self, root: Optional[Path] = None, extra_files: Iterable[Path] = ()) -> SnapshotWalk:
        """
        Walk `root` (default: the snapshot base directory). `extra_files`
        are description files outside `root` to read as well, such as the
        description of the container whose children `root` holds.
        """
        root = Path(root) if root is not None else self.config.base_directory
        records: List[ImportEvent] = []
        histories: List[VersionHistory] = []

        paths = chain(extra_files, iter_description_files(root, self.config.rdf_extension))
        for path in paths:
            relative = os.path.relpath(path, self.config.base_directory)

            if path.name == self._listing_name:
                if self.config.include_versions:
                    history, checkpoints = self._read_version_listing(path)
                    histories.append(history)
                    records.extend(checkpoints)
                continue

            if not self.config.include_versions and FCR_VERSIONS_ESCAPED in relative:
                continue

            records.append(self._read_resource(path))

        records.sort(key=sort_key)
        logger.info(
            "snapshot_walked",
            root=str(root),
            records=len(records),
            histories=len(histories)
        )
        return SnapshotWalk(records=tuple(records), histories=tuple(histories))

    # -------------------------------------------------------------------------
    # Description files
    # -------------------------------------------------------------------------

    def _read_resource(self, path: Path) -> ResourceEvent:
        graph = parse_file(path, self.config.rdf_format)

        binaries = list_subjects_with_property(graph, RDF_TYPE, NON_RDF_SOURCE)
        if binaries:
            subject = binaries[0]
            is_binary = True
        else:
            subject = URIRef(uri_for_file(
                path, self.config.base_directory, self._uri_base, self.config.rdf_extension
            ))
            is_binary = False

        is_version = (subject, RDF_TYPE, VERSION_RESOURCE) in graph
        if not is_version:
            is_version = graph.value(subject, HAS_VERSIONS) is not None

        source_uri = str(subject)
        return ResourceEvent.create(
            source_uri=source_uri,
            description_file=path,
            timestamp=_read_millis(graph, subject, LAST_MODIFIED_DATE),
            is_binary=is_binary,
            is_version_snapshot=is_version or self._inside_version_tree(path),
            source=self.config.source,
            destination=self.config.destination,
            binary_file=self._content_file(source_uri) if is_binary else None,
            created=_read_millis(graph, subject, CREATED_DATE)
        )

    def _inside_version_tree(self, path: Path) -> bool:
        relative = os.path.relpath(path, self.config.base_directory)
        return FCR_VERSIONS_ESCAPED in Path(relative).parts

    def _content_file(self, source_uri: str) -> Optional[Path]:
        for extension in (BINARY_EXTENSION, EXTERNAL_RESOURCE_EXTENSION):
            candidate = file_for_uri(source_uri, self.config.base_directory, extension)
            if candidate.exists():
                return candidate
        return None

    # -------------------------------------------------------------------------
    # Version listings
    # -------------------------------------------------------------------------

    def _read_version_listing(
        self,
        path: Path
    ) -> Tuple[VersionHistory, List[VersionCheckpoint]]:
        """
        A listing enumerates the versions of the resource whose directory
        holds it. The resource itself (the subject of hasVersion) also
        carries a created date and is excluded.
        """
        graph = parse_file(path, self.config.rdf_format)

        heads = list_subjects_with_property(graph, HAS_VERSION)
        if heads:
            resource_uri = str(heads[0])
        else:
            resource_uri = uri_for_file(
                path.parent, self.config.base_directory, self._uri_base, ""
            )
        head_subjects = set(heads)

        entries: List[VersionEntry] = []
        checkpoints: List[VersionCheckpoint] = []
        for subject in list_subjects_with_property(graph, CREATED_DATE):
            if subject in head_subjects:
                continue
            created = _read_millis(graph, subject, CREATED_DATE)
            checkpoint = VersionCheckpoint.create(
                version_uri=str(subject),
                timestamp=created,
                source=self.config.source,
                destination=self.config.destination
            )
            logger.debug(
                "version_listed",
                resource=resource_uri,
                label=checkpoint.label,
                timestamp=created
            )
            checkpoints.append(checkpoint)
            entries.append(VersionEntry(version_uri=str(subject), created=created))

        history = VersionHistory(
            resource_uri=resource_uri,
            entries=tuple(entries),
            listing_file=path
        )
        return history, checkpoints


# =============================================================================
# MEMBERSHIP DISCOVERY
# =============================================================================

def discover_membership_relations(
    config: ImportConfig,
    root: Optional[Path] = None,
    extra_files: Iterable[Path] = ()
) -> Dict[str, Set[str]]:
    """
    Map of membership-resource URI (destination namespace) to the member
    relations declared on it by any direct/indirect container in the tree.

    Statements using these relations are generated by the target server
    and are trimmed before descriptions are written.
    """
    root = Path(root) if root is not None else config.base_directory
    relations: Dict[str, Set[str]] = {}

    for path in chain(extra_files, iter_description_files(root, config.rdf_extension)):
        graph = parse_file(path, config.rdf_format)
        members = [o for o in graph.objects(None, MEMBERSHIP_RESOURCE) if isinstance(o, URIRef)]
        if not members:
            continue
        declared = {str(o) for o in graph.objects(None, HAS_MEMBER_RELATION)}
        for member in members:
            uri = remap_resource_uri(str(member), config.source, config.destination)
            logger.info("membership_resource_found", uri=uri, relations=len(declared))
            relations.setdefault(uri, set()).update(declared)

    return relations
