"""
Replay Engine

Applies an EventQueue to the target repository, one event at a time.

STATE MACHINE PER EVENT:
========================
ResourceEvent (container):
    skip infrastructure -> sanitize (placeholders for forward refs) -> PUT description
ResourceEvent (binary):
    ensure ancestors -> PUT content (+digest) -> PUT sanitized description
VersionCheckpoint:
    POST {resource}/fcr:versions, Slug: label
DeletionRecord:
    DELETE resource -> DELETE tombstone

FAILURE POLICY:
===============
- 401 anywhere: AuthenticationRequiredError, run aborts
- 410 with overwrite_tombstones: delete tombstone, retry exactly once
- Binary content failures: BinaryImportError, logged, run continues
- Everything else: TransferError, run aborts

Checkpoints are not idempotent: replaying the same queue twice creates
duplicate versions. No buffering or reordering happens here; queue order
is trusted.
"""

from __future__ import annotations
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set
import re

import structlog
from rdflib import Graph, URIRef
from rdflib.term import Node

from .audit import AuditLog
from .config import ImportConfig
from .contracts import (
    DeletionRecord,
    EventKind,
    ImportEvent,
    ImportReport,
    ResourceEvent,
    TransferResponse,
    VersionCheckpoint,
)
from .errors import (
    AuthenticationRequiredError,
    BinaryImportError,
    MissingPropertyError,
    ResourceGoneError,
    TransferError,
)
from .manifest import BagManifest
from .rdf import parse_file, remap_subjects, serialize
from .transport import RepositoryClient
from .uris import (
    add_relative_path,
    file_for_uri,
    parent,
    with_slash,
    without_slash,
)
from .vocabulary import (
    BINARY_EXTENSION,
    CONTAINS,
    DESCRIBEDBY,
    EXTERNAL_CONTENT_TYPE,
    EXTERNAL_RESOURCE_EXTENSION,
    FCR_TOMBSTONE,
    FCR_VERSIONS,
    FORBIDDEN_TYPES,
    HAS_MESSAGE_DIGEST,
    HAS_MIME_TYPE,
    HAS_SIZE,
    JCR_EXPORT_SUFFIX,
    JCR_XML_SUBJECT,
    PAIRTREE,
    PLACEHOLDER_CONTAINER_BODY,
    RDF_TYPE,
    RELAXED_PREDICATES,
    REPOSITORY_NAMESPACE,
    REPOSITORY_ROOT,
)


logger = structlog.get_logger(__name__)

TOMBSTONE_REL = "hasTombstone"
_DIGEST_PREFIX = re.compile(r".*:")


class ReplayEngine:
    """
    Applies replay events strictly in queue order.

    `repository_root` bounds which object references count as repository
    resources (and so may receive placeholders). `membership_relations`
    maps a membership resource URI to predicates the server generates on it.
    """

    def __init__(
        self,
        config: ImportConfig,
        client: RepositoryClient,
        audit: AuditLog,
        repository_root: str,
        membership_relations: Optional[Dict[str, Set[str]]] = None,
        manifest: Optional[BagManifest] = None
    ):
        self.config = config
        self.client = client
        self.audit = audit
        self.repository_root = without_slash(repository_root)
        self.membership_relations = membership_relations or {}
        self.manifest = manifest

        self.events_applied = 0
        self.success_count = 0
        self.failed_binaries: List[str] = []

        self._handlers: Dict[EventKind, Callable[[ImportEvent], None]] = {
            EventKind.RESOURCE: self._apply_resource,
            EventKind.CHECKPOINT: self._apply_checkpoint,
            EventKind.DELETION: self._apply_deletion,
        }
        unhandled = set(EventKind) - set(self._handlers)
        if unhandled:
            raise TypeError(f"No replay handler for {sorted(k.name for k in unhandled)}")

    def replay(self, queue: Iterable[ImportEvent]) -> ImportReport:
        for event in queue:
            self._handlers[event.kind](event)
            self.events_applied += 1

        report = ImportReport(
            repository_root=self.repository_root,
            events_applied=self.events_applied,
            success_count=self.success_count,
            failed_binaries=tuple(self.failed_binaries)
        )
        logger.info(
            "replay_finished",
            events=report.events_applied,
            successes=report.success_count,
            failed_binaries=len(report.failed_binaries)
        )
        return report

    # =========================================================================
    # RESOURCES
    # =========================================================================

    def _apply_resource(self, event: ResourceEvent) -> None:
        if event.is_binary:
            self._import_binary(event)
        else:
            self._import_container(event)

    def load_model(self, event: ResourceEvent) -> Graph:
        """Description graph with URIs rebased onto the destination."""
        graph = parse_file(event.description_file, self.config.rdf_format)
        return remap_subjects(
            graph,
            self.config.source,
            self.config.destination,
            strip_versions=self.config.include_versions
        )

    def _import_container(self, event: ResourceEvent) -> None:
        graph = self.load_model(event)
        if self._is_skippable(graph, URIRef(event.mapped_uri)):
            logger.debug("infrastructure_resource_skipped", uri=event.mapped_uri)
            return

        try:
            self._put_description(event, graph)
        except ResourceGoneError as e:
            self._delete_tombstone(e.resource_uri, e.tombstone)
            self._put_description(event, graph, recover_gone=False)

    @staticmethod
    def _is_skippable(graph: Graph, subject: URIRef) -> bool:
        if (subject, None, None) not in graph:
            return True
        return (subject, RDF_TYPE, REPOSITORY_ROOT) in graph or (subject, RDF_TYPE, PAIRTREE) in graph

    def _import_binary(self, event: ResourceEvent) -> None:
        if not self.config.include_binaries:
            logger.debug("binary_skipped", uri=event.mapped_uri)
            return

        graph = self.load_model(event)
        self.ensure_exists(parent(event.mapped_uri))

        try:
            try:
                self._upload_binary(event, graph)
                self._put_description(event, graph)
            except ResourceGoneError as e:
                self._recover_binary(event, graph, e)
        except BinaryImportError as e:
            logger.error("binary_import_failed", uri=e.uri, error=e.message)
            self.failed_binaries.append(e.uri)

    def _recover_binary(self, event: ResourceEvent, graph: Graph, gone: ResourceGoneError) -> None:
        """Tombstone overwrite for a binary; a failure here fails only this binary."""
        try:
            self._delete_tombstone(gone.resource_uri, gone.tombstone)
            self._upload_binary(event, graph, recover_gone=False)
            self._put_description(event, graph, recover_gone=False)
        except TransferError as e:
            raise BinaryImportError(e.message, event.mapped_uri) from e

    def _upload_binary(
        self,
        event: ResourceEvent,
        graph: Graph,
        recover_gone: bool = True
    ) -> None:
        subject = URIRef(event.mapped_uri)
        mime_type = graph.value(subject, HAS_MIME_TYPE)
        if mime_type is None:
            raise MissingPropertyError(event.mapped_uri, str(HAS_MIME_TYPE))
        content_type = str(mime_type)

        if content_type.startswith(EXTERNAL_CONTENT_TYPE):
            body = b""
            digest = None
        else:
            if event.binary_file is None:
                self.audit.failure("import_binary", event.mapped_uri, reason="missing content file")
                raise BinaryImportError(
                    f"No content file for binary {event.source_uri}", event.mapped_uri
                )
            try:
                body = event.binary_file.read_bytes()
            except OSError as e:
                self.audit.failure("import_binary", event.mapped_uri, file=str(event.binary_file))
                raise BinaryImportError(
                    f"Error reading {event.binary_file}: {e}", event.mapped_uri
                ) from e
            digest = self._binary_digest(event, graph, subject)

        try:
            response = self.client.put(
                event.mapped_uri, body, content_type=content_type, digest=digest
            )
        except TransferError as e:
            self.audit.failure("import_binary", event.mapped_uri, file=str(event.binary_file))
            raise BinaryImportError(e.message, event.mapped_uri) from e

        if response.status_code == 401:
            self.audit.failure("import_binary", event.mapped_uri, status=401)
            raise AuthenticationRequiredError(event.mapped_uri)
        if response.status_code == 410 and self.config.overwrite_tombstones and recover_gone:
            raise ResourceGoneError(event.mapped_uri, response.link(TOMBSTONE_REL))
        if not response.is_success:
            self.audit.failure(
                "import_binary", event.mapped_uri,
                file=str(event.binary_file), status=response.status_code
            )
            raise BinaryImportError(
                f"Error while importing {event.binary_file} ({response.status_code}): {response.text()}",
                event.mapped_uri
            )

        self.success_count += 1
        self.audit.success("import_binary", event.mapped_uri, file=str(event.binary_file))
        logger.info("binary_imported", uri=event.mapped_uri)

    def _binary_digest(self, event: ResourceEvent, graph: Graph, subject: URIRef) -> Optional[str]:
        """sha1 hex: the bag manifest wins over the snapshot's recorded digest."""
        if self.manifest is not None and event.binary_file is not None:
            checksum = self.manifest.checksum_for(event.binary_file)
            if checksum:
                logger.debug("bag_checksum_used", uri=event.mapped_uri, checksum=checksum)
                return checksum

        recorded = graph.value(subject, HAS_MESSAGE_DIGEST)
        if recorded is None:
            return None
        return _DIGEST_PREFIX.sub("", str(recorded))

    def _put_description(
        self,
        event: ResourceEvent,
        graph: Graph,
        recover_gone: bool = True
    ) -> None:
        description_path = str(event.description_file)
        body = serialize(self.sanitize(event, graph), self.config.rdf_format)
        response = self.client.put(
            event.description_uri,
            body,
            content_type=self.config.rdf_language,
            lenient=True
        )

        if response.status_code == 401:
            self.audit.failure("import", event.mapped_uri, file=description_path, status=401)
            raise AuthenticationRequiredError(event.description_uri)
        if response.status_code == 410 and self.config.overwrite_tombstones and recover_gone:
            raise ResourceGoneError(event.mapped_uri, response.link(TOMBSTONE_REL))
        if not response.is_success:
            self.audit.failure(
                "import", event.mapped_uri,
                file=description_path, status=response.status_code
            )
            raise TransferError(
                f"Error while importing {description_path} ({response.status_code}): {response.text()}",
                response.status_code
            )

        self.success_count += 1
        self.audit.success("import", event.mapped_uri, file=description_path)
        logger.info("resource_imported", file=description_path, uri=event.mapped_uri)

    # =========================================================================
    # SANITIZE
    # =========================================================================

    def sanitize(self, event: ResourceEvent, graph: Graph) -> Graph:
        """
        Copy of `graph` without statements the repository manages itself.

        Object references into the repository are checked and receive a
        placeholder when missing. Generated membership triples are dropped.
        """
        relations = self.membership_relations.get(event.mapped_uri, set())
        sanitized = Graph()
        for prefix, namespace in graph.namespaces():
            sanitized.bind(prefix, namespace, override=True)

        for s, p, o in sorted(graph, key=lambda triple: tuple(str(node) for node in triple)):
            if self._is_managed(s, p, o):
                continue
            if isinstance(o, URIRef) and self._in_repository(str(o)):
                if str(p) in relations:
                    continue
                if without_slash(str(o)) != event.mapped_uri:
                    self.ensure_exists(str(o))
            sanitized.add((s, p, o))

        return sanitized

    def _is_managed(self, s: Node, p: URIRef, o: Node) -> bool:
        if str(p).startswith(REPOSITORY_NAMESPACE) and not self._relaxed(p):
            return True
        subject = str(s)
        if subject.endswith(JCR_EXPORT_SUFFIX) or s == JCR_XML_SUBJECT:
            return True
        if p in (DESCRIBEDBY, CONTAINS, HAS_MESSAGE_DIGEST, HAS_SIZE):
            return True
        return p == RDF_TYPE and self._forbidden_type(o)

    def _relaxed(self, predicate: URIRef) -> bool:
        return not self.config.legacy and predicate in RELAXED_PREDICATES

    @staticmethod
    def _forbidden_type(node: Node) -> bool:
        return isinstance(node, URIRef) and (
            str(node).startswith(REPOSITORY_NAMESPACE) or node in FORBIDDEN_TYPES
        )

    def _in_repository(self, uri: str) -> bool:
        """Strictly below the repository root."""
        return uri.startswith(with_slash(self.repository_root)) and without_slash(uri) != self.repository_root

    # =========================================================================
    # PLACEHOLDERS
    # =========================================================================

    def ensure_exists(self, uri: str) -> None:
        if not self._in_repository(uri):
            return
        response = self.client.head(uri)
        if response.status_code == 401:
            raise AuthenticationRequiredError(uri)
        if response.status_code != 200:
            self.make_placeholder(uri)

    def make_placeholder(self, uri: str) -> None:
        """
        Minimal stand-in for a referenced resource that the snapshot holds
        but the target lacks yet. Nothing is created when the snapshot has
        no file for `uri`.
        """
        self.ensure_exists(parent(uri))

        if self._snapshot_file(uri, BINARY_EXTENSION).exists() or \
                self._snapshot_file(uri, EXTERNAL_RESOURCE_EXTENSION).exists():
            response = self.client.put(uri, b"")
        elif self._snapshot_file(without_slash(uri), self.config.rdf_extension).exists():
            response = self.client.put(uri, PLACEHOLDER_CONTAINER_BODY, content_type="text/turtle")
        else:
            return

        if response.status_code == 401:
            raise AuthenticationRequiredError(uri)
        if response.status_code != 201:
            logger.error(
                "placeholder_unexpected_response",
                uri=uri,
                status=response.status_code,
                body=response.text()
            )
            self.audit.failure("placeholder", uri, status=response.status_code)
            return

        self.audit.success("placeholder", uri)
        logger.info("placeholder_created", uri=uri)

    def _snapshot_file(self, uri: str, extension: str) -> Path:
        return file_for_uri(
            uri,
            self.config.base_directory,
            extension,
            self.config.source_path,
            self.config.destination_path
        )

    # =========================================================================
    # CHECKPOINTS AND DELETIONS
    # =========================================================================

    def _apply_checkpoint(self, event: VersionCheckpoint) -> None:
        versions_uri = add_relative_path(event.resource_uri, FCR_VERSIONS)
        response = self.client.post(versions_uri, slug=event.label)

        if response.status_code == 401:
            self.audit.failure("create_version", event.resource_uri, label=event.label, status=401)
            raise AuthenticationRequiredError(versions_uri)
        if not response.is_success:
            self.audit.failure(
                "create_version", event.resource_uri,
                label=event.label, status=response.status_code
            )
            raise TransferError(
                f"Error creating version {event.label} of {event.resource_uri} "
                f"({response.status_code}): {response.text()}",
                response.status_code
            )

        self.success_count += 1
        self.audit.success("create_version", event.resource_uri, label=event.label)
        logger.info("version_created", uri=event.resource_uri, label=event.label)

    def _apply_deletion(self, event: DeletionRecord) -> None:
        uri = event.target_uri
        response = self.client.delete(uri)

        if response.status_code == 401:
            self.audit.failure("delete", uri, status=401)
            raise AuthenticationRequiredError(uri)
        if response.status_code == 404:
            logger.info("deletion_already_converged", uri=uri)
            return
        if response.status_code == 410:
            logger.info("deletion_already_converged", uri=uri, tombstone=True)
            self._remove_tombstone(add_relative_path(uri, FCR_TOMBSTONE))
            return
        if not response.is_success:
            self.audit.failure("delete", uri, status=response.status_code)
            raise TransferError(
                f"Error deleting removed {uri} ({response.status_code}): {response.text()}",
                response.status_code
            )

        self._remove_tombstone(add_relative_path(uri, FCR_TOMBSTONE))
        self.success_count += 1
        self.audit.success("delete", uri)
        logger.info("removed_resource_deleted", uri=uri, timestamp=event.timestamp)

    # =========================================================================
    # TOMBSTONES
    # =========================================================================

    def _delete_tombstone(self, resource_uri: str, tombstone: Optional[str]) -> None:
        """Clear the tombstone blocking `resource_uri` so it can be rewritten."""
        if tombstone is None:
            head = self.client.head(resource_uri)
            tombstone = head.link(TOMBSTONE_REL)
        if tombstone is None:
            self.audit.failure("delete_tombstone", resource_uri)
            raise TransferError(f"No tombstone advertised for gone resource {resource_uri}", 410)

        logger.info("tombstone_overwrite", uri=resource_uri, tombstone=tombstone)
        response = self._remove_tombstone(tombstone)
        if not response.is_success:
            raise TransferError(
                f"Error deleting tombstone {tombstone} ({response.status_code}): {response.text()}",
                response.status_code
            )

    def _remove_tombstone(self, tombstone: str) -> TransferResponse:
        response = self.client.delete(tombstone)
        if response.status_code == 401:
            self.audit.failure("delete_tombstone", tombstone, status=401)
            raise AuthenticationRequiredError(tombstone)
        if response.is_success:
            self.audit.success("delete_tombstone", tombstone)
        else:
            logger.debug("tombstone_not_removed", tombstone=tombstone, status=response.status_code)
        return response
