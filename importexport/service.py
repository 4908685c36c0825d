"""
Import Service

End-to-end import run:

    discover root -> discover membership -> walk -> diff -> sequence -> replay

The service owns the transport and audit resources for one run and
closes them when the run ends, successfully or not.
"""

from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import httpx
import structlog

from .audit import AuditLog
from .config import ImportConfig
from .contracts import DeletionRecord, ImportReport
from .differ import SnapshotDiffer
from .engine import ReplayEngine
from .errors import AuthenticationRequiredError
from .manifest import BagManifest
from .rdf import parse_bytes
from .sequencer import build_event_queue
from .transport import RepositoryClient
from .uris import directory_for_container, file_for_uri, parent, without_slash
from .vocabulary import RDF_TYPE, REPOSITORY_ROOT
from .walker import SnapshotTreeWalker, discover_membership_relations


logger = structlog.get_logger(__name__)


def find_repository_root(client: RepositoryClient, config: ImportConfig, uri: str) -> str:
    """
    Nearest ancestor-or-self of `uri` typed fedora:RepositoryRoot.

    Falls back to the URI with its path removed. Missing resources on the
    way up are skipped.
    """
    current = without_slash(uri)
    while urlparse(current).path:
        head = client.head(current)
        if head.status_code == 401:
            raise AuthenticationRequiredError(current)
        if head.status_code == 200:
            response = client.get(current, accept=config.rdf_language)
            if response.is_success:
                graph = parse_bytes(response.body, config.rdf_format, base=current)
                if (None, RDF_TYPE, REPOSITORY_ROOT) in graph:
                    return current
        current = parent(current)
    return current


class ImportService:
    """
    Runs one import described by an ImportConfig.

    `transport` replaces the network transport of the HTTP client
    (tests pass an httpx.MockTransport).
    """

    def __init__(self, config: ImportConfig, transport: Optional[httpx.BaseTransport] = None):
        self.config = config
        self.transport = transport

    def import_sources(self) -> Tuple[Path, List[Path]]:
        """
        Directory to walk and extra description files to read.

        The resource's own directory holds its children and version
        listing; its own description file sits beside that directory.
        A leaf resource has no directory, only the file.
        """
        config = self.config
        directory = directory_for_container(
            config.resource, config.base_directory, config.source_path, config.destination_path
        )
        description = file_for_uri(
            without_slash(config.resource), config.base_directory,
            config.rdf_extension, config.source_path, config.destination_path
        )
        extra = [description] if description.is_file() else []
        if not directory.is_dir() and not extra:
            logger.warning(
                "resource_not_in_snapshot",
                directory=str(directory),
                fallback=str(config.base_directory)
            )
            return config.base_directory, []
        return directory, extra

    def run(self) -> ImportReport:
        config = self.config
        logger.info("import_started", resource=config.resource, directory=str(config.base_directory))

        manifest = BagManifest.load(config.manifest_path) if config.bag_manifest else None
        audit = AuditLog(config.audit_log)
        try:
            with RepositoryClient(config, transport=self.transport) as client:
                repository_root = find_repository_root(client, config, config.resource)
                logger.debug("repository_root_found", uri=repository_root)

                root, extra = self.import_sources()
                relations = discover_membership_relations(config, root, extra)
                walk = SnapshotTreeWalker(config).walk(root, extra)

                deletions: List[DeletionRecord] = []
                if config.include_versions:
                    differ = SnapshotDiffer(config)
                    for history in walk.histories:
                        deletions.extend(differ.generate_deletions(history))

                queue = build_event_queue(walk.records, deletions, config.include_versions)
                engine = ReplayEngine(
                    config,
                    client,
                    audit,
                    repository_root,
                    membership_relations=relations,
                    manifest=manifest
                )
                report = engine.replay(queue)

            audit.summary(
                success_count=report.success_count,
                events_applied=report.events_applied,
                failed_binaries=list(report.failed_binaries)
            )
            logger.info(
                "import_finished",
                resources_imported=report.success_count,
                failed_binaries=len(report.failed_binaries)
            )
            return report
        finally:
            audit.close()
