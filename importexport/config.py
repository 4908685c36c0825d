"""
Import Configuration

Immutable run configuration for one import.

Loaded from a JSON document (same keys as the dataclass fields) or built
directly by the CLI. Validation happens once, at construction.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
import json

from .errors import ConfigurationError


DEFAULT_RDF_EXTENSION = ".ttl"
DEFAULT_RDF_LANGUAGE = "text/turtle"
BAG_MANIFEST_NAME = "manifest-sha1.txt"

# Media type -> rdflib serializer/parser name
RDF_FORMATS = {
    "text/turtle": "turtle",
    "application/ld+json": "json-ld",
    "application/n-triples": "nt",
    "application/rdf+xml": "xml",
    "text/n3": "n3",
}


@dataclass(frozen=True)
class ImportConfig:
    """
    Configuration for replaying a snapshot into a target repository.

    `resource` is the destination URI of the imported tree. When `source`
    is also set, every URI found in the snapshot is rebased from `source`
    onto `resource`, and file lookups translate the other way.
    """
    resource: str
    base_directory: Path
    source: Optional[str] = None
    include_binaries: bool = False
    include_versions: bool = False
    rdf_extension: str = DEFAULT_RDF_EXTENSION
    rdf_language: str = DEFAULT_RDF_LANGUAGE
    legacy: bool = False
    overwrite_tombstones: bool = False
    bag_manifest: bool = False
    username: Optional[str] = None
    password: Optional[str] = None
    audit_log: Optional[Path] = None
    timeout_seconds: float = 30.0

    def __post_init__(self):
        if not self.resource:
            raise ConfigurationError("resource must be a non-empty URI")
        if not urlparse(self.resource).scheme:
            raise ConfigurationError(f"resource is not an absolute URI: {self.resource}")
        if not self.rdf_extension.startswith("."):
            raise ConfigurationError(f"rdf_extension must start with '.': {self.rdf_extension}")
        if self.rdf_language not in RDF_FORMATS:
            raise ConfigurationError(f"Unsupported RDF language: {self.rdf_language}")
        # Normalize path-like fields so JSON and CLI input behave alike
        object.__setattr__(self, 'base_directory', Path(self.base_directory))
        if self.audit_log is not None:
            object.__setattr__(self, 'audit_log', Path(self.audit_log))

    @classmethod
    def load(cls, config_path: Path) -> 'ImportConfig':
        """Load configuration from a JSON file."""
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")

        try:
            return cls(**data)
        except TypeError as e:
            raise ConfigurationError(str(e)) from e

    # -------------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------------

    @property
    def destination(self) -> Optional[str]:
        """Destination base for source->destination rebasing."""
        return self.resource if self.source else None

    @property
    def source_path(self) -> Optional[str]:
        return urlparse(self.source).path if self.source else None

    @property
    def destination_path(self) -> Optional[str]:
        return urlparse(self.resource).path if self.source else None

    @property
    def rdf_format(self) -> str:
        """rdflib format name for `rdf_language`."""
        return RDF_FORMATS[self.rdf_language]

    @property
    def credentials(self) -> Optional[tuple]:
        if self.username is None:
            return None
        return (self.username, self.password or "")

    @property
    def manifest_path(self) -> Path:
        """BagIt manifest location: beside the data directory."""
        return self.base_directory.parent / BAG_MANIFEST_NAME
