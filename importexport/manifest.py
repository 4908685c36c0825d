"""
BagIt Manifest

Checksum lookup from a bag's manifest-sha1.txt. Bag validation and
packaging are handled elsewhere; this only answers "what sha1 did the
bag record for this file".
"""

from __future__ import annotations
from pathlib import Path
from typing import Dict, Optional

from .errors import ConfigurationError


CHECKSUM_DELIMITER = "  "


class BagManifest:
    """Absolute file path -> sha1 hex digest."""

    def __init__(self, checksums: Dict[str, str]):
        self._checksums = checksums

    @classmethod
    def load(cls, manifest_path: Path) -> 'BagManifest':
        """
        Parse "<checksum>  <relative path>" lines; paths resolve against
        the manifest's directory.
        """
        bag_directory = manifest_path.parent
        checksums = {}
        try:
            with open(manifest_path, 'r', encoding='utf-8') as f:
                for line in f:
                    line = line.rstrip('\n')
                    if not line.strip():
                        continue
                    checksum, _, relative = line.partition(CHECKSUM_DELIMITER)
                    resolved = (bag_directory / relative.strip()).resolve()
                    checksums[str(resolved)] = checksum.strip()
        except OSError as e:
            raise ConfigurationError(f"Error reading manifest: {manifest_path}") from e

        return cls(checksums)

    def checksum_for(self, path: Path) -> Optional[str]:
        return self._checksums.get(str(Path(path).resolve()))

    def __len__(self) -> int:
        return len(self._checksums)
