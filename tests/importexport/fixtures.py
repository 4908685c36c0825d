"""
Import Test Fixtures

Snapshot trees written as Turtle, and an in-memory repository served
through httpx.MockTransport. Everything is explicit - no random content.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import quote_plus, unquote

import httpx


# =============================================================================
# FIXED INSTANTS (epoch millis)
# =============================================================================

HOST = "http://localhost:8080"
ROOT = HOST + "/rest"

T0 = 1767225600000          # 2026-01-01T00:00:00Z
T1 = T0 + 60_000
T2 = T0 + 120_000
T3 = T0 + 180_000

PREFIXES = """\
@prefix fedora: <http://fedora.info/definitions/v4/repository#> .
@prefix ldp: <http://www.w3.org/ns/ldp#> .
@prefix premis: <http://www.loc.gov/premis/rdf/v1#> .
@prefix ebucore: <http://www.ebu.ch/metadata/ontologies/ebucore/ebucore#> .
@prefix dcterms: <http://purl.org/dc/terms/> .
@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .
"""


def iso(millis: int) -> str:
    instant = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    return instant.isoformat(timespec="milliseconds")


def date_literal(millis: int) -> str:
    return f'"{iso(millis)}"^^xsd:dateTime'


# =============================================================================
# SNAPSHOT BUILDER
# =============================================================================

class SnapshotBuilder:
    """
    Writes an export tree under `base_directory`.

    Paths are URI paths below the host ("/rest/col"); files land at the
    percent-encoded path plus extension, as an export lays them out.
    """

    def __init__(self, base_directory: Path, host: str = HOST):
        self.base_directory = base_directory
        self.host = host
        base_directory.mkdir(parents=True, exist_ok=True)

    def uri(self, path: str) -> str:
        return self.host + path

    def file(self, path: str, extension: str = ".ttl") -> Path:
        return Path(str(self.base_directory) + quote_plus(unquote(path), safe="/*") + extension)

    def write(self, path: str, body: str, extension: str = ".ttl") -> Path:
        target = self.file(path, extension)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(PREFIXES + body, encoding="utf-8")
        return target

    def container(
        self,
        path: str,
        last_modified: Optional[int] = None,
        created: Optional[int] = T0,
        extra: str = "",
        versioned: bool = False
    ) -> Path:
        lines = [f"<{self.uri(path)}> a ldp:Container, fedora:Container"]
        if created is not None:
            lines.append(f"  fedora:created {date_literal(created)}")
        if last_modified is not None:
            lines.append(f"  fedora:lastModified {date_literal(last_modified)}")
        if versioned:
            lines.append(f"  fedora:hasVersions <{self.uri(path)}/fcr:versions>")
        if extra:
            lines.append("  " + extra)
        return self.write(path, " ;\n".join(lines) + " .\n")

    def binary(
        self,
        path: str,
        content: bytes,
        mime_type: str = "text/plain",
        last_modified: Optional[int] = None,
        digest: Optional[str] = "urn:sha1:da39a3ee5e6b4b0d3255bfef95601890afd80709",
        external: bool = False
    ) -> Tuple[Path, Path]:
        """Content file plus its fcr:metadata description."""
        content_file = self.file(path, ".external" if external else ".binary")
        content_file.parent.mkdir(parents=True, exist_ok=True)
        content_file.write_bytes(content)

        lines = [
            f"<{self.uri(path)}> a ldp:NonRDFSource, fedora:Binary",
            f'  ebucore:hasMimeType "{mime_type}"',
            f"  premis:hasSize {len(content)}",
        ]
        if digest is not None:
            lines.append(f"  premis:hasMessageDigest <{digest}>")
        if last_modified is not None:
            lines.append(f"  fedora:lastModified {date_literal(last_modified)}")
        description = self.write(path + "/fcr:metadata", " ;\n".join(lines) + " .\n")
        return content_file, description

    def version_listing(self, path: str, versions: Iterable[Tuple[str, int]]) -> Path:
        """The resource's fcr:versions listing: (label, created) pairs."""
        head = self.uri(path)
        body = [f"<{head}> fedora:created {date_literal(T0)} ."]
        for label, created in versions:
            version = f"{head}/fcr:versions/{label}"
            body.append(f"<{head}> fedora:hasVersion <{version}> .")
            body.append(
                f'<{version}> fedora:created {date_literal(created)} ; '
                f'fedora:hasVersionLabel "{label}" .'
            )
        return self.write(path + "/fcr:versions", "\n".join(body) + "\n")

    def version_container(
        self,
        path: str,
        label: str,
        last_modified: int,
        child: Optional[str] = None
    ) -> Path:
        """A historical snapshot of `path` (or of `path`/`child`) at version `label`."""
        version_path = f"{path}/fcr:versions/{label}"
        if child is not None:
            version_path += "/" + child
        subject = self.uri(version_path)
        body = (
            f"<{subject}> a ldp:Container, fedora:Version ;\n"
            f"  fedora:lastModified {date_literal(last_modified)} .\n"
        )
        return self.write(version_path, body)


# =============================================================================
# FAKE REPOSITORY
# =============================================================================

@dataclass
class FakeResource:
    uri: str
    body: bytes = b""
    content_type: Optional[str] = None
    description: Optional[bytes] = None


@dataclass
class FakeRepository:
    """
    In-memory repository answering the calls an import makes.

    `scripted` maps (METHOD, url) to statuses returned, one per call,
    before normal handling resumes.
    """
    root: str = ROOT
    resources: Dict[str, FakeResource] = field(default_factory=dict)
    versions: Dict[str, List[str]] = field(default_factory=dict)
    tombstones: Set[str] = field(default_factory=set)
    scripted: Dict[Tuple[str, str], List[int]] = field(default_factory=dict)
    advertise_tombstone: bool = True
    requests: List[httpx.Request] = field(default_factory=list)

    def __post_init__(self):
        self.resources[self.root] = FakeResource(uri=self.root)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def add(self, uri: str, body: bytes = b"") -> FakeResource:
        self.resources[uri] = FakeResource(uri=uri, body=body)
        return self.resources[uri]

    def script(self, method: str, url: str, *statuses: int):
        self.scripted.setdefault((method, url), []).extend(statuses)

    def calls(self, method: Optional[str] = None) -> List[Tuple[str, str]]:
        return [
            (r.method, str(r.url)) for r in self.requests
            if method is None or r.method == method
        ]

    def tree(self) -> Set[str]:
        return set(self.resources) - {self.root}

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url).rstrip("/")

        queued = self.scripted.get((request.method, url))
        if queued:
            return httpx.Response(queued.pop(0), text="scripted")

        handler = getattr(self, "_" + request.method.lower())
        return handler(request, url)

    def _gone(self, uri: str) -> httpx.Response:
        headers = {}
        if self.advertise_tombstone:
            headers["Link"] = f'<{uri}/fcr:tombstone>; rel="hasTombstone"'
        return httpx.Response(410, headers=headers, text="Discovered tombstone")

    def _head(self, request, url):
        if url in self.tombstones:
            return httpx.Response(410, headers={"Link": f'<{url}/fcr:tombstone>; rel="hasTombstone"'})
        return httpx.Response(200 if url in self.resources else 404)

    def _get(self, request, url):
        if url == self.root:
            body = f"<{self.root}> a <http://fedora.info/definitions/v4/repository#RepositoryRoot> ."
            return httpx.Response(200, text=body, headers={"Content-Type": "text/turtle"})
        resource = self.resources.get(url)
        if resource is None:
            return httpx.Response(404)
        return httpx.Response(200, content=resource.description or resource.body)

    def _put(self, request, url):
        if url.endswith("/fcr:metadata"):
            target = url[:-len("/fcr:metadata")]
            if target in self.tombstones:
                return self._gone(target)
            resource = self.resources.get(target)
            if resource is None:
                return httpx.Response(404)
            resource.description = request.content
            return httpx.Response(204)

        if url in self.tombstones:
            return self._gone(url)
        existed = url in self.resources
        self.resources[url] = FakeResource(
            uri=url,
            body=request.content,
            content_type=request.headers.get("Content-Type")
        )
        return httpx.Response(204 if existed else 201)

    def _post(self, request, url):
        if not url.endswith("/fcr:versions"):
            return httpx.Response(405)
        target = url[:-len("/fcr:versions")]
        if target not in self.resources:
            return httpx.Response(404)
        self.versions.setdefault(target, []).append(request.headers.get("Slug", ""))
        return httpx.Response(201, headers={"Location": f"{url}/{request.headers.get('Slug', '')}"})

    def _delete(self, request, url):
        if url.endswith("/fcr:tombstone"):
            target = url[:-len("/fcr:tombstone")]
            if target not in self.tombstones:
                return httpx.Response(404)
            self.tombstones.discard(target)
            return httpx.Response(204)

        if url in self.tombstones:
            return self._gone(url)
        if url not in self.resources:
            return httpx.Response(404)
        for uri in [u for u in self.resources if u == url or u.startswith(url + "/")]:
            del self.resources[uri]
        self.tombstones.add(url)
        return httpx.Response(204)
