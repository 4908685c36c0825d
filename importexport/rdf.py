"""
RDF Support

Thin layer over rdflib used by the walker, differ and replay engine.

OPERATIONS:
- parse_file:                   description file -> Graph
- parse_bytes:                  response body -> Graph
- remap_subjects:               rebase URIs source -> destination
- list_subjects_with_property:  deterministic subject listing
- serialize:                    Graph -> bytes in the configured language
- timestamp_millis:             xsd:dateTime literal -> epoch millis
"""

from __future__ import annotations
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from rdflib import Graph, Literal, URIRef
from rdflib.term import Node

from .uris import rebase, strip_version_path


def parse_file(path: Path, rdf_format: str) -> Graph:
    graph = Graph()
    graph.parse(source=str(path), format=rdf_format)
    return graph


def parse_bytes(body: bytes, rdf_format: str, base: Optional[str] = None) -> Graph:
    graph = Graph()
    graph.parse(data=body, format=rdf_format, publicID=base)
    return graph


def _remap_node(
    node: Node,
    source: Optional[str],
    destination: Optional[str],
    strip_versions: bool
) -> Node:
    if not isinstance(node, URIRef):
        return node
    uri = str(node)
    mapped = strip_version_path(uri) if strip_versions else uri
    mapped = rebase(mapped, source, destination)
    return node if mapped == uri else URIRef(mapped)


def remap_subjects(
    graph: Graph,
    source: Optional[str],
    destination: Optional[str],
    strip_versions: bool = False
) -> Graph:
    """
    Copy of `graph` with subject and object URIs rebased.

    With `strip_versions`, "/fcr:versions/<label>" is removed first so
    historical snapshots describe the live resource.
    """
    remapped = Graph()
    for prefix, namespace in graph.namespaces():
        remapped.bind(prefix, namespace, override=True)
    for s, p, o in graph:
        remapped.add((
            _remap_node(s, source, destination, strip_versions),
            p,
            _remap_node(o, source, destination, strip_versions),
        ))
    return remapped


def list_subjects_with_property(
    graph: Graph,
    predicate: URIRef,
    obj: Optional[Node] = None
) -> List[URIRef]:
    """Distinct URI subjects having `predicate` (and `obj`, if given), sorted."""
    subjects = {s for s in graph.subjects(predicate, obj) if isinstance(s, URIRef)}
    return sorted(subjects, key=str)


def serialize(graph: Graph, rdf_format: str) -> bytes:
    data = graph.serialize(format=rdf_format)
    if isinstance(data, str):
        return data.encode('utf-8')
    return data


def timestamp_millis(value: Node) -> int:
    """
    Epoch milliseconds for an xsd:dateTime literal.

    Naive datetimes are read as UTC.
    """
    if not isinstance(value, Literal):
        raise ValueError(f"Expected a dateTime literal, got {value!r}")

    parsed = value.toPython()
    if not isinstance(parsed, datetime):
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)
