"""
URI Translation

Maps repository URIs to snapshot files and back.

ON-DISK CONTRACT:
=================
- One description file per resource at a path mirroring the decoded URI
  path, form-encoded (":" becomes "%3A", " " becomes "+", "/" is kept)
- Binary content sits beside its description with a fixed marker extension
- Historical versions live under "fcr%3Aversions" beneath the resource path
"""

from __future__ import annotations
from pathlib import Path
from typing import Optional
from urllib.parse import quote, quote_plus, unquote, unquote_plus, urlparse
import os
import re

from .vocabulary import FCR_VERSIONS


_VERSION_SEGMENT = re.compile(r"/" + re.escape(FCR_VERSIONS) + r"/[^/]+")

# Characters a URI path carries unescaped
_URI_PATH_SAFE = "/:@!$&'()*+,;=-._~"


def encode_path(path: str) -> str:
    """Form-encode a decoded URI path for use as a file path; slashes survive."""
    return quote_plus(path, safe="/*")


def decode_path(encoded: str) -> str:
    return unquote_plus(encoded)


def uri_path(encoded: str) -> str:
    """URI form of an encoded file path."""
    return quote(decode_path(encoded), safe=_URI_PATH_SAFE)


def with_slash(uri: str) -> str:
    return uri if uri.endswith("/") else uri + "/"


def without_slash(uri: str) -> str:
    return uri[:-1] if uri.endswith("/") else uri


def parent(uri: str) -> str:
    """URI one path segment up; the trailing slash is ignored."""
    trimmed = without_slash(uri)
    return trimmed[:trimmed.rindex("/")]


def add_relative_path(uri: str, path: str) -> str:
    """Join a relative path onto a URI with exactly one separator."""
    if uri.endswith("/"):
        return uri + path[1:] if path.startswith("/") else uri + path
    if path.startswith("/"):
        return uri + path
    return uri + "/" + path


def base_uri(uri: str) -> str:
    """Scheme and authority of a URI, with a trailing slash."""
    parsed = urlparse(uri)
    return f"{parsed.scheme}://{parsed.netloc}/"


def strip_version_path(uri: str) -> str:
    """Remove the first "/fcr:versions/<label>" segment pair."""
    return _VERSION_SEGMENT.sub("", uri, count=1)


def rebase(uri: str, source: Optional[str], destination: Optional[str]) -> str:
    """Substitute the destination base for the source base, if it applies."""
    if source and destination and uri.startswith(source):
        return destination + uri[len(source):]
    return uri


def remap_resource_uri(uri: str, source: Optional[str], destination: Optional[str]) -> str:
    """
    Destination URI for a snapshot URI.

    Strips any embedded version path, then rebases source onto destination.
    """
    return rebase(strip_version_path(uri), source, destination)


# =============================================================================
# FILE <-> URI
# =============================================================================

def file_for_uri(
    uri: str,
    base_directory: Path,
    extension: str,
    source_path: Optional[str] = None,
    destination_path: Optional[str] = None
) -> Path:
    """
    File where the resource at `uri` is stored in the snapshot.

    A destination URI is translated back to the source path it was
    exported from before encoding. The path is decoded first, so an
    escaped URI and its literal form map to the same file.
    """
    path = urlparse(uri).path
    if source_path is not None and destination_path is not None:
        path = path.replace(destination_path, source_path, 1)
    return Path(str(base_directory) + encode_path(unquote(path)) + extension)


def directory_for_container(
    uri: str,
    base_directory: Path,
    source_path: Optional[str] = None,
    destination_path: Optional[str] = None
) -> Path:
    """Directory holding the children of the container at `uri`."""
    return file_for_uri(with_slash(uri), base_directory, "", source_path, destination_path)


def uri_for_file(
    file_path: Path,
    base_directory: Path,
    base: str,
    extension: str,
    source: Optional[str] = None,
    destination: Optional[str] = None
) -> str:
    """
    Repository URI for a description file.

    `base` supplies scheme and authority. When `source` and `destination`
    are both given the result is rebased onto the destination.
    """
    relative = os.path.relpath(file_path, base_directory).replace(os.sep, "/")
    uri = base_uri(base) + uri_path(relative)
    if uri.endswith(extension):
        uri = uri[:-len(extension)]
    return rebase(uri, source, destination)
