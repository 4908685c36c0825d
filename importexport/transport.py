"""
Repository Transport

Blocking HTTP calls against the target repository.

PRINCIPLES:
===========
1. One call, one TransferResponse - status codes are data, not exceptions
2. Network failures surface as TransferError
3. Timeouts belong to the transport; retries are decided by callers
"""

from __future__ import annotations
from typing import Dict, Optional, Tuple

import httpx
import structlog

from .config import ImportConfig
from .contracts import TransferResponse
from .errors import TransferError


logger = structlog.get_logger(__name__)

LENIENT_PREFER = 'handling=lenient; received="minimal"'
USER_AGENT = "importexport/1.0"


def _links(response: httpx.Response) -> Tuple[Tuple[str, str], ...]:
    pairs = []
    for rel, link in response.links.items():
        url = link.get('url')
        if url:
            pairs.append((rel, url))
    return tuple(pairs)


class RepositoryClient:
    """
    Synchronous client for the target repository.

    Wraps a single httpx.Client; use as a context manager or call close().
    A custom `transport` (e.g. httpx.MockTransport) may be injected.
    """

    def __init__(
        self,
        config: ImportConfig,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self._client = httpx.Client(
            auth=config.credentials,
            timeout=config.timeout_seconds,
            follow_redirects=False,
            headers={'User-Agent': USER_AGENT},
            transport=transport
        )

    def __enter__(self) -> 'RepositoryClient':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        self._client.close()

    # -------------------------------------------------------------------------
    # Verbs
    # -------------------------------------------------------------------------

    def head(self, uri: str) -> TransferResponse:
        return self._perform('HEAD', uri)

    def get(self, uri: str, accept: Optional[str] = None) -> TransferResponse:
        headers = {'Accept': accept} if accept else {}
        return self._perform('GET', uri, headers=headers)

    def put(
        self,
        uri: str,
        body: bytes = b"",
        content_type: Optional[str] = None,
        digest: Optional[str] = None,
        lenient: bool = False
    ) -> TransferResponse:
        headers = {}
        if content_type:
            headers['Content-Type'] = content_type
        if digest:
            headers['Digest'] = f"sha1={digest}"
        if lenient:
            headers['Prefer'] = LENIENT_PREFER
        return self._perform('PUT', uri, headers=headers, content=body)

    def post(self, uri: str, slug: Optional[str] = None) -> TransferResponse:
        headers = {'Slug': slug} if slug else {}
        return self._perform('POST', uri, headers=headers)

    def delete(self, uri: str) -> TransferResponse:
        return self._perform('DELETE', uri)

    def _perform(
        self,
        method: str,
        uri: str,
        headers: Optional[Dict[str, str]] = None,
        content: Optional[bytes] = None
    ) -> TransferResponse:
        try:
            response = self._client.request(method, uri, headers=headers, content=content)
        except httpx.TimeoutException as e:
            raise TransferError(f"{method} {uri} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransferError(f"{method} {uri} failed: {e}") from e

        logger.debug("repository_call", method=method, uri=uri, status=response.status_code)

        return TransferResponse(
            status_code=response.status_code,
            url=str(response.request.url),
            body=response.content,
            links=_links(response)
        )
