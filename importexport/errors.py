"""
Import Errors

Typed failure states for the import pipeline.

TAXONOMY:
=========
1. Structural      - malformed version URI, missing RDF property (abort run)
2. Transport/Auth  - network failure, 401 (abort, except for binaries)
3. Conflict        - 410 tombstone (recoverable once when policy allows)
4. Referential     - dangling in-namespace reference (healed, never raised)
"""

from __future__ import annotations
from enum import Enum, auto
from typing import Optional


class ErrorCode(Enum):
    """
    Explicit error codes. Every fatal state of a run maps to exactly one.
    """
    # Structural
    MALFORMED_VERSION_URI = auto()
    MISSING_PROPERTY = auto()
    INVALID_CONFIGURATION = auto()

    # Transport / auth
    AUTHENTICATION_REQUIRED = auto()
    TRANSFER_FAILED = auto()

    # Conflict
    RESOURCE_GONE = auto()

    # Partial failure (binary only)
    BINARY_IMPORT_FAILED = auto()


class ImportExportError(Exception):
    """Base class for all failures raised by the import pipeline."""

    code: ErrorCode = ErrorCode.TRANSFER_FAILED

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message}"


class ConfigurationError(ImportExportError):
    code = ErrorCode.INVALID_CONFIGURATION


class MalformedVersionUriError(ImportExportError):
    """A version URI does not carry a label segment after fcr:versions."""
    code = ErrorCode.MALFORMED_VERSION_URI

    def __init__(self, uri: str):
        super().__init__(f"Version for resource {uri} does not provide a required label")
        self.uri = uri


class MissingPropertyError(ImportExportError):
    code = ErrorCode.MISSING_PROPERTY

    def __init__(self, subject: str, predicate: str):
        super().__init__(f"Resource {subject} is missing required property {predicate}")
        self.subject = subject
        self.predicate = predicate


class AuthenticationRequiredError(ImportExportError):
    code = ErrorCode.AUTHENTICATION_REQUIRED

    def __init__(self, uri: str):
        super().__init__(f"Authentication required (401) writing {uri}")
        self.uri = uri


class TransferError(ImportExportError):
    """Non-success response or network failure for a single request."""
    code = ErrorCode.TRANSFER_FAILED

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ResourceGoneError(ImportExportError):
    """
    The target answered 410: a tombstone blocks the URI.

    Carries the tombstone link when the server advertised one.
    """
    code = ErrorCode.RESOURCE_GONE

    def __init__(self, resource_uri: str, tombstone: Optional[str] = None):
        super().__init__(f"Resource {resource_uri} is gone (410)")
        self.resource_uri = resource_uri
        self.tombstone = tombstone


class BinaryImportError(ImportExportError):
    code = ErrorCode.BINARY_IMPORT_FAILED

    def __init__(self, message: str, uri: str):
        super().__init__(message)
        self.uri = uri
