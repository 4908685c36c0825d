"""
RDF Vocabulary

Namespaces and terms the importer reads from snapshots or writes to the
target repository. All values are rdflib URIRefs.
"""

from __future__ import annotations

from rdflib import Namespace, URIRef
from rdflib.namespace import RDF


# =============================================================================
# NAMESPACES
# =============================================================================

REPOSITORY_NAMESPACE = "http://fedora.info/definitions/v4/repository#"
LDP_NAMESPACE = "http://www.w3.org/ns/ldp#"
PREMIS_NAMESPACE = "http://www.loc.gov/premis/rdf/v1#"
EBUCORE_NAMESPACE = "http://www.ebu.ch/metadata/ontologies/ebucore/ebucore#"
IANA_NAMESPACE = "http://www.iana.org/assignments/relation/"

FEDORA = Namespace(REPOSITORY_NAMESPACE)
LDP = Namespace(LDP_NAMESPACE)
PREMIS = Namespace(PREMIS_NAMESPACE)
EBUCORE = Namespace(EBUCORE_NAMESPACE)
IANA = Namespace(IANA_NAMESPACE)


# =============================================================================
# TERMS
# =============================================================================

RDF_TYPE = RDF.type

# Server-managed provenance (relaxed outside legacy mode)
CREATED_DATE = FEDORA.created
CREATED_BY = FEDORA.createdBy
LAST_MODIFIED_DATE = FEDORA.lastModified
LAST_MODIFIED_BY = FEDORA.lastModifiedBy
RELAXED_PREDICATES = frozenset({CREATED_DATE, CREATED_BY, LAST_MODIFIED_DATE, LAST_MODIFIED_BY})

# Versioning
HAS_VERSIONS = FEDORA.hasVersions
HAS_VERSION = FEDORA.hasVersion
VERSION_RESOURCE = FEDORA.Version

# Infrastructure types
REPOSITORY_ROOT = FEDORA.RepositoryRoot
PAIRTREE = FEDORA.Pairtree

# LDP
CONTAINER = LDP.Container
RDF_SOURCE = LDP.RDFSource
NON_RDF_SOURCE = LDP.NonRDFSource
CONTAINS = LDP.contains
MEMBERSHIP_RESOURCE = LDP.membershipResource
HAS_MEMBER_RELATION = LDP.hasMemberRelation

# Binary description
HAS_MESSAGE_DIGEST = PREMIS.hasMessageDigest
HAS_SIZE = PREMIS.hasSize
HAS_MIME_TYPE = EBUCORE.hasMimeType
DESCRIBEDBY = IANA.describedby

FORBIDDEN_TYPES = frozenset({CONTAINER, NON_RDF_SOURCE, RDF_SOURCE})

JCR_XML_SUBJECT = URIRef(REPOSITORY_NAMESPACE + "jcr/xml")
JCR_EXPORT_SUFFIX = "fcr:export?format=jcr/xml"


# =============================================================================
# ON-DISK AND URI MARKERS
# =============================================================================

FCR_VERSIONS = "fcr:versions"
FCR_METADATA = "fcr:metadata"
FCR_TOMBSTONE = "fcr:tombstone"
FCR_VERSIONS_ESCAPED = "fcr%3Aversions"
FCR_METADATA_ESCAPED = "fcr%3Ametadata"

BINARY_EXTENSION = ".binary"
EXTERNAL_RESOURCE_EXTENSION = ".external"
EXTERNAL_CONTENT_TYPE = "message/external-body"

PLACEHOLDER_CONTAINER_BODY = b"<> a <http://www.w3.org/ns/ldp#Container> ."
