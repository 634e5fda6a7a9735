"""
Store Module - Catalog and document store access.
=================================================

- catalog: Static list of known institutions with name resolution
- documents: Read-only access to institution and scholarship records
"""

from unipreply.store.catalog import Catalog, catalog_from_records, load_catalog
from unipreply.store.documents import (
    DocumentStore,
    InMemoryDocumentStore,
    JsonDocumentStore,
    get_document_store,
)

__all__ = [
    "Catalog",
    "catalog_from_records",
    "load_catalog",
    "DocumentStore",
    "InMemoryDocumentStore",
    "JsonDocumentStore",
    "get_document_store",
]
