"""
Document storage backends for users, profile diffs, audit logs and sessions.
"""

from .index import IDocumentStore, Query, SimpleInMemoryDocumentStore, apply_query
from .sqlite_store import SQLiteDocumentStore
from .firestore_store import FirestoreDocumentStore
from .types import ASCENDING, DESCENDING, DocumentSnapshot
from .factory import get_document_store

__all__ = [
    'IDocumentStore',
    'Query',
    'SimpleInMemoryDocumentStore',
    'SQLiteDocumentStore',
    'FirestoreDocumentStore',
    'DocumentSnapshot',
    'ASCENDING',
    'DESCENDING',
    'apply_query',
    'get_document_store'
]
