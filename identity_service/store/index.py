"""
Document store interface and the in-memory backend.

All persistent state (users, profileDiffs, logs, identitySessionIds) goes
through IDocumentStore so the service can run against Firestore in
production and SQLite or memory locally.
"""

import copy
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from .types import ASCENDING, DESCENDING, SUPPORTED_OPERATORS, DocumentSnapshot, FieldCondition


class Query:
    """
    Chainable query builder.

    Backends subclass it and implement stream(); where/order_by/limit only
    record the request and return a new Query.
    """

    def __init__(self, collection: str, conditions: List[FieldCondition] = None,
                 ordering: Optional[Tuple[str, str]] = None, max_results: Optional[int] = None):
        self.collection = collection
        self.conditions = list(conditions or [])
        self.ordering = ordering
        self.max_results = max_results

    def _copy(self, **changes) -> 'Query':
        clone = copy.copy(self)
        clone.conditions = list(self.conditions)
        for key, value in changes.items():
            setattr(clone, key, value)
        return clone

    def where(self, field: str, op: str, value: Any) -> 'Query':
        if op not in SUPPORTED_OPERATORS:
            raise ValueError(f"Unsupported query operator: {op}")
        clone = self._copy()
        clone.conditions.append(FieldCondition(field, op, value))
        return clone

    def order_by(self, field: str, direction: str = ASCENDING) -> 'Query':
        if direction not in (ASCENDING, DESCENDING):
            raise ValueError(f"Unsupported order direction: {direction}")
        return self._copy(ordering=(field, direction))

    def limit(self, count: int) -> 'Query':
        if count < 1:
            raise ValueError("limit must be >= 1")
        return self._copy(max_results=count)

    def stream(self) -> Iterator[DocumentSnapshot]:
        raise NotImplementedError

    def get(self) -> List[DocumentSnapshot]:
        return list(self.stream())


class IDocumentStore(ABC):
    """Abstract interface for document storage operations."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        """Read one document. Missing documents come back with exists == False."""
        pass

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        """Write a document, replacing it unless merge is set."""
        pass

    @abstractmethod
    def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Create a document with a generated id and return the id."""
        pass

    @abstractmethod
    def query(self, collection: str) -> Query:
        """Start a query over a collection."""
        pass

    def close(self) -> None:
        """Release backend resources."""
        pass


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "in": lambda a, b: a in b,
}


def matches(data: Dict[str, Any], condition: FieldCondition) -> bool:
    """Evaluate one where() clause against a document. Missing fields never match."""
    if condition.field not in data:
        return False
    try:
        return bool(_OPERATORS[condition.op](data[condition.field], condition.value))
    except TypeError:
        # Mismatched types never match, same as Firestore
        return False


def apply_query(documents: Iterable[Tuple[str, Dict[str, Any]]], query: Query) -> List[DocumentSnapshot]:
    """Filter, sort and limit (id, data) pairs the way a query describes."""
    selected = [
        (doc_id, data) for doc_id, data in documents
        if all(matches(data, c) for c in query.conditions)
    ]

    if query.ordering:
        field, direction = query.ordering
        # Documents without the ordering field are excluded, as in Firestore
        selected = [(doc_id, data) for doc_id, data in selected if field in data]
        selected.sort(key=lambda item: item[1][field], reverse=direction == DESCENDING)

    if query.max_results is not None:
        selected = selected[:query.max_results]

    return [DocumentSnapshot(id=doc_id, data=copy.deepcopy(data)) for doc_id, data in selected]


class _InMemoryQuery(Query):

    def __init__(self, store: 'SimpleInMemoryDocumentStore', collection: str, **kwargs):
        super().__init__(collection, **kwargs)
        self._store = store

    def stream(self) -> Iterator[DocumentSnapshot]:
        return iter(apply_query(self._store._snapshot(self.collection), self))


class SimpleInMemoryDocumentStore(IDocumentStore):
    """Dictionary-backed implementation of IDocumentStore, used in tests and dry runs."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _snapshot(self, collection: str) -> List[Tuple[str, Dict[str, Any]]]:
        with self._lock:
            docs = self._collections.get(collection, {})
            return [(doc_id, copy.deepcopy(data)) for doc_id, data in docs.items()]

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        with self._lock:
            data = self._collections.get(collection, {}).get(doc_id)
            return DocumentSnapshot(id=doc_id, data=copy.deepcopy(data) if data is not None else None)

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            if merge and doc_id in docs:
                docs[doc_id].update(copy.deepcopy(data))
            else:
                docs[doc_id] = copy.deepcopy(data)

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, data)
        return doc_id

    def query(self, collection: str) -> Query:
        return _InMemoryQuery(self, collection)
