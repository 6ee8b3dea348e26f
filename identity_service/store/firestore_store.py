"""
Firestore-backed document store.
"""

import json
from typing import Any, Dict, Iterator, Optional

from .index import IDocumentStore, Query
from .types import DocumentSnapshot


class _FirestoreQuery(Query):

    def __init__(self, store: 'FirestoreDocumentStore', collection: str, **kwargs):
        super().__init__(collection, **kwargs)
        self._store = store

    def stream(self) -> Iterator[DocumentSnapshot]:
        field_filter = self._store.field_filter
        native = self._store.client.collection(self.collection)
        for condition in self.conditions:
            native = native.where(filter=field_filter(condition.field, condition.op, condition.value))
        if self.ordering:
            field, direction = self.ordering
            native = native.order_by(field, direction=direction)
        if self.max_results is not None:
            native = native.limit(self.max_results)

        for doc in native.stream(timeout=self._store.timeout):
            yield DocumentSnapshot(id=doc.id, data=doc.to_dict())


class FirestoreDocumentStore(IDocumentStore):
    """Google Cloud Firestore implementation of IDocumentStore."""

    def __init__(self, credentials_json: str, timeout: float = 10.0, client: Optional[Any] = None):
        """
        Initialize the Firestore client.

        Args:
            credentials_json: Service account key as a JSON string
            timeout: Per-call timeout in seconds
            client: Pre-built firestore.Client, mainly for tests
        """
        try:
            from google.cloud.firestore_v1.base_query import FieldFilter
            self.field_filter = FieldFilter
        except ImportError:
            raise ImportError("google-cloud-firestore not installed. Please install google-cloud-firestore package.")

        self.timeout = timeout
        self.client = client if client is not None else self._build_client(credentials_json)

    @staticmethod
    def _build_client(credentials_json: str):
        from google.cloud import firestore
        from google.oauth2 import service_account

        if not credentials_json:
            raise ValueError("Firestore credentials are empty")

        info = json.loads(credentials_json)
        credentials = service_account.Credentials.from_service_account_info(info)
        return firestore.Client(project=info.get("project_id"), credentials=credentials)

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        doc = self.client.collection(collection).document(doc_id).get(timeout=self.timeout)
        return DocumentSnapshot(id=doc_id, data=doc.to_dict() if doc.exists else None)

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self.client.collection(collection).document(doc_id).set(data, merge=merge, timeout=self.timeout)

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        _, ref = self.client.collection(collection).add(data, timeout=self.timeout)
        return ref.id

    def query(self, collection: str) -> Query:
        return _FirestoreQuery(self, collection)

    def close(self) -> None:
        self.client.close()
