"""
Document store used by the ledger

Documents are plain dicts addressed by (collection, id). The in-memory store
is what tests and single-process tools use; a hosted document database only
has to provide the same five calls.
"""
import copy
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

LISTINGS = 'listings'
SALE_TRANSACTIONS = 'saleTransactions'


class DocumentNotFoundError(KeyError):
    """Raised when updating a document that does not exist"""
    pass


class DocumentStore(ABC):

    @abstractmethod
    def save(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or overwrite a document"""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return a document or None"""

    @abstractmethod
    def update(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Merge fields into an existing document and return the result"""

    @abstractmethod
    def query_by_user(self, collection: str, user_id: str, order_by: str,
                      start: Optional[str] = None, end: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Documents of one user, newest first by ``order_by``.

        ``start``/``end`` are inclusive ISO-8601 bounds on ``order_by``.
        """

    @abstractmethod
    def find(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        """Documents whose fields equal every given filter"""


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store, safe to share between threads"""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def save(self, collection, doc_id, data):
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    def get(self, collection, doc_id):
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def update(self, collection, doc_id, updates):
        with self._lock:
            docs = self._collections.get(collection, {})
            if doc_id not in docs:
                raise DocumentNotFoundError(f"{collection}/{doc_id}")
            docs[doc_id].update(copy.deepcopy(updates))
            return copy.deepcopy(docs[doc_id])

    def query_by_user(self, collection, user_id, order_by, start=None, end=None):
        with self._lock:
            docs = [copy.deepcopy(d) for d in self._collections.get(collection, {}).values()
                    if d.get('user_id') == user_id]
        if start is not None:
            docs = [d for d in docs if d.get(order_by) and d[order_by] >= start]
        if end is not None:
            docs = [d for d in docs if d.get(order_by) and d[order_by] <= end]
        docs.sort(key=lambda d: d.get(order_by) or '', reverse=True)
        return docs

    def find(self, collection, **filters):
        with self._lock:
            return [copy.deepcopy(d) for d in self._collections.get(collection, {}).values()
                    if all(d.get(k) == v for k, v in filters.items())]
