"""
Keyed JSON document store with prefix subscriptions.

Documents are addressed by slash-separated ids such as
``groups/<group_id>/route``. A subscriber registers for an id prefix,
immediately receives every matching document, and is then called again
after each ``set`` on a matching id.
"""
import copy
import logging
import threading
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import sessionmaker

from carpool_router.models.route_document import RouteDocument

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Subscriber = Callable[[str, Document], None]


class DocumentStore:
    def __init__(self):
        self._subscribers: Dict[int, tuple] = {}
        self._next_token = 0
        self._sub_lock = threading.Lock()

    def get(self, doc_id: str) -> Optional[Document]:
        raise NotImplementedError

    def query(self, prefix: str) -> Dict[str, Document]:
        raise NotImplementedError

    def _write(self, doc_id: str, data: Document) -> None:
        raise NotImplementedError

    def set(self, doc_id: str, data: Document, notify: bool = True) -> Document:
        """Store a copy of ``data``; with notify=False the caller must call ``notify`` itself"""
        if not doc_id:
            raise ValueError("Document id is required")
        stored = copy.deepcopy(data)
        self._write(doc_id, stored)
        if notify:
            self.notify(doc_id, stored)
        return copy.deepcopy(stored)

    def subscribe(self, prefix: str, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for ids starting with ``prefix``; returns an unsubscribe function"""
        with self._sub_lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = (prefix, callback)

        for doc_id, doc in sorted(self.query(prefix).items()):
            callback(doc_id, doc)

        def unsubscribe() -> None:
            with self._sub_lock:
                self._subscribers.pop(token, None)

        return unsubscribe

    def notify(self, doc_id: str, data: Document) -> None:
        with self._sub_lock:
            targets = [cb for prefix, cb in self._subscribers.values() if doc_id.startswith(prefix)]
        for callback in targets:
            try:
                callback(doc_id, copy.deepcopy(data))
            except Exception as e:
                logger.error(f"❌ Subscriber for {doc_id} failed: {str(e)}", exc_info=True)


class InMemoryDocumentStore(DocumentStore):
    def __init__(self):
        super().__init__()
        self._docs: Dict[str, Document] = {}
        self._lock = threading.Lock()

    def get(self, doc_id: str) -> Optional[Document]:
        with self._lock:
            doc = self._docs.get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def query(self, prefix: str) -> Dict[str, Document]:
        with self._lock:
            return {k: copy.deepcopy(v) for k, v in self._docs.items() if k.startswith(prefix)}

    def _write(self, doc_id: str, data: Document) -> None:
        with self._lock:
            self._docs[doc_id] = data


class SqlDocumentStore(DocumentStore):
    """Documents persisted in the ``route_documents`` table"""

    def __init__(self, session_factory: sessionmaker):
        super().__init__()
        self.session_factory = session_factory

    def get(self, doc_id: str) -> Optional[Document]:
        with self.session_factory() as db:
            row = db.get(RouteDocument, doc_id)
            return copy.deepcopy(row.data) if row is not None else None

    def query(self, prefix: str) -> Dict[str, Document]:
        with self.session_factory() as db:
            rows = db.query(RouteDocument).filter(RouteDocument.id.startswith(prefix, autoescape=True)).all()
            return {row.id: copy.deepcopy(row.data) for row in rows}

    def _write(self, doc_id: str, data: Document) -> None:
        with self.session_factory() as db:
            try:
                row = db.get(RouteDocument, doc_id)
                if row is None:
                    db.add(RouteDocument(id=doc_id, data=data))
                else:
                    row.data = data
                db.commit()
            except Exception:
                db.rollback()
                raise
        logger.debug(f"Stored document {doc_id}")
