"""
Document store module - a small collection/document API with two backends.

``JsonDocumentStore`` keeps one JSON file per collection on local disk.
``FirestoreDocumentStore`` talks to Cloud Firestore through firebase-admin.
Both hand documents back as plain dicts carrying their id under ``"id"``.
"""

import json
import logging
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core.exceptions import GoogleAPIError

logger = logging.getLogger(__name__)

# Firestore write batches are capped at 500 operations
BATCH_LIMIT = 500


class StoreError(Exception):
    """Raised when the backing store cannot be read or written."""


class JsonDocumentStore:
    """File-backed store: ``<data_dir>/<collection>.json`` holds a list of documents."""

    def __init__(self, data_dir):
        self.data_dir = Path(data_dir)
        self._lock = threading.RLock()

    def _path(self, collection):
        return self.data_dir / f"{collection}.json"

    def _load(self, collection) -> list:
        path = self._path(collection)
        if not path.exists():
            return []
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise StoreError(f"Error reading {path}: {e}") from e

    def _save(self, collection, documents: list) -> None:
        path = self._path(collection)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(documents, f, indent=2, ensure_ascii=False)
        except IOError as e:
            raise StoreError(f"Error saving {path}: {e}") from e

    def add(self, collection, data: dict) -> str:
        doc_id = uuid.uuid4().hex
        with self._lock:
            documents = self._load(collection)
            documents.append(dict(data, id=doc_id))
            self._save(collection, documents)
        return doc_id

    def all(self, collection, order_by=None, descending=False) -> list:
        with self._lock:
            documents = self._load(collection)
        if order_by:
            documents.sort(key=lambda d: d.get(order_by, 0), reverse=descending)
        return documents

    def top(self, collection, field, limit) -> list:
        return self.all(collection, order_by=field, descending=True)[:limit]

    def where(self, collection, field, value) -> list:
        return [d for d in self.all(collection) if d.get(field) == value]

    def replace(self, collection, old_id, data: dict) -> str:
        """Delete ``old_id`` and add ``data`` in one write."""
        doc_id = uuid.uuid4().hex
        with self._lock:
            documents = [d for d in self._load(collection) if d.get("id") != old_id]
            documents.append(dict(data, id=doc_id))
            self._save(collection, documents)
        return doc_id

    def clear(self, collection) -> int:
        with self._lock:
            removed = len(self._load(collection))
            self._save(collection, [])
        return removed


@contextmanager
def _firestore_errors(action):
    try:
        yield
    except GoogleAPIError as e:
        raise StoreError(f"Firestore {action} failed: {e}") from e


def _to_dict(snapshot):
    return dict(snapshot.to_dict() or {}, id=snapshot.id)


class FirestoreDocumentStore:
    """Cloud Firestore backend over a ``firestore.client()`` instance."""

    def __init__(self, client):
        self.client = client

    def _collection(self, name):
        return self.client.collection(name)

    def add(self, collection, data: dict) -> str:
        with _firestore_errors(f"add to {collection}"):
            _, ref = self._collection(collection).add(data)
        return ref.id

    def all(self, collection, order_by=None, descending=False) -> list:
        query = self._collection(collection)
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        with _firestore_errors(f"read of {collection}"):
            return [_to_dict(doc) for doc in query.stream()]

    def top(self, collection, field, limit) -> list:
        query = (self._collection(collection)
                 .order_by(field, direction=firestore.Query.DESCENDING)
                 .limit(limit))
        with _firestore_errors(f"read of {collection}"):
            return [_to_dict(doc) for doc in query.stream()]

    def where(self, collection, field, value) -> list:
        query = self._collection(collection).where(filter=firestore.FieldFilter(field, "==", value))
        with _firestore_errors(f"query of {collection}"):
            return [_to_dict(doc) for doc in query.stream()]

    def replace(self, collection, old_id, data: dict) -> str:
        """Delete ``old_id`` and add ``data`` atomically with a write batch."""
        col = self._collection(collection)
        batch = self.client.batch()
        batch.delete(col.document(old_id))
        new_ref = col.document()
        batch.set(new_ref, data)
        with _firestore_errors(f"batch write to {collection}"):
            batch.commit()
        return new_ref.id

    def clear(self, collection) -> int:
        removed = 0
        with _firestore_errors(f"clear of {collection}"):
            batch = self.client.batch()
            pending = 0
            for doc in self._collection(collection).stream():
                batch.delete(doc.reference)
                pending += 1
                removed += 1
                if pending == BATCH_LIMIT:
                    batch.commit()
                    batch = self.client.batch()
                    pending = 0
            if pending:
                batch.commit()
        return removed


def firestore_client(credentials_path="", project_id=""):
    """Initialise the default firebase app once and return its Firestore client."""
    try:
        app = firebase_admin.get_app()
    except ValueError:
        if credentials_path:
            cred = credentials.Certificate(credentials_path)
        else:
            cred = credentials.ApplicationDefault()
        options = {"projectId": project_id} if project_id else None
        app = firebase_admin.initialize_app(cred, options)
        logger.info("Firebase app initialised (project=%s)", project_id or "default")
    return firestore.client(app)


def make_store(config):
    """Build the store selected by ``STORE_BACKEND``."""
    backend = config["STORE_BACKEND"]
    if backend == "json":
        return JsonDocumentStore(config["DATA_DIR"])
    if backend == "firestore":
        client = firestore_client(config.get("FIREBASE_CREDENTIALS", ""),
                                  config.get("FIREBASE_PROJECT_ID", ""))
        return FirestoreDocumentStore(client)
    raise ValueError(f"Unknown store backend {backend!r}")
