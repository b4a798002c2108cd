"""Document store interface consumed by the processor and automation handlers.

The store is addressed by (collection, doc_id). ``create`` is the single
atomic primitive the engine relies on: the dedupe ledger uses it so that,
of several workers racing on one event id, exactly one wins.
"""

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from .exceptions import StoreError

logger = logging.getLogger(__name__)

CREATE_ATTEMPTS = 3


class BaseDocumentStore(ABC):
    """Abstract base class for document stores."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """Return a copy of the document fields, or None if absent or expired."""
        raise NotImplementedError

    @abstractmethod
    def set(self, collection: str, doc_id: str, fields: dict, merge: bool = False) -> None:
        """
        Write a document.

        With merge=False the document is replaced wholesale; with merge=True
        the given fields are merged into the existing document.
        """
        raise NotImplementedError

    @abstractmethod
    def add(self, collection: str, fields: dict) -> str:
        """Create a document with a generated id and return the id."""
        raise NotImplementedError

    @abstractmethod
    def create(
        self,
        collection: str,
        doc_id: str,
        fields: dict,
        expires_at: Optional[datetime] = None,
    ) -> bool:
        """
        Atomically create a document if no live document exists.

        Returns:
            True if this call created the document (or replaced an expired
            one), False if a non-expired document already exists.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is a no-op."""
        raise NotImplementedError

    @abstractmethod
    def list(self, collection: str) -> dict[str, dict]:
        """Return all live documents in a collection keyed by doc id."""
        raise NotImplementedError


def _is_expired(expires_at, now=None) -> bool:
    if expires_at is None:
        return False
    return expires_at <= (now or timezone.now())


class DjangoDocumentStore(BaseDocumentStore):
    """Document store backed by the StoredDocument model."""

    def _live(self, collection):
        from django.db.models import Q
        from .models import StoredDocument

        return StoredDocument.objects.filter(collection=collection).filter(
            Q(expires_at__isnull=True) | Q(expires_at__gt=timezone.now())
        )

    def get(self, collection, doc_id):
        document = self._live(collection).filter(doc_id=doc_id).first()
        if document is None:
            return None
        return copy.deepcopy(document.data)

    @transaction.atomic
    def set(self, collection, doc_id, fields, merge=False):
        from .models import StoredDocument

        document = (
            StoredDocument.objects.select_for_update()
            .filter(collection=collection, doc_id=doc_id)
            .first()
        )
        if document is None:
            StoredDocument.objects.create(
                collection=collection,
                doc_id=doc_id,
                data=dict(fields),
            )
            return

        if merge and not _is_expired(document.expires_at):
            data = dict(document.data or {})
            data.update(fields)
        else:
            data = dict(fields)
        document.data = data
        document.expires_at = None
        document.save(update_fields=["data", "expires_at", "updated_at"])

    def add(self, collection, fields):
        from .models import StoredDocument

        doc_id = uuid.uuid4().hex
        StoredDocument.objects.create(collection=collection, doc_id=doc_id, data=dict(fields))
        return doc_id

    def create(self, collection, doc_id, fields, expires_at=None):
        from .models import StoredDocument

        with transaction.atomic():
            for _ in range(CREATE_ATTEMPTS):
                try:
                    # Savepoint so the IntegrityError does not poison the outer block
                    with transaction.atomic():
                        StoredDocument.objects.create(
                            collection=collection,
                            doc_id=doc_id,
                            data=dict(fields),
                            expires_at=expires_at,
                        )
                    return True
                except IntegrityError:
                    pass

                existing = (
                    StoredDocument.objects.select_for_update()
                    .filter(collection=collection, doc_id=doc_id)
                    .first()
                )
                if existing is None:
                    # Deleted between the failed insert and the lock
                    continue
                if not _is_expired(existing.expires_at):
                    return False

                logger.debug(f"Replacing expired document {collection}/{doc_id}")
                existing.data = dict(fields)
                existing.expires_at = expires_at
                existing.created_at = timezone.now()
                existing.save(update_fields=["data", "expires_at", "created_at", "updated_at"])
                return True

        raise StoreError(f"Could not create {collection}/{doc_id} after {CREATE_ATTEMPTS} attempts")

    def delete(self, collection, doc_id):
        from .models import StoredDocument

        StoredDocument.objects.filter(collection=collection, doc_id=doc_id).delete()

    def list(self, collection):
        return {
            document.doc_id: copy.deepcopy(document.data)
            for document in self._live(collection).order_by("created_at")
        }


class InMemoryDocumentStore(BaseDocumentStore):
    """
    Process-local document store for development and tests.

    A single lock serializes every operation, which makes ``create`` atomic
    across threads.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._documents: dict[tuple[str, str], tuple[dict, Optional[datetime]]] = {}

    def _get_live(self, collection, doc_id):
        entry = self._documents.get((collection, doc_id))
        if entry is None or _is_expired(entry[1]):
            return None
        return entry[0]

    def get(self, collection, doc_id):
        with self._lock:
            data = self._get_live(collection, doc_id)
            return copy.deepcopy(data) if data is not None else None

    def set(self, collection, doc_id, fields, merge=False):
        with self._lock:
            existing = self._get_live(collection, doc_id)
            if merge and existing is not None:
                data = dict(existing)
                data.update(copy.deepcopy(fields))
            else:
                data = copy.deepcopy(dict(fields))
            self._documents[(collection, doc_id)] = (data, None)

    def add(self, collection, fields):
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, fields)
        return doc_id

    def create(self, collection, doc_id, fields, expires_at=None):
        with self._lock:
            if self._get_live(collection, doc_id) is not None:
                return False
            self._documents[(collection, doc_id)] = (copy.deepcopy(dict(fields)), expires_at)
            return True

    def delete(self, collection, doc_id):
        with self._lock:
            self._documents.pop((collection, doc_id), None)

    def list(self, collection):
        with self._lock:
            return {
                doc_id: copy.deepcopy(data)
                for (coll, doc_id), (data, expires_at) in self._documents.items()
                if coll == collection and not _is_expired(expires_at)
            }
