"""Tests for document stores."""

import threading
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import IntegrityError
from django.utils import timezone
from freezegun import freeze_time

from django_eventbus.exceptions import StoreError
from django_eventbus.stores import CREATE_ATTEMPTS, InMemoryDocumentStore


@pytest.fixture(params=["memory_store", "django_store"])
def store(request):
    """Run each test against both store implementations."""
    return request.getfixturevalue(request.param)


class TestDocumentStore:
    """Behaviour shared by every document store."""

    def test_get_missing_returns_none(self, store):
        assert store.get("tasks", "nope") is None

    def test_set_then_get(self, store):
        store.set("tasks", "t1", {"kind": "INVENTORY_ALERT", "priority": "high"})

        assert store.get("tasks", "t1") == {"kind": "INVENTORY_ALERT", "priority": "high"}

    def test_set_replaces_without_merge(self, store):
        """A plain set overwrites the whole document."""
        store.set("tasks", "t1", {"a": 1, "b": 2})
        store.set("tasks", "t1", {"a": 3})

        assert store.get("tasks", "t1") == {"a": 3}

    def test_set_merge_keeps_other_fields(self, store):
        store.set("tasks", "t1", {"a": 1, "b": 2})
        store.set("tasks", "t1", {"a": 3}, merge=True)

        assert store.get("tasks", "t1") == {"a": 3, "b": 2}

    def test_set_merge_on_missing_creates(self, store):
        store.set("tasks", "t1", {"a": 1}, merge=True)

        assert store.get("tasks", "t1") == {"a": 1}

    def test_get_returns_a_copy(self, store):
        """Mutating a returned document does not touch the stored one."""
        store.set("tasks", "t1", {"tags": ["x"]})

        document = store.get("tasks", "t1")
        document["tags"].append("y")

        assert store.get("tasks", "t1") == {"tags": ["x"]}

    def test_collections_are_separate(self, store):
        store.set("tasks", "same-id", {"from": "tasks"})
        store.set("kpi-events", "same-id", {"from": "kpi"})

        assert store.get("tasks", "same-id") == {"from": "tasks"}
        assert store.get("kpi-events", "same-id") == {"from": "kpi"}

    def test_add_generates_id(self, store):
        first = store.add("tasks", {"n": 1})
        second = store.add("tasks", {"n": 2})

        assert first != second
        assert store.get("tasks", first) == {"n": 1}

    def test_create_only_once(self, store):
        """Second create of a live document loses."""
        assert store.create("automation-processed", "evt-1", {"eventId": "evt-1"}) is True
        assert store.create("automation-processed", "evt-1", {"eventId": "evt-1"}) is False

    def test_create_does_not_overwrite(self, store):
        store.create("automation-processed", "evt-1", {"attempt": 1})
        store.create("automation-processed", "evt-1", {"attempt": 2})

        assert store.get("automation-processed", "evt-1") == {"attempt": 1}

    def test_create_replaces_expired_document(self, store):
        """An expired document counts as absent."""
        past = timezone.now() - timedelta(seconds=1)
        store.create("automation-processed", "evt-1", {"attempt": 1}, expires_at=past)

        assert store.get("automation-processed", "evt-1") is None
        assert store.create("automation-processed", "evt-1", {"attempt": 2}) is True
        assert store.get("automation-processed", "evt-1") == {"attempt": 2}

    def test_create_with_future_expiry_is_live(self, store):
        future = timezone.now() + timedelta(days=30)
        store.create("automation-processed", "evt-1", {"attempt": 1}, expires_at=future)

        assert store.get("automation-processed", "evt-1") == {"attempt": 1}
        assert store.create("automation-processed", "evt-1", {"attempt": 2}) is False

    def test_delete(self, store):
        store.set("tasks", "t1", {"a": 1})
        store.delete("tasks", "t1")

        assert store.get("tasks", "t1") is None

    def test_delete_missing_is_noop(self, store):
        store.delete("tasks", "never-existed")

    def test_delete_allows_create_again(self, store):
        store.create("automation-processed", "evt-1", {})
        store.delete("automation-processed", "evt-1")

        assert store.create("automation-processed", "evt-1", {}) is True

    def test_list_skips_expired(self, store):
        past = timezone.now() - timedelta(seconds=1)
        store.set("tasks", "live", {"a": 1})
        store.create("tasks", "stale", {"a": 2}, expires_at=past)

        assert store.list("tasks") == {"live": {"a": 1}}


class TestInMemoryDocumentStoreConcurrency:
    """create must stay atomic across threads."""

    def test_exactly_one_thread_wins_create(self):
        store = InMemoryDocumentStore()
        barrier = threading.Barrier(8)
        results = []
        results_lock = threading.Lock()

        def claim():
            barrier.wait()
            won = store.create("automation-processed", "evt-1", {"eventId": "evt-1"})
            with results_lock:
                results.append(won)

        threads = [threading.Thread(target=claim) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1
        assert results.count(False) == 7


@pytest.mark.django_db
class TestDjangoDocumentStore:
    """Database specifics of DjangoDocumentStore."""

    def test_losing_create_leaves_transaction_usable(self, django_store):
        """The unique-constraint violation is contained in a savepoint."""
        from django_eventbus.models import StoredDocument

        django_store.create("automation-processed", "evt-1", {})
        assert django_store.create("automation-processed", "evt-1", {}) is False

        assert StoredDocument.objects.filter(collection="automation-processed").count() == 1

    def test_set_clears_expiry(self, django_store):
        """A plain set makes the document permanent."""
        from django_eventbus.models import StoredDocument

        django_store.create("tasks", "t1", {"a": 1}, expires_at=timezone.now() + timedelta(days=1))
        django_store.set("tasks", "t1", {"a": 2})

        assert StoredDocument.objects.get(collection="tasks", doc_id="t1").expires_at is None

    def test_create_retries_when_conflicting_row_vanishes(self, django_store):
        """A row deleted between the failed insert and the lock is retried."""
        from django_eventbus.models import StoredDocument

        original_create = StoredDocument.objects.create
        calls = []

        def create_after_conflict(**kwargs):
            calls.append(kwargs["doc_id"])
            if len(calls) == 1:
                raise IntegrityError("duplicate key value violates unique constraint")
            return original_create(**kwargs)

        with patch.object(StoredDocument.objects, "create", side_effect=create_after_conflict):
            assert django_store.create("automation-processed", "evt-1", {"eventId": "evt-1"}) is True

        assert calls == ["evt-1", "evt-1"]
        assert django_store.get("automation-processed", "evt-1") == {"eventId": "evt-1"}

    def test_create_gives_up_after_repeated_conflicts(self, django_store):
        from django_eventbus.models import StoredDocument

        with patch.object(
            StoredDocument.objects, "create", side_effect=IntegrityError("duplicate key")
        ) as create:
            with pytest.raises(StoreError):
                django_store.create("automation-processed", "evt-1", {})

        assert create.call_count == CREATE_ATTEMPTS

    def test_replacing_expired_document_resets_created_at(self, django_store):
        from django_eventbus.models import StoredDocument

        now = timezone.now()
        with freeze_time(now - timedelta(days=31)):
            django_store.create(
                "automation-processed", "evt-1", {"attempt": 1},
                expires_at=now - timedelta(days=1),
            )

        django_store.create("automation-processed", "evt-1", {"attempt": 2}, expires_at=now + timedelta(days=30))

        document = StoredDocument.objects.get(collection="automation-processed", doc_id="evt-1")
        assert document.created_at >= now
        assert document.data == {"attempt": 2}
