"""Pytest configuration for django-eventbus tests."""

import django
import pytest
from django.conf import settings


def pytest_configure():
    if not settings.configured:
        settings.configure(
            DEBUG=True,
            SECRET_KEY="test-secret-key-for-eventbus",
            DATABASES={
                "default": {
                    "ENGINE": "django.db.backends.sqlite3",
                    "NAME": ":memory:",
                }
            },
            INSTALLED_APPS=[
                "django.contrib.contenttypes",
                "django.contrib.auth",
                "django_eventbus",
            ],
            DEFAULT_AUTO_FIELD="django.db.models.BigAutoField",
            USE_TZ=True,
            TIME_ZONE="UTC",
            EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend",
            DEFAULT_FROM_EMAIL="clinica@example.com",
        )
    django.setup()


class RecordingNotifier:
    """Notifier fake that records every call."""

    def __init__(self):
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args)


class FailingNotifier:
    """Notifier fake that always raises, like an unreachable webhook."""

    def __init__(self, exc=None):
        self.exc = exc or ConnectionError("webhook unreachable")
        self.attempts = 0

    def __call__(self, *args):
        self.attempts += 1
        raise self.exc


@pytest.fixture
def memory_store():
    """Fresh in-memory document store."""
    from django_eventbus.stores import InMemoryDocumentStore

    return InMemoryDocumentStore()


@pytest.fixture
def django_store(db):
    """Database-backed document store."""
    from django_eventbus.stores import DjangoDocumentStore

    return DjangoDocumentStore()


@pytest.fixture
def chat():
    return RecordingNotifier()


@pytest.fixture
def email():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return FailingNotifier()


@pytest.fixture
def handler_context(memory_store, chat, email):
    from django_eventbus.handlers import HandlerContext

    return HandlerContext(store=memory_store, notify_chat=chat, notify_email=email)


@pytest.fixture
def processor(memory_store, chat, email):
    """Processor over the in-memory store with recording notifiers."""
    from django_eventbus.processor import create_event_processor

    return create_event_processor(store=memory_store, notify_chat=chat, notify_email=email)


@pytest.fixture
def make_event():
    """Factory for canonical events with sensible defaults."""
    from django_eventbus.events import CanonicalEvent, EventSubject

    counter = {"n": 0}

    def _make(event_type="Inventory.Deducted", meta=None, event_id=None,
              subject=("procedure", "proc-1"), timestamp=1_700_000_000_000, actor_user_id=None):
        counter["n"] += 1
        return CanonicalEvent(
            id=event_id or f"evt-{counter['n']}",
            type=event_type,
            subject=EventSubject(kind=subject[0], id=subject[1]),
            actor_user_id=actor_user_id,
            timestamp=timestamp,
            meta=meta or {},
        )

    return _make
