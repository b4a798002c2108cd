"""Configuration helpers for django-eventbus."""

from datetime import timedelta
from functools import lru_cache
from importlib import import_module

from django.conf import settings

from .exceptions import StoreLoadError


DEFAULTS = {
    "DEDUPE_COLLECTION": "automation-processed",
    "DEDUPE_TTL_DAYS": 30,
    "NOTIFY_TIMEOUT": 5.0,
    "CHAT_WEBHOOK_URL": None,
    "NOTIFY_EMAIL_TO": None,
    "NOTIFY_EMAIL_FROM": None,
    "STORE": "django_eventbus.stores.DjangoDocumentStore",
    "PROCESS_ON_COMMIT": False,
}


def get_setting(name: str, default=None):
    """Get a setting with EVENTBUS_ prefix, falling back to package defaults."""
    if default is None:
        default = DEFAULTS.get(name)
    return getattr(settings, f"EVENTBUS_{name}", default)


def get_dedupe_ttl() -> timedelta:
    """Time-to-live for dedupe records."""
    return timedelta(days=get_setting("DEDUPE_TTL_DAYS"))


@lru_cache(maxsize=16)
def load_store_class(dotted_path: str):
    """
    Import a document store class from dotted path.

    Raises StoreLoadError for bad imports or non-subclass stores.
    """
    from .stores import BaseDocumentStore

    try:
        module_path, class_name = dotted_path.rsplit('.', 1)
    except ValueError:
        raise StoreLoadError(dotted_path, "Invalid dotted path format")

    try:
        module = import_module(module_path)
    except ImportError as e:
        raise StoreLoadError(dotted_path, f"Cannot import module: {e}")

    try:
        store_class = getattr(module, class_name)
    except AttributeError:
        raise StoreLoadError(dotted_path, f"Class '{class_name}' not found in module")

    if not isinstance(store_class, type) or not issubclass(store_class, BaseDocumentStore):
        raise StoreLoadError(
            dotted_path,
            f"'{class_name}' must be a subclass of BaseDocumentStore"
        )

    return store_class


def get_store():
    """Instantiate the configured document store."""
    return load_store_class(get_setting("STORE"))()


def clear_caches():
    """Clear cached store classes and the default processor. Useful for testing."""
    from .processor import get_default_processor

    load_store_class.cache_clear()
    get_default_processor.cache_clear()
