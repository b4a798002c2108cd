# tests/conftest.py
"""
Pytest configuration for repo-level contract tests.
"""
import django
import pytest
from django.conf import settings


# Runs ahead of the per-package conftests so a full run installs every app
@pytest.hookimpl(tryfirst=True)
def pytest_configure():
    if not settings.configured:
        settings.configure(
            DEBUG=True,
            SECRET_KEY="test-secret-key-for-contract-tests",
            DATABASES={
                "default": {
                    "ENGINE": "django.db.backends.sqlite3",
                    "NAME": ":memory:",
                }
            },
            INSTALLED_APPS=[
                "django.contrib.contenttypes",
                "django.contrib.auth",
                # Layer 0
                "django_eventbus",
                # Layer 1
                "django_episodes",
            ],
            DEFAULT_AUTO_FIELD="django.db.models.BigAutoField",
            USE_TZ=True,
            TIME_ZONE="UTC",
            EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend",
            DEFAULT_FROM_EMAIL="clinica@example.com",
        )
    django.setup()
