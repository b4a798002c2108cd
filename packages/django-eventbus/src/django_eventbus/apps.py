from django.apps import AppConfig


class DjangoEventbusConfig(AppConfig):
    name = "django_eventbus"
    verbose_name = "Event Bus"
    default_auto_field = "django.db.models.BigAutoField"
