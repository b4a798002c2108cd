from django.apps import AppConfig


class DjangoEpisodesConfig(AppConfig):
    name = "django_episodes"
    verbose_name = "Episodes"
    default_auto_field = "django.db.models.BigAutoField"
