from django.apps import AppConfig


class CrashConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "crash"
