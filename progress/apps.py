from django.apps import AppConfig


class ProgressAppConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "progress"
    verbose_name = "Progress & completion tracking"

    engine = None

    def ready(self):
        # One engine per process, built once the app registry is loaded.
        from .engine import ProgressEngine

        self.engine = ProgressEngine()
