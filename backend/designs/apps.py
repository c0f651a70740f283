from django.apps import AppConfig


class DesignsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'backend.designs'

    def ready(self):
        """Import signals when app is ready"""
        import backend.designs.signals  # noqa: F401
