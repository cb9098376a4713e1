from django.apps import AppConfig


class ToolsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.tools'

    def ready(self):
        # Populate ToolCatalog at startup
        from apps.tools import definitions  # noqa: F401
