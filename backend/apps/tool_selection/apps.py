from django.apps import AppConfig


class ToolSelectionConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.tool_selection'
    verbose_name = 'Tool selection'
