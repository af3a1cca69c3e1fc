from django.apps import AppConfig


class PlatformConfigConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'platform_config'
