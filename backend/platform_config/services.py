from platform_config.models import SystemSettings


def get_settings() -> SystemSettings:
    """Return the settings row, creating it with defaults on first use."""
    system_settings, _ = SystemSettings.objects.get_or_create(pk=1)
    return system_settings
