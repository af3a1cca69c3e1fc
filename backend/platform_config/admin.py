from django.contrib import admin

from platform_config.models import SystemSettings


@admin.register(SystemSettings)
class SystemSettingsAdmin(admin.ModelAdmin):
    list_display = ["id", "driver_acceptance_timeout", "updated_at"]
    readonly_fields = ["updated_at"]
