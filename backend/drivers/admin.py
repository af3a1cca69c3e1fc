from django.contrib import admin
from drivers.models import Driver


@admin.register(Driver)
class DriverAdmin(admin.ModelAdmin):
    """Admin panel for managing drivers"""

    list_display = [
        "id",
        "name",
        "phone_number",
        "status",
        "created_at",
    ]

    list_filter = [
        "status",
    ]

    search_fields = [
        "name",
        "phone_number",
    ]

    readonly_fields = [
        "created_at",
    ]

    ordering = ("name",)
