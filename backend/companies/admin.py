from django.contrib import admin

from companies.models import Company


@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "payment_type", "created_at"]
    list_filter = ["payment_type"]
    search_fields = ["name"]
