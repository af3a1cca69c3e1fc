from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Wallet statements for back-office staff (at /api/wallets/)
    path('api/wallets/', include('wallets.urls')),
]
