from django.urls import path
from .views import WalletStatementView

urlpatterns = [
    path("<int:wallet_id>/statement/", WalletStatementView.as_view(), name="wallet-statement"),
]
