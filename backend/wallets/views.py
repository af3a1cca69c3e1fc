from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAdminUser

from wallets.models import Wallet
from wallets.serializers import WalletSerializer, WalletTransactionSerializer
from wallets import services


class WalletStatementView(APIView):
    """Balance plus the most recent ledger rows of one wallet (back-office staff only)."""
    permission_classes = [IsAdminUser]

    def get(self, request, wallet_id):
        wallet = Wallet.objects.filter(id=wallet_id).first()
        if wallet is None:
            return Response({"error": "Wallet not found"}, status=404)

        try:
            limit = min(int(request.query_params.get("limit", 50)), 200)
            offset = max(int(request.query_params.get("offset", 0)), 0)
        except ValueError:
            return Response({"error": "limit and offset must be integers"}, status=400)

        if limit < 1:
            return Response({"error": "limit must be at least 1"}, status=400)

        transactions = services.get_wallet_statement(wallet, limit=limit, offset=offset)
        return Response({
            "wallet": WalletSerializer(wallet).data,
            "transactions": WalletTransactionSerializer(transactions, many=True).data,
        })
