import logging

from rest_framework import status, viewsets
from rest_framework.authentication import SessionAuthentication
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .models import WalletTransaction
from .serializers import DepositSerializer, WalletSerializer, WalletTransactionSerializer
from . import services

logger = logging.getLogger(__name__)

TRANSACTIONS_LIMIT = 50


class WalletViewSet(viewsets.GenericViewSet):
    """
    Wallet API:
    - balance
    - deposit
    - transactions
    """

    authentication_classes = [SessionAuthentication]
    permission_classes = [IsAuthenticated]
    serializer_class = WalletSerializer

    # ---------------------------------------------------
    # BALANCE
    # ---------------------------------------------------
    @action(detail=False, methods=["get"])
    def balance(self, request):
        wallet = services.ensure_wallet(request.user)
        return Response(self.get_serializer(wallet).data)

    # ---------------------------------------------------
    # DEPOSIT
    # ---------------------------------------------------
    @action(detail=False, methods=["post"])
    def deposit(self, request):
        serializer = DepositSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        amount = serializer.validated_data["amount"]
        wallet = services.deposit(request.user, amount)
        logger.info(f"Deposit of {amount} for user {request.user.pk}")

        return Response(
            {"status": True, "balance": str(wallet.balance)},
            status=status.HTTP_201_CREATED,
        )

    # ---------------------------------------------------
    # TRANSACTIONS
    # ---------------------------------------------------
    @action(detail=False, methods=["get"])
    def transactions(self, request):
        txs = WalletTransaction.objects.filter(user=request.user)[:TRANSACTIONS_LIMIT]
        return Response(WalletTransactionSerializer(txs, many=True).data)
