import logging
import uuid
from decimal import Decimal

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from crash.wallet import InsufficientFunds, LedgerError
from .models import Wallet, WalletTransaction

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


# ======================================================
# INTERNAL
# ======================================================
def _reference(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def _record(user_id, amount: Decimal, tx_type: str, reference: str, meta: dict):
    return WalletTransaction.objects.create(
        user_id=user_id,
        amount=amount,
        tx_type=tx_type,
        reference=reference,
        meta=meta,
    )


# ======================================================
# PROVISIONING
# ======================================================
def ensure_wallet(user) -> Wallet:
    wallet, created = Wallet.objects.get_or_create(
        user=user,
        defaults={"balance": Decimal(str(getattr(settings, "WALLET_INITIAL_BALANCE", "0.00")))},
    )
    if created:
        logger.info(f"Wallet provisioned for user {user.pk} with {wallet.balance}")
    return wallet


# ======================================================
# DEBIT (single conditional UPDATE, no read-modify-write)
# ======================================================
@transaction.atomic
def debit_atomic(user_id, amount: Decimal, reference: str, meta: dict = None):
    if amount <= 0:
        raise ValueError("Invalid debit amount")

    updated = Wallet.objects.filter(user_id=user_id, balance__gte=amount).update(
        balance=F("balance") - amount,
        updated_at=timezone.now(),
    )
    if not updated:
        raise InsufficientFunds(f"Insufficient funds for user {user_id}")

    return _record(user_id, amount, WalletTransaction.DEBIT, reference, meta or {})


# ======================================================
# CREDIT
# ======================================================
@transaction.atomic
def credit_atomic(user_id, amount: Decimal, reference: str, meta: dict = None):
    if amount < 0:
        raise ValueError("Invalid credit amount")

    updated = Wallet.objects.filter(user_id=user_id).update(
        balance=F("balance") + amount,
        updated_at=timezone.now(),
    )
    if not updated:
        raise LedgerError(f"No wallet for user {user_id}")

    return _record(user_id, amount, WalletTransaction.CREDIT, reference, meta or {})


def deposit(user, amount: Decimal) -> Wallet:
    ensure_wallet(user)
    credit_atomic(user.pk, amount, _reference("deposit"), {"reason": "deposit"})
    return Wallet.objects.get(user=user)


# ======================================================
# WALLET LEDGER FOR THE CRASH GAME
# ======================================================
class DjangoWalletLedger:
    """Wallet ledger over the wallets tables; every movement is one atomic UPDATE."""

    def get_balance(self, user_id) -> Decimal:
        try:
            balance = Wallet.objects.filter(user_id=user_id).values_list("balance", flat=True).first()
        except DatabaseError as exc:
            raise LedgerError(str(exc)) from exc
        return balance if balance is not None else ZERO

    def debit(self, user_id, amount: Decimal, reference: str = None) -> None:
        try:
            debit_atomic(user_id, amount, reference or _reference("crash-bet"), {"reason": "crash_bet"})
        except DatabaseError as exc:
            raise LedgerError(str(exc)) from exc

    def credit(self, user_id, amount: Decimal, reference: str = None) -> None:
        try:
            credit_atomic(
                user_id, amount, reference or _reference("crash-cashout"), {"reason": "crash_cashout"}
            )
        except DatabaseError as exc:
            raise LedgerError(str(exc)) from exc
