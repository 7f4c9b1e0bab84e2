import logging
from decimal import Decimal
from statistics import median

from rest_framework import generics, permissions, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from .models import GameRound
from .rooms import RoomUnavailable, UnknownRoom, registry
from .serializers import AutoBetSerializer, AutoCashoutSerializer, GameRoundSerializer
from .wallet import WalletError

logger = logging.getLogger(__name__)

DEFAULT_ROOM = "main"
RECENT_ROUNDS_LIMIT = 50
STATS_WINDOW = 500

ERROR_STATUS = {
    "INVALID_AMOUNT": status.HTTP_400_BAD_REQUEST,
    "INSUFFICIENT_FUNDS": status.HTTP_400_BAD_REQUEST,
    "NOT_BETTING_PHASE": status.HTTP_409_CONFLICT,
    "BET_ALREADY_ACTIVE": status.HTTP_409_CONFLICT,
    "NO_ACTIVE_BET": status.HTTP_409_CONFLICT,
    "NOT_PLAYING_PHASE": status.HTTP_409_CONFLICT,
    "LEDGER_UPDATE_FAILED": status.HTTP_502_BAD_GATEWAY,
    "ROOM_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _room_name(request):
    return request.query_params.get("room") or request.data.get("room") or DEFAULT_ROOM


def _get_room(request):
    """Returns (room, None) or (None, error response)."""
    name = _room_name(request)
    try:
        return registry.get(name), None
    except UnknownRoom:
        return None, Response(
            {"success": False, "error": "UNKNOWN_ROOM"}, status=status.HTTP_404_NOT_FOUND
        )
    except RoomUnavailable:
        logger.warning(f"Room {name} requested but hosted elsewhere")
        return None, Response(
            {"success": False, "error": "ROOM_UNAVAILABLE"},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


def _failure(result):
    code = result.error.value
    return Response({"success": False, "error": code}, status=ERROR_STATUS[code])


def _balance(room, user_id):
    try:
        return str(room.ledger.wallet.get_balance(user_id))
    except WalletError:
        logger.exception(f"Balance lookup failed for user {user_id}")
        return None


@api_view(["GET"])
@permission_classes([AllowAny])
def game_state(request):
    room, error = _get_room(request)
    if error:
        return error
    user_id = request.user.pk if request.user.is_authenticated else None
    return Response(room.state(user_id))


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def place_bet(request):
    room, error = _get_room(request)
    if error:
        return error

    user_id = request.user.pk
    result = room.place_bet(user_id, request.data.get("amount"))
    if not result.ok:
        return _failure(result)

    bet = room.ledger.current_bet(user_id)
    return Response({
        "success": True,
        "bet_id": result.value,
        "round_id": bet.round_id,
        "amount": str(bet.amount),
        "balance": _balance(room, user_id),
    })


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def cash_out(request):
    room, error = _get_room(request)
    if error:
        return error

    user_id = request.user.pk
    result = room.cash_out(user_id)
    if not result.ok:
        return _failure(result)

    bet = room.ledger.current_bet(user_id)
    return Response({
        "success": True,
        "bet_id": bet.id,
        "payout": str(result.value),
        "multiplier": str(bet.cash_out_multiplier),
        "balance": _balance(room, user_id),
    })


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def auto_bet(request):
    room, error = _get_room(request)
    if error:
        return error

    serializer = AutoBetSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    if serializer.validated_data["enabled"]:
        room.auto_bet.enable(request.user.pk, serializer.validated_data["amount"])
    else:
        room.auto_bet.disable(request.user.pk)
    return Response({"success": True, **room.auto_bet.status(request.user.pk)})


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def auto_cashout(request):
    room, error = _get_room(request)
    if error:
        return error

    serializer = AutoCashoutSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    target = serializer.validated_data["target"]
    if target is None:
        room.auto_cashout.clear(request.user.pk)
    else:
        room.auto_cashout.set_target(request.user.pk, target)
    current = room.auto_cashout.target_for(request.user.pk)
    return Response({"success": True, "target": str(current) if current is not None else None})


class RecentRoundsView(generics.ListAPIView):
    serializer_class = GameRoundSerializer
    permission_classes = [permissions.AllowAny]
    pagination_class = None

    def get_queryset(self):
        room = self.request.query_params.get("room") or DEFAULT_ROOM
        return GameRound.objects.filter(room=room).order_by("-id")[:RECENT_ROUNDS_LIMIT]


@api_view(["GET"])
@permission_classes([AllowAny])
def get_stats(request):
    """Crash point statistics over the latest STATS_WINDOW rounds of a room."""
    room = request.query_params.get("room") or DEFAULT_ROOM
    points = list(
        GameRound.objects.filter(room=room)
        .order_by("-id")
        .values_list("crash_point", flat=True)[:STATS_WINDOW]
    )
    if not points:
        return Response({"room": room, "rounds": 0})

    two = Decimal("2.00")
    average = (sum(points) / len(points)).quantize(Decimal("0.01"))
    return Response({
        "room": room,
        "rounds": len(points),
        "average": str(average),
        "median": str(Decimal(median(points)).quantize(Decimal("0.01"))),
        "max": str(max(points)),
        "share_at_most_2x": round(sum(1 for p in points if p <= two) / len(points), 4),
    })
