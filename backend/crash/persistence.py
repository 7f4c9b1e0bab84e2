import logging
from decimal import Decimal

from django.db import DatabaseError
from django.utils.dateparse import parse_datetime

from .models import GameRound

logger = logging.getLogger(__name__)


class RoundRecorder:
    """Engine listener that stores every round-completed event as a GameRound row."""

    def __init__(self, room: str):
        self.room = room

    def __call__(self, event: dict) -> None:
        if event["type"] != "round.crash":
            return
        data = event["data"]
        try:
            GameRound.objects.create(
                round_id=data["round_id"],
                room=self.room,
                crash_point=Decimal(data["crash_point"]),
                occurred_at=parse_datetime(data["occurred_at"]),
            )
        except DatabaseError:
            logger.exception(f"Could not record round {data['round_id']} for room {self.room}")
