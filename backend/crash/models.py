from django.db import models


class GameRound(models.Model):
    """Durable log of completed rounds, written from round-completed events."""

    round_id = models.CharField(max_length=32, unique=True)
    room = models.CharField(max_length=64, default="main")
    crash_point = models.DecimalField(max_digits=8, decimal_places=2)
    occurred_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-id"]
        indexes = [models.Index(fields=["room", "occurred_at"], name="crash_round_room_time_idx")]

    def __str__(self):
        return f"Round {self.round_id} @ {self.crash_point}x"
