from django.contrib import admin
from .models import GameRound


@admin.register(GameRound)
class GameRoundAdmin(admin.ModelAdmin):
    list_display = ("round_id", "room", "crash_point", "occurred_at")
    list_filter = ("room",)
    search_fields = ("round_id",)
    readonly_fields = ("round_id", "room", "crash_point", "occurred_at", "created_at")
