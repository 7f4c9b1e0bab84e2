from django.urls import path
from . import views

urlpatterns = [
    path("state/", views.game_state, name="crash_state"),
    path("place-bet/", views.place_bet, name="crash_place_bet"),
    path("cash-out/", views.cash_out, name="crash_cash_out"),
    path("auto-bet/", views.auto_bet, name="crash_auto_bet"),
    path("auto-cashout/", views.auto_cashout, name="crash_auto_cashout"),
    path("recent-rounds/", views.RecentRoundsView.as_view(), name="recent-rounds"),
    path("stats/", views.get_stats, name="crash_stats"),
]
