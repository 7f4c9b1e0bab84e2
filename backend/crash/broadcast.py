import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def group_name_for(room: str) -> str:
    return f"crash_{room}"


class ChannelsBroadcaster:
    """
    Engine listener that relays every room event to the room's channel group.

    Event types map onto consumer handlers the Channels way:
    "round.multiplier" -> CrashConsumer.round_multiplier.
    """

    def __init__(self, room: str):
        self.room = room
        self.group_name = group_name_for(room)

    def __call__(self, event: dict) -> None:
        channel_layer = get_channel_layer()
        if channel_layer is None:
            return
        async_to_sync(channel_layer.group_send)(self.group_name, event)
