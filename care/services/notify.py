from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.utils import timezone

UPDATES_GROUP = 'updates'


def broadcast_update(kind: str, data: dict) -> None:
    """Push an event to every client connected to ``ws/updates/``."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    now = timezone.now()
    event = {'type': 'broadcast.update', 'kind': kind, 'ts': now.isoformat(), 'data': data}
    async_to_sync(channel_layer.group_send)(UPDATES_GROUP, event)
