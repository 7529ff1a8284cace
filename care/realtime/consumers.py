import json

from channels.generic.websocket import AsyncWebsocketConsumer

from care.services.notify import UPDATES_GROUP


class UpdatesConsumer(AsyncWebsocketConsumer):
    """Push payment and cache-refresh events to signed-in dashboard clients."""
    GROUP = UPDATES_GROUP

    async def connect(self):
        user = self.scope.get("user")
        if not (user and user.is_authenticated):
            await self.close(code=4401)
            return
        await self.channel_layer.group_add(self.GROUP, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "role": getattr(user, "role", None)}))

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(self.GROUP, self.channel_name)

    async def receive(self, text_data=None, bytes_data=None):
        # clients keep the socket alive with {"type": "ping"}
        try:
            message = json.loads(text_data or "{}")
        except ValueError:
            return
        if message.get("type") == "ping":
            await self.send(json.dumps({"type": "pong"}))

    async def broadcast_update(self, event):
        # {"type": "broadcast.update", "kind": "payment.updated", "ts": "...", "data": {...}}
        await self.send(json.dumps({"type": event["kind"], "ts": event["ts"], "data": event["data"]}, default=str))

    async def broadcast_refresh(self, event):
        # {"type": "broadcast.refresh", "version": int, "ts": "...", "keys": [...]}
        await self.send(json.dumps({"type": "cache.refresh", "version": event["version"], "keys": event["keys"]}))
