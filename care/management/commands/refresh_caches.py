from django.conf import settings
from django.core.cache import cache
from django.core.management.base import BaseCommand
from django.utils import timezone
from channels.layers import get_channel_layer
from asgiref.sync import async_to_sync

from care.services import doctors, treatment_stats
from care.services.notify import UPDATES_GROUP


class Command(BaseCommand):
    help = "Warm and refresh API caches; broadcast WebSocket refresh event."

    def handle(self, *args, **options):
        now = timezone.now()
        keys_refreshed = []

        # doctor list base variants
        doctors.invalidate_list_cache()
        for available_only in (False, True):
            qs = doctors.list_doctors(available_only=available_only)
            key = doctors.list_cache_key(available_only=available_only)
            cache.set(key, {'data': [doctors.format_doctor(d) for d in qs]}, settings.CACHE_TTL)
            keys_refreshed.append(key)

        # general treatment statistics
        treatment_stats.general_stats(refresh=True)
        keys_refreshed.append(treatment_stats.GENERAL_STATS_CACHE_KEY)

        channel_layer = get_channel_layer()
        if channel_layer is not None:
            event = {"type": "broadcast.refresh", "version": int(now.timestamp()), "ts": now.isoformat(),
                     "keys": keys_refreshed[:50]}
            async_to_sync(channel_layer.group_send)(UPDATES_GROUP, event)

        self.stdout.write(self.style.SUCCESS(f"Refreshed {len(keys_refreshed)} keys at {now}"))
