from django.core.management.base import BaseCommand

from care.services.payments import expire_pending_payments


class Command(BaseCommand):
    help = "Fail pending payments older than --minutes and reset their orders."

    def add_arguments(self, parser):
        parser.add_argument("--minutes", type=int, default=15)

    def handle(self, *args, **opts):
        ids = expire_pending_payments(opts["minutes"])
        self.stdout.write(self.style.SUCCESS(f"Expired {len(ids)} payment(s)"))
