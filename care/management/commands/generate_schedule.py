from datetime import date

from django.core.management.base import BaseCommand, CommandError
from rest_framework.exceptions import APIException

from care.services.scheduling import generate_week
from care.services.treatments import error_message


class Command(BaseCommand):
    help = "Generate the weekly doctor shift schedule starting at --start (default: today)."

    def add_arguments(self, parser):
        parser.add_argument("--start", type=date.fromisoformat, default=None, help="YYYY-MM-DD")
        parser.add_argument("--per-shift", type=int, default=None, dest="per_shift")
        parser.add_argument("--seed", type=int, default=None)

    def handle(self, *args, **opts):
        try:
            result = generate_week(doctors_per_shift=opts["per_shift"], start_date=opts["start"], seed=opts["seed"])
        except APIException as exc:
            raise CommandError(error_message(exc))
        self.stdout.write(self.style.SUCCESS(result["message"]))
        self.stdout.write(f"assigned={result['totalAssignedShifts']} unfilled={result['remainingShifts']}")
        for slot in result["shiftsNeedingDoctors"]:
            self.stdout.write(self.style.WARNING(f"  {slot['date']} {slot['shift']}: missing {slot['missing']}"))
