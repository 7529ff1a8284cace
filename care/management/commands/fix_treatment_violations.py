from django.core.management.base import BaseCommand

from care.services.treatment_rules import fix_violations
from care.services.treatment_stats import invalidate_general_stats


class Command(BaseCommand):
    help = "End all but the newest active treatment of every patient. Dry run unless --apply is given."

    def add_arguments(self, parser):
        parser.add_argument("--apply", action="store_true", help="Write the changes")

    def handle(self, *args, **opts):
        result = fix_violations(dry_run=not opts["apply"])
        for action in result["actions"]:
            self.stdout.write(f"patient {action['patientId']}: end treatment {action['treatmentId']} "
                              f"(keep {action['keptTreatmentId']})")
        for error in result["errors"]:
            self.stderr.write(self.style.ERROR(f"patient {error['patientId']}: {error['message']}"))
        if not result["dryRun"]:
            invalidate_general_stats()
        mode = "dry run" if result["dryRun"] else "applied"
        self.stdout.write(self.style.SUCCESS(
            f"{mode}: {result['processedPatients']} patients, {result['treatmentsEnded']} treatments"))
