from django.conf import settings
from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand

from care.models import Doctor, User

TEST_SET = [
    ("admin1", User.ROLE_ADMIN),
    ("doctor1", User.ROLE_DOCTOR),
    ("staff1", User.ROLE_STAFF),
    ("patient1", User.ROLE_PATIENT),
]


class Command(BaseCommand):
    help = "Ensure test users exist with the test password (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--password", default=None, help="Password to set (default: TEST_USER_PASSWORD or 123456)")

    def handle(self, *args, **opts):
        if settings.ENV == "prod":
            self.stderr.write(self.style.ERROR("Refusing to create test users in production"))
            return
        password = opts["password"] or getattr(settings, "TEST_USER_PASSWORD", "123456")
        for username, role in TEST_SET:
            u, created = User.objects.get_or_create(
                username=username,
                defaults={"role": role, "password": make_password(password), "is_active": True},
            )
            if not created:
                # reset password, role and active flag
                u.password = make_password(password)
                u.role = role
                u.is_active = True
                u.save(update_fields=["password", "role", "is_active"])
            if role == User.ROLE_DOCTOR:
                Doctor.objects.get_or_create(user=u, defaults={"specialization": "General medicine"})
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role})"))
        self.stdout.write(self.style.SUCCESS("All test users ensured."))
