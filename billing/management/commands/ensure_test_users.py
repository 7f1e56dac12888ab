from django.core.management.base import BaseCommand
from django.contrib.auth.hashers import make_password
from billing.models import User

TEST_SET = [
    ("admin1", "admin"),
    ("cashier1", "cashier"),
    ("reception1", "reception"),
    ("doctor1", "doctor"),
]


class Command(BaseCommand):
    help = "Ensure one test user per billing role exists with the given password (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--password", default="123456")

    def handle(self, *args, **opts):
        password = make_password(opts["password"])
        for username, role in TEST_SET:
            u, created = User.objects.get_or_create(
                username=username,
                defaults={"role": role, "password": password, "is_active": True},
            )
            if not created:
                u.password = password
                u.role = role
                u.is_active = True
                u.save(update_fields=["password", "role", "is_active"])
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role})"))
        self.stdout.write(self.style.SUCCESS("All test users ensured."))
