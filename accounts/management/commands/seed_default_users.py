"""Creates the default admin, TA and student accounts.

Usage:
    python manage.py seed_default_users [--password=admin123]
"""

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from accounts.models import AccountProfile

Role = AccountProfile.Role

DEFAULT_USERS = (
    ("admin", Role.ADMIN, False),
    ("ta1", Role.TA, False),
    ("student1", Role.STUDENT, True),
)


class Command(BaseCommand):
    help = "Create the default admin, ta1 and student1 accounts if they are missing"

    def add_arguments(self, parser):
        parser.add_argument(
            "--password",
            dest="password",
            default="admin123",
            help="Initial password for every created account",
        )

    @transaction.atomic
    def handle(self, *args, **options):
        User = get_user_model()
        created = 0

        for username, role, must_change in DEFAULT_USERS:
            if User.objects.filter(username=username).exists():
                self.stdout.write(f"{username}: already exists, skipped")
                continue
            user = User.objects.create_user(
                username=username,
                password=options["password"],
                is_staff=role == Role.ADMIN,
            )
            profile, _ = AccountProfile.objects.get_or_create(user=user)
            profile.role = role
            profile.must_change_password = must_change
            profile.save()
            created += 1
            self.stdout.write(f"{username}: created as {role}")

        self.stdout.write(self.style.SUCCESS(f"Default users ready ({created} created)"))
