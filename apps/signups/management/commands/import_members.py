from __future__ import annotations

from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from accounts.services import ensure_student_account
from apps.signups.exceptions import SignupError
from apps.signups.service_utils import registry
from apps.signups.services import get_signup_service


class Command(BaseCommand):
    help = "Enroll course members from a lastName,firstName,username,password CSV file"

    def add_arguments(self, parser):
        parser.add_argument("--course-id", type=int, required=True)
        parser.add_argument("--path", required=True)
        parser.add_argument(
            "--no-accounts",
            action="store_true",
            help="Do not create student logins for the imported members",
        )

    def handle(self, *args, **options):
        course_id = options["course_id"]
        path = Path(options["path"]).expanduser()
        if not path.exists():
            raise CommandError(f"File '{path}' does not exist")

        rows = registry.parse_member_csv(path.read_text(encoding="utf-8-sig"))
        try:
            with get_signup_service().session() as document:
                added = registry.bulk_add_members(document, course_id, rows)
        except SignupError as exc:
            raise CommandError(str(exc.detail)) from exc

        accounts_created = 0
        if not options["no_accounts"]:
            passwords = registry.row_passwords(rows)
            for member in added:
                if ensure_student_account(member.username, passwords.get(member.username, "")):
                    accounts_created += 1

        skipped = len(rows) - len(added)
        self.stdout.write(
            self.style.SUCCESS(
                f"Processed {len(rows)} row(s); added {len(added)} member(s) "
                f"to course {course_id}, created {accounts_created} account(s)."
            )
        )
        if skipped:
            self.stdout.write(self.style.WARNING(f"Skipped {skipped} row(s)."))
