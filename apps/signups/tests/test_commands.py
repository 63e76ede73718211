from __future__ import annotations

import io
import tempfile
from pathlib import Path
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase

from apps.signups.tests.factories import create_course, fast_hashing, make_service


@fast_hashing
class ImportMembersCommandTests(TestCase):
    def setUp(self):
        self.service = make_service()
        with self.service.session() as document:
            self.course = create_course(document, code="SE3350")

        patcher = mock.patch(
            "apps.signups.management.commands.import_members.get_signup_service",
            return_value=self.service,
        )
        patcher.start()
        self.addCleanup(patcher.stop)

        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.csv_path = Path(tmp.name) / "members.csv"
        self.csv_path.write_text(
            "Doe,Jane,jane,pw-jane1\nSmith,Bob,bob\nRoe,Rick,rick,pw-rick1\n", encoding="utf-8"
        )

    def test_import_members(self):
        stdout = io.StringIO()
        call_command(
            "import_members", course_id=self.course.id, path=str(self.csv_path), stdout=stdout
        )

        members = self.service.snapshot().members
        self.assertEqual([m.username for m in members], ["jane", "rick"])
        self.assertTrue(get_user_model().objects.filter(username="jane").exists())
        output = stdout.getvalue()
        self.assertIn("added 2 member(s)", output)
        self.assertIn("created 2 account(s)", output)
        self.assertIn("Skipped 1 row(s)", output)

    def test_import_without_accounts(self):
        call_command(
            "import_members",
            course_id=self.course.id,
            path=str(self.csv_path),
            no_accounts=True,
            stdout=io.StringIO(),
        )
        self.assertFalse(get_user_model().objects.filter(username="jane").exists())

    def test_unknown_course(self):
        with self.assertRaisesMessage(CommandError, "Course not found"):
            call_command("import_members", course_id=999, path=str(self.csv_path))

    def test_missing_file(self):
        with self.assertRaises(CommandError):
            call_command("import_members", course_id=self.course.id, path="/nonexistent/members.csv")
