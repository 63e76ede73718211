from __future__ import annotations

import json
import tempfile
from datetime import timedelta
from pathlib import Path
from unittest import mock

from django.contrib.auth import get_user_model
from django.contrib.auth.hashers import check_password
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings

from accounts.models import AccountProfile
from apps.signups.records import format_timestamp
from apps.signups.service_utils import slots as slot_service
from apps.signups.tests.factories import (
    NOW,
    create_course,
    create_member,
    create_sheet,
    create_slot,
    create_user,
    fast_hashing,
    make_service,
)

Role = AccountProfile.Role


@fast_hashing
class SignupApiTestCase(TestCase):
    """Runs the API against an in-memory document and a frozen clock."""

    def setUp(self):
        self.service = make_service()
        patcher = mock.patch(
            "apps.signups.api.views.get_signup_service", return_value=self.service
        )
        patcher.start()
        self.addCleanup(patcher.stop)

        self.ta = create_user("ta1", role=Role.TA)
        self.admin = create_user("admin", role=Role.ADMIN)
        self.student = create_user("jdoe", role=Role.STUDENT)

    def post_json(self, url, payload=None):
        return self.client.post(url, data=json.dumps(payload or {}), content_type="application/json")

    def put_json(self, url, payload):
        return self.client.put(url, data=json.dumps(payload), content_type="application/json")

    def seed(self, callback):
        with self.service.session() as document:
            return callback(document)


class CourseApiTests(SignupApiTestCase):
    payload = {"term": "2025W", "code": "SE3350", "section": "001", "name": "Software Engineering"}

    def test_ta_creates_and_lists_courses(self):
        self.client.force_login(self.ta)

        resp = self.post_json("/api/secure/courses", self.payload)
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["course"]["id"], 1)

        resp = self.client.get("/api/secure/courses")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([c["code"] for c in resp.json()["courses"]], ["SE3350"])

    def test_duplicate_course_uses_error_envelope(self):
        self.client.force_login(self.admin)
        self.post_json("/api/secure/courses", self.payload)

        resp = self.post_json("/api/secure/courses", self.payload)
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json(), {"ok": False, "error": "Course already exists"})

    def test_missing_fields(self):
        self.client.force_login(self.ta)
        resp = self.post_json("/api/secure/courses", {"term": "2025W"})
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.json()["ok"])

    def test_update_and_delete(self):
        self.client.force_login(self.ta)
        course_id = self.post_json("/api/secure/courses", self.payload).json()["course"]["id"]

        resp = self.put_json(f"/api/secure/courses/{course_id}", {"name": "SE II"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["course"]["name"], "SE II")

        self.seed(lambda doc: create_sheet(doc, doc.course(course_id)))
        resp = self.put_json(f"/api/secure/courses/{course_id}", {"section": "002"})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("Only name is editable", resp.json()["error"])

        resp = self.client.delete(f"/api/secure/courses/{course_id}")
        self.assertEqual(resp.status_code, 400)

        resp = self.client.delete("/api/secure/courses/99")
        self.assertEqual(resp.status_code, 404)

    def test_delete_returns_id(self):
        self.client.force_login(self.ta)
        course_id = self.post_json("/api/secure/courses", self.payload).json()["course"]["id"]

        resp = self.client.delete(f"/api/secure/courses/{course_id}")
        self.assertEqual(resp.json(), {"ok": True, "deletedId": course_id})

    def test_students_cannot_manage_courses(self):
        self.client.force_login(self.student)
        resp = self.post_json("/api/secure/courses", self.payload)
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json(), {"ok": False, "error": "TA access required"})

    def test_anonymous_requests_are_rejected(self):
        resp = self.client.get("/api/secure/courses")
        self.assertEqual(resp.status_code, 401)
        self.assertFalse(resp.json()["ok"])


class MemberApiTests(SignupApiTestCase):
    def setUp(self):
        super().setUp()
        self.course = self.seed(lambda doc: create_course(doc, code="SE3350"))
        self.client.force_login(self.ta)

    def test_add_member_provisions_student_account(self):
        resp = self.post_json(
            f"/api/secure/members/{self.course.id}",
            {"username": "newbie", "firstName": "New", "lastName": "Bie", "password": "first-pass"},
        )
        self.assertEqual(resp.status_code, 201)
        member = resp.json()["member"]
        self.assertEqual(member["username"], "newbie")
        self.assertNotIn("password", member)

        user = get_user_model().objects.get(username="newbie")
        self.assertTrue(user.check_password("first-pass"))
        self.assertEqual(user.account_profile.role, Role.STUDENT)
        self.assertTrue(user.account_profile.must_change_password)

    def test_existing_account_is_left_alone(self):
        self.post_json(
            f"/api/secure/members/{self.course.id}",
            {"username": "jdoe", "firstName": "J", "lastName": "Doe", "password": "other-pass"},
        )
        self.student.refresh_from_db()
        self.assertTrue(self.student.check_password("account-pass"))

    def test_duplicate_member(self):
        payload = {"username": "jdoe", "firstName": "J", "lastName": "Doe", "password": "pw-123456"}
        self.post_json(f"/api/secure/members/{self.course.id}", payload)
        resp = self.post_json(f"/api/secure/members/{self.course.id}", payload)
        self.assertEqual(resp.status_code, 409)

    def test_bulk_upload(self):
        upload = SimpleUploadedFile(
            "members.csv",
            b"\xef\xbb\xbfDoe,Jane,jane,pw-jane1\nSmith,Bob,bob\nRoe,Rick,rick,pw-rick1\n",
            content_type="text/csv",
        )
        resp = self.client.post(f"/api/secure/members/{self.course.id}/bulk", {"file": upload})

        self.assertEqual(resp.status_code, 200)
        self.assertEqual([m["username"] for m in resp.json()["added"]], ["jane", "rick"])
        self.assertTrue(get_user_model().objects.filter(username="rick").exists())

        resp = self.client.get(f"/api/secure/members/{self.course.id}")
        self.assertEqual(len(resp.json()["members"]), 2)

    def test_bulk_upload_repeated_username_keeps_first_password(self):
        upload = SimpleUploadedFile(
            "members.csv",
            b"Doe,Ann,ann,first-pw-1\nDoe,Ann,ann,second-pw-2\n",
            content_type="text/csv",
        )
        resp = self.client.post(f"/api/secure/members/{self.course.id}/bulk", {"file": upload})

        self.assertEqual([m["username"] for m in resp.json()["added"]], ["ann"])
        member = self.service.snapshot().find_member(self.course.id, "ann")
        self.assertTrue(check_password("first-pw-1", member.password))
        user = get_user_model().objects.get(username="ann")
        self.assertTrue(user.check_password("first-pw-1"))
        self.assertFalse(user.check_password("second-pw-2"))

    def test_bulk_upload_requires_file(self):
        resp = self.client.post(f"/api/secure/members/{self.course.id}/bulk", {})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "CSV file required")

    def test_delete_member(self):
        member = self.seed(lambda doc: create_member(doc, doc.course(self.course.id)))

        resp = self.client.delete(f"/api/secure/members/{self.course.id}/{member.id}")
        self.assertEqual(resp.status_code, 200)
        resp = self.client.delete(f"/api/secure/members/{self.course.id}/{member.id}")
        self.assertEqual(resp.status_code, 404)


class SheetAndSlotApiTests(SignupApiTestCase):
    def setUp(self):
        super().setUp()
        self.course = self.seed(lambda doc: create_course(doc))
        self.client.force_login(self.ta)

    def _slot_payload(self, start, minutes=30, max_members=2):
        return {
            "startTime": format_timestamp(start),
            "endTime": format_timestamp(start + timedelta(minutes=minutes)),
            "maxMembers": max_members,
        }

    def test_sheet_lifecycle(self):
        resp = self.post_json(f"/api/secure/sheets/{self.course.id}", {"assignmentName": "Lab 1"})
        self.assertEqual(resp.status_code, 201)
        sheet_id = resp.json()["sheet"]["id"]

        resp = self.post_json(f"/api/secure/sheets/{self.course.id}", {"assignmentName": "LAB 1"})
        self.assertEqual(resp.status_code, 409)

        resp = self.put_json(f"/api/secure/sheets/one/{sheet_id}", {"description": "Bring laptop"})
        self.assertEqual(resp.json()["sheet"]["description"], "Bring laptop")
        self.assertEqual(resp.json()["sheet"]["assignmentName"], "Lab 1")

        resp = self.client.get(f"/api/secure/sheets/{self.course.id}")
        self.assertEqual(len(resp.json()["sheets"]), 1)

        resp = self.client.delete(f"/api/secure/sheets/one/{sheet_id}")
        self.assertEqual(resp.status_code, 200)

    def test_slot_lifecycle(self):
        sheet = self.seed(lambda doc: create_sheet(doc, doc.course(self.course.id)))
        start = NOW + timedelta(days=1)

        resp = self.post_json(f"/api/secure/slots/{sheet.id}", self._slot_payload(start))
        self.assertEqual(resp.status_code, 201)
        slot = resp.json()["slot"]
        self.assertEqual(slot["startTime"], "2025-03-11T12:00:00.000Z")
        self.assertEqual(slot["endTime"], "2025-03-11T12:30:00.000Z")
        self.assertEqual((slot["state"], slot["signupCount"], slot["availableSpots"]), ("open", 0, 2))

        resp = self.post_json(
            f"/api/secure/slots/{sheet.id}", self._slot_payload(start + timedelta(minutes=15))
        )
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["error"], "Slot times overlap with existing slot")

        resp = self.put_json(f"/api/secure/slots/one/{slot['id']}", {"maxMembers": "4"})
        self.assertEqual(resp.json()["slot"]["maxMembers"], 4)

        resp = self.client.get(f"/api/secure/slots/{sheet.id}")
        self.assertEqual([s["id"] for s in resp.json()["slots"]], [slot["id"]])

        resp = self.client.delete(f"/api/secure/slots/one/{slot['id']}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.service.snapshot().slots, [])

    def test_invalid_slot_input(self):
        sheet = self.seed(lambda doc: create_sheet(doc, doc.course(self.course.id)))
        resp = self.post_json(
            f"/api/secure/slots/{sheet.id}",
            self._slot_payload(NOW + timedelta(days=1), max_members=0),
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "maxMembers must be a positive integer")


class StudentApiTests(SignupApiTestCase):
    def setUp(self):
        super().setUp()

        def build(document):
            course = create_course(document, code="SE3350")
            create_member(document, course, username="jdoe")
            sheet = create_sheet(document, course)
            return (
                create_slot(document, sheet, start=NOW + timedelta(hours=3)),
                create_slot(document, sheet, start=NOW + timedelta(minutes=30)),
            )

        self.slot, self.soon_slot = self.seed(build)
        self.client.force_login(self.student)

    def test_signup_leave_round(self):
        resp = self.client.post(f"/api/secure/students/signup/{self.slot.id}")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["message"], "Successfully signed up for slot")
        self.assertEqual(body["slot"]["signupCount"], 1)

        resp = self.client.post(f"/api/secure/students/signup/{self.slot.id}")
        self.assertEqual(resp.status_code, 409)

        resp = self.client.get("/api/secure/students/my-signups")
        signups = resp.json()["signups"]
        self.assertEqual([s["slot"]["id"] for s in signups], [self.slot.id])
        self.assertEqual(signups[0]["course"]["code"], "SE3350")
        self.assertIsNone(signups[0]["grade"])

        resp = self.client.delete(f"/api/secure/students/leave/{self.slot.id}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["slot"]["signupCount"], 0)

    def test_window_errors(self):
        resp = self.client.post(f"/api/secure/students/signup/{self.soon_slot.id}")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Cannot sign up for slots less than 1 hour away")

    def test_available_slots(self):
        resp = self.client.get("/api/secure/students/available-slots")
        views = resp.json()["availableSlots"]
        self.assertEqual([v["slot"]["id"] for v in views], [self.slot.id])
        self.assertEqual(views[0]["availableSpots"], 2)

    def test_not_enrolled_student(self):
        self.client.force_login(create_user("stranger"))
        resp = self.client.post(f"/api/secure/students/signup/{self.slot.id}")
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["error"], "You are not enrolled in this course")

    def test_ta_cannot_use_student_endpoints(self):
        self.client.force_login(self.ta)
        resp = self.client.get("/api/secure/students/my-signups")
        self.assertEqual(resp.status_code, 403)


class GradingApiTests(SignupApiTestCase):
    def setUp(self):
        super().setUp()

        def build(document):
            course = create_course(document)
            member = create_member(document, course, username="jdoe")
            sheet = create_sheet(document, course)
            first = create_slot(document, sheet, start=NOW - timedelta(hours=1))
            second = create_slot(document, sheet, start=NOW + timedelta(hours=2))
            slot_service.signup(document, second.id, "jdoe", NOW)
            return member, sheet, first, second

        self.member, self.sheet, self.first, self.second = self.seed(build)
        self.client.force_login(self.ta)

    def test_current_and_navigate(self):
        resp = self.client.get(f"/api/secure/grades/current/{self.sheet.id}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["slot"]["id"], self.first.id)
        self.assertEqual(resp.json()["members"], [])

        resp = self.client.get(f"/api/secure/grades/navigate/{self.first.id}", {"direction": "next"})
        body = resp.json()
        self.assertEqual(body["slot"]["id"], self.second.id)
        self.assertEqual([m["username"] for m in body["members"]], ["jdoe"])
        self.assertIsNone(body["members"][0]["grade"])

        resp = self.client.get(f"/api/secure/grades/navigate/{self.second.id}", {"direction": "next"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "No adjacent slot available")

    def test_grade_and_audit(self):
        url = f"/api/secure/grades/{self.second.id}/{self.member.id}"
        resp = self.post_json(url, {"baseMark": 8, "bonus": 2, "penalty": 1, "comment": "Solid"})
        self.assertEqual(resp.status_code, 200)
        grade = resp.json()["grade"]
        self.assertEqual((grade["finalMark"], grade["taUsername"]), (9, "ta1"))
        self.assertEqual(grade["commentEntries"], [{"timestamp": None, "text": "Solid"}])

        resp = self.post_json(url, {"baseMark": 10})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Comment is required when modifying grade")

        resp = self.post_json(url, {"baseMark": 10, "comment": "Regraded"})
        self.assertEqual(resp.json()["grade"]["comment"], "Solid\n[2025-03-10T12:00:00.000Z] Regraded")

        resp = self.client.get(f"/api/secure/grades/audit/{grade['id']}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp.json()["audit"]["summary"],
            "Updated grade to 10 (base: 10, bonus: 0, penalty: 0)",
        )

    def test_audit_missing(self):
        resp = self.client.get("/api/secure/grades/audit/42")
        self.assertEqual(resp.status_code, 404)


class CourseSearchApiTests(SignupApiTestCase):
    def test_public_search(self):
        def build(document):
            course = create_course(document, code="SE3350")
            create_slot(document, create_sheet(document, course, assignment_name="Lab 1"))

        self.seed(build)

        resp = self.client.get("/api/open/search", {"code": "se3"})
        self.assertEqual(resp.status_code, 200)
        result = resp.json()["results"][0]
        self.assertEqual(result["course"]["code"], "SE3350")
        self.assertEqual(result["sheets"][0]["assignmentName"], "Lab 1")
        self.assertEqual(result["sheets"][0]["slots"][0]["capacity"], 2)

    def test_search_requires_code(self):
        resp = self.client.get("/api/open/search")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"ok": False, "error": "Course code required"})


class JsonDocumentApiTests(TestCase):
    def test_changes_are_written_to_the_configured_document(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        path = Path(tmp.name) / "db.json"
        ta = create_user("ta1", role=Role.TA)
        self.client.force_login(ta)

        with override_settings(SIGNUP_DOCUMENT_PATH=str(path)):
            resp = self.client.post(
                "/api/secure/courses",
                data=json.dumps({"term": "2025W", "code": "SE3350", "section": "001", "name": "SE"}),
                content_type="application/json",
            )

        self.assertEqual(resp.status_code, 201)
        stored = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual(stored["courses"][0]["code"], "SE3350")
