import io
import json

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase, override_settings

from accounts import services
from accounts.authentication import issue_token
from accounts.models import AccountProfile, get_role
from apps.signups.tests.factories import create_user, fast_hashing

User = get_user_model()
Role = AccountProfile.Role


class AccountsApiTestCase(TestCase):
    def post_json(self, url, payload, **extra):
        return self.client.post(
            url, data=json.dumps(payload), content_type="application/json", **extra
        )

    def bearer(self, token):
        return {"HTTP_AUTHORIZATION": f"Bearer {token}"}


@fast_hashing
class LoginTests(AccountsApiTestCase):
    def setUp(self):
        self.user = create_user("jdoe", password="account-pass")

    def test_login_returns_token(self):
        resp = self.post_json("/api/open/login", {"username": "jdoe", "password": "account-pass"})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["ok"])
        self.assertFalse(body["mustChange"])

        resp = self.client.get("/api/secure/me", **self.bearer(body["token"]))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["user"], {"username": "jdoe", "role": "student"})

        self.user.refresh_from_db()
        self.assertIsNotNone(self.user.last_login)

    def test_login_reports_pending_password_change(self):
        profile = self.user.account_profile
        profile.must_change_password = True
        profile.save()

        resp = self.post_json("/api/open/login", {"username": "jdoe", "password": "account-pass"})
        self.assertTrue(resp.json()["mustChange"])

    def test_invalid_credentials(self):
        resp = self.post_json("/api/open/login", {"username": "jdoe", "password": "wrong-pass"})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json(), {"ok": False, "error": "Invalid credentials"})

    def test_missing_credentials(self):
        resp = self.post_json("/api/open/login", {"username": "jdoe"})
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.json()["ok"])

    def test_bad_token(self):
        resp = self.client.get("/api/secure/me", **self.bearer("not-a-token"))
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["error"], "Invalid token")

    @override_settings(SIGNUP_SESSION_TOKEN_MAX_AGE=-1)
    def test_expired_token(self):
        resp = self.client.get("/api/secure/me", **self.bearer(issue_token(self.user)))
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["error"], "Token expired")

    def test_missing_token(self):
        resp = self.client.get("/api/secure/me")
        self.assertEqual(resp.status_code, 401)

    def test_role_is_read_from_the_account(self):
        ta = create_user("ta1", role=Role.TA)
        token = issue_token(ta)
        services.revoke_ta("ta1")

        resp = self.client.get("/api/secure/courses", **self.bearer(token))
        self.assertEqual(resp.status_code, 403)


@fast_hashing
class ChangePasswordTests(AccountsApiTestCase):
    def setUp(self):
        self.user = create_user("jdoe", password="account-pass")
        profile = self.user.account_profile
        profile.must_change_password = True
        profile.save()
        self.client.force_login(self.user)

    def test_change_password(self):
        resp = self.post_json(
            "/api/secure/change-password",
            {"oldPassword": "account-pass", "newPassword": "brand-new-pass"},
        )
        self.assertEqual(resp.status_code, 200)

        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("brand-new-pass"))
        self.assertFalse(AccountProfile.objects.get(user=self.user).must_change_password)

    def test_wrong_old_password(self):
        resp = self.post_json(
            "/api/secure/change-password",
            {"oldPassword": "nope-nope", "newPassword": "brand-new-pass"},
        )
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["error"], "Old password incorrect")

    def test_new_password_is_validated(self):
        resp = self.post_json(
            "/api/secure/change-password",
            {"oldPassword": "account-pass", "newPassword": "short"},
        )
        self.assertEqual(resp.status_code, 400)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("account-pass"))


@fast_hashing
class AdminActionTests(AccountsApiTestCase):
    def setUp(self):
        self.admin = create_user("admin", role=Role.ADMIN)
        self.student = create_user("jdoe")
        self.client.force_login(self.admin)

    @override_settings(SIGNUP_DEFAULT_RESET_PASSWORD="reset-me-now")
    def test_reset_password(self):
        resp = self.post_json("/api/admin/reset-password", {"username": "jdoe"})
        self.assertEqual(resp.json(), {"ok": True, "resetTo": "reset-me-now"})

        self.student.refresh_from_db()
        self.assertTrue(self.student.check_password("reset-me-now"))
        self.assertTrue(AccountProfile.objects.get(user=self.student).must_change_password)

    def test_reset_unknown_user(self):
        resp = self.post_json("/api/admin/reset-password", {"username": "ghost"})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["error"], "User not found")

    def test_grant_and_revoke_ta(self):
        resp = self.post_json("/api/admin/add-ta", {"username": "jdoe"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["message"], "User jdoe is now a TA")
        self.assertEqual(get_role(User.objects.get(username="jdoe")), Role.TA)

        resp = self.post_json("/api/admin/add-ta", {"username": "jdoe"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "User is already a TA")

        resp = self.post_json("/api/admin/remove-ta", {"username": "jdoe"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(get_role(User.objects.get(username="jdoe")), Role.STUDENT)

        resp = self.post_json("/api/admin/remove-ta", {"username": "jdoe"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "User is not a TA")

    def test_username_required(self):
        resp = self.post_json("/api/admin/add-ta", {})
        self.assertEqual(resp.status_code, 400)

    def test_non_admins_are_rejected(self):
        self.client.force_login(create_user("ta1", role=Role.TA))
        resp = self.post_json("/api/admin/add-ta", {"username": "jdoe"})
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["error"], "Admin access required")

    def test_superuser_counts_as_admin(self):
        root = User.objects.create_superuser(username="root", password="root-pass", email="")
        self.client.force_login(root)
        resp = self.post_json("/api/admin/add-ta", {"username": "jdoe"})
        self.assertEqual(resp.status_code, 200)


@fast_hashing
class EnsureStudentAccountTests(TestCase):
    def test_creates_once(self):
        self.assertTrue(services.ensure_student_account("newbie", "first-pass"))
        self.assertFalse(services.ensure_student_account("newbie", "other-pass"))

        user = User.objects.get(username="newbie")
        self.assertTrue(user.check_password("first-pass"))
        self.assertEqual(get_role(user), Role.STUDENT)

    def test_requires_credentials(self):
        self.assertFalse(services.ensure_student_account("", "pw"))
        self.assertFalse(User.objects.exists())


@fast_hashing
class SeedDefaultUsersCommandTests(TestCase):
    def test_seed_is_idempotent(self):
        call_command("seed_default_users", stdout=io.StringIO())
        stdout = io.StringIO()
        call_command("seed_default_users", stdout=stdout)

        self.assertEqual(User.objects.count(), 3)
        self.assertEqual(get_role(User.objects.get(username="ta1")), Role.TA)
        student = User.objects.get(username="student1")
        self.assertTrue(student.check_password("admin123"))
        self.assertTrue(student.account_profile.must_change_password)
        self.assertIn("already exists", stdout.getvalue())
