from django.conf import settings
from django.db import models


class AccountProfile(models.Model):
    """Role and password state attached to every login account."""

    class Role(models.TextChoices):
        ADMIN = "admin", "Admin"
        TA = "ta", "Teaching assistant"
        STUDENT = "student", "Student"

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="account_profile"
    )
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.STUDENT)
    must_change_password = models.BooleanField(default=False)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:  # pragma: no cover - representation only
        return f"{self.user.username} ({self.role})"


def get_role(user) -> str:
    """Effective role of ``user``; superusers are always admins."""

    if user.is_superuser:
        return AccountProfile.Role.ADMIN
    try:
        return user.account_profile.role
    except AccountProfile.DoesNotExist:
        return AccountProfile.Role.STUDENT
