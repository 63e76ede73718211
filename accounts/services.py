"""Account operations used by the API views and management commands."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from django.conf import settings
from django.contrib.auth import authenticate, get_user_model
from django.contrib.auth.models import update_last_login
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from rest_framework import exceptions

from apps.signups.exceptions import InvalidStateError, NotFoundError

from .authentication import issue_token
from .models import AccountProfile

logger = logging.getLogger("accounts")

Role = AccountProfile.Role


@dataclass
class LoginResult:
    token: str
    must_change: bool


def _profile(user) -> AccountProfile:
    profile, _ = AccountProfile.objects.get_or_create(user=user)
    return profile


def _get_user_or_404(username: str):
    user_model = get_user_model()
    try:
        return user_model.objects.get(**{user_model.USERNAME_FIELD: username})
    except user_model.DoesNotExist as exc:
        raise NotFoundError("User not found") from exc


def login(username: str, password: str) -> LoginResult:
    if not username or not password:
        raise exceptions.ValidationError("username and password required")

    user = authenticate(username=username, password=password)
    if user is None:
        logger.info("Failed login", extra={"username": username})
        raise exceptions.AuthenticationFailed("Invalid credentials")

    update_last_login(None, user)
    logger.info("User logged in", extra={"username": username})
    return LoginResult(
        token=issue_token(user),
        must_change=_profile(user).must_change_password,
    )


def change_password(user, old_password: str, new_password: str) -> None:
    if not old_password or not new_password:
        raise exceptions.ValidationError("oldPassword and newPassword required")
    if not user.check_password(old_password):
        raise exceptions.AuthenticationFailed("Old password incorrect")
    try:
        validate_password(new_password, user)
    except DjangoValidationError as exc:
        raise exceptions.ValidationError(list(exc.messages)) from exc

    with transaction.atomic():
        user.set_password(new_password)
        user.save(update_fields=["password"])
        profile = _profile(user)
        profile.must_change_password = False
        profile.save(update_fields=["must_change_password", "updated_at"])


def reset_password(username: str) -> str:
    """Reset ``username`` to the default password and force a change at next login."""

    if not username:
        raise exceptions.ValidationError("Username required")
    user = _get_user_or_404(username)
    reset_to = settings.SIGNUP_DEFAULT_RESET_PASSWORD

    with transaction.atomic():
        user.set_password(reset_to)
        user.save(update_fields=["password"])
        profile = _profile(user)
        profile.must_change_password = True
        profile.save(update_fields=["must_change_password", "updated_at"])

    logger.info("Password reset", extra={"username": username})
    return reset_to


def grant_ta(username: str) -> None:
    if not username:
        raise exceptions.ValidationError("Username required")
    profile = _profile(_get_user_or_404(username))
    if profile.role == Role.TA:
        raise InvalidStateError("User is already a TA")
    profile.role = Role.TA
    profile.save(update_fields=["role", "updated_at"])
    logger.info("TA role granted", extra={"username": username})


def revoke_ta(username: str) -> None:
    if not username:
        raise exceptions.ValidationError("Username required")
    profile = _profile(_get_user_or_404(username))
    if profile.role != Role.TA:
        raise InvalidStateError("User is not a TA")
    profile.role = Role.STUDENT
    profile.save(update_fields=["role", "updated_at"])
    logger.info("TA role removed", extra={"username": username})


def ensure_student_account(username: str, password: str) -> bool:
    """Create a student login for a newly enrolled member.

    Existing accounts are left untouched. Returns ``True`` when an account
    was created; new accounts must change their password on first login.
    """

    user_model = get_user_model()
    if not username or not password:
        return False
    if user_model.objects.filter(**{user_model.USERNAME_FIELD: username}).exists():
        return False

    with transaction.atomic():
        user = user_model.objects.create_user(username=username, password=password)
        profile = _profile(user)
        profile.role = Role.STUDENT
        profile.must_change_password = True
        profile.save(update_fields=["role", "must_change_password", "updated_at"])
    logger.info("Student account provisioned", extra={"username": username})
    return True
