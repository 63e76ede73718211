"""Signed session tokens.

Tokens are ``django.core.signing`` payloads carrying ``{username, role}``
and expire after ``SIGNUP_SESSION_TOKEN_MAX_AGE`` seconds. Clients send
them as ``Authorization: Bearer <token>``.
"""
from __future__ import annotations

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core import signing
from rest_framework import authentication, exceptions

from .models import get_role

TOKEN_SALT = "accounts.session-token"


def issue_token(user) -> str:
    payload = {"username": user.get_username(), "role": get_role(user)}
    return signing.dumps(payload, salt=TOKEN_SALT, compress=True)


def read_token(token: str) -> dict:
    try:
        return signing.loads(
            token, salt=TOKEN_SALT, max_age=settings.SIGNUP_SESSION_TOKEN_MAX_AGE
        )
    except signing.SignatureExpired as exc:
        raise exceptions.AuthenticationFailed("Token expired") from exc
    except signing.BadSignature as exc:
        raise exceptions.AuthenticationFailed("Invalid token") from exc


class SignedTokenAuthentication(authentication.BaseAuthentication):
    keyword = "Bearer"

    def authenticate(self, request):
        header = authentication.get_authorization_header(request).split()
        if not header or header[0].lower() != self.keyword.lower().encode():
            return None
        if len(header) != 2:
            raise exceptions.AuthenticationFailed("Invalid token header")

        try:
            token = header[1].decode()
        except UnicodeError as exc:
            raise exceptions.AuthenticationFailed("Invalid token header") from exc

        payload = read_token(token)
        user_model = get_user_model()
        try:
            user = user_model.objects.select_related("account_profile").get(
                **{user_model.USERNAME_FIELD: payload.get("username")}
            )
        except user_model.DoesNotExist as exc:
            raise exceptions.AuthenticationFailed("Invalid token") from exc
        if not user.is_active:
            raise exceptions.AuthenticationFailed("User inactive")
        return user, payload

    def authenticate_header(self, request):
        return self.keyword
