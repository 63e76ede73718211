from rest_framework import permissions, serializers
from rest_framework.response import Response
from rest_framework.views import APIView

from . import services
from .authentication import SignedTokenAuthentication
from .models import get_role
from .permissions import IsAdmin


class LoginView(APIView):
    """Exchange credentials for a signed session token."""

    authentication_classes: list = []
    permission_classes = [permissions.AllowAny]

    def get_authenticate_header(self, request):
        # Failed logins answer 401 like the rest of the API.
        return SignedTokenAuthentication.keyword

    class InputSerializer(serializers.Serializer):
        username = serializers.CharField(required=False, allow_blank=True, default="")
        password = serializers.CharField(required=False, allow_blank=True, default="", trim_whitespace=False)

    def post(self, request, *args, **kwargs):
        serializer = self.InputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = services.login(**serializer.validated_data)
        return Response({"ok": True, "token": result.token, "mustChange": result.must_change})


class MeView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, *args, **kwargs):
        user = request.user
        return Response(
            {"ok": True, "user": {"username": user.get_username(), "role": get_role(user)}}
        )


class ChangePasswordView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    class InputSerializer(serializers.Serializer):
        oldPassword = serializers.CharField(required=False, allow_blank=True, default="", trim_whitespace=False)
        newPassword = serializers.CharField(required=False, allow_blank=True, default="", trim_whitespace=False)

    def post(self, request, *args, **kwargs):
        serializer = self.InputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        services.change_password(
            request.user,
            serializer.validated_data["oldPassword"],
            serializer.validated_data["newPassword"],
        )
        return Response({"ok": True})


class UsernameSerializer(serializers.Serializer):
    username = serializers.CharField(required=False, allow_blank=True, default="")


class AdminUserActionView(APIView):
    """Base for admin endpoints that act on a single ``username``."""

    permission_classes = [IsAdmin]

    def _username(self, request) -> str:
        serializer = UsernameSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return serializer.validated_data["username"]


class ResetPasswordView(AdminUserActionView):
    def post(self, request, *args, **kwargs):
        reset_to = services.reset_password(self._username(request))
        return Response({"ok": True, "resetTo": reset_to})


class AddTaView(AdminUserActionView):
    def post(self, request, *args, **kwargs):
        username = self._username(request)
        services.grant_ta(username)
        return Response({"ok": True, "message": f"User {username} is now a TA"})


class RemoveTaView(AdminUserActionView):
    def post(self, request, *args, **kwargs):
        username = self._username(request)
        services.revoke_ta(username)
        return Response({"ok": True, "message": f"Removed TA role from {username}"})
