from rest_framework import permissions

from .models import AccountProfile, get_role

Role = AccountProfile.Role


class HasRole(permissions.BasePermission):
    """Allow authenticated users whose current role is in ``allowed_roles``.

    The role is read from the account, not from the token, so a revoked TA
    loses access immediately.
    """

    allowed_roles: tuple = ()

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and get_role(user) in self.allowed_roles)


class IsAdmin(HasRole):
    allowed_roles = (Role.ADMIN,)
    message = "Admin access required"


class IsTA(HasRole):
    allowed_roles = (Role.TA, Role.ADMIN)
    message = "TA access required"


class IsStudent(HasRole):
    allowed_roles = (Role.STUDENT,)
    message = "Student access required"
