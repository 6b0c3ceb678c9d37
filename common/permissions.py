import logging

from rest_framework.permissions import BasePermission

from core.models import User

logger = logging.getLogger("security.authorization")

ALL_ROLES = {User.Role.OWNER, User.Role.ADMIN, User.Role.MANAGER, User.Role.OPERATOR, User.Role.VIEWER}

ROLE_CAPABILITY_MATRIX = {
    "farm.view": ALL_ROLES,
    "farm.manage": {User.Role.OWNER},
    "records.manage": {User.Role.OWNER, User.Role.ADMIN, User.Role.MANAGER},
    "application.create": {User.Role.OWNER, User.Role.ADMIN, User.Role.MANAGER, User.Role.OPERATOR},
    "application.update": {User.Role.OWNER, User.Role.ADMIN, User.Role.MANAGER},
    "application.complete": {User.Role.OWNER, User.Role.ADMIN, User.Role.MANAGER, User.Role.OPERATOR},
    "application.delete": {User.Role.OWNER, User.Role.ADMIN},
    "recipe.create": {User.Role.OWNER, User.Role.ADMIN, User.Role.MANAGER, User.Role.OPERATOR},
    "recipe.update": {User.Role.OWNER, User.Role.ADMIN, User.Role.MANAGER},
    "recipe.delete": {User.Role.OWNER, User.Role.ADMIN},
    "machinery.manage": {User.Role.OWNER, User.Role.ADMIN, User.Role.MANAGER, User.Role.OPERATOR},
    "stock.adjust": {User.Role.OWNER, User.Role.ADMIN, User.Role.MANAGER},
    "audit.view": {User.Role.OWNER, User.Role.ADMIN},
}


def get_user_role(user):
    if not user or not user.is_authenticated:
        return None
    if user.is_superuser:
        return User.Role.OWNER
    role = getattr(user, "role", None)
    if role:
        return role
    if getattr(user, "is_staff", False):
        return User.Role.ADMIN
    return User.Role.VIEWER


def user_has_capability(user, capability):
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    allowed_roles = ROLE_CAPABILITY_MATRIX.get(capability)
    if not allowed_roles:
        return False
    return get_user_role(user) in allowed_roles


class RoleCapabilityPermission(BasePermission):
    """Permission class that validates role capability by action/method and logs denied attempts."""

    message = "You do not have permission to perform this action."

    def has_permission(self, request, view):
        capability_map = getattr(view, "permission_action_map", {})
        action_key = getattr(view, "action", None) or request.method.lower()
        capability = capability_map.get(action_key)
        if capability is None:
            return True

        allowed = user_has_capability(request.user, capability)
        if not allowed:
            logger.warning(
                "permission_denied capability=%s user=%s role=%s method=%s path=%s view=%s action=%s",
                capability,
                getattr(request.user, "username", "anonymous"),
                get_user_role(request.user),
                request.method,
                request.path,
                view.__class__.__name__,
                action_key,
            )
        return allowed
