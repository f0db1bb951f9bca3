"""Role based permissions for the admin API"""
from rest_framework.permissions import BasePermission

from .models import User


class HasStoreRole(BasePermission):
    """Allow authenticated users holding one of ``allowed_roles``"""
    allowed_roles = (User.SUPER_ADMIN, User.ADMIN, User.EDITOR)
    message = 'You do not have the role required for this action.'

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated or not user.is_active:
            return False
        return user.has_role(*self.allowed_roles)


class IsEditor(HasStoreRole):
    """Catalog and content editing"""
    allowed_roles = (User.SUPER_ADMIN, User.ADMIN, User.EDITOR)


class IsStoreAdmin(HasStoreRole):
    """Orders, customers, shipping, settings and users"""
    allowed_roles = (User.SUPER_ADMIN, User.ADMIN)


class IsSuperAdmin(HasStoreRole):
    allowed_roles = (User.SUPER_ADMIN,)


def capabilities_for(user):
    """Capability flags returned with the current user"""
    return {
        'is_super_admin': user.has_role(User.SUPER_ADMIN),
        'can_manage_users': user.has_role(User.SUPER_ADMIN, User.ADMIN),
        'can_manage_settings': user.has_role(User.SUPER_ADMIN, User.ADMIN),
        'can_manage_orders': user.has_role(User.SUPER_ADMIN, User.ADMIN),
        'can_edit_catalog': user.has_role(User.SUPER_ADMIN, User.ADMIN, User.EDITOR),
    }
