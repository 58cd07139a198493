"""
Role-based permissions.

Roles are Django groups; superusers pass every check.
"""
from rest_framework.permissions import BasePermission, SAFE_METHODS

ROLE_ADMIN = 'Admin'
ROLE_MANAGER = 'Manager'
ROLE_ACCOUNTANT = 'Accountant'
ROLE_TECHNICIAN_IN_SHOP = 'TechnicianInShop'
ROLE_TECHNICIAN_ON_SITE = 'TechnicianOnSite'
ROLE_CUSTOMER = 'Customer'

ALL_ROLES = [
    ROLE_ADMIN,
    ROLE_MANAGER,
    ROLE_ACCOUNTANT,
    ROLE_TECHNICIAN_IN_SHOP,
    ROLE_TECHNICIAN_ON_SITE,
    ROLE_CUSTOMER,
]

TECHNICIAN_ROLES = [ROLE_TECHNICIAN_IN_SHOP, ROLE_TECHNICIAN_ON_SITE]
STAFF_ROLES = [r for r in ALL_ROLES if r != ROLE_CUSTOMER]


def user_has_role(user, *roles):
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    return user.groups.filter(name__in=roles).exists()


def is_manager(user):
    return user_has_role(user, ROLE_ADMIN, ROLE_MANAGER)


def is_backoffice_staff(user):
    return user_has_role(user, *STAFF_ROLES)


def role_permission(*roles):
    """Build a DRF permission class admitting the given roles"""
    class RolePermission(BasePermission):
        message = 'You do not have the required role for this action.'
        allowed_roles = roles

        def has_permission(self, request, view):
            return user_has_role(request.user, *self.allowed_roles)

    RolePermission.__name__ = 'Has' + ''.join(roles) + 'Role'
    return RolePermission


IsAdminRole = role_permission(ROLE_ADMIN)
IsManagerOrAdmin = role_permission(ROLE_ADMIN, ROLE_MANAGER)
IsAccountingStaff = role_permission(ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT)
IsTechnician = role_permission(ROLE_ADMIN, ROLE_MANAGER, *TECHNICIAN_ROLES)
IsBackofficeStaff = role_permission(*STAFF_ROLES)


class IsManagerOrReadOnly(BasePermission):
    """Anyone may read; writes need Admin or Manager"""
    message = 'Only managers can modify this resource.'

    def has_permission(self, request, view):
        if request.method in SAFE_METHODS:
            return True
        return is_manager(request.user)
