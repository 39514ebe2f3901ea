"""
Capability table and access decorators.

Every role maps to the set of actions it may perform; blueprints guard
their views with ``capability_required`` or ``role_required`` instead of
branching on roles inline.
"""

from functools import wraps
import logging

from flask_login import current_user

from models import UserRole
from utils.responses import json_error

logger = logging.getLogger(__name__)

# Actions granted to every main manager (MANAGER and SUPER_ADMIN)
MAIN_MANAGER_CAPABILITIES = frozenset({
    'drivers.manage',
    'sub_managers.manage',
    'vehicles.manage',
    'vehicles.delete',
    'trips.view',
    'trips.create',
    'trips.edit',
    'trips.delete',
    'trips.settle',
    'payments.view',
    'payments.create',
    'payments.delete',
    'salary.manage',
    'requests.approve',
    'reports.view',
    'chat.use',
})

CAPABILITIES = {
    UserRole.SUPER_ADMIN: MAIN_MANAGER_CAPABILITIES | {
        'managers.manage',
        'settings.update',
        'fleet.explore',
        'dashboard.admin',
    },
    UserRole.MANAGER: MAIN_MANAGER_CAPABILITIES,
    UserRole.SUB_MANAGER: frozenset({
        'trips.view',
        'trip_requests.create',
        'payment_requests.create',
        'fleet.status',
        'drivers.directory',
        'chat.use',
    }),
    UserRole.UJALA_MANAGER: frozenset({
        'trips.view',
        'payment_requests.create',
        'dues.view',
        'chat.use',
    }),
    UserRole.DRIVER: frozenset({
        'trips.view',
        'trips.update_status',
        'payments.view_own',
        'salary.view_own',
        'chat.use',
    }),
}


def capabilities_for(role):
    return CAPABILITIES.get(role, frozenset())


def has_capability(user, capability):
    if user is None or not getattr(user, 'is_authenticated', False):
        return False
    return capability in capabilities_for(user.role)


def is_main_manager(user):
    return getattr(user, 'role', None) in (UserRole.MANAGER, UserRole.SUPER_ADMIN)


def _unauthenticated():
    return json_error('Authentication required', 401, error='UNAUTHENTICATED')


def capability_required(capability):
    """Reject the request with 403 unless the current user's role grants the capability"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return _unauthenticated()
            if not has_capability(current_user, capability):
                logger.warning(f"Capability '{capability}' denied for user {current_user.id} ({current_user.role.value})")
                return json_error('You do not have permission to perform this action', 403, error='FORBIDDEN')
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def role_required(*roles):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return _unauthenticated()
            if current_user.role not in roles:
                return json_error('Access denied for your role', 403, error='FORBIDDEN')
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def feature_required(feature):
    """Hide the endpoint (404) while the feature toggle is off in the app settings"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            from services.record_store import RecordStore
            settings = RecordStore().get_settings()
            if not settings.is_enabled(feature):
                return json_error('Feature not available', 404, error='NOT_FOUND')
            return f(*args, **kwargs)
        return decorated_function
    return decorator
