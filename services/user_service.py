"""
User Service

Account management: managers created by the super admin, drivers and
sub-managers created by their main manager, profile edits by the user.
Accounts are deactivated, never deleted.
"""

from typing import Optional, Dict, Any, Tuple
import logging
from werkzeug.security import generate_password_hash, check_password_hash
from models import User, UserRole, SubManagerType
from timezone_utils import get_local_time_naive
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .record_store import RecordStore

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ('name', 'email', 'address', 'bio', 'photo_url', 'cover_photo_url')
DRIVER_FIELDS = ('nid_number', 'license_number')


def _clean_email(email):
    if not isinstance(email, str):
        return None
    return email.strip().lower() or None


class UserService:
    """Service class for user accounts"""

    def __init__(self, store: Optional[RecordStore] = None):
        self.store = store or RecordStore()
        self.audit_service = AuditService(self.store)

    def authenticate(self, identifier: str, password: str) -> Optional[User]:
        """The active user matching the email/phone and password, or None"""
        user = self.store.get_user_by_identifier(identifier)
        if user is None or not user.is_active:
            return None
        if not check_password_hash(user.password_hash, password or ''):
            return None
        return user

    @TransactionHelper.with_transaction
    def record_login(self, user: User) -> Tuple[bool, Optional[str], User]:
        user.last_login = get_local_time_naive()
        user.login_count = (user.login_count or 0) + 1
        self.audit_service.log_action('login', 'user', user.id, user_id=user.id)
        return True, None, user

    def _check_unique(self, phone: Optional[str], email: Optional[str],
                      exclude_id: Optional[int] = None) -> Optional[str]:
        if phone and self.store.phone_taken(phone, exclude_id):
            return "Phone number is already registered"
        if email and self.store.email_taken(email, exclude_id):
            return "Email is already registered"
        return None

    @TransactionHelper.with_transaction
    def create_user(self, data: Dict[str, Any], role: UserRole, actor,
                    assigned_manager_id: Optional[int] = None) -> Tuple[bool, Optional[str], Optional[User]]:
        """
        Create an account.

        Args:
            data: Cleaned user form values (name, phone, email, password, ...)
            role: Role of the new account
            actor: User creating the account, None for command line bootstrap
            assigned_manager_id: Main manager the new driver/sub-manager reports to

        Returns:
            tuple: (success, error_message, user)
        """
        phone = (data.get('phone') or '').strip()
        email = _clean_email(data.get('email'))
        error = self._check_unique(phone, email)
        if error:
            return False, error, None

        user = User(
            name=(data.get('name') or '').strip(),
            role=role,
            phone=phone,
            email=email,
            password_hash=generate_password_hash(data['password']),
            address=data.get('address') or None,
            assigned_manager_id=assigned_manager_id,
            is_active=True,
            login_count=0,
        )
        if role == UserRole.DRIVER:
            for name in DRIVER_FIELDS:
                setattr(user, name, data.get(name) or None)
        if role == UserRole.SUB_MANAGER:
            user.sub_manager_type = SubManagerType(data.get('sub_manager_type') or SubManagerType.IMPORT.value)

        self.store.add_user(user)
        self.audit_service.log_action(
            action=f'create_{role.value}',
            entity_type='user',
            entity_id=user.id,
            details={'name': user.name, 'phone': user.phone},
            user_id=actor.id if actor else None
        )
        logger.info(f"User {user.id} ({role.value}) created by user {actor.id if actor else 'cli'}")
        return True, None, user

    @TransactionHelper.with_transaction
    def update_user(self, user_id: int, data: Dict[str, Any], actor) -> Tuple[bool, Optional[str], Optional[User]]:
        user = self.store.get_user(user_id)
        if user is None:
            return False, "User not found", None

        phone = (data.get('phone') or '').strip() or None
        email = _clean_email(data.get('email'))
        error = self._check_unique(phone, email, exclude_id=user.id)
        if error:
            return False, error, None

        fields = {name: data[name] for name in PROFILE_FIELDS + DRIVER_FIELDS if name in data}
        if 'email' in data:
            fields['email'] = email
        if phone:
            fields['phone'] = phone
        if data.get('password'):
            fields['password_hash'] = generate_password_hash(data['password'])
        if data.get('sub_manager_type') and user.role == UserRole.SUB_MANAGER:
            fields['sub_manager_type'] = SubManagerType(data['sub_manager_type'])
        self.store.update_user(user, **fields)

        self.audit_service.log_action(
            action='update_user',
            entity_type='user',
            entity_id=user.id,
            details={'fields': sorted(name for name in fields if name != 'password_hash')},
            user_id=actor.id
        )
        return True, None, user

    @TransactionHelper.with_transaction
    def set_active(self, user_id: int, is_active: bool, actor) -> Tuple[bool, Optional[str], Optional[User]]:
        user = self.store.get_user(user_id)
        if user is None:
            return False, "User not found", None
        if user.id == actor.id:
            return False, "You cannot change your own account status", None

        self.store.update_user(user, is_active=bool(is_active))
        self.audit_service.log_action(
            action='activate_user' if is_active else 'deactivate_user',
            entity_type='user',
            entity_id=user.id,
            user_id=actor.id
        )
        logger.info(f"User {user.id} {'activated' if is_active else 'deactivated'} by user {actor.id}")
        return True, None, user

    @TransactionHelper.with_transaction
    def update_profile(self, user: User, data: Dict[str, Any]) -> Tuple[bool, Optional[str], Optional[User]]:
        """Self-service profile edit; role and manager assignment stay untouched"""
        email = _clean_email(data.get('email'))
        error = self._check_unique(None, email, exclude_id=user.id)
        if error:
            return False, error, None

        fields = {name: data[name] for name in PROFILE_FIELDS if name in data}
        if 'email' in data:
            fields['email'] = email
        if fields.get('name') is not None and not fields['name'].strip():
            return False, "Name is required", None
        self.store.update_user(user, **fields)

        self.audit_service.log_action('update_profile', 'user', user.id, user_id=user.id)
        return True, None, user
