from flask import Blueprint
from flask_login import login_user, logout_user, login_required, current_user
from app import db
from forms import LoginForm
from services.audit_service import AuditService
from services.record_store import RecordStore
from services.user_service import UserService
from utils.permissions import capabilities_for
from utils.responses import json_success, json_error, form_errors
import logging

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)

INVALID_LOGIN_MESSAGE = 'Invalid email or password'


def log_audit(action, entity_type=None, entity_id=None, details=None, user_id=None):
    """Record an audit event outside a service call and commit it right away"""
    AuditService().log_action(action, entity_type, entity_id, details, user_id)
    db.session.commit()


def session_payload(user):
    settings = RecordStore().get_settings()
    return {
        'user': user.to_dict(),
        'capabilities': sorted(capabilities_for(user.role)),
        'settings': settings.to_dict(),
    }


@auth_bp.route('/login', methods=['POST'])
def login():
    """Log in with email or phone; unknown, wrong-password and inactive accounts get the same answer"""
    form = LoginForm()
    if not form.validate_on_submit():
        return form_errors(form)

    user_service = UserService()
    user = user_service.authenticate(form.identifier.data, form.password.data)
    if user is None:
        logger.warning(f"Failed login attempt for identifier '{form.identifier.data}'")
        log_audit('login_failed', 'user', details={'identifier': form.identifier.data})
        return json_error(INVALID_LOGIN_MESSAGE, 401, error='INVALID_CREDENTIALS')

    login_user(user)
    user_service.record_login(user)
    logger.info(f"User {user.id} ({user.role.value}) logged in")
    return json_success(**session_payload(user))


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    user_id = current_user.id
    logout_user()
    log_audit('logout', 'user', user_id, user_id=user_id)
    return json_success(message='Logged out')


@auth_bp.route('/me')
@login_required
def me():
    return json_success(**session_payload(current_user))
