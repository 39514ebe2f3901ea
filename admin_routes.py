from flask import Blueprint, request
from flask_login import login_required, current_user
from forms import UserCreateForm, UserUpdateForm, UserStatusForm, SettingsForm
from models import UserRole
from services import RecordStore, AuditService, ReportingService, SettingsService, UserService
from utils.permissions import capability_required
from utils.responses import json_success, json_error, form_errors, form_values, request_payload
from utils.role_filters import managers, search_users, search_vehicles
import logging

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__)

AUDIT_PAGE_SIZE = 100


def _manager_or_404(user_id):
    user = RecordStore().get_user(user_id)
    if user is None or user.role != UserRole.MANAGER:
        return None
    return user


@admin_bp.route('/dashboard')
@login_required
@capability_required('dashboard.admin')
def dashboard():
    return json_success(dashboard=ReportingService().get_admin_dashboard())


# Managers

@admin_bp.route('/managers')
@login_required
@capability_required('managers.manage')
def list_managers():
    return json_success(managers=[user.to_dict() for user in managers(RecordStore().list_users())])


@admin_bp.route('/managers', methods=['POST'])
@login_required
@capability_required('managers.manage')
def create_manager():
    form = UserCreateForm()
    if not form.validate_on_submit():
        return form_errors(form)

    values = form_values(form)
    values.pop('role', None)
    success, error, manager = UserService().create_user(values, UserRole.MANAGER, current_user)
    if not success:
        return json_error(error, 400)
    return json_success(201, manager=manager.to_dict())


@admin_bp.route('/managers/<int:user_id>', methods=['PUT'])
@login_required
@capability_required('managers.manage')
def update_manager(user_id):
    if _manager_or_404(user_id) is None:
        return json_error('Manager not found', 404, error='NOT_FOUND')
    form = UserUpdateForm()
    if not form.validate_on_submit():
        return form_errors(form)

    success, error, manager = UserService().update_user(user_id, form_values(form), current_user)
    if not success:
        return json_error(error, 400)
    return json_success(manager=manager.to_dict())


@admin_bp.route('/managers/<int:user_id>/status', methods=['POST'])
@login_required
@capability_required('managers.manage')
def set_manager_status(user_id):
    if _manager_or_404(user_id) is None:
        return json_error('Manager not found', 404, error='NOT_FOUND')
    form = UserStatusForm()
    if not form.validate_on_submit() or 'is_active' not in request_payload():
        return json_error('Validation failed', 400, error='VALIDATION_ERROR',
                          errors={'is_active': ['This field is required.']})

    success, error, manager = UserService().set_active(user_id, form.is_active.data, current_user)
    if not success:
        return json_error(error, 400)
    return json_success(manager=manager.to_dict())


# Settings

@admin_bp.route('/settings')
@login_required
@capability_required('settings.update')
def get_settings():
    return json_success(settings=SettingsService().get_settings().to_dict())


@admin_bp.route('/settings', methods=['PUT'])
@login_required
@capability_required('settings.update')
def update_settings():
    form = SettingsForm()
    if not form.validate_on_submit():
        return form_errors(form)

    values = form_values(form)
    # toggles also accepted in the nested shape returned by GET
    toggles = request_payload().get('features_enabled')
    if isinstance(toggles, dict):
        for feature in ('chat', 'reports', 'payments'):
            if isinstance(toggles.get(feature), bool):
                values[f'feature_{feature}'] = toggles[feature]

    success, error, settings = SettingsService().update_settings(values, current_user)
    if not success:
        return json_error(error, 400)
    return json_success(settings=settings.to_dict())


# Fleet explorer

@admin_bp.route('/fleet')
@login_required
@capability_required('fleet.explore')
def fleet_explorer():
    """Search every driver, manager and vehicle by name, phone or vehicle number"""
    query = request.args.get('q', '')
    store = RecordStore()
    users = store.list_users()
    return json_success(
        managers=[user.to_dict() for user in search_users(users, query, UserRole.MANAGER)],
        drivers=[user.to_dict() for user in search_users(users, query, UserRole.DRIVER)],
        vehicles=[vehicle.to_dict() for vehicle in search_vehicles(store.list_vehicles(), query)],
    )


@admin_bp.route('/audit')
@login_required
@capability_required('dashboard.admin')
def audit_log():
    entity_type = request.args.get('entity_type')
    entity_id = request.args.get('entity_id', type=int)
    audit_service = AuditService()
    if entity_type and entity_id:
        entries = audit_service.get_entity_history(entity_type, entity_id, AUDIT_PAGE_SIZE)
    else:
        entries = audit_service.get_recent_activities(AUDIT_PAGE_SIZE)
    return json_success(entries=[entry.to_dict() for entry in entries])
