from flask import Blueprint, request
from flask_login import login_required, current_user
from forms import (
    UserCreateForm, UserUpdateForm, UserStatusForm, VehicleForm, VehicleUpdateForm,
    TripForm, TripUpdateForm, DirectExportForm, ManualPaymentForm, SalaryAdvanceForm,
    SalarySettleForm, ApproveTripRequestForm, RejectRequestForm
)
from models import UserRole
from services import (
    RecordStore, TripService, PaymentService, SalaryService, RequestService,
    ReportingService, UserService, VehicleService
)
from services.salary_service import is_valid_month
from timezone_utils import current_month_key
from utils.permissions import capability_required, feature_required
from utils.responses import (
    json_success, json_error, form_errors, form_values, request_payload,
    confirmation_required, id_list
)
from utils.role_filters import (
    drivers_for_manager, sub_managers_for_manager, vehicles_for_manager, payments_for_manager,
    SUB_MANAGER_ROLES
)
import logging

logger = logging.getLogger(__name__)

manager_bp = Blueprint('manager', __name__)


def _not_found(label):
    return json_error(f'{label} not found', 404, error='NOT_FOUND')


def _is_super_admin():
    return current_user.role == UserRole.SUPER_ADMIN


def _scoped_user(user_id, roles):
    """The user if they report to the current manager (any for the super admin)"""
    user = RecordStore().get_user(user_id)
    if user is None or user.role not in roles:
        return None
    if _is_super_admin() or user.assigned_manager_id == current_user.id:
        return user
    return None


def _visible_vehicles():
    store = RecordStore()
    if _is_super_admin():
        return store.list_vehicles()
    return vehicles_for_manager(store.list_vehicles(), store.list_users(), current_user.id)


def _scoped_vehicle(vehicle_id):
    for vehicle in _visible_vehicles():
        if vehicle.id == vehicle_id:
            return vehicle
    return None


def _scoped_trip(trip_id):
    return TripService().get_visible_trip(trip_id, current_user)


def _visible_trip_ids():
    return {trip.id for trip in TripService().trips_for(current_user)}


def _visible_payments():
    store = RecordStore()
    return payments_for_manager(
        PaymentService(store).list_payments(), store.list_trips(), _visible_vehicles(), current_user
    )


# Dashboard

@manager_bp.route('/dashboard')
@login_required
@capability_required('reports.view')
def dashboard():
    return json_success(dashboard=ReportingService().get_manager_dashboard(current_user))


# Drivers and sub-managers

@manager_bp.route('/drivers')
@login_required
@capability_required('drivers.manage')
def drivers():
    store = RecordStore()
    if _is_super_admin():
        users = store.list_users(UserRole.DRIVER)
    else:
        users = drivers_for_manager(store.list_users(), current_user.id)
    return json_success(drivers=[user.to_dict() for user in users])


@manager_bp.route('/drivers', methods=['POST'])
@login_required
@capability_required('drivers.manage')
def create_driver():
    form = UserCreateForm()
    if not form.validate_on_submit():
        return form_errors(form)

    success, error, driver = UserService().create_user(
        form_values(form), UserRole.DRIVER, current_user, assigned_manager_id=current_user.id
    )
    if not success:
        return json_error(error, 400)
    return json_success(201, driver=driver.to_dict())


@manager_bp.route('/drivers/<int:user_id>', methods=['PUT'])
@login_required
@capability_required('drivers.manage')
def update_driver(user_id):
    if _scoped_user(user_id, (UserRole.DRIVER,)) is None:
        return _not_found('Driver')
    form = UserUpdateForm()
    if not form.validate_on_submit():
        return form_errors(form)

    success, error, driver = UserService().update_user(user_id, form_values(form), current_user)
    if not success:
        return json_error(error, 400)
    return json_success(driver=driver.to_dict())


@manager_bp.route('/sub-managers')
@login_required
@capability_required('sub_managers.manage')
def sub_managers():
    store = RecordStore()
    if _is_super_admin():
        users = [user for user in store.list_users() if user.role in SUB_MANAGER_ROLES]
    else:
        users = sub_managers_for_manager(store.list_users(), current_user.id)
    return json_success(sub_managers=[user.to_dict() for user in users])


@manager_bp.route('/sub-managers', methods=['POST'])
@login_required
@capability_required('sub_managers.manage')
def create_sub_manager():
    form = UserCreateForm()
    if not form.validate_on_submit():
        return form_errors(form)

    role = UserRole(form.role.data or UserRole.SUB_MANAGER.value)
    success, error, user = UserService().create_user(
        form_values(form), role, current_user, assigned_manager_id=current_user.id
    )
    if not success:
        return json_error(error, 400)
    return json_success(201, sub_manager=user.to_dict())


@manager_bp.route('/sub-managers/<int:user_id>', methods=['PUT'])
@login_required
@capability_required('sub_managers.manage')
def update_sub_manager(user_id):
    if _scoped_user(user_id, SUB_MANAGER_ROLES) is None:
        return _not_found('Sub-manager')
    form = UserUpdateForm()
    if not form.validate_on_submit():
        return form_errors(form)

    success, error, user = UserService().update_user(user_id, form_values(form), current_user)
    if not success:
        return json_error(error, 400)
    return json_success(sub_manager=user.to_dict())


@manager_bp.route('/users/<int:user_id>/status', methods=['POST'])
@login_required
@capability_required('drivers.manage')
def set_user_status(user_id):
    """Activate or deactivate a driver or sub-manager; accounts are never deleted"""
    if _scoped_user(user_id, (UserRole.DRIVER,) + SUB_MANAGER_ROLES) is None:
        return _not_found('User')
    form = UserStatusForm()
    if not form.validate_on_submit() or 'is_active' not in request_payload():
        return json_error('Validation failed', 400, error='VALIDATION_ERROR',
                          errors={'is_active': ['This field is required.']})

    success, error, user = UserService().set_active(user_id, form.is_active.data, current_user)
    if not success:
        return json_error(error, 400)
    return json_success(user=user.to_dict())


# Vehicles

@manager_bp.route('/vehicles')
@login_required
@capability_required('vehicles.manage')
def vehicles():
    return json_success(vehicles=[vehicle.to_dict() for vehicle in _visible_vehicles()])


@manager_bp.route('/vehicles', methods=['POST'])
@login_required
@capability_required('vehicles.manage')
def create_vehicle():
    form = VehicleForm()
    if not form.validate_on_submit():
        return form_errors(form)

    values = form_values(form)
    if values.get('driver_id') and _scoped_user(values['driver_id'], (UserRole.DRIVER,)) is None:
        return json_error('Driver not found', 400)

    success, error, vehicle = VehicleService().create_vehicle(values, current_user)
    if not success:
        return json_error(error, 400)
    return json_success(201, vehicle=vehicle.to_dict())


@manager_bp.route('/vehicles/<int:vehicle_id>', methods=['PUT'])
@login_required
@capability_required('vehicles.manage')
def update_vehicle(vehicle_id):
    if _scoped_vehicle(vehicle_id) is None:
        return _not_found('Vehicle')
    form = VehicleUpdateForm()
    if not form.validate_on_submit():
        return form_errors(form)

    values = form_values(form)
    if values.get('driver_id') and _scoped_user(values['driver_id'], (UserRole.DRIVER,)) is None:
        return json_error('Driver not found', 400)

    success, error, vehicle = VehicleService().update_vehicle(vehicle_id, values, current_user)
    if not success:
        return json_error(error, 400)
    return json_success(vehicle=vehicle.to_dict())


@manager_bp.route('/vehicles/<int:vehicle_id>', methods=['DELETE'])
@login_required
@capability_required('vehicles.delete')
def delete_vehicle(vehicle_id):
    vehicle = _scoped_vehicle(vehicle_id)
    if vehicle is None:
        return _not_found('Vehicle')

    vehicle_service = VehicleService()
    prompt = confirmation_required(vehicle_service.deletion_preview(vehicle))
    if prompt is not None:
        return prompt

    success, error, _ = vehicle_service.delete_vehicle(vehicle_id, current_user)
    if not success:
        return json_error(error, 400)
    return json_success(message='Vehicle deleted')


# Trips

@manager_bp.route('/trips')
@login_required
@capability_required('trips.view')
def trips():
    """Visible trips, optionally narrowed by movement, status or vehicle"""
    movement = request.args.get('movement')
    status = request.args.get('status')
    vehicle_id = request.args.get('vehicle_id', type=int)

    results = []
    for trip in TripService().trips_for(current_user):
        if movement and trip.movement_status.value != movement:
            continue
        if status and status != 'all' and trip.status.value != status:
            continue
        if vehicle_id and trip.vehicle_id != vehicle_id:
            continue
        results.append(trip)
    return json_success(trips=[trip.to_dict() for trip in results])


@manager_bp.route('/trips/<int:trip_id>')
@login_required
@capability_required('trips.view')
def trip_detail(trip_id):
    trip = _scoped_trip(trip_id)
    if trip is None:
        return _not_found('Trip')
    data = trip.to_dict()
    data['related_trip'] = trip.related_trip.to_dict() if trip.related_trip else None
    return json_success(trip=data)


@manager_bp.route('/trips', methods=['POST'])
@login_required
@capability_required('trips.create')
def create_trip():
    form = TripForm()
    if not form.validate_on_submit():
        return form_errors(form)

    values = form_values(form)
    if _scoped_vehicle(values['vehicle_id']) is None:
        return json_error('Vehicle not found', 400)

    success, error, trip = TripService().create_trip(values, current_user)
    if not success:
        return json_error(error, 400)
    return json_success(201, trip=trip.to_dict())


@manager_bp.route('/trips/<int:trip_id>/export', methods=['POST'])
@login_required
@capability_required('trips.create')
def create_direct_export(trip_id):
    """Create the export leg for an input trip"""
    if _scoped_trip(trip_id) is None:
        return _not_found('Trip')
    form = DirectExportForm()
    if not form.validate_on_submit():
        return form_errors(form)

    success, error, trip = TripService().create_direct_export(trip_id, form_values(form), current_user)
    if not success:
        return json_error(error, 400)
    return json_success(201, trip=trip.to_dict())


@manager_bp.route('/trips/<int:trip_id>', methods=['PUT'])
@login_required
@capability_required('trips.edit')
def update_trip(trip_id):
    if _scoped_trip(trip_id) is None:
        return _not_found('Trip')
    form = TripUpdateForm()
    if not form.validate_on_submit():
        return form_errors(form)

    values = form_values(form)
    if values.get('vehicle_id') and _scoped_vehicle(values['vehicle_id']) is None:
        return json_error('Vehicle not found', 400)

    success, error, trip = TripService().update_trip(trip_id, values, current_user)
    if not success:
        return json_error(error, 400)
    return json_success(trip=trip.to_dict())


@manager_bp.route('/trips/<int:trip_id>', methods=['DELETE'])
@login_required
@capability_required('trips.delete')
def delete_trip(trip_id):
    trip = _scoped_trip(trip_id)
    if trip is None:
        return _not_found('Trip')

    prompt = confirmation_required({
        'trip_id': trip.id,
        'trip_number': trip.trip_number,
        'message': f'Delete trip {trip.trip_number}?',
    })
    if prompt is not None:
        return prompt

    success, error, _ = TripService().delete_trip(trip_id, current_user)
    if not success:
        return json_error(error, 400)
    return json_success(message='Trip deleted')


@manager_bp.route('/trips/<int:trip_id>/settle', methods=['POST'])
@login_required
@capability_required('trips.settle')
def settle_trip(trip_id):
    """Pay the driver's pending amount and complete the trip (and its linked leg)"""
    trip = _scoped_trip(trip_id)
    if trip is None:
        return _not_found('Trip')

    trip_service = TripService()
    preview = trip_service.settlement_preview(trip)
    if preview['amount'] <= 0:
        return json_error('No pending amount to settle.', 400)
    prompt = confirmation_required(preview)
    if prompt is not None:
        return prompt

    success, error, payment = trip_service.settle_trip(trip_id, current_user)
    if not success:
        return json_error(error, 400)
    return json_success(payment=payment.to_dict(), trip=trip.to_dict())


@manager_bp.route('/export-sheet')
@login_required
@capability_required('trips.view')
def export_sheet():
    trips = ReportingService().get_export_sheet(
        current_user, request.args.get('search'), request.args.get('status')
    )
    return json_success(trips=trips)


# Payments

@manager_bp.route('/payments')
@login_required
@capability_required('payments.view')
@feature_required('payments')
def payments():
    return json_success(payments=[payment.to_dict() for payment in _visible_payments()])


@manager_bp.route('/payments', methods=['POST'])
@login_required
@capability_required('payments.create')
@feature_required('payments')
def create_payment():
    """Record a manual payment; trip_ids selects the trips it is applied to"""
    form = ManualPaymentForm()
    if not form.validate_on_submit():
        return form_errors(form)

    trip_ids = id_list(request_payload().get('trip_ids'))
    if trip_ids is None:
        return json_error('Validation failed', 400, error='VALIDATION_ERROR',
                          errors={'trip_ids': ['Must be a list of trip ids.']})
    if not set(trip_ids).issubset(_visible_trip_ids()):
        return json_error('One or more trips were not found', 400)

    values = form_values(form)
    if values.get('vehicle_id') and _scoped_vehicle(values['vehicle_id']) is None:
        return json_error('Vehicle not found', 400)

    success, error, payment = PaymentService().record_payment(values, current_user, trip_ids)
    if not success:
        return json_error(error, 400)
    return json_success(201, payment=payment.to_dict())


@manager_bp.route('/payments/<int:payment_id>', methods=['DELETE'])
@login_required
@capability_required('payments.delete')
@feature_required('payments')
def delete_payment(payment_id):
    payment = next((item for item in _visible_payments() if item.id == payment_id), None)
    if payment is None:
        return _not_found('Payment')

    payment_service = PaymentService()
    prompt = confirmation_required(payment_service.deletion_preview(payment))
    if prompt is not None:
        return prompt

    success, error, _ = payment_service.delete_payment(payment_id, current_user)
    if not success:
        return json_error(error, 400)
    return json_success(message='Payment deleted')


# Salary

@manager_bp.route('/salary')
@login_required
@capability_required('salary.manage')
def salary_overview():
    month = request.args.get('month') or current_month_key()
    if not is_valid_month(month):
        return json_error('Month must be in YYYY-MM format', 400, error='VALIDATION_ERROR')

    store = RecordStore()
    if _is_super_admin():
        drivers = store.list_users(UserRole.DRIVER)
    else:
        drivers = drivers_for_manager(store.list_users(), current_user.id)

    summaries = SalaryService(store).list_summaries([driver.id for driver in drivers], month)
    names = {driver.id: driver.name for driver in drivers}
    for summary in summaries:
        summary['driver_name'] = names.get(summary['driver_id'])
    return json_success(month=month, salaries=summaries)


@manager_bp.route('/salary/<int:driver_id>/history')
@login_required
@capability_required('salary.manage')
def salary_history(driver_id):
    if _scoped_user(driver_id, (UserRole.DRIVER,)) is None:
        return _not_found('Driver')
    return json_success(history=SalaryService().history_for_driver(driver_id))


@manager_bp.route('/salary/advances', methods=['POST'])
@login_required
@capability_required('salary.manage')
def add_salary_advance():
    form = SalaryAdvanceForm()
    if not form.validate_on_submit():
        return form_errors(form)
    if _scoped_user(form.driver_id.data, (UserRole.DRIVER,)) is None:
        return _not_found('Driver')

    success, error, record = SalaryService().add_advance(
        form.driver_id.data, form.month.data, form.amount.data, current_user, form.notes.data
    )
    if not success:
        return json_error(error, 400)
    return json_success(201, salary=record.to_dict())


@manager_bp.route('/salary/settle', methods=['POST'])
@login_required
@capability_required('salary.manage')
def settle_salary():
    form = SalarySettleForm()
    if not form.validate_on_submit():
        return form_errors(form)
    if _scoped_user(form.driver_id.data, (UserRole.DRIVER,)) is None:
        return _not_found('Driver')

    salary_service = SalaryService()
    prompt = confirmation_required(salary_service.settlement_preview(form.driver_id.data, form.month.data))
    if prompt is not None:
        return prompt

    success, error, payment = salary_service.settle_month(form.driver_id.data, form.month.data, current_user)
    if not success:
        return json_error(error, 400)
    return json_success(payment=payment.to_dict())


# Requests

@manager_bp.route('/requests')
@login_required
@capability_required('requests.approve')
def pending_requests():
    request_service = RequestService()
    return json_success(
        trip_requests=[item.to_dict() for item in request_service.pending_trip_requests(current_user)],
        payment_requests=[item.to_dict() for item in request_service.pending_payment_requests(current_user)],
    )


@manager_bp.route('/trip-requests/<int:request_id>/approve', methods=['POST'])
@login_required
@capability_required('requests.approve')
def approve_trip_request(request_id):
    request_service = RequestService()
    trip_request = request_service.store.get_trip_request(request_id)
    if trip_request is None or not request_service.in_scope(trip_request, current_user):
        return _not_found('Trip request')
    form = ApproveTripRequestForm()
    if not form.validate_on_submit():
        return form_errors(form)

    success, error, trip = request_service.approve_trip_request(request_id, current_user, form_values(form))
    if not success:
        return json_error(error, 400)
    return json_success(trip=trip.to_dict())


@manager_bp.route('/payment-requests/<int:request_id>/approve', methods=['POST'])
@login_required
@capability_required('requests.approve')
def approve_payment_request(request_id):
    request_service = RequestService()
    payment_request = request_service.store.get_payment_request(request_id)
    if payment_request is None or not request_service.in_scope(payment_request, current_user):
        return _not_found('Payment request')

    success, error, payment = request_service.approve_payment_request(request_id, current_user)
    if not success:
        return json_error(error, 400)
    return json_success(payment=payment.to_dict())


@manager_bp.route('/<any(trip, payment):kind>-requests/<int:request_id>/reject', methods=['POST'])
@login_required
@capability_required('requests.approve')
def reject_request(kind, request_id):
    request_service = RequestService()
    if kind == 'trip':
        pending = request_service.store.get_trip_request(request_id)
    else:
        pending = request_service.store.get_payment_request(request_id)
    if pending is None or not request_service.in_scope(pending, current_user):
        return _not_found('Request')
    form = RejectRequestForm()
    if not form.validate_on_submit():
        return form_errors(form)

    success, error, resolved = request_service.reject_request(kind, request_id, current_user, form.reason.data)
    if not success:
        return json_error(error, 400)
    return json_success(request=resolved.to_dict())


# Reports

@manager_bp.route('/reports/monthly')
@login_required
@capability_required('reports.view')
@feature_required('reports')
def monthly_report():
    month = request.args.get('month') or current_month_key()
    if not is_valid_month(month):
        return json_error('Month must be in YYYY-MM format', 400, error='VALIDATION_ERROR')
    report = ReportingService().get_monthly_report(current_user, month, request.args.get('company'))
    return json_success(report=report)


@manager_bp.route('/reports/dues')
@login_required
@capability_required('reports.view')
def dues_board():
    return json_success(dues=ReportingService().get_ujala_dues_board(current_user))
