from flask import Blueprint, request
from flask_login import login_required, current_user
from forms import TripStatusForm
from models import ACTIVE_TRIP_STATUSES
from services import RecordStore, TripService, SalaryService, ReportingService
from services.salary_service import is_valid_month
from timezone_utils import current_month_key
from utils.permissions import capability_required, feature_required
from utils.responses import json_success, json_error, form_errors
from utils.role_filters import payments_for_driver
import logging

logger = logging.getLogger(__name__)

driver_bp = Blueprint('driver', __name__)


@driver_bp.route('/trips')
@login_required
@capability_required('trips.update_status')
def my_trips():
    """The driver's trips, with the ones still in motion listed separately"""
    trips = TripService().trips_for(current_user)
    return json_success(
        active=[trip.to_dict() for trip in trips if trip.status in ACTIVE_TRIP_STATUSES],
        trips=[trip.to_dict() for trip in trips],
    )


@driver_bp.route('/trips/<int:trip_id>/status', methods=['POST'])
@login_required
@capability_required('trips.update_status')
def update_trip_status(trip_id):
    if TripService().get_visible_trip(trip_id, current_user) is None:
        return json_error('Trip not found', 404, error='NOT_FOUND')
    form = TripStatusForm()
    if not form.validate_on_submit():
        return form_errors(form)

    success, error, trip = TripService().update_status(trip_id, form.status.data, current_user)
    if not success:
        return json_error(error, 400)
    return json_success(trip=trip.to_dict())


@driver_bp.route('/vehicle')
@login_required
@capability_required('trips.update_status')
def my_vehicle():
    vehicle = RecordStore().get_vehicle_for_driver(current_user.id)
    return json_success(vehicle=vehicle.to_dict() if vehicle else None)


@driver_bp.route('/payments')
@login_required
@capability_required('payments.view_own')
@feature_required('payments')
def my_payments():
    store = RecordStore()
    payments = payments_for_driver(store.list_payments(), store.list_vehicles(), current_user.id)
    return json_success(payments=[payment.to_dict() for payment in payments])


@driver_bp.route('/salary')
@login_required
@capability_required('salary.view_own')
def my_salary():
    month = request.args.get('month') or current_month_key()
    if not is_valid_month(month):
        return json_error('Month must be in YYYY-MM format', 400, error='VALIDATION_ERROR')

    salary_service = SalaryService()
    return json_success(
        summary=salary_service.get_salary_summary(current_user.id, month),
        history=salary_service.history_for_driver(current_user.id),
    )


@driver_bp.route('/export-sheet')
@login_required
@capability_required('trips.view')
def export_sheet():
    trips = ReportingService().get_export_sheet(
        current_user, request.args.get('search'), request.args.get('status')
    )
    return json_success(trips=trips)
