from flask import Blueprint
from flask_login import login_required, current_user
from forms import PaymentRequestForm
from services import RecordStore, RequestService, ReportingService, TripService
from utils.permissions import capability_required
from utils.responses import json_success, json_error, form_errors, form_values, request_payload, id_list
from utils.role_filters import vehicles_for_manager
import logging

logger = logging.getLogger(__name__)

ujala_bp = Blueprint('ujala', __name__)


def manager_vehicles():
    """Vehicles of the current user's assigned manager"""
    store = RecordStore()
    if not current_user.assigned_manager_id:
        return []
    return vehicles_for_manager(store.list_vehicles(), store.list_users(), current_user.assigned_manager_id)


def submit_payment_request():
    """Validate and file a payment request for the current user against their manager's trips"""
    form = PaymentRequestForm()
    if not form.validate_on_submit():
        return form_errors(form)

    vehicle_id = form.vehicle_id.data
    if vehicle_id and vehicle_id not in {vehicle.id for vehicle in manager_vehicles()}:
        return json_error('Vehicle not found', 400)

    trip_ids = id_list(request_payload().get('trip_ids'))
    if trip_ids is None:
        return json_error('Validation failed', 400, error='VALIDATION_ERROR',
                          errors={'trip_ids': ['Must be a list of trip ids.']})
    visible = {trip.id for trip in TripService().trips_for(current_user)}
    if not set(trip_ids).issubset(visible):
        return json_error('One or more trips were not found', 400)

    success, error, payment_request = RequestService().submit_payment_request(
        form_values(form), current_user, trip_ids
    )
    if not success:
        return json_error(error, 400)
    return json_success(201, payment_request=payment_request.to_dict())


def own_payment_requests():
    requests = RecordStore().list_payment_requests(requester_ids=[current_user.id])
    return json_success(payment_requests=[item.to_dict() for item in requests])


@ujala_bp.route('/dues')
@login_required
@capability_required('dues.view')
def dues_board():
    """Outstanding party dues of the manager's trips, Ujala first"""
    return json_success(dues=ReportingService().get_ujala_dues_board(current_user))


@ujala_bp.route('/payment-requests', methods=['POST'])
@login_required
@capability_required('payment_requests.create')
def create_payment_request():
    return submit_payment_request()


@ujala_bp.route('/payment-requests')
@login_required
@capability_required('payment_requests.create')
def payment_requests():
    return own_payment_requests()
