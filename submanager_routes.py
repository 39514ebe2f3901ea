from flask import Blueprint
from flask_login import login_required, current_user
from forms import TripRequestForm
from services import RecordStore, RequestService, ReportingService, TripService
from utils.permissions import capability_required
from utils.responses import json_success, json_error, form_errors, form_values
from utils.role_filters import drivers_for_manager, vehicle_for_driver
from ujala_routes import manager_vehicles, submit_payment_request, own_payment_requests
import logging

logger = logging.getLogger(__name__)

submanager_bp = Blueprint('submanager', __name__)


@submanager_bp.route('/fleet-status')
@login_required
@capability_required('fleet.status')
def fleet_status():
    """Latest trip state of the manager's vehicles, vehicles ready for a new load first"""
    return json_success(fleet=ReportingService().get_fleet_status(current_user))


@submanager_bp.route('/drivers')
@login_required
@capability_required('drivers.directory')
def driver_directory():
    if not current_user.assigned_manager_id:
        return json_success(drivers=[])

    store = RecordStore()
    vehicles = store.list_vehicles()
    directory = []
    for driver in drivers_for_manager(store.list_users(), current_user.assigned_manager_id, active_only=True):
        vehicle = vehicle_for_driver(vehicles, driver.id)
        entry = driver.to_dict()
        entry['vehicle_number'] = vehicle.vehicle_number if vehicle else None
        directory.append(entry)
    return json_success(drivers=directory)


@submanager_bp.route('/trips')
@login_required
@capability_required('trips.view')
def trips():
    return json_success(trips=[trip.to_dict() for trip in TripService().trips_for(current_user)])


@submanager_bp.route('/trip-requests', methods=['POST'])
@login_required
@capability_required('trip_requests.create')
def create_trip_request():
    """Ask the main manager for a trip; the movement follows the sub-manager's import/export desk"""
    form = TripRequestForm()
    if not form.validate_on_submit():
        return form_errors(form)

    if form.vehicle_id.data not in {vehicle.id for vehicle in manager_vehicles()}:
        return json_error('Vehicle not found', 400)

    success, error, trip_request = RequestService().submit_trip_request(form_values(form), current_user)
    if not success:
        return json_error(error, 400)
    return json_success(201, trip_request=trip_request.to_dict())


@submanager_bp.route('/trip-requests')
@login_required
@capability_required('trip_requests.create')
def trip_requests():
    requests = RecordStore().list_trip_requests(sub_manager_ids=[current_user.id])
    return json_success(trip_requests=[item.to_dict() for item in requests])


@submanager_bp.route('/payment-requests', methods=['POST'])
@login_required
@capability_required('payment_requests.create')
def create_payment_request():
    return submit_payment_request()


@submanager_bp.route('/payment-requests')
@login_required
@capability_required('payment_requests.create')
def payment_requests():
    return own_payment_requests()
