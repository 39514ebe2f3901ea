"""
Trip Service

Trip lifecycle: creation and edits by managers, direct export legs,
driver status updates and the final driver settlement.
"""

from typing import Optional, Dict, Any, Tuple
import logging
from models import (
    Trip, Payment, PaymentType, MovementStatus, TripType, TripStatus, UserRole,
    PACKAGE_AMOUNTS
)
from timezone_utils import get_local_date, get_local_time_naive
from utils.finance import (
    calculate_driver_pending, resolve_rent_company, total_advance, format_currency
)
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .record_store import RecordStore

logger = logging.getLogger(__name__)

# Status moves a driver may make on their own trip
DRIVER_TRANSITIONS = {
    TripStatus.LOADING: (TripStatus.RUNNING,),
    TripStatus.RUNNING: (TripStatus.DELAYED, TripStatus.UNLOADED),
    TripStatus.DELAYED: (TripStatus.UNLOADED,),
}

MONEY_FIELDS = ('party_fare', 'package_amount', 'party_advance_amount', 'company_advance_amount')
TEXT_FIELDS = ('loading_point', 'unloading_point')


def _enum_value(enum_cls, value):
    if value is None or isinstance(value, enum_cls):
        return value
    for member in enum_cls:
        if value in (member.value, member.name):
            return member
    raise ValueError(f"Invalid {enum_cls.__name__}: {value}")


class TripService:
    """Service class for trip operations"""

    def __init__(self, store: Optional[RecordStore] = None):
        self.store = store or RecordStore()
        self.audit_service = AuditService(self.store)

    def _apply_fields(self, trip: Trip, data: Dict[str, Any]) -> Optional[str]:
        """Copy cleaned form values onto the trip; returns an error message or None"""
        if 'vehicle_id' in data:
            vehicle = self.store.get_vehicle(data['vehicle_id'])
            if vehicle is None:
                return "Vehicle not found"
            trip.vehicle_id = vehicle.id
            trip.vehicle = vehicle

        try:
            if data.get('movement_status'):
                trip.movement_status = _enum_value(MovementStatus, data['movement_status'])
            if data.get('trip_type'):
                trip.trip_type = _enum_value(TripType, data['trip_type'])
        except ValueError as e:
            return str(e)

        if 'rent_company' in data:
            trip.rent_company = resolve_rent_company(data.get('rent_company'), data.get('custom_company'))

        for name in TEXT_FIELDS:
            if name in data:
                setattr(trip, name, (data[name] or '').strip())

        if data.get('date'):
            trip.date = data['date']

        for name in MONEY_FIELDS:
            if data.get(name) is not None:
                setattr(trip, name, float(data[name]))

        return None

    def _sync_derived(self, trip: Trip) -> None:
        trip.total_advance_paid = total_advance(trip)
        if trip.vehicle is not None:
            trip.driver_id = trip.vehicle.driver_id

    @TransactionHelper.with_transaction
    def create_trip(self, data: Dict[str, Any], actor) -> Tuple[bool, Optional[str], Optional[Trip]]:
        """
        Create a trip owned by the acting manager.

        Args:
            data: Cleaned trip form values
            actor: Manager creating the trip

        Returns:
            tuple: (success, error_message, trip)
        """
        if not data.get('vehicle_id'):
            return False, "Vehicle is required", None

        trip = Trip(
            manager_id=actor.id,
            status=TripStatus.LOADING,
            movement_status=MovementStatus.INPUT,
            trip_type=TripType.INPUT,
            package_amount=float(PACKAGE_AMOUNTS[0]),
            party_fare=0.0,
            party_advance_amount=0.0,
            company_advance_amount=0.0,
            date=get_local_date(),
        )
        error = self._apply_fields(trip, data)
        if error:
            return False, error, None

        self._sync_derived(trip)
        self.store.add_trip(trip)

        self.audit_service.log_action(
            action='create_trip',
            entity_type='trip',
            entity_id=trip.id,
            details={'trip_number': trip.trip_number, 'vehicle_id': trip.vehicle_id},
            user_id=actor.id
        )
        logger.info(f"Trip {trip.trip_number} created by user {actor.id}")
        return True, None, trip

    @TransactionHelper.with_transaction
    def create_direct_export(self, input_trip_id: int, data: Dict[str, Any],
                             actor) -> Tuple[bool, Optional[str], Optional[Trip]]:
        """Create the return leg of an input trip; vehicle and driver carry over"""
        input_trip = self.store.get_trip(input_trip_id)
        if input_trip is None:
            return False, "Input trip not found", None
        if input_trip.movement_status != MovementStatus.INPUT:
            return False, "Only input trips can receive an export leg", None

        data = dict(data)
        data.pop('vehicle_id', None)
        data['movement_status'] = MovementStatus.EXPORT

        trip = Trip(
            manager_id=actor.id,
            vehicle_id=input_trip.vehicle_id,
            vehicle=input_trip.vehicle,
            related_trip_id=input_trip.id,
            status=TripStatus.LOADING,
            trip_type=input_trip.trip_type,
            rent_company=input_trip.rent_company,
            package_amount=input_trip.package_amount,
            party_fare=0.0,
            party_advance_amount=0.0,
            company_advance_amount=0.0,
            date=get_local_date(),
        )
        error = self._apply_fields(trip, data)
        if error:
            return False, error, None

        self._sync_derived(trip)
        if trip.driver_id is None:
            trip.driver_id = input_trip.driver_id
        self.store.add_trip(trip)

        self.audit_service.log_action(
            action='create_direct_export',
            entity_type='trip',
            entity_id=trip.id,
            details={'trip_number': trip.trip_number, 'input_trip_id': input_trip.id},
            user_id=actor.id
        )
        logger.info(f"Export leg {trip.trip_number} linked to {input_trip.trip_number}")
        return True, None, trip

    @TransactionHelper.with_transaction
    def update_trip(self, trip_id: int, data: Dict[str, Any], actor) -> Tuple[bool, Optional[str], Optional[Trip]]:
        trip = self.store.get_trip(trip_id)
        if trip is None:
            return False, "Trip not found", None

        if data.get('status'):
            try:
                status = _enum_value(TripStatus, data['status'])
            except ValueError as e:
                return False, str(e), None
            if status == TripStatus.COMPLETED and trip.status != TripStatus.COMPLETED:
                return False, "Trips are completed through driver settlement", None
            trip.status = status

        error = self._apply_fields(trip, data)
        if error:
            return False, error, None

        self._sync_derived(trip)
        self.store.update_trip(trip)

        self.audit_service.log_action(
            action='update_trip',
            entity_type='trip',
            entity_id=trip.id,
            details={'fields': sorted(k for k in data.keys() if k != 'custom_company')},
            user_id=actor.id
        )
        return True, None, trip

    @TransactionHelper.with_transaction
    def delete_trip(self, trip_id: int, actor) -> Tuple[bool, Optional[str], Optional[Trip]]:
        trip = self.store.get_trip(trip_id)
        if trip is None:
            return False, "Trip not found", None

        trip_number = trip.trip_number
        self.store.delete_trip(trip)
        self.audit_service.log_action(
            action='delete_trip',
            entity_type='trip',
            entity_id=trip_id,
            details={'trip_number': trip_number},
            user_id=actor.id
        )
        logger.info(f"Trip {trip_number} deleted by user {actor.id}")
        return True, None, None

    @TransactionHelper.with_transaction
    def update_status(self, trip_id: int, target, driver) -> Tuple[bool, Optional[str], Optional[Trip]]:
        """
        Move a driver's trip to the next status.

        Loading -> Running, Running -> Delayed, Running/Delayed -> Unloaded.
        Unloading stamps the unloading time. Completion happens only through
        settlement.
        """
        trip = self.store.get_trip(trip_id)
        if trip is None or trip.driver_id != driver.id:
            return False, "Trip not found", None

        try:
            target = _enum_value(TripStatus, target)
        except ValueError as e:
            return False, str(e), None

        if target not in DRIVER_TRANSITIONS.get(trip.status, ()):
            return False, f"Cannot change status from {trip.status.value} to {target.value}", None

        previous = trip.status
        trip.status = target
        if target == TripStatus.UNLOADED:
            trip.unloading_date = get_local_time_naive()
        self.store.update_trip(trip)

        self.audit_service.log_action(
            action='update_trip_status',
            entity_type='trip',
            entity_id=trip.id,
            details={'from': previous.value, 'to': target.value},
            user_id=driver.id
        )
        logger.info(f"Trip {trip.trip_number} moved {previous.value} -> {target.value}")
        return True, None, trip

    def settlement_preview(self, trip: Trip) -> Dict[str, Any]:
        pending = calculate_driver_pending(trip)
        return {
            'trip_id': trip.id,
            'trip_number': trip.trip_number,
            'amount': pending,
            'message': f"Confirm final payment of {format_currency(pending)} to driver?",
        }

    @TransactionHelper.with_transaction
    def settle_trip(self, trip_id: int, actor) -> Tuple[bool, Optional[str], Optional[Payment]]:
        """
        Pay the driver what is still pending on a trip.

        Creates a Driver Settlement payment covering the trip and its linked
        leg, then marks both legs Completed.
        """
        trip = self.store.get_trip(trip_id)
        if trip is None:
            return False, "Trip not found", None

        pending = calculate_driver_pending(trip)
        if pending <= 0:
            return False, "No pending amount to settle.", None

        related = trip.related_trip
        payment = Payment(
            payment_type=PaymentType.DRIVER_SETTLEMENT,
            payer=trip.rent_company,
            vehicle_id=trip.vehicle_id,
            amount=pending,
            remaining_due=0.0,
            date=get_local_date(),
            notes=f"Final settlement for {trip.trip_number}",
            created_by=actor.id,
        )
        payment.trips = [leg for leg in (trip, related) if leg is not None]
        self.store.add_payment(payment)

        for leg in payment.trips:
            leg.status = TripStatus.COMPLETED

        self.audit_service.log_action(
            action='settle_trip',
            entity_type='trip',
            entity_id=trip.id,
            details={'payment_id': payment.id, 'amount': pending, 'trip_ids': payment.trip_ids},
            user_id=actor.id
        )
        logger.info(f"Driver settlement of {pending} recorded for trip {trip.trip_number}")
        return True, None, payment

    def trips_for(self, user, trips=None):
        from utils.role_filters import trips_for_user
        return trips_for_user(trips if trips is not None else self.store.list_trips(), user)

    def get_visible_trip(self, trip_id: int, user) -> Optional[Trip]:
        """The trip if the user may see it, otherwise None"""
        trip = self.store.get_trip(trip_id)
        if trip is None:
            return None
        if user.role == UserRole.SUPER_ADMIN:
            return trip
        return trip if self.trips_for(user, [trip]) else None
