"""
Request Service

Trip requests raised by sub-managers and payment requests raised by Ujala
managers. Both move pending -> approved | rejected exactly once; approval
creates the trip or payment the request describes.
"""

from typing import Optional, Dict, Any, Iterable, List, Tuple, Union
import logging
from models import (
    Trip, TripRequest, PaymentRequest, Payment, PaymentType, RequestStatus, MovementStatus,
    SubManagerType, TripType, TripStatus, UserRole, PACKAGE_AMOUNTS
)
from timezone_utils import get_local_date, get_local_time_naive
from utils.finance import resolve_rent_company, total_advance
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .chat_service import ChatService
from .payment_service import PaymentService
from .record_store import RecordStore

logger = logging.getLogger(__name__)

RESOLVED_STATUSES = (RequestStatus.APPROVED, RequestStatus.REJECTED)


class InvalidTransition(Exception):
    """Raised when a request is moved out of a state it cannot leave"""
    pass


def transition(request: Union[TripRequest, PaymentRequest], target: RequestStatus, actor) -> None:
    """Resolve a pending request, stamping who resolved it and when"""
    if target not in RESOLVED_STATUSES:
        raise InvalidTransition(f"Cannot move a request to {target.value}")
    if request.status != RequestStatus.PENDING:
        raise InvalidTransition(f"Request is already {request.status.value}")
    request.status = target
    request.resolved_by = actor.id
    request.resolved_at = get_local_time_naive()


def request_type_for(sub_manager) -> MovementStatus:
    if sub_manager.sub_manager_type == SubManagerType.EXPORT:
        return MovementStatus.EXPORT
    return MovementStatus.INPUT


class RequestService:
    """Service class for the trip/payment request workflow"""

    def __init__(self, store: Optional[RecordStore] = None):
        self.store = store or RecordStore()
        self.audit_service = AuditService(self.store)
        self.chat_service = ChatService(self.store)
        self.payment_service = PaymentService(self.store)

    # Submission

    @TransactionHelper.with_transaction
    def submit_trip_request(self, data: Dict[str, Any], sub_manager) -> Tuple[bool, Optional[str], Optional[TripRequest]]:
        vehicle = self.store.get_vehicle(data.get('vehicle_id'))
        if vehicle is None:
            return False, "Vehicle not found", None

        trip_request = TripRequest(
            sub_manager_id=sub_manager.id,
            vehicle_id=vehicle.id,
            loading_point=(data.get('loading_point') or '').strip(),
            unloading_point=(data.get('unloading_point') or '').strip(),
            rent_company=resolve_rent_company(data.get('rent_company'), data.get('custom_company')),
            estimated_fare=float(data.get('estimated_fare') or 0),
            request_type=request_type_for(sub_manager),
            status=RequestStatus.PENDING,
            timestamp=get_local_time_naive(),
        )
        self.store.add_trip_request(trip_request)

        self.audit_service.log_action(
            action='submit_trip_request',
            entity_type='trip_request',
            entity_id=trip_request.id,
            details={'vehicle_id': vehicle.id, 'request_type': trip_request.request_type.value},
            user_id=sub_manager.id
        )
        logger.info(f"Trip request {trip_request.id} submitted by user {sub_manager.id}")
        return True, None, trip_request

    @TransactionHelper.with_transaction
    def submit_payment_request(self, data: Dict[str, Any], requester,
                               trip_ids: Optional[Iterable[int]] = None) -> Tuple[bool, Optional[str], Optional[PaymentRequest]]:
        amount = float(data.get('amount') or 0)
        if amount <= 0:
            return False, "Amount must be greater than zero", None

        vehicle_id = data.get('vehicle_id') or None
        if vehicle_id and self.store.get_vehicle(vehicle_id) is None:
            return False, "Vehicle not found", None

        trip_ids = list(trip_ids or [])
        trips = self.store.get_trips(trip_ids)
        if len(trips) != len(set(trip_ids)):
            return False, "One or more trips were not found", None

        payment_request = PaymentRequest(
            requested_by=requester.id,
            vehicle_id=vehicle_id,
            rent_company=resolve_rent_company(data.get('rent_company'), data.get('custom_company')),
            amount=amount,
            notes=(data.get('notes') or '').strip() or None,
            status=RequestStatus.PENDING,
            timestamp=get_local_time_naive(),
        )
        payment_request.trips = trips
        self.store.add_payment_request(payment_request)

        self.audit_service.log_action(
            action='submit_payment_request',
            entity_type='payment_request',
            entity_id=payment_request.id,
            details={'amount': amount, 'trip_ids': [trip.id for trip in trips]},
            user_id=requester.id
        )
        logger.info(f"Payment request {payment_request.id} for {amount} submitted by user {requester.id}")
        return True, None, payment_request

    # Resolution

    @TransactionHelper.with_transaction
    def approve_trip_request(self, request_id: int, actor,
                             overrides: Optional[Dict[str, Any]] = None) -> Tuple[bool, Optional[str], Optional[Trip]]:
        """
        Approve a trip request and create the trip it describes.

        The approving manager owns the trip; the driver comes from the
        vehicle. An export request is linked to the vehicle's latest input
        leg. The assigned driver is told about the trip over chat.

        Args:
            request_id: Trip request to approve
            actor: Approving manager
            overrides: Optional package_amount, party_advance_amount,
                company_advance_amount and trip_type for the new trip
        """
        trip_request = self.store.get_trip_request(request_id)
        if trip_request is None:
            return False, "Trip request not found", None

        try:
            transition(trip_request, RequestStatus.APPROVED, actor)
        except InvalidTransition as e:
            return False, str(e), None

        vehicle = trip_request.vehicle
        if vehicle is None:
            return False, "The requested vehicle no longer exists", None

        # queried before the new trip is attached to vehicle.trips
        input_leg = None
        if trip_request.request_type == MovementStatus.EXPORT:
            input_leg = self.store.latest_input_trip(vehicle.id)

        overrides = {key: value for key, value in (overrides or {}).items() if value not in (None, '')}
        trip = Trip(
            vehicle_id=vehicle.id,
            vehicle=vehicle,
            driver_id=vehicle.driver_id,
            manager_id=actor.id,
            movement_status=trip_request.request_type,
            trip_type=TripType(overrides.get('trip_type', TripType.INPUT.value)),
            rent_company=trip_request.rent_company,
            loading_point=trip_request.loading_point,
            unloading_point=trip_request.unloading_point,
            date=get_local_date(),
            status=TripStatus.LOADING,
            party_fare=float(trip_request.estimated_fare or 0),
            package_amount=float(overrides.get('package_amount', PACKAGE_AMOUNTS[0])),
            party_advance_amount=float(overrides.get('party_advance_amount', 0)),
            company_advance_amount=float(overrides.get('company_advance_amount', 0)),
        )
        trip.total_advance_paid = total_advance(trip)
        if input_leg is not None:
            trip.related_trip_id = input_leg.id

        self.store.add_trip(trip)
        trip_request.trip_id = trip.id

        if trip.driver_id:
            self.chat_service.post_message(
                actor.id, trip.driver_id,
                f"New trip assigned: {trip.loading_point} to {trip.unloading_point} ({trip.trip_number})"
            )

        self.audit_service.log_action(
            action='approve_trip_request',
            entity_type='trip_request',
            entity_id=trip_request.id,
            details={'trip_id': trip.id, 'trip_number': trip.trip_number},
            user_id=actor.id
        )
        logger.info(f"Trip request {trip_request.id} approved as {trip.trip_number}")
        return True, None, trip

    @TransactionHelper.with_transaction
    def approve_payment_request(self, request_id: int, actor) -> Tuple[bool, Optional[str], Optional[Payment]]:
        """Approve a payment request and record it as an Ujala Request payment"""
        payment_request = self.store.get_payment_request(request_id)
        if payment_request is None:
            return False, "Payment request not found", None

        try:
            transition(payment_request, RequestStatus.APPROVED, actor)
        except InvalidTransition as e:
            return False, str(e), None

        payment = Payment(
            payment_type=PaymentType.UJALA_REQUEST,
            payer=payment_request.rent_company,
            vehicle_id=payment_request.vehicle_id,
            amount=payment_request.amount,
            date=get_local_date(),
            notes=payment_request.notes,
            created_by=actor.id,
        )
        self.payment_service.apply_collection(payment, actor, [trip.id for trip in payment_request.trips])
        self.store.add_payment(payment)
        payment_request.payment_id = payment.id

        self.audit_service.log_action(
            action='approve_payment_request',
            entity_type='payment_request',
            entity_id=payment_request.id,
            details={'payment_id': payment.id, 'amount': payment.amount},
            user_id=actor.id
        )
        logger.info(f"Payment request {payment_request.id} approved as payment {payment.id}")
        return True, None, payment

    @TransactionHelper.with_transaction
    def reject_request(self, kind: str, request_id: int, actor,
                       reason: Optional[str] = None) -> Tuple[bool, Optional[str], Any]:
        """Reject a pending trip or payment request; kind is 'trip' or 'payment'"""
        if kind == 'trip':
            request = self.store.get_trip_request(request_id)
        elif kind == 'payment':
            request = self.store.get_payment_request(request_id)
        else:
            return False, f"Unknown request kind: {kind}", None
        if request is None:
            return False, "Request not found", None

        try:
            transition(request, RequestStatus.REJECTED, actor)
        except InvalidTransition as e:
            return False, str(e), None
        request.rejection_reason = (reason or '').strip() or None

        self.audit_service.log_action(
            action=f'reject_{kind}_request',
            entity_type=f'{kind}_request',
            entity_id=request.id,
            details={'reason': request.rejection_reason},
            user_id=actor.id
        )
        logger.info(f"{kind.capitalize()} request {request.id} rejected by user {actor.id}")
        return True, None, request

    # Queries

    def _requester_ids(self, manager) -> Optional[List[int]]:
        """Requesters whose requests the manager resolves; None means everyone"""
        if manager.role == UserRole.SUPER_ADMIN:
            return None
        return [
            user.id for user in self.store.list_users()
            if user.assigned_manager_id == manager.id
            and user.role in (UserRole.SUB_MANAGER, UserRole.UJALA_MANAGER)
        ]

    def pending_trip_requests(self, manager) -> List[TripRequest]:
        return self.store.list_trip_requests(RequestStatus.PENDING, self._requester_ids(manager))

    def pending_payment_requests(self, manager) -> List[PaymentRequest]:
        return self.store.list_payment_requests(RequestStatus.PENDING, self._requester_ids(manager))

    def in_scope(self, request: Union[TripRequest, PaymentRequest], manager) -> bool:
        requester_ids = self._requester_ids(manager)
        if requester_ids is None:
            return True
        requester = request.sub_manager_id if isinstance(request, TripRequest) else request.requested_by
        return requester in requester_ids
