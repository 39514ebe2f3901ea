"""
Payment Service

Party collections and manual payments. A collection is spread over the
selected trips (or the vehicle's outstanding trips) oldest first by raising
each trip's party advance; whatever is left lands on the last trip.
"""

from typing import Optional, Dict, Any, Iterable, List, Tuple
import logging
from models import Payment, PaymentType, Trip
from timezone_utils import get_local_date
from utils.finance import calculate_party_due, resolve_rent_company, total_advance, format_currency
from utils.role_filters import trips_for_user
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .record_store import RecordStore

logger = logging.getLogger(__name__)


def allocate_amount(trips: List[Trip], amount: float) -> List[Tuple[Trip, float]]:
    """
    Split a collected amount across trips, oldest first.

    Each trip except the last receives at most its outstanding party due; the
    last trip receives the remainder, so an overpayment shows as a negative
    due on it.
    """
    allocations = []
    remaining = float(amount or 0)
    for index, trip in enumerate(trips):
        if remaining <= 0:
            break
        if index == len(trips) - 1:
            share = remaining
        else:
            share = min(remaining, max(calculate_party_due(trip), 0.0))
        if share > 0:
            allocations.append((trip, share))
            remaining -= share
    return allocations


def outstanding_due(trips: Iterable[Trip]) -> float:
    return sum(max(calculate_party_due(trip), 0.0) for trip in trips)


class PaymentService:
    """Service class for payments and collections"""

    def __init__(self, store: Optional[RecordStore] = None):
        self.store = store or RecordStore()
        self.audit_service = AuditService(self.store)

    def _target_trips(self, trip_ids: Optional[Iterable[int]], vehicle_id: Optional[int], actor) -> List[Trip]:
        """Trips a collection is applied to, limited to the ones the actor manages"""
        if trip_ids:
            trips = self.store.get_trips(trip_ids)
        elif vehicle_id:
            trips = [trip for trip in self.store.list_trips(vehicle_id=vehicle_id)
                     if calculate_party_due(trip) > 0]
        else:
            return []
        visible = {trip.id for trip in trips_for_user(trips, actor)}
        return sorted((trip for trip in trips if trip.id in visible), key=lambda trip: (trip.date, trip.id))

    def apply_collection(self, payment: Payment, actor,
                         trip_ids: Optional[Iterable[int]] = None) -> Payment:
        """Allocate the payment to the actor's trips and record what is still due on them"""
        trips = self._target_trips(trip_ids, payment.vehicle_id, actor)
        for trip, share in allocate_amount(trips, payment.amount):
            trip.party_advance_amount = float(trip.party_advance_amount or 0) + share
            trip.total_advance_paid = total_advance(trip)
        payment.trips = trips
        payment.remaining_due = outstanding_due(trips)
        return payment

    @TransactionHelper.with_transaction
    def record_payment(self, data: Dict[str, Any], actor,
                       trip_ids: Optional[Iterable[int]] = None) -> Tuple[bool, Optional[str], Optional[Payment]]:
        """
        Record a manual payment or party collection.

        Args:
            data: Cleaned payment form values (payment_type, rent_company,
                custom_company, vehicle_id, amount, date, notes)
            actor: Manager recording the payment
            trip_ids: Trips the amount should be applied to

        Returns:
            tuple: (success, error_message, payment)
        """
        amount = float(data.get('amount') or 0)
        if amount <= 0:
            return False, "Amount must be greater than zero", None

        payment_type = data.get('payment_type') or PaymentType.SINGLE_TRIP
        if payment_type not in PaymentType.MANUAL_CHOICES:
            return False, f"Invalid payment type: {payment_type}", None

        vehicle_id = data.get('vehicle_id') or None
        if vehicle_id and self.store.get_vehicle(vehicle_id) is None:
            return False, "Vehicle not found", None

        trip_ids = list(trip_ids or [])
        if trip_ids and len(self.store.get_trips(trip_ids)) != len(set(trip_ids)):
            return False, "One or more trips were not found", None

        payment = Payment(
            payment_type=payment_type,
            payer=resolve_rent_company(data.get('rent_company'), data.get('custom_company')),
            vehicle_id=vehicle_id,
            amount=amount,
            date=data.get('date') or get_local_date(),
            notes=(data.get('notes') or '').strip() or None,
            created_by=actor.id,
        )
        self.apply_collection(payment, actor, trip_ids)
        self.store.add_payment(payment)

        self.audit_service.log_action(
            action='record_payment',
            entity_type='payment',
            entity_id=payment.id,
            details={'amount': amount, 'payer': payment.payer, 'trip_ids': payment.trip_ids},
            user_id=actor.id
        )
        logger.info(f"Payment {payment.id} of {amount} recorded from {payment.payer}")
        return True, None, payment

    def deletion_preview(self, payment: Payment) -> Dict[str, Any]:
        return {
            'payment_id': payment.id,
            'amount': payment.amount,
            'message': f"Delete the {payment.payment_type} payment of {format_currency(payment.amount)}?",
        }

    @TransactionHelper.with_transaction
    def delete_payment(self, payment_id: int, actor) -> Tuple[bool, Optional[str], None]:
        """Remove a payment record. Trips keep their advances and status."""
        payment = self.store.get_payment(payment_id)
        if payment is None:
            return False, "Payment not found", None

        details = {'amount': payment.amount, 'payment_type': payment.payment_type, 'trip_ids': payment.trip_ids}
        self.store.delete_payment(payment)

        self.audit_service.log_action(
            action='delete_payment',
            entity_type='payment',
            entity_id=payment_id,
            details=details,
            user_id=actor.id
        )
        logger.info(f"Payment {payment_id} deleted by user {actor.id}")
        return True, None, None

    def list_payments(self, include_salary: bool = False) -> List[Payment]:
        payments = self.store.list_payments()
        if include_salary:
            return payments
        return [payment for payment in payments if payment.payment_type != PaymentType.SALARY]
