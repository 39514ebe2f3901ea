"""
Record Store

Read/write access to every persisted entity, kept behind one object that
services receive instead of reaching for module level state. Writes are
added to the current session and flushed so ids are available; committing
is left to ``TransactionHelper``.
"""

from typing import Any, Dict, Iterable, List, Optional
import logging
from sqlalchemy import or_, and_
from app import db
from models import (
    User, UserRole, Vehicle, Trip, MovementStatus, Payment, SalaryRecord, SalaryAdvance,
    ChatMessage, TripRequest, PaymentRequest, RequestStatus, AppSettings, AuditLog,
    DEFAULT_BASE_SALARY
)

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    'app_name': 'Fleet Desk',
    'app_icon': '🚛',
    'feature_chat': True,
    'feature_reports': True,
    'feature_payments': True,
}


class RecordStore:
    """Entity access over a SQLAlchemy session"""

    def __init__(self, session=None):
        self.session = session or db.session

    def _add(self, record):
        self.session.add(record)
        self.session.flush()
        return record

    def _update(self, record, fields: Dict[str, Any]):
        for name, value in fields.items():
            if not hasattr(type(record), name):
                raise AttributeError(f"{type(record).__name__} has no field '{name}'")
            setattr(record, name, value)
        self.session.flush()
        return record

    def _delete(self, record):
        self.session.delete(record)
        self.session.flush()

    # Users

    def add_user(self, user: User) -> User:
        return self._add(user)

    def update_user(self, user: User, **fields) -> User:
        return self._update(user, fields)

    def get_user(self, user_id: Optional[int]) -> Optional[User]:
        if user_id is None:
            return None
        return self.session.get(User, user_id)

    def get_user_by_identifier(self, identifier: str) -> Optional[User]:
        """Look a user up by email (case-insensitive) or phone"""
        identifier = (identifier or '').strip()
        if not identifier:
            return None
        return User.query.filter(
            or_(db.func.lower(User.email) == identifier.lower(), User.phone == identifier)
        ).first()

    def phone_taken(self, phone: str, exclude_id: Optional[int] = None) -> bool:
        query = User.query.filter(User.phone == phone)
        if exclude_id:
            query = query.filter(User.id != exclude_id)
        return self.session.query(query.exists()).scalar()

    def email_taken(self, email: Optional[str], exclude_id: Optional[int] = None) -> bool:
        if not email:
            return False
        query = User.query.filter(db.func.lower(User.email) == email.lower())
        if exclude_id:
            query = query.filter(User.id != exclude_id)
        return self.session.query(query.exists()).scalar()

    def list_users(self, role: Optional[UserRole] = None) -> List[User]:
        query = User.query
        if role is not None:
            query = query.filter(User.role == role)
        return query.order_by(User.id).all()

    # Vehicles

    def add_vehicle(self, vehicle: Vehicle) -> Vehicle:
        return self._add(vehicle)

    def update_vehicle(self, vehicle: Vehicle, **fields) -> Vehicle:
        return self._update(vehicle, fields)

    def delete_vehicle(self, vehicle: Vehicle) -> None:
        """Delete a vehicle; trips, payments and requests keep their rows without it"""
        for model in (Payment, TripRequest, PaymentRequest):
            model.query.filter(model.vehicle_id == vehicle.id).update(
                {model.vehicle_id: None}, synchronize_session='fetch')
        self._delete(vehicle)

    def get_vehicle(self, vehicle_id: Optional[int]) -> Optional[Vehicle]:
        if vehicle_id is None:
            return None
        return self.session.get(Vehicle, vehicle_id)

    def get_vehicle_by_number(self, vehicle_number: str) -> Optional[Vehicle]:
        return Vehicle.query.filter(db.func.upper(Vehicle.vehicle_number) == vehicle_number.upper()).first()

    def get_vehicle_for_driver(self, driver_id: int) -> Optional[Vehicle]:
        return Vehicle.query.filter_by(driver_id=driver_id).order_by(Vehicle.id).first()

    def list_vehicles(self) -> List[Vehicle]:
        return Vehicle.query.order_by(Vehicle.vehicle_number).all()

    # Trips

    def add_trip(self, trip: Trip) -> Trip:
        return self._add(trip)

    def update_trip(self, trip: Trip, **fields) -> Trip:
        return self._update(trip, fields)

    def delete_trip(self, trip: Trip) -> None:
        """Delete a trip and detach anything that pointed at it"""
        Trip.query.filter(Trip.related_trip_id == trip.id).update(
            {Trip.related_trip_id: None}, synchronize_session='fetch')
        TripRequest.query.filter(TripRequest.trip_id == trip.id).update(
            {TripRequest.trip_id: None}, synchronize_session='fetch')
        self._delete(trip)

    def get_trip(self, trip_id: Optional[int]) -> Optional[Trip]:
        if trip_id is None:
            return None
        return self.session.get(Trip, trip_id)

    def get_trips(self, trip_ids: Iterable[int]) -> List[Trip]:
        trip_ids = [trip_id for trip_id in trip_ids if trip_id is not None]
        if not trip_ids:
            return []
        return Trip.query.filter(Trip.id.in_(trip_ids)).order_by(Trip.date, Trip.id).all()

    def list_trips(self, vehicle_id: Optional[int] = None,
                   movement_status: Optional[MovementStatus] = None) -> List[Trip]:
        query = Trip.query
        if vehicle_id is not None:
            query = query.filter(Trip.vehicle_id == vehicle_id)
        if movement_status is not None:
            query = query.filter(Trip.movement_status == movement_status)
        return query.order_by(Trip.date.desc(), Trip.id.desc()).all()

    def latest_input_trip(self, vehicle_id: int, exclude_id: Optional[int] = None) -> Optional[Trip]:
        query = Trip.query.filter(
            Trip.vehicle_id == vehicle_id,
            Trip.movement_status == MovementStatus.INPUT,
        )
        if exclude_id:
            query = query.filter(Trip.id != exclude_id)
        return query.order_by(Trip.date.desc(), Trip.id.desc()).first()

    # Payments

    def add_payment(self, payment: Payment) -> Payment:
        return self._add(payment)

    def delete_payment(self, payment: Payment) -> None:
        PaymentRequest.query.filter(PaymentRequest.payment_id == payment.id).update(
            {PaymentRequest.payment_id: None}, synchronize_session='fetch')
        self._delete(payment)

    def get_payment(self, payment_id: Optional[int]) -> Optional[Payment]:
        if payment_id is None:
            return None
        return self.session.get(Payment, payment_id)

    def list_payments(self, vehicle_id: Optional[int] = None) -> List[Payment]:
        query = Payment.query
        if vehicle_id is not None:
            query = query.filter(Payment.vehicle_id == vehicle_id)
        return query.order_by(Payment.date.desc(), Payment.id.desc()).all()

    # Salary

    def get_salary_record(self, driver_id: int, month: str) -> Optional[SalaryRecord]:
        return SalaryRecord.query.filter_by(driver_id=driver_id, month=month).first()

    def get_or_create_salary_record(self, driver_id: int, month: str) -> SalaryRecord:
        record = self.get_salary_record(driver_id, month)
        if record is None:
            record = SalaryRecord(driver_id=driver_id, month=month,
                                  base_salary=DEFAULT_BASE_SALARY, bonus=0.0, is_settled=False)
            self._add(record)
        return record

    def update_salary_record(self, record: SalaryRecord, **fields) -> SalaryRecord:
        return self._update(record, fields)

    def add_salary_advance(self, advance: SalaryAdvance) -> SalaryAdvance:
        return self._add(advance)

    def list_salary_records(self, driver_id: Optional[int] = None,
                            month: Optional[str] = None) -> List[SalaryRecord]:
        query = SalaryRecord.query
        if driver_id is not None:
            query = query.filter(SalaryRecord.driver_id == driver_id)
        if month is not None:
            query = query.filter(SalaryRecord.month == month)
        return query.order_by(SalaryRecord.month.desc(), SalaryRecord.id.desc()).all()

    # Chat

    def add_message(self, message: ChatMessage) -> ChatMessage:
        return self._add(message)

    def list_messages_between(self, user_a: int, user_b: int) -> List[ChatMessage]:
        return ChatMessage.query.filter(
            or_(
                and_(ChatMessage.sender_id == user_a, ChatMessage.receiver_id == user_b),
                and_(ChatMessage.sender_id == user_b, ChatMessage.receiver_id == user_a),
            )
        ).order_by(ChatMessage.timestamp, ChatMessage.id).all()

    # Requests

    def add_trip_request(self, trip_request: TripRequest) -> TripRequest:
        return self._add(trip_request)

    def get_trip_request(self, request_id: Optional[int]) -> Optional[TripRequest]:
        if request_id is None:
            return None
        return self.session.get(TripRequest, request_id)

    def list_trip_requests(self, status: Optional[RequestStatus] = None,
                           sub_manager_ids: Optional[Iterable[int]] = None) -> List[TripRequest]:
        query = TripRequest.query
        if status is not None:
            query = query.filter(TripRequest.status == status)
        if sub_manager_ids is not None:
            query = query.filter(TripRequest.sub_manager_id.in_(list(sub_manager_ids)))
        return query.order_by(TripRequest.timestamp.desc(), TripRequest.id.desc()).all()

    def add_payment_request(self, payment_request: PaymentRequest) -> PaymentRequest:
        return self._add(payment_request)

    def get_payment_request(self, request_id: Optional[int]) -> Optional[PaymentRequest]:
        if request_id is None:
            return None
        return self.session.get(PaymentRequest, request_id)

    def list_payment_requests(self, status: Optional[RequestStatus] = None,
                              requester_ids: Optional[Iterable[int]] = None) -> List[PaymentRequest]:
        query = PaymentRequest.query
        if status is not None:
            query = query.filter(PaymentRequest.status == status)
        if requester_ids is not None:
            query = query.filter(PaymentRequest.requested_by.in_(list(requester_ids)))
        return query.order_by(PaymentRequest.timestamp.desc(), PaymentRequest.id.desc()).all()

    # Settings

    def get_settings(self) -> AppSettings:
        settings = AppSettings.query.order_by(AppSettings.id).first()
        if settings is None:
            settings = self._add(AppSettings(**DEFAULT_SETTINGS))
        return settings

    def update_settings(self, updated_by: Optional[int] = None, **fields) -> AppSettings:
        settings = self.get_settings()
        fields['updated_by'] = updated_by
        return self._update(settings, fields)

    # Audit

    def add_audit_log(self, audit: AuditLog) -> AuditLog:
        self.session.add(audit)
        return audit

    def list_audit_logs(self, entity_type: Optional[str] = None, entity_id: Optional[int] = None,
                        limit: int = 50) -> List[AuditLog]:
        query = AuditLog.query
        if entity_type is not None:
            query = query.filter(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            query = query.filter(AuditLog.entity_id == entity_id)
        return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
