import json
from app import db
from flask_login import UserMixin
from sqlalchemy import Index, UniqueConstraint
from enum import Enum
import uuid
import time
from timezone_utils import get_local_time_naive, get_local_date

# Enums for better data integrity
class UserRole(Enum):
    SUPER_ADMIN = 'super_admin'
    MANAGER = 'manager'
    SUB_MANAGER = 'sub_manager'
    UJALA_MANAGER = 'ujala_manager'
    DRIVER = 'driver'

class SubManagerType(Enum):
    IMPORT = 'IMPORT'
    EXPORT = 'EXPORT'

class MovementStatus(Enum):
    INPUT = 'INPUT'     # going leg
    EXPORT = 'EXPORT'   # return leg

class TripType(Enum):
    INPUT = 'Input'
    LOCAL = 'Local'

class TripStatus(Enum):
    LOADING = 'Loading'
    RUNNING = 'Running'
    DELAYED = 'Delayed'
    UNLOADED = 'Unloaded'
    COMPLETED = 'Completed'

class RequestStatus(Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'

class PaymentType:
    DRIVER_SETTLEMENT = 'Driver Settlement'
    SALARY = 'Salary'
    UJALA_REQUEST = 'Ujala Request'
    SINGLE_TRIP = 'Single Trip'
    MANUAL = 'Manual'

    MANUAL_CHOICES = (SINGLE_TRIP, MANUAL)

# Standard package amounts offered on the trip form, first one is the default
PACKAGE_AMOUNTS = (12000, 15000, 18000, 20000, 25000)

# Rent company options; outside/own accept a custom company name
RENT_COMPANY_UJALA = 'উজালা'
RENT_COMPANY_OUTSIDE = 'বাহির'
RENT_COMPANY_OWN = 'নিজ'
RENT_COMPANY_OPTIONS = (RENT_COMPANY_UJALA, RENT_COMPANY_OUTSIDE, RENT_COMPANY_OWN)

DEFAULT_BASE_SALARY = 5000.0

# Trips still in motion for the assigned driver
ACTIVE_TRIP_STATUSES = (TripStatus.LOADING, TripStatus.RUNNING, TripStatus.DELAYED, TripStatus.UNLOADED)

# Association tables
payment_trips = db.Table('payment_trips',
    db.Column('payment_id', db.Integer, db.ForeignKey('payments.id', ondelete='CASCADE'), primary_key=True),
    db.Column('trip_id', db.Integer, db.ForeignKey('trips.id', ondelete='CASCADE'), primary_key=True)
)

payment_request_trips = db.Table('payment_request_trips',
    db.Column('payment_request_id', db.Integer, db.ForeignKey('payment_requests.id', ondelete='CASCADE'), primary_key=True),
    db.Column('trip_id', db.Integer, db.ForeignKey('trips.id', ondelete='CASCADE'), primary_key=True)
)

def _new_uuid():
    return str(uuid.uuid4())

def generate_trip_number():
    # millisecond stamp plus a short suffix so trips saved together stay unique
    return f"TRP-{int(time.time() * 1000)}-{uuid.uuid4().hex[:4].upper()}"

class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=_new_uuid)
    name = db.Column(db.String(100), nullable=False, index=True)
    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.DRIVER, index=True)

    # Contact and credentials
    phone = db.Column(db.String(20), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    address = db.Column(db.Text)
    bio = db.Column(db.Text)
    photo_url = db.Column(db.String(255))
    cover_photo_url = db.Column(db.String(255))

    # Back-reference to the main manager, not ownership
    assigned_manager_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Driver-only fields
    nid_number = db.Column(db.String(30))
    license_number = db.Column(db.String(50))

    # Sub-manager only
    sub_manager_type = db.Column(db.Enum(SubManagerType))

    last_login = db.Column(db.DateTime)
    login_count = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    assigned_manager = db.relationship('User', remote_side=[id], backref='assigned_users')

    @property
    def is_main_manager(self):
        return self.role in (UserRole.MANAGER, UserRole.SUPER_ADMIN)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'role': self.role.value,
            'phone': self.phone,
            'email': self.email,
            'address': self.address,
            'bio': self.bio,
            'photo_url': self.photo_url,
            'cover_photo_url': self.cover_photo_url,
            'assigned_manager_id': self.assigned_manager_id,
            'is_active': bool(self.is_active),
            'nid_number': self.nid_number,
            'license_number': self.license_number,
            'sub_manager_type': self.sub_manager_type.value if self.sub_manager_type else None,
        }

    def __repr__(self):
        return f'<User {self.name} ({self.role.value})>'

class Vehicle(db.Model):
    __tablename__ = 'vehicles'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=_new_uuid)
    vehicle_number = db.Column(db.String(30), unique=True, nullable=False, index=True)
    owner_name = db.Column(db.String(100))
    driver_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)
    is_active = db.Column(db.Boolean, default=True, index=True)

    # Compliance documents
    tax_token_expiry = db.Column(db.Date, index=True)
    fitness_expiry = db.Column(db.Date, index=True)
    road_permit_expiry = db.Column(db.Date, index=True)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    driver = db.relationship('User', foreign_keys=[driver_id])

    __table_args__ = (
        Index('idx_vehicle_expiry_dates', 'tax_token_expiry', 'fitness_expiry', 'road_permit_expiry'),
    )

    def expired_documents(self, today=None):
        """List (document type, expiry date) pairs that are already expired"""
        today = today or get_local_date()
        documents = (
            ('Tax Token', self.tax_token_expiry),
            ('Fitness', self.fitness_expiry),
            ('Road Permit', self.road_permit_expiry),
        )
        return [(doc_type, expiry) for doc_type, expiry in documents if expiry and expiry < today]

    def to_dict(self):
        return {
            'id': self.id,
            'vehicle_number': self.vehicle_number,
            'owner_name': self.owner_name,
            'driver_id': self.driver_id,
            'is_active': bool(self.is_active),
            'tax_token_expiry': self.tax_token_expiry.isoformat() if self.tax_token_expiry else None,
            'fitness_expiry': self.fitness_expiry.isoformat() if self.fitness_expiry else None,
            'road_permit_expiry': self.road_permit_expiry.isoformat() if self.road_permit_expiry else None,
        }

    def __repr__(self):
        return f'<Vehicle {self.vehicle_number}>'

class Trip(db.Model):
    __tablename__ = 'trips'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=_new_uuid)
    trip_number = db.Column(db.String(30), unique=True, nullable=False, default=generate_trip_number)

    # References
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id', ondelete='SET NULL'), index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)
    manager_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)
    related_trip_id = db.Column(db.Integer, db.ForeignKey('trips.id', ondelete='SET NULL'))

    # Leg and route
    movement_status = db.Column(db.Enum(MovementStatus), nullable=False, default=MovementStatus.INPUT, index=True)
    trip_type = db.Column(db.Enum(TripType), nullable=False, default=TripType.INPUT)
    rent_company = db.Column(db.String(100), index=True)
    loading_point = db.Column(db.String(200))
    unloading_point = db.Column(db.String(200))
    date = db.Column(db.Date, nullable=False, default=get_local_date, index=True)
    unloading_date = db.Column(db.DateTime)
    status = db.Column(db.Enum(TripStatus), nullable=False, default=TripStatus.LOADING, index=True)

    # Money (BDT)
    party_fare = db.Column(db.Float, default=0.0)
    package_amount = db.Column(db.Float, default=float(PACKAGE_AMOUNTS[0]))
    party_advance_amount = db.Column(db.Float, default=0.0)
    company_advance_amount = db.Column(db.Float, default=0.0)
    total_advance_paid = db.Column(db.Float, default=0.0)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    vehicle = db.relationship('Vehicle', backref='trips')
    driver = db.relationship('User', foreign_keys=[driver_id])
    manager = db.relationship('User', foreign_keys=[manager_id])
    related_trip = db.relationship('Trip', remote_side=[id])

    __table_args__ = (
        Index('idx_trip_manager_date', 'manager_id', 'date'),
        Index('idx_trip_driver_status', 'driver_id', 'status'),
    )

    @property
    def is_local(self):
        return self.trip_type == TripType.LOCAL

    def to_dict(self):
        from utils.finance import calculate_party_due, calculate_driver_pending
        return {
            'id': self.id,
            'trip_number': self.trip_number,
            'vehicle_id': self.vehicle_id,
            'vehicle_number': self.vehicle.vehicle_number if self.vehicle else None,
            'driver_id': self.driver_id,
            'driver_name': self.driver.name if self.driver else None,
            'manager_id': self.manager_id,
            'related_trip_id': self.related_trip_id,
            'movement_status': self.movement_status.value,
            'trip_type': self.trip_type.value,
            'rent_company': self.rent_company,
            'loading_point': self.loading_point,
            'unloading_point': self.unloading_point,
            'date': self.date.isoformat() if self.date else None,
            'unloading_date': self.unloading_date.isoformat() if self.unloading_date else None,
            'status': self.status.value,
            'party_fare': self.party_fare or 0.0,
            'package_amount': self.package_amount or 0.0,
            'party_advance_amount': self.party_advance_amount or 0.0,
            'company_advance_amount': self.company_advance_amount or 0.0,
            'total_advance_paid': self.total_advance_paid or 0.0,
            'party_due': calculate_party_due(self),
            'driver_pending': calculate_driver_pending(self),
        }

    def __repr__(self):
        return f'<Trip {self.trip_number} {self.movement_status.value}>'

class Payment(db.Model):
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=_new_uuid)
    payment_type = db.Column(db.String(30), nullable=False, index=True)
    payer = db.Column(db.String(100))
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id', ondelete='SET NULL'), index=True)
    amount = db.Column(db.Float, nullable=False, default=0.0)
    remaining_due = db.Column(db.Float, default=0.0)
    date = db.Column(db.Date, nullable=False, default=get_local_date, index=True)
    notes = db.Column(db.Text)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))

    created_at = db.Column(db.DateTime, default=get_local_time_naive)

    vehicle = db.relationship('Vehicle')
    trips = db.relationship('Trip', secondary=payment_trips, backref='payments')
    creator = db.relationship('User', foreign_keys=[created_by])

    @property
    def trip_ids(self):
        return [trip.id for trip in self.trips]

    def to_dict(self):
        return {
            'id': self.id,
            'payment_type': self.payment_type,
            'payer': self.payer,
            'vehicle_id': self.vehicle_id,
            'trip_ids': self.trip_ids,
            'amount': self.amount,
            'remaining_due': self.remaining_due,
            'date': self.date.isoformat() if self.date else None,
            'notes': self.notes,
        }

    def __repr__(self):
        return f'<Payment {self.payment_type} {self.amount}>'

class SalaryRecord(db.Model):
    __tablename__ = 'salary_records'

    id = db.Column(db.Integer, primary_key=True)
    driver_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    month = db.Column(db.String(7), nullable=False, index=True)  # YYYY-MM
    base_salary = db.Column(db.Float, nullable=False, default=DEFAULT_BASE_SALARY)
    bonus = db.Column(db.Float, default=0.0)
    is_settled = db.Column(db.Boolean, default=False, index=True)
    settled_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    driver = db.relationship('User')
    advances = db.relationship('SalaryAdvance', backref='salary_record', lazy=True,
                               cascade='all, delete-orphan', order_by='SalaryAdvance.id')

    __table_args__ = (
        UniqueConstraint('driver_id', 'month', name='unique_driver_month_salary'),
    )

    @property
    def total_advances(self):
        return sum(advance.amount or 0 for advance in self.advances)

    @property
    def net_payable(self):
        from utils.finance import salary_net_payable
        return salary_net_payable(self.base_salary, [advance.amount for advance in self.advances])

    def to_dict(self):
        return {
            'id': self.id,
            'driver_id': self.driver_id,
            'month': self.month,
            'base_salary': self.base_salary,
            'bonus': self.bonus or 0.0,
            'advances': [advance.to_dict() for advance in self.advances],
            'total_advances': self.total_advances,
            'net_payable': self.net_payable,
            'is_settled': bool(self.is_settled),
        }

    def __repr__(self):
        return f'<SalaryRecord driver:{self.driver_id} {self.month}>'

class SalaryAdvance(db.Model):
    __tablename__ = 'salary_advances'

    id = db.Column(db.Integer, primary_key=True)
    salary_record_id = db.Column(db.Integer, db.ForeignKey('salary_records.id', ondelete='CASCADE'), nullable=False, index=True)
    amount = db.Column(db.Float, nullable=False)
    date = db.Column(db.Date, nullable=False, default=get_local_date)
    notes = db.Column(db.Text, default='Monthly Salary Advance')

    def to_dict(self):
        return {
            'id': self.id,
            'amount': self.amount,
            'date': self.date.isoformat() if self.date else None,
            'notes': self.notes,
        }

class ChatMessage(db.Model):
    __tablename__ = 'chat_messages'

    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    receiver_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False, default=get_local_time_naive, index=True)

    __table_args__ = (
        Index('idx_chat_pair', 'sender_id', 'receiver_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'sender_id': self.sender_id,
            'receiver_id': self.receiver_id,
            'text': self.text,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
        }

class TripRequest(db.Model):
    """Trip proposed by a sub-manager, turned into a Trip on approval"""
    __tablename__ = 'trip_requests'

    id = db.Column(db.Integer, primary_key=True)
    sub_manager_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id', ondelete='SET NULL'), index=True)
    loading_point = db.Column(db.String(200), nullable=False)
    unloading_point = db.Column(db.String(200), nullable=False)
    rent_company = db.Column(db.String(100))
    estimated_fare = db.Column(db.Float, default=0.0)
    request_type = db.Column(db.Enum(MovementStatus), nullable=False, default=MovementStatus.INPUT)

    # Status tracking
    status = db.Column(db.Enum(RequestStatus), nullable=False, default=RequestStatus.PENDING, index=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=get_local_time_naive)
    resolved_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    resolved_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.Text)
    trip_id = db.Column(db.Integer, db.ForeignKey('trips.id', ondelete='SET NULL'))

    sub_manager = db.relationship('User', foreign_keys=[sub_manager_id])
    vehicle = db.relationship('Vehicle')
    resolver = db.relationship('User', foreign_keys=[resolved_by])
    trip = db.relationship('Trip')

    def to_dict(self):
        return {
            'id': self.id,
            'sub_manager_id': self.sub_manager_id,
            'vehicle_id': self.vehicle_id,
            'loading_point': self.loading_point,
            'unloading_point': self.unloading_point,
            'rent_company': self.rent_company,
            'estimated_fare': self.estimated_fare,
            'request_type': self.request_type.value,
            'status': self.status.value,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'resolved_by': self.resolved_by,
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
            'rejection_reason': self.rejection_reason,
            'trip_id': self.trip_id,
        }

class PaymentRequest(db.Model):
    """Collection reported by an Ujala manager, recorded as a Payment on approval"""
    __tablename__ = 'payment_requests'

    id = db.Column(db.Integer, primary_key=True)
    requested_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id', ondelete='SET NULL'), index=True)
    rent_company = db.Column(db.String(100))
    amount = db.Column(db.Float, nullable=False)
    notes = db.Column(db.Text)

    status = db.Column(db.Enum(RequestStatus), nullable=False, default=RequestStatus.PENDING, index=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=get_local_time_naive)
    resolved_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    resolved_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.Text)
    payment_id = db.Column(db.Integer, db.ForeignKey('payments.id', ondelete='SET NULL'))

    requester = db.relationship('User', foreign_keys=[requested_by])
    resolver = db.relationship('User', foreign_keys=[resolved_by])
    trips = db.relationship('Trip', secondary=payment_request_trips, backref='payment_requests')
    payment = db.relationship('Payment')

    def to_dict(self):
        return {
            'id': self.id,
            'requested_by': self.requested_by,
            'vehicle_id': self.vehicle_id,
            'rent_company': self.rent_company,
            'amount': self.amount,
            'notes': self.notes,
            'trip_ids': [trip.id for trip in self.trips],
            'status': self.status.value,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'resolved_by': self.resolved_by,
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
            'rejection_reason': self.rejection_reason,
            'payment_id': self.payment_id,
        }

class AppSettings(db.Model):
    """Branding and feature toggles, a single row"""
    __tablename__ = 'app_settings'

    id = db.Column(db.Integer, primary_key=True)
    app_name = db.Column(db.String(100), nullable=False, default='Fleet Desk')
    app_icon = db.Column(db.String(255), default='🚛')
    feature_chat = db.Column(db.Boolean, nullable=False, default=True)
    feature_reports = db.Column(db.Boolean, nullable=False, default=True)
    feature_payments = db.Column(db.Boolean, nullable=False, default=True)

    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)
    updated_by = db.Column(db.Integer, db.ForeignKey('users.id'))

    def is_enabled(self, feature):
        return bool(getattr(self, f'feature_{feature}', False))

    def to_dict(self):
        return {
            'app_name': self.app_name,
            'app_icon': self.app_icon,
            'features_enabled': {
                'chat': bool(self.feature_chat),
                'reports': bool(self.feature_reports),
                'payments': bool(self.feature_payments),
            },
        }

class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)

    # Action details
    action = db.Column(db.String(100), nullable=False, index=True)
    entity_type = db.Column(db.String(50), index=True)
    entity_id = db.Column(db.Integer)
    new_values = db.Column(db.Text)  # JSON

    # Request context
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, default=get_local_time_naive, index=True)

    user = db.relationship('User', backref='audit_logs')

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
    )

    def get_details(self):
        return json.loads(self.new_values) if self.new_values else {}

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'action': self.action,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'details': self.get_details(),
            'ip_address': self.ip_address,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
