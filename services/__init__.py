"""
Service Layer

Business logic kept out of the route handlers. Every service receives a
RecordStore and returns ``(success, error_message, result)`` tuples from
its write operations, committed or rolled back by TransactionHelper.

- **RecordStore**: entity reads and writes over the database session
- **UserService**: accounts, activation and profile edits
- **VehicleService**: fleet registry and document expiry dates
- **TripService**: trip CRUD, export legs, driver status updates, settlement
- **PaymentService**: collections, manual payments, payment deletion
- **SalaryService**: monthly advances and salary settlement
- **RequestService**: trip/payment request approval workflow
- **ChatService**: direct messages between contacts
- **ReportingService**: dashboards, dues boards and reports
- **SettingsService**: branding and feature toggles
- **AuditService**: audit trail of business actions
"""

from .record_store import RecordStore
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .trip_service import TripService
from .payment_service import PaymentService
from .salary_service import SalaryService
from .chat_service import ChatService
from .request_service import RequestService
from .reporting_service import ReportingService
from .user_service import UserService
from .vehicle_service import VehicleService
from .settings_service import SettingsService

__all__ = [
    'RecordStore',
    'TransactionHelper',
    'AuditService',
    'TripService',
    'PaymentService',
    'SalaryService',
    'ChatService',
    'RequestService',
    'ReportingService',
    'UserService',
    'VehicleService',
    'SettingsService',
]
