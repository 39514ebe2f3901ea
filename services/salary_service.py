"""
Salary Service

Monthly driver salary: advances against a fixed base and the end of month
settlement.
"""

from typing import Optional, Dict, Any, List, Tuple
import logging
import re
from models import SalaryAdvance, SalaryRecord, Payment, PaymentType, UserRole, DEFAULT_BASE_SALARY
from timezone_utils import get_local_date, get_local_time_naive
from utils.finance import format_currency
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .record_store import RecordStore

logger = logging.getLogger(__name__)

MONTH_PATTERN = re.compile(r'^\d{4}-(0[1-9]|1[0-2])$')


def is_valid_month(month: Optional[str]) -> bool:
    return bool(month and MONTH_PATTERN.match(month))


class SalaryService:
    """Service class for driver salary records"""

    def __init__(self, store: Optional[RecordStore] = None):
        self.store = store or RecordStore()
        self.audit_service = AuditService(self.store)

    def _driver(self, driver_id: int):
        driver = self.store.get_user(driver_id)
        if driver is None or driver.role != UserRole.DRIVER:
            return None
        return driver

    @TransactionHelper.with_transaction
    def add_advance(self, driver_id: int, month: str, amount: float, actor,
                    notes: Optional[str] = None) -> Tuple[bool, Optional[str], Optional[SalaryRecord]]:
        """
        Record a salary advance, creating the month's record on first use.

        Returns:
            tuple: (success, error_message, salary_record)
        """
        if not is_valid_month(month):
            return False, "Month must be in YYYY-MM format", None
        if amount is None or float(amount) <= 0:
            return False, "Advance amount must be greater than zero", None
        if self._driver(driver_id) is None:
            return False, "Driver not found", None

        record = self.store.get_or_create_salary_record(driver_id, month)
        if record.is_settled:
            return False, f"Salary for {month} is already settled", None

        advance = SalaryAdvance(
            salary_record_id=record.id,
            amount=float(amount),
            date=get_local_date(),
            notes=(notes or '').strip() or 'Monthly Salary Advance',
        )
        record.advances.append(advance)
        self.store.add_salary_advance(advance)

        self.audit_service.log_action(
            action='add_salary_advance',
            entity_type='salary_record',
            entity_id=record.id,
            details={'month': month, 'amount': float(amount)},
            user_id=actor.id
        )
        logger.info(f"Salary advance of {amount} added for driver {driver_id} ({month})")
        return True, None, record

    def settlement_preview(self, driver_id: int, month: str) -> Dict[str, Any]:
        summary = self.get_salary_summary(driver_id, month)
        return {
            'driver_id': driver_id,
            'month': month,
            'amount': summary['net_payable'],
            'message': f"Settle final salary for this month? Amount: {format_currency(summary['net_payable'])}",
        }

    @TransactionHelper.with_transaction
    def settle_month(self, driver_id: int, month: str, actor) -> Tuple[bool, Optional[str], Optional[Payment]]:
        """Pay out the month's net salary and close the record"""
        if not is_valid_month(month):
            return False, "Month must be in YYYY-MM format", None
        if self._driver(driver_id) is None:
            return False, "Driver not found", None

        record = self.store.get_or_create_salary_record(driver_id, month)
        if record.is_settled:
            return False, f"Salary for {month} is already settled", None

        net_payable = record.net_payable
        payment = Payment(
            payment_type=PaymentType.SALARY,
            amount=net_payable,
            remaining_due=0.0,
            date=get_local_date(),
            notes=f"Monthly Salary Settle - {month}",
            created_by=actor.id,
        )
        self.store.add_payment(payment)
        self.store.update_salary_record(record, is_settled=True, settled_at=get_local_time_naive())

        self.audit_service.log_action(
            action='settle_salary',
            entity_type='salary_record',
            entity_id=record.id,
            details={'month': month, 'amount': net_payable, 'payment_id': payment.id},
            user_id=actor.id
        )
        logger.info(f"Salary for driver {driver_id} ({month}) settled at {net_payable}")
        return True, None, payment

    def get_salary_summary(self, driver_id: int, month: str) -> Dict[str, Any]:
        """Base, advances and net payable for a driver's month; untouched months show the full base"""
        record = self.store.get_salary_record(driver_id, month)
        if record is None:
            record = SalaryRecord(driver_id=driver_id, month=month, base_salary=DEFAULT_BASE_SALARY,
                                  bonus=0.0, is_settled=False)
        return {
            'driver_id': driver_id,
            'month': month,
            'base_salary': record.base_salary,
            'bonus': record.bonus or 0.0,
            'advances': [advance.to_dict() for advance in record.advances],
            'total_advances': record.total_advances,
            'net_payable': record.net_payable,
            'is_settled': bool(record.is_settled),
        }

    def list_summaries(self, driver_ids: List[int], month: str) -> List[Dict[str, Any]]:
        return [self.get_salary_summary(driver_id, month) for driver_id in driver_ids]

    def history_for_driver(self, driver_id: int) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in self.store.list_salary_records(driver_id=driver_id)]
