"""
Due and pending calculators for trips and salaries.

All functions are pure: they accept model instances or plain mappings with
the same field names, treat missing amounts as zero and never clamp
negative results (an overpaid trip shows a negative due).
"""

from datetime import date, timedelta
from typing import Any, Iterable, Optional

from models import (
    TripType, RENT_COMPANY_UJALA, RENT_COMPANY_OUTSIDE, RENT_COMPANY_OWN
)

CURRENCY_SYMBOL = '৳'
NEW_DUE_WINDOW_DAYS = 2


def _field(record: Any, name: str, default: Any = None) -> Any:
    if isinstance(record, dict):
        return record.get(name, default)
    return getattr(record, name, default)


def _amount(record: Any, name: str) -> float:
    return float(_field(record, name) or 0)


def _is_local(trip: Any) -> bool:
    trip_type = _field(trip, 'trip_type')
    if isinstance(trip_type, TripType):
        return trip_type == TripType.LOCAL
    return trip_type == TripType.LOCAL.value


def total_advance(trip: Any) -> float:
    """Party advance plus company advance"""
    return _amount(trip, 'party_advance_amount') + _amount(trip, 'company_advance_amount')


def calculate_party_due(trip: Any) -> float:
    """Amount the party still owes against the trip fare"""
    return _amount(trip, 'party_fare') - _amount(trip, 'party_advance_amount')


def calculate_driver_pending(trip: Any) -> float:
    """
    Amount still owed to the driver.

    Regular trips settle against the package amount; Local trips have no
    package and settle against the party fare.
    """
    basis = _amount(trip, 'party_fare') if _is_local(trip) else _amount(trip, 'package_amount')
    return basis - total_advance(trip)


def salary_net_payable(base_salary: Optional[float], advances: Iterable[Optional[float]]) -> float:
    return float(base_salary or 0) - sum(float(amount or 0) for amount in advances)


def is_ujala_company(name: Optional[str]) -> bool:
    if not name:
        return False
    lowered = name.lower()
    return 'ujala' in lowered or RENT_COMPANY_UJALA in lowered


def resolve_rent_company(selected: Optional[str], custom: Optional[str] = None) -> str:
    """Outside and own companies may carry a custom name that replaces the option label"""
    selected = (selected or '').strip()
    custom = (custom or '').strip()
    if selected in (RENT_COMPANY_OUTSIDE, RENT_COMPANY_OWN) and custom:
        return custom
    return selected or RENT_COMPANY_UJALA


def format_currency(amount: Optional[float]) -> str:
    value = float(amount or 0)
    sign = '-' if value < 0 else ''
    formatted = f"{abs(value):,.2f}"
    if formatted.endswith('.00'):
        formatted = formatted[:-3]
    return f"{sign}{CURRENCY_SYMBOL}{formatted}"


def is_new_due(trip_date: Optional[date], today: Optional[date] = None) -> bool:
    """Trip dated within the last two days"""
    if not trip_date:
        return False
    if today is None:
        from timezone_utils import get_local_date
        today = get_local_date()
    return today - timedelta(days=NEW_DUE_WINDOW_DAYS) <= trip_date <= today
