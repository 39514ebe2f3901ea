"""
Role based visibility filters.

Each filter is a single pass over the records it is given and returns a new
list ordered newest first (by date, then by id). Filters never query the
database; callers pass in whatever the record store listed.
"""

from datetime import date, datetime
from typing import Any, Iterable, List, Optional

from models import UserRole

MANAGER_ROLES = (UserRole.MANAGER, UserRole.SUPER_ADMIN)
SUB_MANAGER_ROLES = (UserRole.SUB_MANAGER, UserRole.UJALA_MANAGER)


def _sort_key(record: Any, date_field: str):
    value = getattr(record, date_field, None)
    if isinstance(value, datetime):
        stamp = value
    elif isinstance(value, date):
        stamp = datetime.combine(value, datetime.min.time())
    else:
        stamp = datetime.min
    return stamp, getattr(record, 'id', 0) or 0


def sort_recent(records: Iterable[Any], date_field: str = 'date') -> List[Any]:
    return sorted(records, key=lambda record: _sort_key(record, date_field), reverse=True)


def drivers_for_manager(users: Iterable[Any], manager_id: int, active_only: bool = False) -> List[Any]:
    drivers = [
        user for user in users
        if user.role == UserRole.DRIVER
        and user.assigned_manager_id == manager_id
        and (user.is_active or not active_only)
    ]
    return sort_recent(drivers, 'created_at')


def sub_managers_for_manager(users: Iterable[Any], manager_id: int, active_only: bool = False) -> List[Any]:
    """Sub-managers and Ujala managers reporting to the manager"""
    subs = [
        user for user in users
        if user.role in SUB_MANAGER_ROLES
        and user.assigned_manager_id == manager_id
        and (user.is_active or not active_only)
    ]
    return sort_recent(subs, 'created_at')


def managers(users: Iterable[Any]) -> List[Any]:
    return sort_recent([user for user in users if user.role == UserRole.MANAGER], 'created_at')


def trips_for_user(trips: Iterable[Any], user: Any) -> List[Any]:
    if user.role == UserRole.SUPER_ADMIN:
        visible = list(trips)
    elif user.role == UserRole.MANAGER:
        visible = [trip for trip in trips if trip.manager_id == user.id]
    elif user.role == UserRole.DRIVER:
        visible = [trip for trip in trips if trip.driver_id == user.id]
    elif user.role in SUB_MANAGER_ROLES and user.assigned_manager_id:
        visible = [trip for trip in trips if trip.manager_id == user.assigned_manager_id]
    else:
        visible = []
    return sort_recent(visible)


def vehicles_for_manager(vehicles: Iterable[Any], users: Iterable[Any], manager_id: int,
                         include_unassigned: bool = True) -> List[Any]:
    """Vehicles driven by the manager's drivers, plus vehicles with no driver yet"""
    driver_ids = {
        user.id for user in users
        if user.role == UserRole.DRIVER and user.assigned_manager_id == manager_id
    }
    visible = [
        vehicle for vehicle in vehicles
        if vehicle.driver_id in driver_ids or (include_unassigned and vehicle.driver_id is None)
    ]
    return sorted(visible, key=lambda vehicle: vehicle.vehicle_number)


def vehicle_for_driver(vehicles: Iterable[Any], driver_id: int) -> Optional[Any]:
    for vehicle in vehicles:
        if vehicle.driver_id == driver_id:
            return vehicle
    return None


def payments_for_driver(payments: Iterable[Any], vehicles: Iterable[Any], driver_id: int) -> List[Any]:
    """Payments recorded against the vehicle the driver drives"""
    vehicle = vehicle_for_driver(vehicles, driver_id)
    if vehicle is None:
        return []
    return sort_recent([payment for payment in payments if payment.vehicle_id == vehicle.id])


def chat_contacts(users: Iterable[Any], user: Any) -> List[Any]:
    users = list(users)
    if user.role == UserRole.SUPER_ADMIN:
        contacts = managers(users)
    elif user.role == UserRole.MANAGER:
        contacts = [
            other for other in users
            if other.assigned_manager_id == user.id
            and (other.role == UserRole.DRIVER or other.role in SUB_MANAGER_ROLES)
        ]
    elif user.role == UserRole.DRIVER:
        manager_id = user.assigned_manager_id
        contacts = [other for other in users if manager_id and other.id == manager_id]
        contacts += sub_managers_for_manager(users, manager_id, active_only=True) if manager_id else []
    elif user.role in SUB_MANAGER_ROLES:
        manager_id = user.assigned_manager_id
        contacts = [other for other in users if manager_id and other.id == manager_id]
        contacts += drivers_for_manager(users, manager_id, active_only=True) if manager_id else []
    else:
        contacts = []
    return [contact for contact in contacts if contact.id != user.id]


def is_chat_contact(users: Iterable[Any], user: Any, other_id: int) -> bool:
    return any(contact.id == other_id for contact in chat_contacts(users, user))


def search_users(users: Iterable[Any], query: str, role: Optional[UserRole] = None) -> List[Any]:
    needle = (query or '').strip().lower()
    matches = [
        user for user in users
        if (role is None or user.role == role)
        and (not needle or needle in (user.name or '').lower() or needle in (user.phone or ''))
    ]
    return sort_recent(matches, 'created_at')


def search_vehicles(vehicles: Iterable[Any], query: str) -> List[Any]:
    needle = (query or '').strip().lower()
    matches = [
        vehicle for vehicle in vehicles
        if not needle or needle in (vehicle.vehicle_number or '').lower()
        or needle in (vehicle.owner_name or '').lower()
    ]
    return sorted(matches, key=lambda vehicle: vehicle.vehicle_number)


def payments_for_manager(payments: Iterable[Any], trips: Iterable[Any], vehicles: Iterable[Any],
                         manager: Any) -> List[Any]:
    """Payments touching the manager's trips or vehicles, or recorded by the manager"""
    if manager.role == UserRole.SUPER_ADMIN:
        return sort_recent(payments)
    trip_ids = {trip.id for trip in trips_for_user(trips, manager)}
    vehicle_ids = {vehicle.id for vehicle in vehicles}
    visible = [
        payment for payment in payments
        if payment.created_by == manager.id
        or (payment.vehicle_id is not None and payment.vehicle_id in vehicle_ids)
        or trip_ids.intersection(payment.trip_ids)
    ]
    return sort_recent(visible)
