"""
Reporting Service

Dashboard statistics, dues boards, the monthly company report, the export
sheet and profile statistics. Figures are computed from the records the
viewer is allowed to see.
"""

from typing import Optional, Dict, Any, List
import logging
from datetime import date
from models import MovementStatus, TripStatus, UserRole
from timezone_utils import get_local_date
from utils.finance import calculate_party_due, calculate_driver_pending, is_ujala_company, is_new_due
from utils.role_filters import (
    trips_for_user, drivers_for_manager, vehicles_for_manager, payments_for_manager, sort_recent
)
from .record_store import RecordStore

logger = logging.getLogger(__name__)

ADMIN_RECENT_LIMIT = 8
MANAGER_RECENT_LIMIT = 5


def _recent(records, limit):
    """Most recently added records first"""
    return sorted(records, key=lambda record: record.id, reverse=True)[:limit]


class ReportingService:
    """Service class for reporting and analytics operations"""

    def __init__(self, store: Optional[RecordStore] = None):
        self.store = store or RecordStore()

    def get_admin_dashboard(self) -> Dict[str, Any]:
        users = self.store.list_users()
        trips = self.store.list_trips()
        payments = self.store.list_payments()

        return {
            'managers': sum(1 for user in users if user.role == UserRole.MANAGER),
            'drivers': sum(1 for user in users if user.role == UserRole.DRIVER),
            'vehicles': len(self.store.list_vehicles()),
            'total_dues': sum(calculate_party_due(trip) for trip in trips),
            'recent_trips': [trip.to_dict() for trip in _recent(trips, ADMIN_RECENT_LIMIT)],
            'recent_payments': [payment.to_dict() for payment in _recent(payments, ADMIN_RECENT_LIMIT)],
        }

    def get_manager_dashboard(self, manager, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Manager overview.

        Party dues are split between Ujala and every other company; running
        trips are those Running or Delayed; expiry alerts list vehicle
        documents that expired before today.
        """
        today = today or get_local_date()
        trips = trips_for_user(self.store.list_trips(), manager)
        users = self.store.list_users()
        if manager.role == UserRole.SUPER_ADMIN:
            vehicles = self.store.list_vehicles()
        else:
            vehicles = vehicles_for_manager(self.store.list_vehicles(), users, manager.id)

        payments = payments_for_manager(self.store.list_payments(), trips, vehicles, manager)

        ujala_due = sum(calculate_party_due(trip) for trip in trips if is_ujala_company(trip.rent_company))
        other_due = sum(calculate_party_due(trip) for trip in trips if not is_ujala_company(trip.rent_company))
        running = [trip for trip in trips if trip.status in (TripStatus.RUNNING, TripStatus.DELAYED)]

        alerts = []
        for vehicle in vehicles:
            for doc_type, expiry in vehicle.expired_documents(today):
                alerts.append({
                    'vehicle_id': vehicle.id,
                    'vehicle_number': vehicle.vehicle_number,
                    'doc_type': doc_type,
                    'date': expiry.isoformat(),
                })

        return {
            'ujala_party_due': ujala_due,
            'other_party_due': other_due,
            'total_driver_pending': sum(calculate_driver_pending(trip) for trip in trips),
            'running_trips': [trip.to_dict() for trip in running],
            'recent_trips': [trip.to_dict() for trip in _recent(trips, MANAGER_RECENT_LIMIT)],
            'recent_payments': [payment.to_dict() for payment in _recent(payments, MANAGER_RECENT_LIMIT)],
            'expiry_alerts': alerts,
        }

    def get_ujala_dues_board(self, viewer, today: Optional[date] = None) -> Dict[str, Any]:
        """Trips with an outstanding party due, split Ujala/outside and export/input"""
        today = today or get_local_date()
        trips = [trip for trip in trips_for_user(self.store.list_trips(), viewer) if calculate_party_due(trip) > 0]

        def entry(trip):
            data = trip.to_dict()
            data['is_new'] = is_new_due(trip.date, today)
            return data

        def split(group):
            return {
                'export': [entry(trip) for trip in group if trip.movement_status == MovementStatus.EXPORT],
                'input': [entry(trip) for trip in group if trip.movement_status == MovementStatus.INPUT],
            }

        ujala = [trip for trip in trips if is_ujala_company(trip.rent_company)]
        outside = [trip for trip in trips if not is_ujala_company(trip.rent_company)]

        return {
            'ujala': split(ujala),
            'outside': split(outside),
            'ujala_total': sum(calculate_party_due(trip) for trip in ujala),
            'outside_total': sum(calculate_party_due(trip) for trip in outside),
        }

    def get_monthly_report(self, viewer, month: str, company: Optional[str] = None) -> Dict[str, Any]:
        """Trips of one rent company (or all) in a YYYY-MM month, oldest first"""
        visible = trips_for_user(self.store.list_trips(), viewer)
        companies = sorted({trip.rent_company for trip in visible if trip.rent_company})

        trips = [
            trip for trip in visible
            if (not company or trip.rent_company == company)
            and trip.date and trip.date.strftime('%Y-%m') == month
        ]
        trips.sort(key=lambda trip: (trip.date, trip.id))

        fare = sum(float(trip.party_fare or 0) for trip in trips)
        paid = sum(float(trip.party_advance_amount or 0) for trip in trips)

        return {
            'month': month,
            'company': company or None,
            'companies': companies,
            'input': [trip.to_dict() for trip in trips if trip.movement_status == MovementStatus.INPUT],
            'export': [trip.to_dict() for trip in trips if trip.movement_status == MovementStatus.EXPORT],
            'totals': {'fare': fare, 'paid': paid, 'due': fare - paid},
        }

    def get_export_sheet(self, viewer, search: Optional[str] = None,
                         status: Optional[str] = None) -> List[Dict[str, Any]]:
        """Export legs; search matches vehicle number or driver name, status 'all' keeps everything"""
        trips = [trip for trip in trips_for_user(self.store.list_trips(), viewer)
                 if trip.movement_status == MovementStatus.EXPORT]

        needle = (search or '').strip().lower()
        results = []
        for trip in trips:
            vehicle_number = (trip.vehicle.vehicle_number if trip.vehicle else '').lower()
            driver_name = (trip.driver.name if trip.driver else '').lower()
            if needle and needle not in vehicle_number and needle not in driver_name:
                continue
            if status and status != 'all' and trip.status.value != status:
                continue
            results.append(trip)

        return [trip.to_dict() for trip in sort_recent(results)]

    def get_fleet_status(self, viewer) -> List[Dict[str, Any]]:
        """
        Latest trip state of the vehicles the viewer's manager runs.

        Vehicles whose last trip is Unloaded (ready for a new load) come
        first, then the rest by vehicle number.
        """
        vehicles = self.store.list_vehicles()
        if viewer.role != UserRole.SUPER_ADMIN:
            manager_id = viewer.id if viewer.role == UserRole.MANAGER else viewer.assigned_manager_id
            if not manager_id:
                return []
            vehicles = vehicles_for_manager(vehicles, self.store.list_users(), manager_id)

        latest = {}
        for trip in trips_for_user(self.store.list_trips(), viewer):
            latest.setdefault(trip.vehicle_id, trip)

        fleet = []
        for vehicle in vehicles:
            last_trip = latest.get(vehicle.id)
            fleet.append({
                'vehicle': vehicle.to_dict(),
                'driver': vehicle.driver.to_dict() if vehicle.driver else None,
                'last_trip_status': last_trip.status.value if last_trip else TripStatus.COMPLETED.value,
                'last_trip_movement': last_trip.movement_status.value if last_trip else MovementStatus.INPUT.value,
                'current_location': (last_trip.unloading_point if last_trip else None) or 'Base',
            })

        fleet.sort(key=lambda item: (
            item['last_trip_status'] != TripStatus.UNLOADED.value,
            item['vehicle']['vehicle_number'],
        ))
        return fleet

    def get_profile_stats(self, user) -> Dict[str, Any]:
        if user.role == UserRole.DRIVER:
            trips = [trip for trip in self.store.list_trips() if trip.driver_id == user.id]
            vehicle = self.store.get_vehicle_for_driver(user.id)
            return {
                'trips_count': len(trips),
                'vehicle_number': vehicle.vehicle_number if vehicle else 'Not Assigned',
                'pending_due': sum(calculate_driver_pending(trip) for trip in trips),
            }

        if user.role in (UserRole.MANAGER, UserRole.SUPER_ADMIN):
            users = self.store.list_users()
            return {
                'drivers_count': len(drivers_for_manager(users, user.id)),
                'fleet_size': len(vehicles_for_manager(self.store.list_vehicles(), users, user.id,
                                                       include_unassigned=False)),
                'active_trips': sum(
                    1 for trip in self.store.list_trips()
                    if trip.manager_id == user.id and trip.status != TripStatus.COMPLETED
                ),
            }

        return {}
