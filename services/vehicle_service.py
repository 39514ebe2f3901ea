"""
Vehicle Service

Fleet registry: vehicle numbers, owners, the assigned driver and the
compliance document expiry dates.
"""

from typing import Optional, Dict, Any, Tuple
import logging
from models import Vehicle, UserRole
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .record_store import RecordStore

logger = logging.getLogger(__name__)

VEHICLE_FIELDS = ('owner_name', 'driver_id', 'is_active', 'tax_token_expiry', 'fitness_expiry', 'road_permit_expiry')


class VehicleService:
    """Service class for vehicle management operations"""

    def __init__(self, store: Optional[RecordStore] = None):
        self.store = store or RecordStore()
        self.audit_service = AuditService(self.store)

    def _validate_driver(self, driver_id: Optional[int], vehicle_id: Optional[int] = None) -> Optional[str]:
        if not driver_id:
            return None
        driver = self.store.get_user(driver_id)
        if driver is None or driver.role != UserRole.DRIVER:
            return "Driver not found"
        current = self.store.get_vehicle_for_driver(driver_id)
        if current is not None and current.id != vehicle_id:
            return f"Driver is already assigned to {current.vehicle_number}"
        return None

    @TransactionHelper.with_transaction
    def create_vehicle(self, data: Dict[str, Any], actor) -> Tuple[bool, Optional[str], Optional[Vehicle]]:
        """
        Register a vehicle.

        Returns:
            tuple: (success, error_message, vehicle)
        """
        vehicle_number = (data.get('vehicle_number') or '').strip().upper()
        if not vehicle_number:
            return False, "Vehicle number is required", None
        if self.store.get_vehicle_by_number(vehicle_number):
            return False, f"Vehicle {vehicle_number} already exists", None

        driver_id = data.get('driver_id') or None
        error = self._validate_driver(driver_id)
        if error:
            return False, error, None

        vehicle = Vehicle(vehicle_number=vehicle_number, is_active=True)
        for name in VEHICLE_FIELDS:
            if name in data and data[name] is not None:
                setattr(vehicle, name, data[name])
        vehicle.driver_id = driver_id
        self.store.add_vehicle(vehicle)

        self.audit_service.log_action(
            action='create_vehicle',
            entity_type='vehicle',
            entity_id=vehicle.id,
            details={'vehicle_number': vehicle_number, 'driver_id': driver_id},
            user_id=actor.id
        )
        logger.info(f"Vehicle {vehicle_number} registered by user {actor.id}")
        return True, None, vehicle

    @TransactionHelper.with_transaction
    def update_vehicle(self, vehicle_id: int, data: Dict[str, Any], actor) -> Tuple[bool, Optional[str], Optional[Vehicle]]:
        vehicle = self.store.get_vehicle(vehicle_id)
        if vehicle is None:
            return False, "Vehicle not found", None

        fields = {name: data[name] for name in VEHICLE_FIELDS if name in data}
        if 'driver_id' in fields:
            fields['driver_id'] = fields['driver_id'] or None
            error = self._validate_driver(fields['driver_id'], vehicle.id)
            if error:
                return False, error, None

        vehicle_number = (data.get('vehicle_number') or '').strip().upper()
        if vehicle_number and vehicle_number != vehicle.vehicle_number:
            existing = self.store.get_vehicle_by_number(vehicle_number)
            if existing is not None and existing.id != vehicle.id:
                return False, f"Vehicle {vehicle_number} already exists", None
            fields['vehicle_number'] = vehicle_number

        self.store.update_vehicle(vehicle, **fields)
        self.audit_service.log_action(
            action='update_vehicle',
            entity_type='vehicle',
            entity_id=vehicle.id,
            details={'fields': sorted(fields)},
            user_id=actor.id
        )
        return True, None, vehicle

    def deletion_preview(self, vehicle: Vehicle) -> Dict[str, Any]:
        return {
            'vehicle_id': vehicle.id,
            'vehicle_number': vehicle.vehicle_number,
            'message': f"Delete vehicle {vehicle.vehicle_number}? Its trips stay on record without a vehicle.",
        }

    @TransactionHelper.with_transaction
    def delete_vehicle(self, vehicle_id: int, actor) -> Tuple[bool, Optional[str], None]:
        vehicle = self.store.get_vehicle(vehicle_id)
        if vehicle is None:
            return False, "Vehicle not found", None

        vehicle_number = vehicle.vehicle_number
        self.store.delete_vehicle(vehicle)
        self.audit_service.log_action(
            action='delete_vehicle',
            entity_type='vehicle',
            entity_id=vehicle_id,
            details={'vehicle_number': vehicle_number},
            user_id=actor.id
        )
        logger.info(f"Vehicle {vehicle_number} deleted by user {actor.id}")
        return True, None, None
