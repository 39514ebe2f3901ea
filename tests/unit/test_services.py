"""
Unit tests for service layer classes
"""

import warnings

import pytest
from datetime import date, datetime
from unittest.mock import patch

from sqlalchemy.exc import OperationalError, SAWarning

from models import (
    ChatMessage, MovementStatus, Payment, PaymentType, RequestStatus, SubManagerType,
    TripRequest, TripStatus, TripType, UserRole, RENT_COMPANY_OUTSIDE, RENT_COMPANY_UJALA
)
from services.chat_service import ChatService
from services.payment_service import PaymentService, allocate_amount
from services.record_store import RecordStore
from services.reporting_service import ReportingService
from services.request_service import RequestService, InvalidTransition, transition
from services.salary_service import SalaryService
from services.settings_service import SettingsService
from services.transaction_helper import TransactionHelper
from services.trip_service import TripService
from services.user_service import UserService
from services.vehicle_service import VehicleService
from utils.finance import calculate_driver_pending, calculate_party_due
from tests.unit.conftest import (
    TEST_PASSWORD, DriverFactory, PaymentFactory, SubManagerFactory,
    TripFactory, VehicleFactory
)


class TestTripService:
    """Test TripService functionality"""

    def test_create_trip(self, db_session, manager, vehicle, driver):
        service = TripService()
        success, error, trip = service.create_trip({
            'vehicle_id': vehicle.id,
            'rent_company': RENT_COMPANY_OUTSIDE,
            'custom_company': 'ABC Logistics',
            'loading_point': ' Chattogram ',
            'unloading_point': 'Sylhet',
            'party_fare': 18000,
            'package_amount': 15000,
            'party_advance_amount': 4000,
            'company_advance_amount': 1000,
        }, manager)

        assert success is True, error
        assert trip.manager_id == manager.id
        assert trip.driver_id == driver.id
        assert trip.rent_company == 'ABC Logistics'
        assert trip.loading_point == 'Chattogram'
        assert trip.total_advance_paid == 5000
        assert trip.status == TripStatus.LOADING
        assert trip.movement_status == MovementStatus.INPUT

    def test_create_trip_unknown_vehicle(self, db_session, manager):
        success, error, trip = TripService().create_trip({'vehicle_id': 999}, manager)
        assert success is False
        assert error == "Vehicle not found"

    def test_update_trip_recomputes_advance(self, db_session, manager, trip):
        success, error, updated = TripService().update_trip(trip.id, {'party_advance_amount': 6000}, manager)
        assert success is True, error
        assert updated.total_advance_paid == 8000
        assert calculate_driver_pending(updated) == 4000

    def test_update_trip_cannot_complete(self, db_session, manager, trip):
        success, error, _ = TripService().update_trip(trip.id, {'status': 'Completed'}, manager)
        assert success is False
        assert 'settlement' in error
        assert trip.status == TripStatus.LOADING

    def test_driver_status_flow(self, db_session, driver, trip):
        service = TripService()
        success, error, _ = service.update_status(trip.id, 'Running', driver)
        assert success is True, error

        success, error, updated = service.update_status(trip.id, 'Unloaded', driver)
        assert success is True, error
        assert updated.status == TripStatus.UNLOADED
        assert updated.unloading_date is not None

    def test_driver_cannot_skip_states(self, db_session, driver, trip):
        success, error, _ = TripService().update_status(trip.id, 'Unloaded', driver)
        assert success is False
        assert 'Loading' in error

    def test_driver_cannot_complete(self, db_session, driver, trip):
        trip.status = TripStatus.UNLOADED
        db_session.commit()
        success, _, _ = TripService().update_status(trip.id, 'Completed', driver)
        assert success is False

    def test_other_driver_cannot_update(self, db_session, manager, trip):
        stranger = DriverFactory(assigned_manager_id=manager.id)
        success, error, _ = TripService().update_status(trip.id, 'Running', stranger)
        assert success is False
        assert error == "Trip not found"

    def test_settle_trip(self, db_session, manager, trip):
        success, error, payment = TripService().settle_trip(trip.id, manager)

        assert success is True, error
        assert payment.payment_type == PaymentType.DRIVER_SETTLEMENT
        assert payment.amount == 7000
        assert payment.payer == trip.rent_company
        assert payment.notes == f"Final settlement for {trip.trip_number}"
        assert payment.trip_ids == [trip.id]
        assert trip.status == TripStatus.COMPLETED

    def test_settle_completes_linked_leg(self, db_session, manager, trip):
        success, error, export_leg = TripService().create_direct_export(trip.id, {
            'loading_point': 'Dhaka',
            'unloading_point': 'Chattogram Port',
            'party_fare': 9000,
        }, manager)
        assert success is True, error
        assert export_leg.related_trip_id == trip.id
        assert export_leg.movement_status == MovementStatus.EXPORT
        assert export_leg.vehicle_id == trip.vehicle_id

        success, error, payment = TripService().settle_trip(export_leg.id, manager)
        assert success is True, error
        assert set(payment.trip_ids) == {trip.id, export_leg.id}
        assert trip.status == TripStatus.COMPLETED
        assert export_leg.status == TripStatus.COMPLETED

    def test_settle_without_pending(self, db_session, manager, vehicle):
        paid = TripFactory(vehicle=vehicle, manager_id=manager.id, party_advance_amount=12000.0)
        success, error, payment = TripService().settle_trip(paid.id, manager)
        assert success is False
        assert error == "No pending amount to settle."
        assert Payment.query.count() == 0

    def test_export_requires_input_trip(self, db_session, manager, vehicle):
        export = TripFactory(vehicle=vehicle, manager_id=manager.id, movement_status=MovementStatus.EXPORT)
        success, error, _ = TripService().create_direct_export(export.id, {}, manager)
        assert success is False

    def test_delete_trip_detaches_export_leg(self, db_session, manager, trip):
        export = TripFactory(vehicle=trip.vehicle, manager_id=manager.id,
                             movement_status=MovementStatus.EXPORT, related_trip_id=trip.id)
        success, error, _ = TripService().delete_trip(trip.id, manager)
        assert success is True, error
        assert export.related_trip_id is None

    def test_visibility(self, db_session, trip, other_manager, manager):
        service = TripService()
        assert service.get_visible_trip(trip.id, manager) is trip
        assert service.get_visible_trip(trip.id, other_manager) is None


class TestPaymentService:
    """Test PaymentService functionality"""

    def test_allocate_oldest_first(self, db_session, manager, vehicle):
        older = TripFactory(vehicle=vehicle, party_fare=5000.0, date=date(2024, 5, 1))
        newer = TripFactory(vehicle=vehicle, party_fare=3000.0, date=date(2024, 5, 2))
        allocations = allocate_amount([older, newer], 6000)
        assert [(trip.id, share) for trip, share in allocations] == [(older.id, 5000), (newer.id, 1000)]

    def test_overpayment_lands_on_last_trip(self, db_session, vehicle):
        first = TripFactory(vehicle=vehicle, party_fare=1000.0, date=date(2024, 5, 1))
        last = TripFactory(vehicle=vehicle, party_fare=1000.0, date=date(2024, 5, 2))
        allocations = allocate_amount([first, last], 2500)
        assert [share for _, share in allocations] == [1000, 1500]

    def test_record_payment_on_selected_trips(self, db_session, manager, vehicle):
        first = TripFactory(vehicle=vehicle, manager_id=manager.id, party_fare=10000.0, date=date(2024, 5, 1))
        second = TripFactory(vehicle=vehicle, manager_id=manager.id, party_fare=8000.0, date=date(2024, 5, 3))

        success, error, payment = PaymentService().record_payment({
            'amount': 12000,
            'payment_type': PaymentType.SINGLE_TRIP,
            'rent_company': RENT_COMPANY_UJALA,
        }, manager, [second.id, first.id])

        assert success is True, error
        assert calculate_party_due(first) == 0
        assert calculate_party_due(second) == 6000
        assert payment.remaining_due == 6000
        assert sorted(payment.trip_ids) == sorted([first.id, second.id])
        assert second.total_advance_paid == 2000

    def test_record_payment_targets_vehicle_dues(self, db_session, manager, vehicle):
        settled = TripFactory(vehicle=vehicle, manager_id=manager.id, party_fare=5000.0, party_advance_amount=5000.0)
        open_trip = TripFactory(vehicle=vehicle, manager_id=manager.id, party_fare=7000.0)

        success, error, payment = PaymentService().record_payment(
            {'amount': 2000, 'vehicle_id': vehicle.id}, manager
        )
        assert success is True, error
        assert payment.trip_ids == [open_trip.id]
        assert settled.party_advance_amount == 5000
        assert open_trip.party_advance_amount == 2000

    def test_vehicle_dues_skip_other_managers_trips(self, db_session, manager, other_manager):
        shared_vehicle = VehicleFactory()
        foreign = TripFactory(vehicle=shared_vehicle, manager_id=other_manager.id, party_fare=9000.0,
                              date=date(2024, 5, 1))
        own = TripFactory(vehicle=shared_vehicle, manager_id=manager.id, party_fare=7000.0,
                          date=date(2024, 5, 2))

        success, error, payment = PaymentService().record_payment(
            {'amount': 3000, 'vehicle_id': shared_vehicle.id}, manager
        )
        assert success is True, error
        assert payment.trip_ids == [own.id]
        assert own.party_advance_amount == 3000
        assert foreign.party_advance_amount == 0

    def test_record_payment_validation(self, db_session, manager):
        service = PaymentService()
        assert service.record_payment({'amount': 0}, manager)[1] == "Amount must be greater than zero"
        assert service.record_payment({'amount': 10, 'payment_type': 'Salary'}, manager)[0] is False
        assert service.record_payment({'amount': 10}, manager, [12345])[1] == "One or more trips were not found"

    def test_delete_payment_leaves_trip_untouched(self, db_session, manager, trip):
        success, error, payment = TripService().settle_trip(trip.id, manager)
        assert success is True, error
        assert payment.amount == 7000

        success, error, _ = PaymentService().delete_payment(payment.id, manager)
        assert success is True, error
        assert Payment.query.count() == 0
        assert trip.party_advance_amount == 3000
        assert trip.company_advance_amount == 2000
        assert trip.status == TripStatus.COMPLETED
        assert calculate_driver_pending(trip) == 7000

    def test_list_payments_hides_salary(self, db_session):
        PaymentFactory(payment_type=PaymentType.SALARY)
        manual = PaymentFactory()
        assert [payment.id for payment in PaymentService().list_payments()] == [manual.id]
        assert len(PaymentService().list_payments(include_salary=True)) == 2


class TestSalaryService:
    """Test SalaryService functionality"""

    def test_advances_and_settlement(self, db_session, manager, driver):
        service = SalaryService()
        assert service.add_advance(driver.id, '2024-05', 1500, manager)[0] is True
        success, error, record = service.add_advance(driver.id, '2024-05', 2000, manager)
        assert success is True, error
        assert record.net_payable == 1500

        success, error, payment = service.settle_month(driver.id, '2024-05', manager)
        assert success is True, error
        assert payment.payment_type == PaymentType.SALARY
        assert payment.amount == 1500
        assert payment.notes == "Monthly Salary Settle - 2024-05"
        assert record.is_settled is True

    def test_cannot_settle_twice(self, db_session, manager, driver):
        service = SalaryService()
        assert service.settle_month(driver.id, '2024-06', manager)[0] is True
        success, error, _ = service.settle_month(driver.id, '2024-06', manager)
        assert success is False
        assert 'already settled' in error

    def test_no_advance_after_settlement(self, db_session, manager, driver):
        service = SalaryService()
        service.settle_month(driver.id, '2024-06', manager)
        success, error, _ = service.add_advance(driver.id, '2024-06', 100, manager)
        assert success is False

    def test_settlement_without_record_pays_base(self, db_session, manager, driver):
        success, error, payment = SalaryService().settle_month(driver.id, '2024-08', manager)
        assert success is True, error
        assert payment.amount == 5000

    @pytest.mark.parametrize('month', ['2024-13', '24-05', '', None])
    def test_invalid_month(self, db_session, manager, driver, month):
        success, error, _ = SalaryService().add_advance(driver.id, month, 100, manager)
        assert success is False
        assert 'YYYY-MM' in error

    def test_advance_for_non_driver(self, db_session, manager):
        success, error, _ = SalaryService().add_advance(manager.id, '2024-05', 100, manager)
        assert error == "Driver not found"

    def test_summary_for_untouched_month(self, db_session, driver):
        summary = SalaryService().get_salary_summary(driver.id, '2030-01')
        assert summary['net_payable'] == 5000
        assert summary['advances'] == []
        assert summary['is_settled'] is False


class TestRequestService:
    """Test the trip/payment request workflow"""

    def test_trip_request_type_follows_sub_manager(self, db_session, manager, vehicle):
        export_desk = SubManagerFactory(assigned_manager_id=manager.id, sub_manager_type=SubManagerType.EXPORT)
        success, error, trip_request = RequestService().submit_trip_request({
            'vehicle_id': vehicle.id,
            'loading_point': 'Dhaka',
            'unloading_point': 'Chattogram',
            'estimated_fare': 9000,
        }, export_desk)
        assert success is True, error
        assert trip_request.request_type == MovementStatus.EXPORT
        assert trip_request.status == RequestStatus.PENDING

    def test_approve_trip_request(self, db_session, manager, sub_manager, vehicle, driver):
        service = RequestService()
        _, _, trip_request = service.submit_trip_request({
            'vehicle_id': vehicle.id,
            'loading_point': 'Chattogram',
            'unloading_point': 'Dhaka',
            'estimated_fare': 21000,
        }, sub_manager)

        success, error, trip = service.approve_trip_request(trip_request.id, manager, {'package_amount': 15000})
        assert success is True, error
        assert trip.manager_id == manager.id
        assert trip.driver_id == driver.id
        assert trip.party_fare == 21000
        assert trip.package_amount == 15000
        assert trip.status == TripStatus.LOADING
        assert trip_request.status == RequestStatus.APPROVED
        assert trip_request.resolved_by == manager.id
        assert trip_request.trip_id == trip.id

        notice = ChatMessage.query.filter_by(receiver_id=driver.id).one()
        assert notice.sender_id == manager.id
        assert trip.trip_number in notice.text

    def test_export_approval_links_input_leg(self, db_session, manager, vehicle, trip):
        export_desk = SubManagerFactory(assigned_manager_id=manager.id, sub_manager_type=SubManagerType.EXPORT)
        service = RequestService()
        _, _, trip_request = service.submit_trip_request({
            'vehicle_id': vehicle.id, 'loading_point': 'Dhaka', 'unloading_point': 'Chattogram',
        }, export_desk)
        success, error, export_leg = service.approve_trip_request(trip_request.id, manager)
        assert success is True, error
        assert export_leg.related_trip_id == trip.id

    def test_export_approval_flushes_cleanly(self, db_session, manager, vehicle, trip):
        export_desk = SubManagerFactory(assigned_manager_id=manager.id, sub_manager_type=SubManagerType.EXPORT)
        service = RequestService()
        _, _, trip_request = service.submit_trip_request({
            'vehicle_id': vehicle.id, 'loading_point': 'Dhaka', 'unloading_point': 'Chattogram',
        }, export_desk)

        with warnings.catch_warnings():
            warnings.simplefilter('error', SAWarning)
            success, error, export_leg = service.approve_trip_request(trip_request.id, manager)

        assert success is True, error
        assert export_leg in vehicle.trips

    def test_request_resolves_once(self, db_session, manager, sub_manager, vehicle):
        service = RequestService()
        _, _, trip_request = service.submit_trip_request({
            'vehicle_id': vehicle.id, 'loading_point': 'A', 'unloading_point': 'B',
        }, sub_manager)

        success, error, rejected = service.reject_request('trip', trip_request.id, manager, 'No driver free')
        assert success is True, error
        assert rejected.rejection_reason == 'No driver free'

        success, error, _ = service.approve_trip_request(trip_request.id, manager)
        assert success is False
        assert error == "Request is already rejected"
        assert trip_request.trip_id is None

    def test_transition_rejects_pending_target(self, manager):
        request = TripRequest(status=RequestStatus.PENDING)
        with pytest.raises(InvalidTransition):
            transition(request, RequestStatus.PENDING, manager)

    def test_approve_payment_request(self, db_session, manager, ujala_manager, vehicle, trip):
        service = RequestService()
        success, error, payment_request = service.submit_payment_request({
            'amount': 5000, 'vehicle_id': vehicle.id, 'rent_company': RENT_COMPANY_UJALA,
        }, ujala_manager, [trip.id])
        assert success is True, error

        success, error, payment = service.approve_payment_request(payment_request.id, manager)
        assert success is True, error
        assert payment.payment_type == PaymentType.UJALA_REQUEST
        assert payment.amount == 5000
        assert payment_request.payment_id == payment.id
        assert trip.party_advance_amount == 8000
        assert calculate_party_due(trip) == 12000

    def test_pending_requests_are_scoped(self, db_session, manager, other_manager, sub_manager, vehicle):
        service = RequestService()
        service.submit_trip_request({'vehicle_id': vehicle.id, 'loading_point': 'A', 'unloading_point': 'B'},
                                    sub_manager)
        assert len(service.pending_trip_requests(manager)) == 1
        assert service.pending_trip_requests(other_manager) == []


class TestChatService:
    """Test ChatService functionality"""

    def test_message_to_contact(self, db_session, manager, driver):
        success, error, message = ChatService().add_message(driver, manager.id, '  On my way  ')
        assert success is True, error
        assert message.text == 'On my way'

    def test_message_to_stranger(self, db_session, driver, other_manager):
        success, error, _ = ChatService().add_message(driver, other_manager.id, 'Hello')
        assert success is False

    def test_empty_message(self, db_session, manager, driver):
        success, error, _ = ChatService().add_message(driver, manager.id, '   ')
        assert error == "Message text is required"

    def test_conversation_is_ascending(self, db_session, manager, driver):
        service = ChatService()
        later = service.post_message(driver.id, manager.id, 'second')
        earlier = service.post_message(manager.id, driver.id, 'first')
        later.timestamp = datetime(2024, 5, 1, 10, 5)
        earlier.timestamp = datetime(2024, 5, 1, 10, 0)
        db_session.commit()

        conversation = service.get_conversation(driver.id, manager.id)
        assert [message.text for message in conversation] == ['first', 'second']


class TestReportingService:
    """Test ReportingService functionality"""

    def test_manager_dashboard(self, db_session, manager, vehicle):
        TripFactory(vehicle=vehicle, manager_id=manager.id, party_fare=10000.0, status=TripStatus.RUNNING)
        TripFactory(vehicle=vehicle, manager_id=manager.id, party_fare=4000.0, rent_company='Karim Transport')
        TripFactory(party_fare=99999.0)
        vehicle.fitness_expiry = date(2020, 1, 1)
        db_session.commit()

        dashboard = ReportingService().get_manager_dashboard(manager, today=date(2024, 5, 10))
        assert dashboard['ujala_party_due'] == 10000
        assert dashboard['other_party_due'] == 4000
        assert len(dashboard['running_trips']) == 1
        assert dashboard['expiry_alerts'][0]['doc_type'] == 'Fitness'

    def test_admin_dashboard_counts(self, db_session, super_admin, manager, driver, trip):
        dashboard = ReportingService().get_admin_dashboard()
        assert dashboard['managers'] == 1
        assert dashboard['drivers'] == 1
        assert dashboard['total_dues'] == 17000

    def test_fleet_status_puts_unloaded_first(self, db_session, super_admin):
        idle = VehicleFactory(vehicle_number='A-0001')
        busy = VehicleFactory(vehicle_number='B-0002')
        ready = VehicleFactory(vehicle_number='C-0003')
        TripFactory(vehicle=busy, status=TripStatus.RUNNING)
        TripFactory(vehicle=ready, status=TripStatus.UNLOADED, unloading_point='Khulna')

        fleet = ReportingService().get_fleet_status(super_admin)
        assert [item['vehicle']['id'] for item in fleet] == [ready.id, idle.id, busy.id]
        assert fleet[0]['current_location'] == 'Khulna'
        assert fleet[1]['current_location'] == 'Base'
        assert fleet[1]['last_trip_status'] == TripStatus.COMPLETED.value

    def test_fleet_status_limited_to_own_manager(self, db_session, sub_manager, manager, other_manager, vehicle):
        foreign_driver = DriverFactory(assigned_manager_id=other_manager.id)
        foreign_vehicle = VehicleFactory(vehicle_number='ZZ-FOREIGN', driver_id=foreign_driver.id)
        TripFactory(vehicle=vehicle, manager_id=manager.id, status=TripStatus.RUNNING)
        TripFactory(vehicle=foreign_vehicle, manager_id=other_manager.id, status=TripStatus.UNLOADED)

        fleet = ReportingService().get_fleet_status(sub_manager)
        assert [item['vehicle']['id'] for item in fleet] == [vehicle.id]
        assert fleet[0]['last_trip_status'] == TripStatus.RUNNING.value

    def test_fleet_status_without_manager_is_empty(self, db_session, vehicle):
        orphan = SubManagerFactory()
        assert ReportingService().get_fleet_status(orphan) == []

    def test_monthly_report(self, db_session, manager, vehicle):
        TripFactory(vehicle=vehicle, manager_id=manager.id, date=date(2024, 5, 2),
                    party_fare=10000.0, party_advance_amount=4000.0)
        TripFactory(vehicle=vehicle, manager_id=manager.id, date=date(2024, 5, 9),
                    party_fare=6000.0, movement_status=MovementStatus.EXPORT)
        TripFactory(vehicle=vehicle, manager_id=manager.id, date=date(2024, 6, 1), party_fare=500.0)

        report = ReportingService().get_monthly_report(manager, '2024-05', RENT_COMPANY_UJALA)
        assert len(report['input']) == 1
        assert len(report['export']) == 1
        assert report['totals'] == {'fare': 16000, 'paid': 4000, 'due': 12000}

    def test_dues_board_split(self, db_session, manager, vehicle, ujala_manager):
        today = date(2024, 5, 10)
        TripFactory(vehicle=vehicle, manager_id=manager.id, date=today, party_fare=3000.0)
        TripFactory(vehicle=vehicle, manager_id=manager.id, date=date(2024, 4, 1), party_fare=2000.0,
                    rent_company='Karim Transport', movement_status=MovementStatus.EXPORT)
        TripFactory(vehicle=vehicle, manager_id=manager.id, party_fare=1000.0, party_advance_amount=1000.0)

        board = ReportingService().get_ujala_dues_board(ujala_manager, today=today)
        assert board['ujala_total'] == 3000
        assert board['outside_total'] == 2000
        assert board['ujala']['input'][0]['is_new'] is True
        assert board['outside']['export'][0]['is_new'] is False

    def test_export_sheet_search(self, db_session, manager, vehicle):
        TripFactory(vehicle=vehicle, manager_id=manager.id, movement_status=MovementStatus.EXPORT)
        TripFactory(manager_id=manager.id, movement_status=MovementStatus.EXPORT)
        TripFactory(vehicle=vehicle, manager_id=manager.id)

        assert len(ReportingService().get_export_sheet(manager)) == 2
        assert len(ReportingService().get_export_sheet(manager, search=vehicle.vehicle_number.lower())) == 1

    def test_driver_profile_stats(self, db_session, driver, trip):
        stats = ReportingService().get_profile_stats(driver)
        assert stats['trips_count'] == 1
        assert stats['vehicle_number'] == trip.vehicle.vehicle_number
        assert stats['pending_due'] == 7000


class TestUserService:
    """Test UserService functionality"""

    def test_create_and_authenticate(self, db_session, manager):
        service = UserService()
        success, error, driver = service.create_user({
            'name': 'Rahim Uddin', 'phone': '01812345678', 'email': 'Rahim@Example.com',
            'password': 'secret123', 'license_number': 'DL-1',
        }, UserRole.DRIVER, manager, assigned_manager_id=manager.id)
        assert success is True, error
        assert driver.email == 'rahim@example.com'

        assert service.authenticate('RAHIM@example.com', 'secret123') is driver
        assert service.authenticate('01812345678', 'secret123') is driver
        assert service.authenticate('01812345678', 'wrong') is None

    def test_duplicate_phone(self, db_session, manager, driver):
        success, error, _ = UserService().create_user({
            'name': 'Copy', 'phone': driver.phone, 'password': 'secret123',
        }, UserRole.DRIVER, manager)
        assert success is False
        assert 'Phone' in error

    def test_inactive_user_cannot_authenticate(self, db_session, manager, driver):
        service = UserService()
        assert service.set_active(driver.id, False, manager)[0] is True
        assert service.authenticate(driver.phone, TEST_PASSWORD) is None

    def test_cannot_deactivate_self(self, db_session, manager):
        success, error, _ = UserService().set_active(manager.id, False, manager)
        assert success is False

    def test_update_profile(self, db_session, driver):
        success, error, user = UserService().update_profile(driver, {'bio': 'Night shifts', 'name': 'New Name'})
        assert success is True, error
        assert user.bio == 'Night shifts'
        assert user.role == UserRole.DRIVER


class TestVehicleService:
    """Test VehicleService functionality"""

    def test_create_vehicle(self, db_session, manager, driver):
        success, error, vehicle = VehicleService().create_vehicle(
            {'vehicle_number': 'dhaka-metro-ta-11', 'driver_id': driver.id}, manager
        )
        assert success is True, error
        assert vehicle.vehicle_number == 'DHAKA-METRO-TA-11'

        success, error, _ = VehicleService().create_vehicle({'vehicle_number': 'DHAKA-METRO-TA-11'}, manager)
        assert 'already exists' in error

    def test_driver_drives_one_vehicle(self, db_session, manager, vehicle, driver):
        success, error, _ = VehicleService().create_vehicle(
            {'vehicle_number': 'CTG-1', 'driver_id': driver.id}, manager
        )
        assert success is False
        assert vehicle.vehicle_number in error

    def test_delete_vehicle_keeps_trips(self, db_session, manager, trip):
        vehicle_id = trip.vehicle_id
        success, error, _ = VehicleService().delete_vehicle(vehicle_id, manager)
        assert success is True, error
        assert trip.vehicle_id is None
        assert RecordStore().get_vehicle(vehicle_id) is None


class TestSettingsService:

    def test_update_settings(self, db_session, super_admin):
        success, error, settings = SettingsService().update_settings(
            {'app_name': 'PLS Fleet', 'feature_chat': False}, super_admin
        )
        assert success is True, error
        assert settings.app_name == 'PLS Fleet'
        assert settings.is_enabled('chat') is False
        assert settings.updated_by == super_admin.id

    def test_blank_app_name(self, db_session, super_admin):
        success, error, _ = SettingsService().update_settings({'app_name': '  '}, super_admin)
        assert success is False


class TestTransactionHelper:

    def test_retries_connection_errors(self, db_session):
        calls = []

        @TransactionHelper.with_transaction
        def flaky():
            calls.append(1)
            if len(calls) < 2:
                raise OperationalError('SELECT 1', {}, Exception('connection reset'))
            return True, None, 'done'

        with patch('services.transaction_helper.time.sleep'):
            assert flaky() == (True, None, 'done')
        assert len(calls) == 2

    def test_other_errors_propagate(self, db_session):
        @TransactionHelper.with_transaction
        def broken():
            raise ValueError('boom')

        with pytest.raises(ValueError):
            broken()
