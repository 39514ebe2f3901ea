"""
Unit test configuration and fixtures for Fleet Desk
"""

import pytest
import os

# Set test environment before importing app
os.environ.update({
    'FLASK_ENV': 'testing',
    'SESSION_SECRET': 'test_secret_key_for_testing_only_0123456789',
    'DATABASE_URL': 'sqlite:///:memory:',
    'DEMO_SEED': 'false',
})

from flask import g
from app import create_app, db
from models import (
    User, UserRole, SubManagerType, Vehicle, Trip, Payment, PaymentType,
    MovementStatus, TripType, TripStatus, RENT_COMPANY_UJALA
)
from timezone_utils import get_local_date
import factory
from factory import Faker
from werkzeug.security import generate_password_hash

TEST_PASSWORD = 'testpass123'
TEST_PASSWORD_HASH = generate_password_hash(TEST_PASSWORD)


@pytest.fixture(scope='function')
def app():
    """Create application for testing"""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'WTF_CSRF_ENABLED': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create database session for testing"""
    yield db.session
    db.session.rollback()


# Factory classes for test data generation
class BaseFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta:
        abstract = True
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"


class UserFactory(BaseFactory):
    class Meta:
        model = User

    name = Faker('name')
    phone = factory.Sequence(lambda n: f"0171{n:07d}")
    email = factory.Sequence(lambda n: f"user{n}@test.com")
    password_hash = TEST_PASSWORD_HASH
    role = UserRole.DRIVER
    is_active = True
    login_count = 0


class SuperAdminFactory(UserFactory):
    role = UserRole.SUPER_ADMIN
    email = factory.Sequence(lambda n: f"admin{n}@test.com")


class ManagerFactory(UserFactory):
    role = UserRole.MANAGER
    email = factory.Sequence(lambda n: f"manager{n}@test.com")


class DriverFactory(UserFactory):
    role = UserRole.DRIVER
    email = factory.Sequence(lambda n: f"driver{n}@test.com")
    license_number = factory.Sequence(lambda n: f"DL{n:08d}")


class SubManagerFactory(UserFactory):
    role = UserRole.SUB_MANAGER
    email = factory.Sequence(lambda n: f"sub{n}@test.com")
    sub_manager_type = SubManagerType.IMPORT


class UjalaManagerFactory(UserFactory):
    role = UserRole.UJALA_MANAGER
    email = factory.Sequence(lambda n: f"ujala{n}@test.com")


class VehicleFactory(BaseFactory):
    class Meta:
        model = Vehicle

    vehicle_number = factory.Sequence(lambda n: f"DHAKA-TA-{n:04d}")
    owner_name = Faker('name')
    is_active = True


class TripFactory(BaseFactory):
    class Meta:
        model = Trip

    vehicle = factory.SubFactory(VehicleFactory)
    driver_id = factory.LazyAttribute(lambda o: o.vehicle.driver_id if o.vehicle else None)
    movement_status = MovementStatus.INPUT
    trip_type = TripType.INPUT
    rent_company = RENT_COMPANY_UJALA
    loading_point = 'Chattogram Port'
    unloading_point = 'Dhaka'
    date = factory.LazyFunction(get_local_date)
    status = TripStatus.LOADING
    party_fare = 20000.0
    package_amount = 12000.0
    party_advance_amount = 0.0
    company_advance_amount = 0.0
    total_advance_paid = factory.LazyAttribute(
        lambda o: (o.party_advance_amount or 0) + (o.company_advance_amount or 0)
    )


class PaymentFactory(BaseFactory):
    class Meta:
        model = Payment

    payment_type = PaymentType.MANUAL
    payer = RENT_COMPANY_UJALA
    amount = 1000.0
    remaining_due = 0.0
    date = factory.LazyFunction(get_local_date)


# Fixtures for test data
@pytest.fixture
def super_admin(db_session):
    return SuperAdminFactory()


@pytest.fixture
def manager(db_session):
    return ManagerFactory()


@pytest.fixture
def other_manager(db_session):
    return ManagerFactory()


@pytest.fixture
def driver(db_session, manager):
    return DriverFactory(assigned_manager_id=manager.id)


@pytest.fixture
def vehicle(db_session, driver):
    return VehicleFactory(driver_id=driver.id)


@pytest.fixture
def sub_manager(db_session, manager):
    return SubManagerFactory(assigned_manager_id=manager.id)


@pytest.fixture
def ujala_manager(db_session, manager):
    return UjalaManagerFactory(assigned_manager_id=manager.id)


@pytest.fixture
def trip(db_session, manager, vehicle):
    """Input trip with package 12000, party advance 3000 and company advance 2000"""
    return TripFactory(
        vehicle=vehicle,
        manager_id=manager.id,
        party_advance_amount=3000.0,
        company_advance_amount=2000.0,
    )


@pytest.fixture
def login_as(client):
    """Log the test client in as the given user"""
    def _login(user):
        # requests share the fixture's app context, so drop the cached user
        g.pop('_login_user', None)
        with client.session_transaction() as sess:
            sess['_user_id'] = str(user.id)
            sess['_fresh'] = True
        return client
    return _login
