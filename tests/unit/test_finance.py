"""
Unit tests for the due/pending calculators and money helpers
"""

import pytest
from datetime import date
from types import SimpleNamespace

from models import TripType, RENT_COMPANY_UJALA, RENT_COMPANY_OUTSIDE, RENT_COMPANY_OWN
from utils.finance import (
    total_advance, calculate_party_due, calculate_driver_pending, salary_net_payable,
    is_ujala_company, resolve_rent_company, format_currency, is_new_due
)


def make_trip(**fields):
    defaults = {
        'trip_type': TripType.INPUT,
        'party_fare': 0.0,
        'package_amount': 0.0,
        'party_advance_amount': 0.0,
        'company_advance_amount': 0.0,
    }
    defaults.update(fields)
    return SimpleNamespace(**defaults)


class TestPartyDue:

    def test_fare_minus_party_advance(self):
        trip = make_trip(party_fare=20000, party_advance_amount=5000, company_advance_amount=4000)
        assert calculate_party_due(trip) == 15000

    def test_overpaid_trip_goes_negative(self):
        trip = make_trip(party_fare=1000, party_advance_amount=1500)
        assert calculate_party_due(trip) == -500

    def test_missing_amounts_count_as_zero(self):
        assert calculate_party_due({}) == 0
        assert calculate_party_due(make_trip(party_fare=None, party_advance_amount=None)) == 0


class TestDriverPending:

    def test_regular_trip_uses_package(self):
        trip = make_trip(package_amount=12000, party_advance_amount=3000, company_advance_amount=2000)
        assert calculate_driver_pending(trip) == 7000

    def test_local_trip_uses_fare(self):
        trip = make_trip(trip_type=TripType.LOCAL, party_fare=8000, package_amount=12000,
                         party_advance_amount=1000, company_advance_amount=500)
        assert calculate_driver_pending(trip) == 6500

    def test_plain_mapping_with_string_trip_type(self):
        trip = {'trip_type': 'Local', 'party_fare': 5000, 'party_advance_amount': 2000}
        assert calculate_driver_pending(trip) == 3000

    @pytest.mark.parametrize('package,party_adv,company_adv', [
        (12000, 0, 0),
        (15000, 5000, 2500),
        (20000, 20000, 1000),
    ])
    def test_pending_matches_package_minus_advances(self, package, party_adv, company_adv):
        trip = make_trip(package_amount=package, party_advance_amount=party_adv,
                         company_advance_amount=company_adv)
        assert calculate_driver_pending(trip) == package - (party_adv + company_adv)

    def test_calculators_are_idempotent(self):
        trip = make_trip(party_fare=18000, package_amount=15000, party_advance_amount=4000,
                         company_advance_amount=1000)
        assert calculate_driver_pending(trip) == calculate_driver_pending(trip)
        assert calculate_party_due(trip) == calculate_party_due(trip)
        assert trip.party_advance_amount == 4000

    def test_total_advance(self):
        assert total_advance(make_trip(party_advance_amount=3000, company_advance_amount=2000)) == 5000


class TestSalary:

    def test_net_payable_subtracts_advances(self):
        assert salary_net_payable(5000, [1500, 2000]) == 1500

    def test_no_advances(self):
        assert salary_net_payable(5000, []) == 5000

    def test_none_values(self):
        assert salary_net_payable(None, [None, 500]) == -500


class TestCompanies:

    @pytest.mark.parametrize('name,expected', [
        (RENT_COMPANY_UJALA, True),
        ('Ujala Traders', True),
        ('UJALA', True),
        (RENT_COMPANY_OUTSIDE, False),
        ('Karim Transport', False),
        (None, False),
        ('', False),
    ])
    def test_is_ujala_company(self, name, expected):
        assert is_ujala_company(name) is expected

    def test_custom_name_replaces_outside_option(self):
        assert resolve_rent_company(RENT_COMPANY_OUTSIDE, 'ABC Logistics') == 'ABC Logistics'

    def test_custom_name_replaces_own_option(self):
        assert resolve_rent_company(RENT_COMPANY_OWN, ' Own Fleet ') == 'Own Fleet'

    def test_custom_name_ignored_for_ujala(self):
        assert resolve_rent_company(RENT_COMPANY_UJALA, 'ABC Logistics') == RENT_COMPANY_UJALA

    def test_empty_selection_defaults_to_ujala(self):
        assert resolve_rent_company('', None) == RENT_COMPANY_UJALA

    def test_outside_without_custom_name(self):
        assert resolve_rent_company(RENT_COMPANY_OUTSIDE, '') == RENT_COMPANY_OUTSIDE


class TestFormatting:

    @pytest.mark.parametrize('amount,expected', [
        (12000, '৳12,000'),
        (1234.5, '৳1,234.50'),
        (-500, '-৳500'),
        (None, '৳0'),
    ])
    def test_format_currency(self, amount, expected):
        assert format_currency(amount) == expected


class TestNewDue:

    @pytest.mark.parametrize('trip_date,expected', [
        (date(2024, 5, 10), True),
        (date(2024, 5, 8), True),
        (date(2024, 5, 7), False),
        (date(2024, 5, 11), False),
        (None, False),
    ])
    def test_two_day_window(self, trip_date, expected):
        assert is_new_due(trip_date, date(2024, 5, 10)) is expected
