from datetime import date
from types import SimpleNamespace

import pytest

from fleet_rental.models import PricingModel
from fleet_rental.pricing import (add_months, calculate_late_fee, days_overdue, demand_multiplier,
                                  dynamic_deposit, dynamic_price, first_due_date,
                                  installment_schedule, percentage_late_fee, rent_due_date,
                                  seasonal_multiplier, seed_pricing_models)


class TestLateFees:
    def test_no_fee_when_not_late(self):
        assert calculate_late_fee(0) == 0.0
        assert calculate_late_fee(-3) == 0.0

    def test_daily_rate(self):
        assert calculate_late_fee(5) == 600.0
        assert calculate_late_fee(10, daily_rate=50, cap=None) == 500.0

    def test_capped(self):
        assert calculate_late_fee(25) == 3000.0
        assert calculate_late_fee(30) == 3000.0
        assert calculate_late_fee(400) == 3000.0

    def test_days_overdue(self):
        due = date(2024, 3, 1)
        assert days_overdue(due, date(2024, 3, 11)) == 10
        assert days_overdue(due, due) == 0
        assert days_overdue(due, date(2024, 2, 20)) == 0
        assert days_overdue(None, date(2024, 3, 11)) == 0

    def test_percentage_late_fee(self):
        assert percentage_late_fee(5, 1000) == pytest.approx(150.0)
        assert percentage_late_fee(0, 1000) == 0.0
        assert percentage_late_fee(3, 0) == 0.0


class TestDueDates:
    def test_due_day_clamped_to_month_length(self):
        assert rent_due_date(2024, 2, 31) == date(2024, 2, 29)
        assert rent_due_date(2023, 2, 30) == date(2023, 2, 28)
        assert rent_due_date(2024, 4, 15) == date(2024, 4, 15)

    def test_first_due_date_on_or_after_start(self):
        assert first_due_date(date(2024, 3, 1), 1) == date(2024, 3, 1)
        assert first_due_date(date(2024, 3, 15), 1) == date(2024, 4, 1)
        assert first_due_date(date(2024, 3, 10), 15) == date(2024, 3, 15)
        assert first_due_date(date(2024, 12, 20), 5) == date(2025, 1, 5)

    def test_add_months(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)
        assert add_months(date(2024, 3, 1), -3) == date(2023, 12, 1)


class TestDynamicPricing:
    def test_demand_multiplier_range(self):
        assert demand_multiplier(0, 10) == 1.0
        assert demand_multiplier(5, 10) == pytest.approx(1.25)
        assert demand_multiplier(10, 10) == pytest.approx(1.5)
        assert demand_multiplier(25, 10) == pytest.approx(1.5)

    def test_empty_fleet(self):
        assert demand_multiplier(3, 0) == 1.0

    def test_seasonal_multiplier(self):
        for month in (6, 7, 8, 9):
            assert seasonal_multiplier(date(2024, month, 10)) == pytest.approx(1.3)
        for month in (1, 5, 10, 12):
            assert seasonal_multiplier(date(2024, month, 10)) == 1.0

    def test_dynamic_price_standard(self):
        quote = dynamic_price(1000, 5, 10, date(2024, 7, 1))
        assert quote['price'] == pytest.approx(1625.0)
        assert quote['demand_multiplier'] == pytest.approx(1.25)
        assert quote['seasonal_multiplier'] == pytest.approx(1.3)

    def test_dynamic_price_rounds_to_whole_unit(self):
        quote = dynamic_price(1001, 1, 4, date(2024, 1, 15))
        # 1001 * 1.125 = 1126.125
        assert quote['price'] == 1126.0

    def test_dynamic_price_with_model(self):
        premium = SimpleNamespace(base_multiplier=1.2, seasonal_adjustment=0.4,
                                  demand_adjustment=0.6)
        quote = dynamic_price(1000, 10, 10, date(2024, 1, 15), premium)
        assert quote['price'] == pytest.approx(1920.0)


class TestPaymentPlans:
    def test_dynamic_deposit(self):
        assert dynamic_deposit(50000, 80) == pytest.approx(20000.0)
        assert dynamic_deposit(50000, 100) == pytest.approx(10000.0)
        assert dynamic_deposit(50000, 150) == pytest.approx(10000.0)
        assert dynamic_deposit(0, 50) == 0.0

    def test_schedule_without_interest(self):
        schedule = installment_schedule(1200, 3, 0, date(2024, 1, 31))
        assert [i['amount'] for i in schedule] == [400.0, 400.0, 400.0]
        assert [i['due_date'] for i in schedule] == ['2024-01-31', '2024-02-29', '2024-03-31']
        assert all(i['status'] == 'pending' for i in schedule)

    def test_schedule_interest_on_remaining_principal(self):
        schedule = installment_schedule(1200, 3, 12, date(2024, 1, 1))
        assert [i['amount'] for i in schedule] == [412.0, 408.0, 404.0]

    def test_no_installments(self):
        assert installment_schedule(1200, 0) == []


def test_seed_pricing_models_is_idempotent(app):
    assert seed_pricing_models() == 3
    assert seed_pricing_models() == 0
    premium = PricingModel.query.filter_by(slug='premium').one()
    assert premium.base_multiplier == 1.2
