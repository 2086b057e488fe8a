from datetime import date

import pytest

from fleet_rental.models import (LeaseStatus, Maintenance, PaymentStatus, PaymentType,
                                 TrafficFine, VehicleExpense, VehicleStatus, db)
from fleet_rental.reports import dashboard_stats, fleet_report, revenue_by_month, vehicle_report


@pytest.fixture
def rented_vehicle(make_customer, make_vehicle, make_agreement, make_payment):
    customer = make_customer()
    vehicle = make_vehicle(purchase_price=50000.0)
    agreement = make_agreement(customer, vehicle, start=date(2024, 3, 1), end=date(2024, 3, 31))
    make_agreement(customer, vehicle, status=LeaseStatus.DRAFT, start=date(2023, 1, 1),
                   end=date(2023, 12, 31))
    make_payment(agreement, amount=3000.0, amount_paid=3000.0, balance=0.0,
                 status=PaymentStatus.PAID, payment_date=date(2024, 3, 2))
    make_payment(agreement, amount=1000.0, amount_paid=1000.0, balance=0.0,
                 type=PaymentType.DEPOSIT, status=PaymentStatus.PAID,
                 payment_date=date(2024, 3, 1))
    db.session.add_all([
        VehicleExpense(vehicle_id=vehicle.id, category='Insurance', cost=500.0),
        Maintenance(vehicle_id=vehicle.id, title='Service', cost=200.0),
        TrafficFine(license_plate=vehicle.license_plate, violation_date=date(2024, 2, 1),
                    fine_amount=100.0, vehicle_id=vehicle.id),
        TrafficFine(license_plate=vehicle.license_plate, violation_date=date(2024, 3, 5),
                    fine_amount=400.0, vehicle_id=vehicle.id, customer_id=customer.id,
                    lease_id=agreement.id),
    ])
    db.session.commit()
    return vehicle


def test_vehicle_report(rented_vehicle):
    report = vehicle_report(rented_vehicle, today=date(2024, 4, 9))
    assert report['days_rented'] == 31
    assert report['utilisation_pct'] == 77.5
    assert report['total_revenue'] == 3000.0
    assert report['total_expenses'] == 800.0
    assert report['profit_loss'] == -47800.0
    assert report['recovery_pct'] == 6.0


def test_unrented_vehicle_report(make_vehicle):
    vehicle = make_vehicle()
    report = vehicle_report(vehicle, today=date(2024, 4, 9))
    assert report['days_rented'] == 0
    assert report['utilisation_pct'] == 0.0
    assert report['recovery_pct'] is None


def test_fleet_report(rented_vehicle, make_vehicle):
    make_vehicle()
    rows = fleet_report(today=date(2024, 4, 9))
    assert [r['vehicle_id'] for r in rows][0] == rented_vehicle.id
    assert len(rows) == 2


def test_dashboard(rental, make_vehicle, make_payment):
    make_vehicle(status=VehicleStatus.MAINTENANCE)
    make_payment(rental, amount_paid=1500.0, balance=1500.0, status=PaymentStatus.PARTIALLY_PAID,
                 payment_date=date(2024, 3, 10))
    make_payment(rental, due=date(2024, 4, 1), amount_paid=3000.0, balance=0.0,
                 status=PaymentStatus.PAID, payment_date=date(2024, 4, 2))
    make_payment(rental, due=date(2024, 5, 1), status=PaymentStatus.OVERDUE)

    stats = dashboard_stats(today=date(2024, 4, 15))
    assert stats['vehicles']['total'] == 2
    assert stats['vehicles']['rented'] == 1
    assert stats['vehicles']['maintenance'] == 1
    assert stats['agreements'] == {'active': 1, 'total': 1}
    assert stats['revenue']['current_month'] == 3000.0
    assert stats['revenue']['last_month'] == 1500.0
    assert stats['revenue']['growth_pct'] == 100.0
    assert stats['revenue']['current_month_display'] == 'QAR 3,000.00'
    assert stats['payments'] == {'outstanding_balance': 4500.0, 'overdue_count': 1}


def test_revenue_by_month(rental, make_payment):
    make_payment(rental, amount_paid=1000.0, payment_date=date(2024, 2, 20))
    rows = revenue_by_month(3, today=date(2024, 3, 15))
    assert [r['month'] for r in rows] == ['January 2024', 'February 2024', 'March 2024']
    assert [r['revenue'] for r in rows] == [0.0, 1000.0, 0.0]
