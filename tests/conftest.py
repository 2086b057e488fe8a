import itertools
from datetime import date, datetime

import pytest

from fleet_rental import create_app
from fleet_rental.config import TestConfig
from fleet_rental.models import (Agreement, Customer, LeaseStatus, UnifiedPayment, Vehicle,
                                 VehicleStatus, db)

_numbers = itertools.count(1)


@pytest.fixture
def app(tmp_path):
    app = create_app(TestConfig)
    app.config['UPLOAD_FOLDER'] = str(tmp_path / 'uploads')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_vehicle(app):
    def _make(plate=None, status=VehicleStatus.AVAILABLE, **fields):
        vehicle = Vehicle(
            make=fields.pop('make', 'Toyota'),
            model=fields.pop('model', 'Camry'),
            year=fields.pop('year', 2022),
            license_plate=plate or f"QA {next(_numbers):05d}",
            status=status,
            **fields,
        )
        db.session.add(vehicle)
        db.session.commit()
        return vehicle
    return _make


@pytest.fixture
def make_customer(app):
    def _make(full_name='Ahmed Ali', **fields):
        customer = Customer(full_name=full_name, **fields)
        db.session.add(customer)
        db.session.commit()
        return customer
    return _make


@pytest.fixture
def make_agreement(app):
    """Insert an agreement row directly, bypassing the lifecycle checks."""
    def _make(customer, vehicle, status=LeaseStatus.ACTIVE, start=date(2024, 1, 1),
              end=date(2024, 12, 31), rent=3000.0, created_at=None, **fields):
        agreement = Agreement(
            agreement_number=fields.pop('agreement_number', f"TEST-{next(_numbers):05d}"),
            customer_id=customer.id,
            vehicle_id=vehicle.id if vehicle is not None else None,
            status=status,
            start_date=start,
            end_date=end,
            rent_amount=rent,
            created_at=created_at or datetime(2024, 1, 1, 9, 0),
            **fields,
        )
        db.session.add(agreement)
        db.session.commit()
        return agreement
    return _make


@pytest.fixture
def make_payment(app):
    def _make(agreement, amount=3000.0, due=date(2024, 3, 1), **fields):
        payment = UnifiedPayment(
            lease_id=agreement.id,
            amount=amount,
            amount_paid=fields.pop('amount_paid', 0.0),
            balance=fields.pop('balance', amount),
            due_date=due,
            **fields,
        )
        db.session.add(payment)
        db.session.commit()
        return payment
    return _make


@pytest.fixture
def rental(make_customer, make_vehicle, make_agreement):
    """An active agreement with its vehicle marked rented."""
    customer = make_customer()
    vehicle = make_vehicle(status=VehicleStatus.RENTED)
    return make_agreement(customer, vehicle)
