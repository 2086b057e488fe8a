from datetime import date

import pytest

from fleet_rental.errors import NotFound, ValidationFailed
from fleet_rental.legal import (create_case, create_case_for_overdue, filter_cases,
                                overdue_summary, priority_for_amount, update_case)
from fleet_rental.maintenance import (create_maintenance, delete_maintenance,
                                      mark_overdue_maintenance, update_maintenance,
                                      upcoming_maintenance)
from fleet_rental.models import LegalCaseStatus, MaintenanceStatus, VehicleStatus
from fleet_rental.payments import generate_monthly_payment, record_payment


class TestMaintenance:
    def test_in_progress_takes_vehicle_off_road(self, make_vehicle):
        vehicle = make_vehicle()
        record = create_maintenance({'vehicle_id': vehicle.id, 'title': 'Brakes',
                                     'status': 'in_progress', 'cost': 450})
        assert vehicle.status == VehicleStatus.MAINTENANCE

        update_maintenance(record, {'status': 'completed'})
        assert record.completed_date == date.today()
        assert vehicle.status == VehicleStatus.AVAILABLE

    def test_rented_vehicle_stays_rented(self, rental):
        create_maintenance({'vehicle_id': rental.vehicle_id, 'title': 'Oil change',
                            'status': 'in_progress'})
        assert rental.vehicle.status == VehicleStatus.RENTED

    def test_vehicle_waits_for_other_open_jobs(self, make_vehicle):
        vehicle = make_vehicle()
        first = create_maintenance({'vehicle_id': vehicle.id, 'title': 'Tyres',
                                    'status': 'in_progress'})
        second = create_maintenance({'vehicle_id': vehicle.id, 'title': 'Paint',
                                     'status': 'in_progress'})
        update_maintenance(first, {'status': 'completed'})
        assert vehicle.status == VehicleStatus.MAINTENANCE
        delete_maintenance(second)
        assert vehicle.status == VehicleStatus.AVAILABLE

    def test_unknown_vehicle(self, app):
        with pytest.raises(NotFound):
            create_maintenance({'vehicle_id': 404, 'title': 'Ghost'})

    def test_invalid_status(self, make_vehicle):
        with pytest.raises(ValidationFailed):
            create_maintenance({'vehicle_id': make_vehicle().id, 'title': 'X',
                                'status': 'someday'})

    def test_overdue_and_upcoming(self, make_vehicle):
        vehicle = make_vehicle()
        late = create_maintenance({'vehicle_id': vehicle.id, 'title': 'Service',
                                   'scheduled_date': '2024-03-01'})
        soon = create_maintenance({'vehicle_id': vehicle.id, 'title': 'Inspection',
                                   'scheduled_date': '2024-03-20'})
        create_maintenance({'vehicle_id': vehicle.id, 'title': 'Later',
                            'scheduled_date': '2024-06-01'})

        today = date(2024, 3, 10)
        assert upcoming_maintenance(30, today=today) == [soon]
        assert mark_overdue_maintenance(today=today) == 1
        assert late.status == MaintenanceStatus.OVERDUE
        assert soon.status == MaintenanceStatus.SCHEDULED


class TestLegalCases:
    def test_create_and_resolve(self, make_customer):
        customer = make_customer()
        case = create_case({'customer_id': customer.id, 'case_type': 'vehicle_damage',
                            'amount_owed': 2500})
        assert case.status == LegalCaseStatus.PENDING_REMINDER
        assert case.resolved_at is None

        update_case(case, {'status': 'resolved', 'resolution_notes': 'Settled'})
        assert case.resolved_at is not None
        update_case(case, {'status': 'escalated'})
        assert case.resolved_at is None

    def test_unknown_customer(self, app):
        with pytest.raises(NotFound):
            create_case({'customer_id': 12345})

    def test_filter(self, make_customer):
        customer = make_customer()
        create_case({'customer_id': customer.id, 'priority': 'high'})
        create_case({'customer_id': customer.id, 'priority': 'low'})
        assert filter_cases(priority='high').count() == 1
        assert filter_cases(customer_id=customer.id).count() == 2

    @pytest.mark.parametrize('amount, priority', [
        (500, 'low'), (1000, 'medium'), (4999, 'medium'), (5000, 'high'), (12000, 'urgent'),
    ])
    def test_priority_for_amount(self, amount, priority):
        assert priority_for_amount(amount) == priority


class TestOverdueCase:
    def test_case_for_overdue_rent(self, rental):
        generate_monthly_payment(rental, date(2024, 3, 1), today=date(2024, 3, 11))
        summary = overdue_summary(rental)
        assert summary == {'overdue_payments': 1, 'rent_owed': 3000.0, 'late_fees': 1200.0,
                           'total_owed': 4200.0}

        case = create_case_for_overdue(rental)
        assert case.case_type == 'payment_default'
        assert case.amount_owed == 4200.0
        assert case.priority == 'medium'
        assert case.customer_id == rental.customer_id
        assert f"Agreement #{rental.agreement_number}" in case.description

        assert create_case_for_overdue(rental).id == case.id

    def test_unpaid_late_fee_counts(self, rental):
        rent = generate_monthly_payment(rental, date(2024, 3, 1), today=date(2024, 2, 25))
        record_payment(rent, 3000, paid_on=date(2024, 3, 11))
        summary = overdue_summary(rental)
        assert summary['rent_owed'] == 0.0
        assert summary['late_fees'] == 1200.0

    def test_nothing_owed(self, rental):
        generate_monthly_payment(rental, date(2024, 3, 1), today=date(2024, 2, 25))
        with pytest.raises(ValidationFailed):
            create_case_for_overdue(rental)

    def test_new_case_after_resolution(self, rental):
        generate_monthly_payment(rental, date(2024, 3, 1), today=date(2024, 3, 11))
        first = create_case_for_overdue(rental)
        update_case(first, {'status': 'closed'})
        second = create_case_for_overdue(rental)
        assert second.id != first.id
        assert second.status == LegalCaseStatus.PENDING_REMINDER
