"""
Rental agreement lifecycle.

Agreements move draft -> active -> closed/completed/terminated/cancelled, or
expire when their end date passes while still active. Activating an
agreement takes the vehicle: any other active agreement on it is closed and
the vehicle is marked rented. Closing one frees the vehicle again unless
another active agreement still holds it.
"""

import logging
import re
from datetime import date

from .errors import Conflict, NotFound, ValidationFailed
from .formatting import format_currency, format_date
from .models import (Agreement, AgreementTemplate, Customer, LeaseStatus, Vehicle,
                     VehicleStatus, db, utcnow)
from .payments import generate_payment_schedule
from .schemas import AgreementCreate, AgreementUpdate, validate

logger = logging.getLogger(__name__)

CLOSING_STATUSES = (LeaseStatus.CLOSED, LeaseStatus.COMPLETED,
                    LeaseStatus.TERMINATED, LeaseStatus.CANCELLED)
# vehicles in these states can never be handed to a customer
UNRENTABLE_VEHICLE_STATUSES = (VehicleStatus.SOLD, VehicleStatus.INACTIVE, VehicleStatus.DAMAGED)

PLACEHOLDER = re.compile(r'\{\{\s*(\w+)\s*\}\}')


# ---------------------------------------------------------------------------
# Numbers and lookups

def next_agreement_number(on_date: date = None) -> str:
    """``AGR-YYYYMM-NNNN`` with a sequence restarting every month."""
    on_date = on_date or date.today()
    prefix = f"AGR-{on_date:%Y%m}-"
    numbers = (db.session.query(Agreement.agreement_number)
               .filter(Agreement.agreement_number.like(prefix + '%'))
               .all())
    highest = 0
    for (number,) in numbers:
        suffix = number[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:04d}"


def _get_vehicle(vehicle_id: int) -> Vehicle:
    vehicle = db.session.get(Vehicle, vehicle_id)
    if vehicle is None:
        raise NotFound(f"Vehicle {vehicle_id} not found")
    return vehicle


def _get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound(f"Customer {customer_id} not found")
    return customer


def other_active_agreements(vehicle_id: int, exclude_id: int = None) -> list:
    query = Agreement.query.filter_by(vehicle_id=vehicle_id, status=LeaseStatus.ACTIVE)
    if exclude_id is not None:
        query = query.filter(Agreement.id != exclude_id)
    return query.all()


def overlapping_agreements(vehicle_id: int, start: date, end: date, exclude_id: int = None) -> list:
    """Active or pending agreements on the vehicle whose dates intersect ``start``..``end``."""
    query = Agreement.query.filter(Agreement.vehicle_id == vehicle_id,
                                   Agreement.status.in_((LeaseStatus.ACTIVE, LeaseStatus.PENDING)))
    if exclude_id is not None:
        query = query.filter(Agreement.id != exclude_id)
    end = end or date.max
    overlapping = []
    for agreement in query.all():
        other_end = agreement.end_date or date.max
        # ranges intersect when each starts before the other ends
        if agreement.start_date <= end and start <= other_end:
            overlapping.append(agreement)
    return overlapping


def vehicle_availability(vehicle: Vehicle, start: date, end: date) -> dict:
    clashes = overlapping_agreements(vehicle.id, start, end)
    available = not clashes and vehicle.status not in UNRENTABLE_VEHICLE_STATUSES
    return {
        'vehicle_id': vehicle.id,
        'vehicle_status': vehicle.status,
        'available': available,
        'conflicts': [
            {'id': a.id, 'agreement_number': a.agreement_number, 'status': a.status,
             'start_date': a.start_date.isoformat(),
             'end_date': a.end_date.isoformat() if a.end_date else None}
            for a in clashes
        ],
    }


def contract_months(start: date, end: date) -> int:
    months = (end.year - start.year) * 12 + end.month - start.month
    if end.day > start.day:
        months += 1
    return max(months, 1)


def _check_rentable(vehicle: Vehicle):
    """Refuse to put an active agreement on a vehicle that cannot go out."""
    if vehicle.status in UNRENTABLE_VEHICLE_STATUSES or vehicle.status == VehicleStatus.MAINTENANCE:
        raise Conflict(f"Vehicle {vehicle.license_plate} is not available ({vehicle.status})")


def _release_vehicle(vehicle: Vehicle, agreement_id: int):
    if vehicle is None or vehicle.status != VehicleStatus.RENTED:
        return
    if not other_active_agreements(vehicle.id, exclude_id=agreement_id):
        vehicle.status = VehicleStatus.AVAILABLE


# ---------------------------------------------------------------------------
# Lifecycle

def create_agreement(data: dict) -> Agreement:
    payload = validate(AgreementCreate, data)
    _get_customer(payload.customer_id)
    vehicle = _get_vehicle(payload.vehicle_id)

    if payload.status == LeaseStatus.ACTIVE:
        _check_rentable(vehicle)
        busy = other_active_agreements(vehicle.id)
        if busy:
            raise Conflict(
                f"Vehicle {vehicle.license_plate} is already assigned to agreement "
                f"{busy[0].agreement_number}",
                payload={'conflicting_agreement_id': busy[0].id})

    fields = payload.model_dump()
    if not fields['agreement_number']:
        fields['agreement_number'] = next_agreement_number()
    elif Agreement.query.filter_by(agreement_number=fields['agreement_number']).first():
        raise Conflict(f"Agreement number {fields['agreement_number']} already exists")
    if fields['total_amount'] is None:
        fields['total_amount'] = payload.rent_amount * contract_months(payload.start_date,
                                                                       payload.end_date)

    agreement = Agreement(**fields)
    db.session.add(agreement)
    if agreement.status == LeaseStatus.ACTIVE:
        vehicle.status = VehicleStatus.RENTED
    db.session.commit()
    logger.info("Created agreement %s (%s) for vehicle %s",
                agreement.agreement_number, agreement.status, vehicle.license_plate)

    if agreement.status == LeaseStatus.ACTIVE:
        generate_payment_schedule(agreement)
    return agreement


def update_agreement(agreement: Agreement, data: dict) -> Agreement:
    changes = validate(AgreementUpdate, data).model_dump(exclude_unset=True)
    if 'customer_id' in changes and changes['customer_id'] is not None:
        _get_customer(changes['customer_id'])
    start = changes.get('start_date') or agreement.start_date
    end = changes.get('end_date') or agreement.end_date
    if end <= start:
        raise ValidationFailed("End date must be after start date")
    for key, value in changes.items():
        setattr(agreement, key, value)
    db.session.commit()
    logger.info("Updated agreement %s: %s", agreement.agreement_number, ', '.join(sorted(changes)))
    return agreement


def activate_agreement(agreement: Agreement, vehicle_id: int = None) -> Agreement:
    """Make ``agreement`` the one active agreement on its vehicle."""
    if agreement.status in CLOSING_STATUSES or agreement.status == LeaseStatus.EXPIRED:
        raise ValidationFailed(f"Cannot activate a {agreement.status} agreement")
    previous_vehicle = agreement.vehicle
    target_id = vehicle_id if vehicle_id is not None else agreement.vehicle_id
    if target_id is None:
        raise ValidationFailed("Agreement has no vehicle")
    vehicle = _get_vehicle(target_id)
    _check_rentable(vehicle)
    agreement.vehicle_id = vehicle.id

    for other in other_active_agreements(vehicle.id, exclude_id=agreement.id):
        other.status = LeaseStatus.CLOSED
        other.updated_at = utcnow()
        logger.warning("Closed agreement %s: vehicle %s reassigned to %s",
                       other.agreement_number, vehicle.license_plate, agreement.agreement_number)

    was_active = agreement.status == LeaseStatus.ACTIVE
    agreement.status = LeaseStatus.ACTIVE
    vehicle.status = VehicleStatus.RENTED
    if was_active and previous_vehicle is not None and previous_vehicle.id != vehicle.id:
        db.session.flush()
        _release_vehicle(previous_vehicle, agreement.id)
        logger.info("Agreement %s moved from vehicle %s to %s", agreement.agreement_number,
                    previous_vehicle.license_plate, vehicle.license_plate)
    db.session.commit()
    if not was_active:
        logger.info("Activated agreement %s on vehicle %s",
                    agreement.agreement_number, vehicle.license_plate)
        if agreement.rent_amount:
            generate_payment_schedule(agreement)
    return agreement


def close_agreement(agreement: Agreement, status: str = LeaseStatus.CLOSED) -> Agreement:
    if status not in CLOSING_STATUSES:
        raise ValidationFailed(f"Invalid closing status: {status}")
    agreement.status = status
    _release_vehicle(agreement.vehicle, agreement.id)
    db.session.commit()
    logger.info("Agreement %s is now %s", agreement.agreement_number, status)
    return agreement


def delete_agreement(agreement: Agreement):
    vehicle = agreement.vehicle
    if agreement.status == LeaseStatus.ACTIVE:
        _release_vehicle(vehicle, agreement.id)
    db.session.delete(agreement)
    db.session.commit()
    logger.info("Deleted agreement %s", agreement.agreement_number)


def check_expired_agreements(today: date = None) -> list:
    """Expire active agreements whose end date has passed."""
    today = today or date.today()
    expired = (Agreement.query
               .filter(Agreement.status == LeaseStatus.ACTIVE, Agreement.end_date < today)
               .all())
    for agreement in expired:
        agreement.status = LeaseStatus.EXPIRED
    # flush first so the vehicle check sees the new statuses
    db.session.flush()
    for agreement in expired:
        _release_vehicle(agreement.vehicle, agreement.id)
        logger.info("Agreement %s expired on %s", agreement.agreement_number,
                    format_date(agreement.end_date))
    db.session.commit()
    return expired


def reassign_vehicle(agreement: Agreement, new_vehicle_id: int) -> Agreement:
    if new_vehicle_id == agreement.vehicle_id:
        return agreement
    new_vehicle = _get_vehicle(new_vehicle_id)
    if agreement.status == LeaseStatus.ACTIVE:
        _check_rentable(new_vehicle)
    busy = other_active_agreements(new_vehicle.id, exclude_id=agreement.id)
    if busy:
        raise Conflict(f"Vehicle {new_vehicle.license_plate} is already assigned to agreement "
                       f"{busy[0].agreement_number}",
                       payload={'conflicting_agreement_id': busy[0].id})

    old_vehicle = agreement.vehicle
    agreement.vehicle_id = new_vehicle.id
    if agreement.status == LeaseStatus.ACTIVE:
        db.session.flush()
        _release_vehicle(old_vehicle, agreement.id)
        new_vehicle.status = VehicleStatus.RENTED
    db.session.commit()
    logger.info("Agreement %s moved from vehicle %s to %s", agreement.agreement_number,
                old_vehicle.license_plate if old_vehicle else None, new_vehicle.license_plate)
    return agreement


# ---------------------------------------------------------------------------
# Templates

def template_context(agreement: Agreement, currency: str = 'QAR') -> dict:
    customer = agreement.customer
    vehicle = agreement.vehicle
    return {
        'agreement_number': agreement.agreement_number,
        'agreement_type': agreement.agreement_type or '',
        'start_date': format_date(agreement.start_date),
        'end_date': format_date(agreement.end_date),
        'rent_amount': format_currency(agreement.rent_amount, currency),
        'deposit_amount': format_currency(agreement.deposit_amount, currency),
        'total_amount': format_currency(agreement.total_amount, currency),
        'daily_late_fee': format_currency(agreement.daily_late_fee, currency),
        'rent_due_day': str(agreement.rent_due_day or 1),
        'customer_name': customer.full_name if customer else '',
        'customer_email': (customer.email or '') if customer else '',
        'customer_phone': (customer.phone_number or '') if customer else '',
        'driver_license': (customer.driver_license or '') if customer else '',
        'nationality': (customer.nationality or '') if customer else '',
        'vehicle_make': vehicle.make if vehicle else '',
        'vehicle_model': vehicle.model if vehicle else '',
        'vehicle_year': str(vehicle.year or '') if vehicle else '',
        'license_plate': vehicle.license_plate if vehicle else '',
        'vin': (vehicle.vin or '') if vehicle else '',
        'today': format_date(date.today()),
    }


def render_agreement_template(template: AgreementTemplate, agreement: Agreement,
                              currency: str = 'QAR') -> str:
    """Fill ``{{placeholder}}`` fields; unknown placeholders are left as written."""
    context = template_context(agreement, currency)

    def substitute(match):
        return context.get(match.group(1), match.group(0))

    return PLACEHOLDER.sub(substitute, template.content)
