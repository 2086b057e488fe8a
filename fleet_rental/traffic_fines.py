"""
Traffic fines.

Fines arrive with a license plate and a violation date only. A fine is
assigned to whoever was renting the vehicle on that day: the agreement on
the vehicle carrying the plate whose start and end dates cover the
violation date.
"""

import logging
from datetime import date

from sqlalchemy import func, or_

from .errors import ValidationFailed
from .formatting import format_date
from .models import Agreement, FinePaymentStatus, LeaseStatus, TrafficFine, Vehicle, db
from .schemas import TrafficFineCreate, TrafficFineUpdate, validate

logger = logging.getLogger(__name__)

ASSIGNED = 'assigned'
UNASSIGNED = 'pending'


def find_agreement_for_violation(license_plate: str, violation_date: date):
    """Agreement renting the plate's vehicle on ``violation_date``, or ``None``.

    When several match (a double booking) the newest wins.
    """
    vehicle = Vehicle.query.filter(func.upper(Vehicle.license_plate) == license_plate.upper()).first()
    if vehicle is None:
        return None
    return (Agreement.query
            .filter(Agreement.vehicle_id == vehicle.id,
                    Agreement.status != LeaseStatus.DRAFT,
                    Agreement.status != LeaseStatus.CANCELLED,
                    Agreement.start_date <= violation_date,
                    Agreement.end_date >= violation_date)
            .order_by(Agreement.created_at.desc(), Agreement.id.desc())
            .first())


def assign_fine(fine: TrafficFine):
    """Link the fine to the matching agreement and its customer.

    Returns ``(assigned, message)``.
    """
    if not fine.license_plate:
        return False, "Fine has no license plate"
    agreement = find_agreement_for_violation(fine.license_plate, fine.violation_date)
    if agreement is None:
        reason = (f"No agreement covers {fine.license_plate} on "
                  f"{format_date(fine.violation_date)}")
        logger.info("Fine %s not assigned: %s", fine.id, reason)
        return False, reason
    fine.lease_id = agreement.id
    fine.customer_id = agreement.customer_id
    fine.vehicle_id = agreement.vehicle_id
    fine.assignment_status = ASSIGNED
    db.session.commit()
    logger.info("Fine %s assigned to agreement %s", fine.id, agreement.agreement_number)
    return True, f"Fine assigned to agreement {agreement.agreement_number}"


def create_fine(data: dict, auto_assign: bool = True):
    payload = validate(TrafficFineCreate, data)
    fine = TrafficFine(**payload.model_dump())
    vehicle = Vehicle.query.filter(func.upper(Vehicle.license_plate) == fine.license_plate).first()
    if vehicle is not None:
        fine.vehicle_id = vehicle.id
    if fine.payment_status == FinePaymentStatus.PAID:
        fine.payment_date = date.today()
    db.session.add(fine)
    db.session.commit()
    logger.info("Recorded fine %s for %s", fine.id, fine.license_plate)
    if not auto_assign:
        return fine, False, "Not assigned"
    assigned, message = assign_fine(fine)
    return fine, assigned, message


def update_fine(fine: TrafficFine, data: dict) -> TrafficFine:
    changes = validate(TrafficFineUpdate, data).model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(fine, key, value)
    db.session.commit()
    return fine


def update_payment_status(fine: TrafficFine, status: str, paid_on: date = None) -> TrafficFine:
    if status not in FinePaymentStatus.ALL:
        raise ValidationFailed(f"Invalid payment status: {status}")
    fine.payment_status = status
    if status == FinePaymentStatus.PAID:
        fine.payment_date = paid_on or date.today()
    elif status == FinePaymentStatus.PENDING:
        fine.payment_date = None
    db.session.commit()
    logger.info("Fine %s payment status set to %s", fine.id, status)
    return fine


def cleanup_invalid_assignments() -> dict:
    """Unassign fines whose violation date lies outside their agreement's dates."""
    fixed = 0
    fines = TrafficFine.query.filter(TrafficFine.lease_id.isnot(None)).all()
    for fine in fines:
        agreement = fine.agreement
        if agreement is not None and agreement.start_date <= fine.violation_date <= agreement.end_date:
            continue
        fine.lease_id = None
        fine.customer_id = None
        fine.assignment_status = UNASSIGNED
        fixed += 1
        logger.warning("Unassigned fine %s: violation date outside agreement", fine.id)
    db.session.commit()
    return {'processed': len(fines), 'fixed': fixed}


def filter_fines(license_plate=None, lease_id=None, customer_id=None, vehicle_id=None,
                 payment_status=None, assignment_status=None, date_from=None, date_to=None,
                 search=None):
    query = TrafficFine.query
    if license_plate:
        query = query.filter(func.upper(TrafficFine.license_plate) == license_plate.upper())
    if lease_id:
        query = query.filter(TrafficFine.lease_id == lease_id)
    if customer_id:
        query = query.filter(TrafficFine.customer_id == customer_id)
    if vehicle_id:
        query = query.filter(TrafficFine.vehicle_id == vehicle_id)
    if payment_status:
        query = query.filter(TrafficFine.payment_status == payment_status)
    if assignment_status:
        query = query.filter(TrafficFine.assignment_status == assignment_status)
    if date_from:
        query = query.filter(TrafficFine.violation_date >= date_from)
    if date_to:
        query = query.filter(TrafficFine.violation_date <= date_to)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(TrafficFine.license_plate.ilike(pattern),
                                 TrafficFine.violation_number.ilike(pattern),
                                 TrafficFine.violation_charge.ilike(pattern),
                                 TrafficFine.fine_location.ilike(pattern)))
    return query.order_by(TrafficFine.violation_date.desc(), TrafficFine.id.desc())


def fine_statistics(fines=None) -> dict:
    if fines is None:
        fines = TrafficFine.query.all()
    stats = {
        'total_fines': len(fines),
        'total_amount': 0.0,
        'paid_amount': 0.0,
        'pending_amount': 0.0,
        'disputed_amount': 0.0,
        'assigned_count': 0,
        'unassigned_count': 0,
    }
    for fine in fines:
        amount = fine.fine_amount or 0.0
        stats['total_amount'] += amount
        if fine.payment_status == FinePaymentStatus.PAID:
            stats['paid_amount'] += amount
        elif fine.payment_status == FinePaymentStatus.DISPUTED:
            stats['disputed_amount'] += amount
        elif fine.payment_status == FinePaymentStatus.PENDING:
            stats['pending_amount'] += amount
        if fine.assignment_status == ASSIGNED:
            stats['assigned_count'] += 1
        else:
            stats['unassigned_count'] += 1
    return stats
