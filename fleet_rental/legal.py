"""Legal cases raised against customers."""

import logging

from .errors import NotFound, ValidationFailed
from .formatting import format_currency
from .models import (Agreement, Customer, LegalCase, LegalCaseStatus, PaymentStatus,
                     PaymentType, db, utcnow)
from .schemas import LegalCaseCreate, LegalCaseUpdate, validate

logger = logging.getLogger(__name__)

PAYMENT_DEFAULT = 'payment_default'


def create_case(data: dict) -> LegalCase:
    payload = validate(LegalCaseCreate, data)
    if db.session.get(Customer, payload.customer_id) is None:
        raise NotFound(f"Customer {payload.customer_id} not found")
    case = LegalCase(**payload.model_dump())
    db.session.add(case)
    db.session.commit()
    logger.info("Opened %s case %s for customer %s", case.case_type, case.id, case.customer_id)
    return case


def update_case(case: LegalCase, data: dict) -> LegalCase:
    changes = validate(LegalCaseUpdate, data).model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(case, key, value)
    if case.status in (LegalCaseStatus.RESOLVED, LegalCaseStatus.CLOSED):
        if case.resolved_at is None:
            case.resolved_at = utcnow()
    else:
        case.resolved_at = None
    db.session.commit()
    logger.info("Legal case %s updated (status %s)", case.id, case.status)
    return case


def filter_cases(status=None, case_type=None, priority=None, customer_id=None, lease_id=None):
    query = LegalCase.query
    if status:
        query = query.filter(LegalCase.status == status)
    if case_type:
        query = query.filter(LegalCase.case_type == case_type)
    if priority:
        query = query.filter(LegalCase.priority == priority)
    if customer_id:
        query = query.filter(LegalCase.customer_id == customer_id)
    if lease_id:
        query = query.filter(LegalCase.lease_id == lease_id)
    return query.order_by(LegalCase.created_at.desc(), LegalCase.id.desc())


def overdue_summary(agreement: Agreement) -> dict:
    """Outstanding rent and late fees on overdue payments."""
    overdue = [p for p in agreement.payments
               if p.status == PaymentStatus.OVERDUE
               or (p.type == PaymentType.LATE_FEE and p.status in PaymentStatus.OPEN)]
    rent_owed = sum(p.balance or 0.0 for p in overdue if p.type != PaymentType.LATE_FEE)
    late_fees = sum(p.balance or 0.0 for p in overdue if p.type == PaymentType.LATE_FEE)
    # late fees accrued on rows not settled yet
    late_fees += sum(p.late_fine_amount or 0.0 for p in overdue
                     if p.type != PaymentType.LATE_FEE and not p.late_fees)
    return {
        'overdue_payments': len([p for p in overdue if p.type != PaymentType.LATE_FEE]),
        'rent_owed': rent_owed,
        'late_fees': late_fees,
        'total_owed': rent_owed + late_fees,
    }


def priority_for_amount(amount: float) -> str:
    if amount >= 10000:
        return 'urgent'
    if amount >= 5000:
        return 'high'
    if amount >= 1000:
        return 'medium'
    return 'low'


def create_case_for_overdue(agreement: Agreement, currency: str = 'QAR') -> LegalCase:
    """Open a payment-default case for the agreement's overdue balance.

    An open payment-default case on the same agreement is returned instead of
    opening a second one.
    """
    existing = (LegalCase.query
                .filter(LegalCase.lease_id == agreement.id,
                        LegalCase.case_type == PAYMENT_DEFAULT,
                        LegalCase.status.in_(LegalCaseStatus.OPEN))
                .first())
    if existing is not None:
        return existing

    summary = overdue_summary(agreement)
    if summary['total_owed'] <= 0:
        raise ValidationFailed(f"Agreement {agreement.agreement_number} has no overdue balance")
    case = LegalCase(
        customer_id=agreement.customer_id,
        lease_id=agreement.id,
        vehicle_id=agreement.vehicle_id,
        case_type=PAYMENT_DEFAULT,
        status=LegalCaseStatus.PENDING_REMINDER,
        priority=priority_for_amount(summary['total_owed']),
        amount_owed=summary['total_owed'],
        description=(f"Overdue payments (Agreement #{agreement.agreement_number}): "
                     f"{summary['overdue_payments']} payments, "
                     f"rent {format_currency(summary['rent_owed'], currency)}, "
                     f"late fees {format_currency(summary['late_fees'], currency)}"),
    )
    db.session.add(case)
    db.session.commit()
    logger.warning("Opened payment default case %s for agreement %s (%s owed)",
                   case.id, agreement.agreement_number, summary['total_owed'])
    return case
