"""
Rent schedule and payment ledger services.

Rent is due once a month on the agreement's ``rent_due_day``. A rent row is
generated per month; when it is generated or refreshed after its due date
it carries ``days_overdue`` and a ``late_fine_amount`` computed with the
capped daily late fee. Paying late books the fee as a separate ``late_fee``
row linked to the rent row.
"""

import logging
from datetime import date

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from .errors import ValidationFailed
from .formatting import format_month
from .models import Agreement, LeaseStatus, PaymentStatus, PaymentType, UnifiedPayment, db
from .pricing import (DEFAULT_DAILY_LATE_FEE, DEFAULT_LATE_FEE_CAP, add_months, calculate_late_fee,
                      days_overdue, first_due_date, month_end, month_start, rent_due_date)

logger = logging.getLogger(__name__)


def late_fee_terms(agreement: Agreement):
    """Daily rate and cap that apply to ``agreement``."""
    daily_rate = agreement.daily_late_fee
    if daily_rate is None:
        daily_rate = current_app.config.get('DAILY_LATE_FEE', DEFAULT_DAILY_LATE_FEE)
    cap = current_app.config.get('LATE_FEE_CAP', DEFAULT_LATE_FEE_CAP)
    return daily_rate, cap


def rent_payment_for_month(agreement: Agreement, month: date):
    start, end = month_start(month), month_end(month)
    return (UnifiedPayment.query
            .filter(UnifiedPayment.lease_id == agreement.id,
                    UnifiedPayment.type == PaymentType.RENT,
                    UnifiedPayment.due_date >= start,
                    UnifiedPayment.due_date <= end)
            .first())


def _check_billable(agreement: Agreement):
    if agreement.status != LeaseStatus.ACTIVE:
        raise ValidationFailed(f"Agreement is not active (status: {agreement.status})")
    if not agreement.rent_amount or agreement.rent_amount <= 0:
        raise ValidationFailed("Agreement has no rent amount")


def _build_rent_payment(agreement: Agreement, due: date, today: date) -> UnifiedPayment:
    late_days = days_overdue(due, today)
    daily_rate, cap = late_fee_terms(agreement)
    return UnifiedPayment(
        lease_id=agreement.id,
        type=PaymentType.RENT,
        status=PaymentStatus.OVERDUE if late_days else PaymentStatus.PENDING,
        description=f"Monthly Rent - {format_month(due)}",
        amount=agreement.rent_amount,
        amount_paid=0.0,
        balance=agreement.rent_amount,
        due_date=due,
        days_overdue=late_days,
        late_fine_amount=calculate_late_fee(late_days, daily_rate, cap),
    )


def generate_monthly_payment(agreement: Agreement, month: date = None, today: date = None):
    """Create the rent row for ``month``.

    Returns the new payment, or ``None`` when that month already has one.
    """
    today = today or date.today()
    month = month or today
    _check_billable(agreement)
    if rent_payment_for_month(agreement, month) is not None:
        logger.info("Rent for %s already exists on agreement %s",
                    format_month(month), agreement.agreement_number)
        return None
    due = rent_due_date(month.year, month.month, agreement.rent_due_day)
    payment = _build_rent_payment(agreement, due, today)
    db.session.add(payment)
    db.session.commit()
    logger.info("Generated rent for %s on agreement %s (late fee %.2f)",
                format_month(due), agreement.agreement_number, payment.late_fine_amount)
    return payment


def generate_payment_schedule(agreement: Agreement, today: date = None):
    """Create the first rent row of a freshly activated agreement."""
    _check_billable(agreement)
    due = first_due_date(agreement.start_date, agreement.rent_due_day)
    return generate_monthly_payment(agreement, due, today)


def calculate_missing_payments(agreement: Agreement, today: date = None) -> list:
    """Months from the first due date up to ``today`` without a rent row.

    Each entry carries the amount, due date and the late fee the month
    would attract if it were generated now.
    """
    today = today or date.today()
    if not agreement.rent_amount or agreement.start_date is None:
        return []
    daily_rate, cap = late_fee_terms(agreement)
    last_day = min(today, agreement.end_date) if agreement.end_date else today
    missing = []
    due = first_due_date(agreement.start_date, agreement.rent_due_day)
    while due <= last_day:
        if rent_payment_for_month(agreement, due) is None:
            late_days = days_overdue(due, today)
            missing.append({
                'month': format_month(due),
                'due_date': due.isoformat(),
                'amount': agreement.rent_amount,
                'days_overdue': late_days,
                'late_fee': calculate_late_fee(late_days, daily_rate, cap),
            })
        nxt = add_months(month_start(due), 1)
        due = rent_due_date(nxt.year, nxt.month, agreement.rent_due_day)
    return missing


def generate_missing_payments(today: date = None) -> list:
    """Back-fill rent rows for every active agreement."""
    today = today or date.today()
    created = []
    agreements = Agreement.query.filter_by(status=LeaseStatus.ACTIVE).all()
    for agreement in agreements:
        if not agreement.rent_amount:
            continue
        try:
            for entry in calculate_missing_payments(agreement, today):
                due = date.fromisoformat(entry['due_date'])
                payment = _build_rent_payment(agreement, due, today)
                db.session.add(payment)
                created.append(payment)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to generate missing payments for agreement %s",
                             agreement.agreement_number)
    logger.info("Generated %d missing rent payments", len(created))
    return created


def record_payment(payment: UnifiedPayment, amount: float, paid_on: date = None,
                   method: str = 'cash'):
    """Apply ``amount`` to ``payment``.

    Returns ``(payment, late_fee_payment)``; the second item is ``None``
    unless this is the first late settlement of a rent row.
    """
    if amount is None or amount <= 0:
        raise ValidationFailed("Payment amount must be positive")
    if payment.status in (PaymentStatus.CANCELLED, PaymentStatus.REFUNDED):
        raise ValidationFailed(f"Cannot record against a {payment.status} payment")
    paid_on = paid_on or date.today()

    payment.amount_paid = (payment.amount_paid or 0.0) + amount
    payment.balance = payment.amount - payment.amount_paid
    payment.status = PaymentStatus.PAID if payment.balance <= 0 else PaymentStatus.PARTIALLY_PAID
    payment.payment_date = paid_on
    payment.payment_method = method

    late_fee = None
    late_days = days_overdue(payment.due_date, paid_on)
    if late_days and payment.type != PaymentType.LATE_FEE and not payment.late_fees:
        daily_rate, cap = late_fee_terms(payment.agreement)
        fee = calculate_late_fee(late_days, daily_rate, cap)
        payment.days_overdue = late_days
        payment.late_fine_amount = fee
        if fee > 0:
            late_fee = UnifiedPayment(
                lease_id=payment.lease_id,
                related_payment=payment,
                type=PaymentType.LATE_FEE,
                status=PaymentStatus.PENDING,
                description=f"Late fee for payment {payment.id}",
                amount=fee,
                amount_paid=0.0,
                balance=fee,
                due_date=paid_on,
                days_overdue=0,
                late_fine_amount=0.0,
            )
            db.session.add(late_fee)
    db.session.commit()
    logger.info("Recorded %.2f against payment %s (status %s)", amount, payment.id, payment.status)
    return payment, late_fee


def refresh_overdue_payments(today: date = None) -> int:
    """Mark open rows past their due date overdue and recompute their late fee."""
    today = today or date.today()
    open_rows = (UnifiedPayment.query
                 .filter(UnifiedPayment.status.in_(PaymentStatus.OPEN),
                         UnifiedPayment.type != PaymentType.LATE_FEE,
                         UnifiedPayment.due_date < today)
                 .all())
    updated = 0
    for payment in open_rows:
        if payment.balance is not None and payment.balance <= 0:
            continue
        late_days = days_overdue(payment.due_date, today)
        daily_rate, cap = late_fee_terms(payment.agreement)
        payment.days_overdue = late_days
        payment.late_fine_amount = calculate_late_fee(late_days, daily_rate, cap)
        payment.status = PaymentStatus.OVERDUE
        updated += 1
    db.session.commit()
    logger.info("Refreshed %d overdue payments", updated)
    return updated


def payment_stats(agreement: Agreement) -> dict:
    total_paid = total_due = total_late = outstanding = 0.0
    for payment in agreement.payments:
        if payment.status == PaymentStatus.CANCELLED:
            continue
        if payment.type == PaymentType.LATE_FEE:
            total_late += payment.amount or 0.0
        else:
            total_paid += payment.amount_paid or 0.0
            total_due += payment.amount or 0.0
        outstanding += max(payment.balance or 0.0, 0.0)
    return {
        'total_paid': total_paid,
        'total_due': total_due,
        'total_late_fees': total_late,
        'outstanding_balance': outstanding,
        'payment_count': len(agreement.payments),
    }
