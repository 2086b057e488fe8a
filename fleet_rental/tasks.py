"""Periodic jobs run from the CLI or the admin endpoints."""

import logging
from datetime import date

from .agreements import check_expired_agreements
from .errors import ValidationFailed
from .maintenance import mark_overdue_maintenance
from .models import Agreement, LeaseStatus
from .payments import generate_missing_payments, generate_monthly_payment, refresh_overdue_payments

logger = logging.getLogger(__name__)


def check_agreements(today: date = None) -> dict:
    """Expire finished agreements and bring overdue payments and maintenance up to date."""
    today = today or date.today()
    expired = check_expired_agreements(today)
    overdue = refresh_overdue_payments(today)
    maintenance = mark_overdue_maintenance(today)
    logger.info("Agreement check: %d expired, %d payments overdue, %d maintenance overdue",
                len(expired), overdue, maintenance)
    return {
        'expired_agreements': [a.agreement_number for a in expired],
        'overdue_payments': overdue,
        'overdue_maintenance': maintenance,
    }


def generate_payments(month: date = None, today: date = None) -> dict:
    """Rent for ``month`` on every active agreement, or back-fill every gap when no month is given."""
    today = today or date.today()
    if month is None:
        created = generate_missing_payments(today)
        return {'created': len(created), 'skipped': 0}

    created = skipped = 0
    for agreement in Agreement.query.filter_by(status=LeaseStatus.ACTIVE).all():
        if not agreement.rent_amount:
            skipped += 1
            continue
        try:
            payment = generate_monthly_payment(agreement, month, today)
        except ValidationFailed as exc:
            logger.warning("Skipped agreement %s: %s", agreement.agreement_number, exc.message)
            skipped += 1
            continue
        if payment is None:
            skipped += 1
        else:
            created += 1
    return {'created': created, 'skipped': skipped}
