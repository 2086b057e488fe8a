"""
Vehicle double-booking detection and repair.

A vehicle may be held by at most one active agreement. Nothing in the schema
stops two agreements going active on the same vehicle (imports, manual
edits), so these helpers find such vehicles and cancel every agreement but
the newest one.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from .errors import ValidationFailed
from .models import Agreement, LeaseStatus, db, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ConflictCheck:
    vehicle_id: int
    conflicts: List[Agreement] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def newest(self) -> Optional[Agreement]:
        return self.conflicts[0] if self.conflicts else None

    @property
    def oldest(self) -> Optional[Agreement]:
        return self.conflicts[-1] if self.conflicts else None

    def to_dict(self) -> dict:
        def brief(agreement):
            if agreement is None:
                return None
            customer = agreement.customer
            return {
                'id': agreement.id,
                'agreement_number': agreement.agreement_number,
                'status': agreement.status,
                'start_date': agreement.start_date.isoformat() if agreement.start_date else None,
                'end_date': agreement.end_date.isoformat() if agreement.end_date else None,
                'created_at': agreement.created_at.isoformat() if agreement.created_at else None,
                'customer': {
                    'id': customer.id,
                    'full_name': customer.full_name,
                    'phone_number': customer.phone_number,
                    'email': customer.email,
                } if customer else None,
            }

        return {
            'vehicle_id': self.vehicle_id,
            'has_conflicts': self.has_conflicts,
            'conflicts': [brief(a) for a in self.conflicts],
            'newest_conflict': brief(self.newest),
            'oldest_conflict': brief(self.oldest),
        }


@dataclass
class AuditReport:
    vehicles_fixed: int = 0
    agreements_cancelled: int = 0
    failures: List[int] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.vehicles_fixed and not self.failures:
            return "No double-booked vehicles found"
        return (f"Fixed {self.vehicles_fixed} double-booked vehicles, "
                f"cancelled {self.agreements_cancelled} agreements")

    def to_dict(self) -> dict:
        return {
            'success': not self.failures,
            'message': self.message,
            'vehicles_fixed': self.vehicles_fixed,
            'agreements_cancelled': self.agreements_cancelled,
            'failed_agreement_ids': list(self.failures),
        }


def active_agreements_for_vehicle(vehicle_id: int) -> List[Agreement]:
    """Active agreements on the vehicle, newest first (ties go to the higher id)."""
    return (Agreement.query
            .filter_by(vehicle_id=vehicle_id, status=LeaseStatus.ACTIVE)
            .order_by(Agreement.created_at.desc(), Agreement.id.desc())
            .all())


def check_vehicle_booking_conflicts(vehicle_id: int, current_agreement_id: int = None) -> ConflictCheck:
    agreements = active_agreements_for_vehicle(vehicle_id)
    if current_agreement_id is not None:
        agreements = [a for a in agreements if a.id != current_agreement_id]
    return ConflictCheck(vehicle_id=vehicle_id, conflicts=agreements)


def _cancel(agreement: Agreement):
    agreement.status = LeaseStatus.CANCELLED
    agreement.updated_at = utcnow()


def resolve_vehicle_booking_conflicts(vehicle_id: int, keep_agreement_id: int) -> List[Agreement]:
    """Cancel every active agreement on the vehicle except ``keep_agreement_id``.

    All cancellations are committed together; on a database error nothing is
    cancelled and the error propagates.
    """
    keep = db.session.get(Agreement, keep_agreement_id)
    if keep is None or keep.vehicle_id != vehicle_id:
        raise ValidationFailed(
            f"Agreement {keep_agreement_id} does not belong to vehicle {vehicle_id}")
    check = check_vehicle_booking_conflicts(vehicle_id, keep_agreement_id)
    if not check.has_conflicts:
        logger.info("No conflicts to resolve for vehicle %s", vehicle_id)
        return []

    try:
        for agreement in check.conflicts:
            _cancel(agreement)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to resolve conflicts for vehicle %s", vehicle_id)
        raise
    for agreement in check.conflicts:
        logger.warning("Cancelled agreement %s on vehicle %s in favour of %s",
                       agreement.agreement_number, vehicle_id, keep.agreement_number)
    return check.conflicts


def find_double_booked_vehicle_ids() -> List[int]:
    rows = (db.session.query(Agreement.vehicle_id)
            .filter(Agreement.status == LeaseStatus.ACTIVE,
                    Agreement.vehicle_id.isnot(None))
            .group_by(Agreement.vehicle_id)
            .having(func.count(Agreement.id) > 1)
            .order_by(Agreement.vehicle_id)
            .all())
    return [vehicle_id for (vehicle_id,) in rows]


def audit_and_fix_double_booked_vehicles() -> AuditReport:
    """Keep the newest active agreement per vehicle and cancel the rest.

    Each cancellation is committed on its own so one failing row does not
    undo the others. Running the audit again finds nothing to do.
    """
    logger.info("Starting double-booking audit")
    report = AuditReport()
    vehicle_ids = find_double_booked_vehicle_ids()
    logger.info("Found %d vehicles with multiple active agreements", len(vehicle_ids))

    for vehicle_id in vehicle_ids:
        agreements = active_agreements_for_vehicle(vehicle_id)
        if len(agreements) <= 1:
            continue
        newest = agreements[0]
        logger.info("Keeping agreement %s for vehicle %s", newest.agreement_number, vehicle_id)
        cancelled = 0
        for agreement in agreements[1:]:
            try:
                _cancel(agreement)
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception("Failed to cancel agreement %s", agreement.id)
                report.failures.append(agreement.id)
                continue
            logger.warning("Cancelled agreement %s on vehicle %s",
                           agreement.agreement_number, vehicle_id)
            cancelled += 1
        report.agreements_cancelled += cancelled
        if cancelled:
            report.vehicles_fixed += 1

    logger.info(report.message)
    return report
