"""
Dashboard figures and the per-vehicle fleet report.

Utilisation is the number of days a vehicle has been rented compared with
the period from its earliest agreement start to today. Financials include
revenue collected on its agreements, expenses (vehicle expenses, fines and
maintenance cost), profit/loss after purchase and initial investment, and
investment recovery progress.
"""

from datetime import date

from sqlalchemy import func

from .formatting import format_currency, format_month, format_percentage
from .models import (Agreement, Customer, FinePaymentStatus, LeaseStatus, Maintenance,
                     PaymentStatus, PaymentType, TrafficFine, UnifiedPayment, Vehicle,
                     VehicleStatus, db)
from .pricing import add_months, month_end, month_start

# agreements in these states never put a vehicle on the road
NEVER_RENTED = (LeaseStatus.DRAFT, LeaseStatus.PENDING, LeaseStatus.CANCELLED)


def collected_between(start: date, end: date) -> float:
    """Money received (``amount_paid``) on payments dated inside the range."""
    total = (db.session.query(func.coalesce(func.sum(UnifiedPayment.amount_paid), 0.0))
             .filter(UnifiedPayment.payment_date >= start,
                     UnifiedPayment.payment_date <= end,
                     UnifiedPayment.status != PaymentStatus.CANCELLED)
             .scalar())
    return float(total or 0.0)


def revenue_by_month(months: int = 6, today: date = None) -> list:
    today = today or date.today()
    first = add_months(month_start(today), -(months - 1))
    rows = []
    for offset in range(months):
        start = add_months(first, offset)
        rows.append({
            'month': format_month(start),
            'revenue': collected_between(start, month_end(start)),
        })
    return rows


def dashboard_stats(today: date = None, currency: str = 'QAR') -> dict:
    today = today or date.today()
    counts = dict(db.session.query(Vehicle.status, func.count(Vehicle.id))
                  .group_by(Vehicle.status).all())
    vehicle_counts = {status: counts.get(status, 0) for status in VehicleStatus.ALL}
    total_vehicles = sum(counts.values())

    this_month = month_start(today)
    last_month = add_months(this_month, -1)
    current_revenue = collected_between(this_month, month_end(this_month))
    previous_revenue = collected_between(last_month, month_end(last_month))
    if previous_revenue > 0:
        growth = round((current_revenue - previous_revenue) / previous_revenue * 100, 2)
    else:
        growth = None

    outstanding = (db.session.query(func.coalesce(func.sum(UnifiedPayment.balance), 0.0))
                   .filter(UnifiedPayment.status.in_(PaymentStatus.OPEN))
                   .scalar())
    overdue_count = UnifiedPayment.query.filter_by(status=PaymentStatus.OVERDUE).count()

    return {
        'vehicles': {'total': total_vehicles, **vehicle_counts},
        'customers': {
            'total': Customer.query.count(),
            'active': Customer.query.filter_by(status='active').count(),
        },
        'agreements': {
            'active': Agreement.query.filter_by(status=LeaseStatus.ACTIVE).count(),
            'total': Agreement.query.count(),
        },
        'revenue': {
            'current_month': current_revenue,
            'last_month': previous_revenue,
            'growth_pct': growth,
            'current_month_display': format_currency(current_revenue, currency),
            'growth_display': format_percentage(growth),
        },
        'payments': {
            'outstanding_balance': float(outstanding or 0.0),
            'overdue_count': overdue_count,
        },
        'fines': {
            'pending_amount': float(db.session.query(
                func.coalesce(func.sum(TrafficFine.fine_amount), 0.0))
                .filter(TrafficFine.payment_status == FinePaymentStatus.PENDING).scalar() or 0.0),
        },
    }


def recent_activity(limit: int = 10) -> list:
    """Newest agreements, payments and maintenance jobs merged by creation time."""
    items = []
    for agreement in Agreement.query.order_by(Agreement.created_at.desc()).limit(limit):
        items.append({'type': 'agreement', 'id': agreement.id, 'created_at': agreement.created_at,
                      'description': f"Agreement {agreement.agreement_number} ({agreement.status})"})
    for payment in (UnifiedPayment.query.filter(UnifiedPayment.payment_date.isnot(None))
                    .order_by(UnifiedPayment.created_at.desc()).limit(limit)):
        items.append({'type': 'payment', 'id': payment.id, 'created_at': payment.created_at,
                      'description': f"Payment of {payment.amount_paid:.2f} ({payment.status})"})
    for job in Maintenance.query.order_by(Maintenance.created_at.desc()).limit(limit):
        items.append({'type': 'maintenance', 'id': job.id, 'created_at': job.created_at,
                      'description': f"Maintenance: {job.title} ({job.status})"})
    items.sort(key=lambda item: (item['created_at'] is not None, item['created_at']), reverse=True)
    for item in items:
        if item['created_at'] is not None:
            item['created_at'] = item['created_at'].isoformat()
    return items[:limit]


def vehicle_report(vehicle: Vehicle, today: date = None) -> dict:
    today = today or date.today()
    rentals = [a for a in vehicle.agreements if a.status not in NEVER_RENTED and a.start_date]

    earliest = min((a.start_date for a in rentals), default=today)
    days_rented = 0
    for agreement in rentals:
        if agreement.start_date > today:
            continue
        end = min(agreement.end_date or today, today)
        days_rented += (end - agreement.start_date).days + 1
    total_period = max((today - earliest).days + 1, 1)
    utilisation_pct = round(days_rented / total_period * 100, 2)

    total_revenue = float(
        db.session.query(func.coalesce(func.sum(UnifiedPayment.amount_paid), 0.0))
        .join(Agreement, UnifiedPayment.lease_id == Agreement.id)
        .filter(Agreement.vehicle_id == vehicle.id,
                UnifiedPayment.type != PaymentType.DEPOSIT)
        .scalar() or 0.0)

    expenses = sum(e.cost or 0 for e in vehicle.expenses)
    # fines charged to a customer are not the company's cost
    fines = sum(f.fine_amount or 0 for f in vehicle.traffic_fines if f.customer_id is None)
    maintenance = sum(m.cost or 0 for m in vehicle.maintenance_records)
    total_expenses = expenses + fines + maintenance

    purchase = vehicle.purchase_price or 0
    investment = vehicle.initial_investment or 0
    invested_total = purchase + investment
    profit_loss = total_revenue - total_expenses - invested_total
    recovery_pct = round(total_revenue / invested_total * 100, 2) if invested_total > 0 else None

    return {
        'vehicle_id': vehicle.id,
        'license_plate': vehicle.license_plate,
        'make': vehicle.make,
        'model': vehicle.model,
        'status': vehicle.status,
        'days_rented': days_rented,
        'utilisation_pct': utilisation_pct,
        'total_revenue': total_revenue,
        'total_expenses': total_expenses,
        'profit_loss': profit_loss,
        'recovery_pct': recovery_pct,
    }


def fleet_report(today: date = None) -> list:
    return [vehicle_report(v, today) for v in Vehicle.query.order_by(Vehicle.id).all()]
