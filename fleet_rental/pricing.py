"""
Rent pricing, late-fee and payment-plan arithmetic.

These helpers take plain numbers and dates so they can be used from the
payment services, the API and the CLI alike. Nothing here touches the
database except :func:`seed_pricing_models`.
"""

import calendar
import logging
from datetime import date

from .models import PricingModel, db

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LATE_FEE = 120.0
DEFAULT_LATE_FEE_CAP = 3000.0

# June to September
SUMMER_MONTHS = (6, 7, 8, 9)
DEFAULT_SEASONAL_ADJUSTMENT = 0.3
DEFAULT_DEMAND_ADJUSTMENT = 0.5

DEFAULT_PRICING_MODELS = [
    {'slug': 'standard', 'name': 'Standard Pricing', 'base_multiplier': 1.0,
     'seasonal_adjustment': 0.3, 'demand_adjustment': 0.5,
     'description': 'Default pricing model'},
    {'slug': 'premium', 'name': 'Premium Pricing', 'base_multiplier': 1.2,
     'seasonal_adjustment': 0.4, 'demand_adjustment': 0.6,
     'description': 'Premium pricing for high-demand vehicles'},
    {'slug': 'economy', 'name': 'Economy Pricing', 'base_multiplier': 0.8,
     'seasonal_adjustment': 0.2, 'demand_adjustment': 0.3,
     'description': 'Economy pricing for budget-friendly options'},
]


# ---------------------------------------------------------------------------
# Dates

def add_months(d: date, months: int) -> date:
    """Shift ``d`` by whole months, clamping the day to the target month."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def rent_due_date(year: int, month: int, rent_due_day: int = 1) -> date:
    last_day = calendar.monthrange(year, month)[1]
    day = min(max(rent_due_day or 1, 1), last_day)
    return date(year, month, day)


def first_due_date(start: date, rent_due_day: int = 1) -> date:
    """First rent due date on or after the agreement start."""
    due = rent_due_date(start.year, start.month, rent_due_day)
    if start.day > due.day:
        nxt = add_months(month_start(start), 1)
        due = rent_due_date(nxt.year, nxt.month, rent_due_day)
    return due


# ---------------------------------------------------------------------------
# Late fees

def days_overdue(due_date: date, today: date) -> int:
    if due_date is None or today <= due_date:
        return 0
    return (today - due_date).days


def calculate_late_fee(days_late: int, daily_rate: float = DEFAULT_DAILY_LATE_FEE,
                       cap: float = DEFAULT_LATE_FEE_CAP) -> float:
    """``min(days_late * daily_rate, cap)``; zero when not late."""
    if days_late <= 0 or not daily_rate or daily_rate <= 0:
        return 0.0
    fee = days_late * daily_rate
    if cap is not None:
        fee = min(fee, cap)
    return float(fee)


def percentage_late_fee(days_late: int, amount: float) -> float:
    """Payment-plan late fee: 10% of the amount plus 1% per day late."""
    if days_late <= 0 or amount <= 0:
        return 0.0
    return round(amount * (0.10 + days_late * 0.01), 2)


# ---------------------------------------------------------------------------
# Dynamic pricing

def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def demand_multiplier(active_agreements: int, total_vehicles: int,
                      max_premium: float = DEFAULT_DEMAND_ADJUSTMENT) -> float:
    """Fleet utilisation scaled into ``[1, 1 + max_premium]``."""
    if total_vehicles <= 0:
        return 1.0
    utilisation = _clamp(active_agreements / total_vehicles, 0.0, 1.0)
    return 1.0 + max_premium * utilisation


def seasonal_multiplier(on_date: date, adjustment: float = DEFAULT_SEASONAL_ADJUSTMENT) -> float:
    return 1.0 + adjustment if on_date.month in SUMMER_MONTHS else 1.0


def dynamic_price(base: float, active_agreements: int, total_vehicles: int,
                  on_date: date, model=None) -> dict:
    """Price a rent for the given fleet load and date.

    ``model`` is anything with ``base_multiplier``, ``seasonal_adjustment``
    and ``demand_adjustment`` attributes (a :class:`PricingModel` row); the
    standard model is used when it is ``None``.
    """
    base_mult = getattr(model, 'base_multiplier', 1.0)
    seasonal_adj = getattr(model, 'seasonal_adjustment', DEFAULT_SEASONAL_ADJUSTMENT)
    demand_adj = getattr(model, 'demand_adjustment', DEFAULT_DEMAND_ADJUSTMENT)

    demand = demand_multiplier(active_agreements, total_vehicles, demand_adj)
    seasonal = seasonal_multiplier(on_date, seasonal_adj)
    price = round((base or 0.0) * base_mult * demand * seasonal)
    return {
        'base_price': base,
        'base_multiplier': base_mult,
        'demand_multiplier': round(demand, 4),
        'seasonal_multiplier': round(seasonal, 4),
        'price': float(price),
    }


# ---------------------------------------------------------------------------
# Payment plans

def dynamic_deposit(vehicle_value: float, customer_score: float) -> float:
    """20% of the vehicle value plus a risk share that shrinks as the score rises."""
    if vehicle_value <= 0:
        return 0.0
    risk_adjustment = _clamp((100 - customer_score) / 100, 0.0, 1.0)
    return round(vehicle_value * (0.2 + risk_adjustment), 2)


def installment_schedule(total_amount: float, installments: int,
                         annual_interest_rate: float = 0.0, start: date = None) -> list:
    """Monthly installments with interest charged on the remaining principal."""
    if installments <= 0:
        return []
    start = start or date.today()
    base_amount = total_amount / installments
    monthly_rate = annual_interest_rate / 12 / 100
    remaining = total_amount
    schedule = []
    for number in range(1, installments + 1):
        amount = round(base_amount + remaining * monthly_rate, 2)
        schedule.append({
            'number': number,
            'due_date': add_months(start, number - 1).isoformat(),
            'amount': amount,
            'status': 'pending',
        })
        remaining -= base_amount
    return schedule


def seed_pricing_models() -> int:
    """Insert the built-in pricing models that are missing. Returns how many."""
    existing = {m.slug for m in PricingModel.query.all()}
    added = 0
    for spec in DEFAULT_PRICING_MODELS:
        if spec['slug'] in existing:
            continue
        db.session.add(PricingModel(**spec))
        added += 1
    if added:
        db.session.commit()
        logger.info("Seeded %d pricing models", added)
    return added
