"""Payment ledger rows and payment-plan calculators."""

from datetime import date

from flask import Blueprint, jsonify, request

from ..errors import ValidationFailed
from ..formatting import parse_date
from ..models import PaymentType, UnifiedPayment, db
from ..payments import record_payment
from ..pricing import days_overdue, dynamic_deposit, installment_schedule, percentage_late_fee
from ..schemas import InstallmentRequest, PaymentRecord, PaymentUpdate, validate
from .common import date_arg, delete_row, json_body, paginated

bp = Blueprint('payments', __name__, url_prefix='/api/payments')
plans_bp = Blueprint('payment_plans', __name__, url_prefix='/api/payment-plans')


def _payment(payment_id: int) -> UnifiedPayment:
    return db.get_or_404(UnifiedPayment, payment_id, description=f"Payment {payment_id} not found")


@bp.route('', methods=['GET'])
def list_payments():
    query = UnifiedPayment.query
    for arg in ('status', 'type'):
        value = request.args.get(arg)
        if value:
            query = query.filter(getattr(UnifiedPayment, arg) == value)
    lease_id = request.args.get('lease_id', type=int)
    if lease_id:
        query = query.filter(UnifiedPayment.lease_id == lease_id)
    due_from = date_arg('due_from')
    if due_from:
        query = query.filter(UnifiedPayment.due_date >= due_from)
    due_to = date_arg('due_to')
    if due_to:
        query = query.filter(UnifiedPayment.due_date <= due_to)
    return paginated(query.order_by(UnifiedPayment.due_date.desc(), UnifiedPayment.id.desc()))


@bp.route('/<int:payment_id>', methods=['GET'])
def get_payment(payment_id: int):
    return jsonify(_payment(payment_id).to_dict())


@bp.route('/<int:payment_id>', methods=['PATCH', 'PUT'])
def update_payment(payment_id: int):
    payment = _payment(payment_id)
    changes = validate(PaymentUpdate, json_body()).model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(payment, key, value)
    if 'amount' in changes or 'amount_paid' in changes:
        payment.balance = payment.amount - (payment.amount_paid or 0.0)
    db.session.commit()
    return jsonify(payment.to_dict())


@bp.route('/<int:payment_id>', methods=['DELETE'])
def delete_payment(payment_id: int):
    payment = _payment(payment_id)
    for fee in payment.late_fees:
        fee.related_payment_id = None
    return delete_row(payment)


@bp.route('/<int:payment_id>/record', methods=['POST'])
def record(payment_id: int):
    payment = _payment(payment_id)
    payload = validate(PaymentRecord, json_body())
    payment, late_fee = record_payment(payment, payload.amount, payload.payment_date,
                                       payload.payment_method)
    return jsonify({
        'payment': payment.to_dict(),
        'late_fee': late_fee.to_dict() if late_fee is not None else None,
    })


@bp.route('/late-fees', methods=['GET'])
def late_fees():
    query = UnifiedPayment.query.filter_by(type=PaymentType.LATE_FEE)
    return paginated(query.order_by(UnifiedPayment.due_date.desc(), UnifiedPayment.id.desc()))


# ---------------------------------------------------------------------------
# Payment plans

@plans_bp.route('/late-fee', methods=['POST'])
def plan_late_fee():
    data = json_body()
    try:
        amount = float(data.get('amount', 0))
    except (TypeError, ValueError):
        raise ValidationFailed("amount must be a number") from None
    if 'days_late' in data:
        try:
            days = int(data['days_late'])
        except (TypeError, ValueError):
            raise ValidationFailed("days_late must be an integer") from None
    else:
        due = _body_date(data, 'due_date')
        if due is None:
            raise ValidationFailed("days_late or due_date is required")
        days = days_overdue(due, date.today())
    return jsonify({'amount': amount, 'days_late': days,
                    'late_fee': percentage_late_fee(days, amount)})


@plans_bp.route('/deposit', methods=['POST'])
def plan_deposit():
    data = json_body()
    try:
        value = float(data['vehicle_value'])
        score = float(data.get('customer_score', 50))
    except (KeyError, TypeError, ValueError):
        raise ValidationFailed("vehicle_value and customer_score must be numbers") from None
    return jsonify({'vehicle_value': value, 'customer_score': score,
                    'deposit': dynamic_deposit(value, score)})


@plans_bp.route('/schedule', methods=['POST'])
def plan_schedule():
    payload = validate(InstallmentRequest, json_body())
    schedule = installment_schedule(payload.total_amount, payload.installments,
                                    payload.interest_rate, payload.start_date)
    return jsonify({'installments': schedule,
                    'total_payable': round(sum(i['amount'] for i in schedule), 2)})


def _body_date(data: dict, key: str):
    try:
        return parse_date(data.get(key))
    except ValueError:
        raise ValidationFailed(f"{key} must be a date") from None
