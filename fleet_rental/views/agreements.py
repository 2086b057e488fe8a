"""Rental agreements and everything hanging off one."""

from datetime import date

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import or_

from .. import agreements as service
from ..errors import ValidationFailed
from ..legal import create_case_for_overdue
from ..models import (AIAnalysis, Agreement, AgreementTemplate, Customer, LeaseStatus,
                      PaymentType, UnifiedPayment, Vehicle, db)
from ..payments import calculate_missing_payments, generate_monthly_payment, payment_stats
from ..schemas import PaymentCreate, validate
from .common import date_arg, json_body, paginated

bp = Blueprint('agreements', __name__, url_prefix='/api/agreements')


def _agreement(agreement_id: int) -> Agreement:
    return db.get_or_404(Agreement, agreement_id, description=f"Agreement {agreement_id} not found")


@bp.route('', methods=['GET'])
def list_agreements():
    query = Agreement.query
    status = request.args.get('status')
    if status:
        query = query.filter(Agreement.status.in_(status.split(',')))
    for arg in ('customer_id', 'vehicle_id'):
        value = request.args.get(arg, type=int)
        if value:
            query = query.filter(getattr(Agreement, arg) == value)
    search = request.args.get('search')
    if search:
        pattern = f"%{search}%"
        query = (query.outerjoin(Customer, Agreement.customer_id == Customer.id)
                 .outerjoin(Vehicle, Agreement.vehicle_id == Vehicle.id)
                 .filter(or_(Agreement.agreement_number.ilike(pattern),
                             Customer.full_name.ilike(pattern),
                             Vehicle.license_plate.ilike(pattern))))
    start_from = date_arg('start_from')
    if start_from:
        query = query.filter(Agreement.start_date >= start_from)
    start_to = date_arg('start_to')
    if start_to:
        query = query.filter(Agreement.start_date <= start_to)
    return paginated(query.order_by(Agreement.created_at.desc(), Agreement.id.desc()))


@bp.route('', methods=['POST'])
def create_agreement():
    agreement = service.create_agreement(json_body())
    return jsonify(agreement.to_dict()), 201


@bp.route('/<int:agreement_id>', methods=['GET'])
def get_agreement(agreement_id: int):
    agreement = _agreement(agreement_id)
    data = agreement.to_dict()
    data['customer'] = agreement.customer.to_dict() if agreement.customer else None
    data['vehicle'] = agreement.vehicle.to_dict() if agreement.vehicle else None
    return jsonify(data)


@bp.route('/<int:agreement_id>', methods=['PATCH', 'PUT'])
def update_agreement(agreement_id: int):
    agreement = service.update_agreement(_agreement(agreement_id), json_body())
    return jsonify(agreement.to_dict())


@bp.route('/<int:agreement_id>', methods=['DELETE'])
def delete_agreement(agreement_id: int):
    service.delete_agreement(_agreement(agreement_id))
    return '', 204


# ---------------------------------------------------------------------------
# Lifecycle

@bp.route('/<int:agreement_id>/activate', methods=['POST'])
def activate(agreement_id: int):
    vehicle_id = json_body().get('vehicle_id')
    agreement = service.activate_agreement(_agreement(agreement_id), vehicle_id)
    return jsonify(agreement.to_dict())


@bp.route('/<int:agreement_id>/close', methods=['POST'])
def close(agreement_id: int):
    status = json_body().get('status', LeaseStatus.CLOSED)
    agreement = service.close_agreement(_agreement(agreement_id), status)
    return jsonify(agreement.to_dict())


@bp.route('/<int:agreement_id>/reassign', methods=['POST'])
def reassign(agreement_id: int):
    vehicle_id = json_body().get('vehicle_id')
    if not isinstance(vehicle_id, int):
        raise ValidationFailed("vehicle_id is required")
    agreement = service.reassign_vehicle(_agreement(agreement_id), vehicle_id)
    return jsonify(agreement.to_dict())


@bp.route('/<int:agreement_id>/render/<int:template_id>', methods=['GET'])
def render(agreement_id: int, template_id: int):
    agreement = _agreement(agreement_id)
    template = db.get_or_404(AgreementTemplate, template_id,
                             description=f"Template {template_id} not found")
    content = service.render_agreement_template(template, agreement,
                                                current_app.config.get('CURRENCY', 'QAR'))
    return jsonify({'agreement_id': agreement.id, 'template_id': template.id, 'content': content})


# ---------------------------------------------------------------------------
# Payments

@bp.route('/<int:agreement_id>/payments', methods=['GET'])
def list_payments(agreement_id: int):
    _agreement(agreement_id)
    query = UnifiedPayment.query.filter_by(lease_id=agreement_id)
    payment_type = request.args.get('type')
    if payment_type:
        query = query.filter(UnifiedPayment.type == payment_type)
    return paginated(query.order_by(UnifiedPayment.due_date, UnifiedPayment.id))


@bp.route('/<int:agreement_id>/payments', methods=['POST'])
def add_payment(agreement_id: int):
    agreement = _agreement(agreement_id)
    payload = validate(PaymentCreate, json_body())
    payment = UnifiedPayment(
        lease_id=agreement.id,
        type=payload.type,
        status=payload.status,
        description=payload.description or payload.type.replace('_', ' ').title(),
        amount=payload.amount,
        amount_paid=0.0,
        balance=payload.amount,
        due_date=payload.due_date or date.today(),
    )
    db.session.add(payment)
    db.session.commit()
    return jsonify(payment.to_dict()), 201


@bp.route('/<int:agreement_id>/payments/generate', methods=['POST'])
def generate_payment(agreement_id: int):
    agreement = _agreement(agreement_id)
    month = json_body().get('month')
    on_month = None
    if month:
        try:
            year, month_number = (int(part) for part in str(month).split('-')[:2])
            on_month = date(year, month_number, 1)
        except ValueError:
            raise ValidationFailed("month must be YYYY-MM") from None
    payment = generate_monthly_payment(agreement, on_month)
    if payment is None:
        return jsonify({'created': False, 'message': "Payment for this month already exists"})
    return jsonify({'created': True, 'payment': payment.to_dict()}), 201


@bp.route('/<int:agreement_id>/missing-payments', methods=['GET'])
def missing_payments(agreement_id: int):
    agreement = _agreement(agreement_id)
    missing = calculate_missing_payments(agreement, date_arg('today'))
    return jsonify({
        'agreement_id': agreement.id,
        'missing': missing,
        'total_amount': sum(m['amount'] for m in missing),
        'total_late_fees': sum(m['late_fee'] for m in missing),
    })


@bp.route('/<int:agreement_id>/payment-stats', methods=['GET'])
def stats(agreement_id: int):
    return jsonify(payment_stats(_agreement(agreement_id)))


@bp.route('/<int:agreement_id>/deposit', methods=['POST'])
def record_deposit(agreement_id: int):
    agreement = _agreement(agreement_id)
    if not agreement.deposit_amount:
        raise ValidationFailed("Agreement has no deposit amount")
    existing = UnifiedPayment.query.filter_by(lease_id=agreement.id, type=PaymentType.DEPOSIT).first()
    if existing is not None:
        return jsonify(existing.to_dict())
    payment = UnifiedPayment(lease_id=agreement.id, type=PaymentType.DEPOSIT,
                             description="Security deposit", amount=agreement.deposit_amount,
                             amount_paid=0.0, balance=agreement.deposit_amount,
                             due_date=agreement.start_date)
    db.session.add(payment)
    db.session.commit()
    return jsonify(payment.to_dict()), 201


# ---------------------------------------------------------------------------
# Legal and analysis

@bp.route('/<int:agreement_id>/legal-case', methods=['POST'])
def open_legal_case(agreement_id: int):
    case = create_case_for_overdue(_agreement(agreement_id),
                                   current_app.config.get('CURRENCY', 'QAR'))
    return jsonify(case.to_dict()), 201


@bp.route('/<int:agreement_id>/analyses', methods=['GET'])
def analyses(agreement_id: int):
    _agreement(agreement_id)
    query = AIAnalysis.query.filter_by(agreement_id=agreement_id)
    analysis_type = request.args.get('type')
    if analysis_type:
        query = query.filter(AIAnalysis.analysis_type == analysis_type)
    return paginated(query.order_by(AIAnalysis.created_at.desc(), AIAnalysis.id.desc()))
