"""Vehicles, their expenses, availability, pricing and booking conflicts."""

import logging
from datetime import date

from flask import Blueprint, jsonify, request
from sqlalchemy import or_

from ..agreements import vehicle_availability
from ..conflicts import check_vehicle_booking_conflicts, resolve_vehicle_booking_conflicts
from ..errors import Conflict, ValidationFailed
from ..models import (Agreement, LeaseStatus, Maintenance, PricingModel, Vehicle, VehicleExpense,
                      VehicleStatus, db)
from ..pricing import dynamic_price
from ..reports import vehicle_report
from ..schemas import ExpenseCreate, VehicleCreate, VehicleUpdate, validate
from .common import date_arg, delete_row, int_arg, json_body, paginated

logger = logging.getLogger(__name__)

bp = Blueprint('vehicles', __name__, url_prefix='/api/vehicles')


def _check_plate_free(plate: str, vehicle_id: int = None):
    existing = Vehicle.query.filter_by(license_plate=plate).first()
    if existing is not None and existing.id != vehicle_id:
        raise Conflict(f"A vehicle with plate {plate} already exists")


@bp.route('', methods=['GET'])
def list_vehicles():
    query = Vehicle.query
    status = request.args.get('status')
    if status:
        query = query.filter(Vehicle.status == status)
    search = request.args.get('search')
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Vehicle.make.ilike(pattern), Vehicle.model.ilike(pattern),
                                 Vehicle.license_plate.ilike(pattern)))
    return paginated(query.order_by(Vehicle.id))


@bp.route('', methods=['POST'])
def create_vehicle():
    payload = validate(VehicleCreate, json_body())
    _check_plate_free(payload.license_plate)
    vehicle = Vehicle(**payload.model_dump())
    db.session.add(vehicle)
    db.session.commit()
    logger.info("Added vehicle %s", vehicle.license_plate)
    return jsonify(vehicle.to_dict()), 201


@bp.route('/<int:vehicle_id>', methods=['GET'])
def get_vehicle(vehicle_id: int):
    vehicle = db.get_or_404(Vehicle, vehicle_id, description=f"Vehicle {vehicle_id} not found")
    return jsonify(vehicle.to_dict())


@bp.route('/<int:vehicle_id>', methods=['PATCH', 'PUT'])
def update_vehicle(vehicle_id: int):
    vehicle = db.get_or_404(Vehicle, vehicle_id, description=f"Vehicle {vehicle_id} not found")
    changes = validate(VehicleUpdate, json_body()).model_dump(exclude_unset=True)
    if changes.get('license_plate'):
        _check_plate_free(changes['license_plate'], vehicle.id)
    for key, value in changes.items():
        setattr(vehicle, key, value)
    db.session.commit()
    return jsonify(vehicle.to_dict())


@bp.route('/<int:vehicle_id>', methods=['DELETE'])
def delete_vehicle(vehicle_id: int):
    vehicle = db.get_or_404(Vehicle, vehicle_id, description=f"Vehicle {vehicle_id} not found")
    if Agreement.query.filter_by(vehicle_id=vehicle.id, status=LeaseStatus.ACTIVE).count():
        raise Conflict(f"Vehicle {vehicle.license_plate} has an active agreement")
    # keep agreement history, just drop the link
    for agreement in vehicle.agreements:
        agreement.vehicle_id = None
    for fine in vehicle.traffic_fines:
        fine.vehicle_id = None
    logger.info("Deleting vehicle %s", vehicle.license_plate)
    return delete_row(vehicle)


# ---------------------------------------------------------------------------
# Booking conflicts and availability

@bp.route('/<int:vehicle_id>/conflicts', methods=['GET'])
def vehicle_conflicts(vehicle_id: int):
    db.get_or_404(Vehicle, vehicle_id, description=f"Vehicle {vehicle_id} not found")
    check = check_vehicle_booking_conflicts(vehicle_id, int_arg('exclude'))
    return jsonify(check.to_dict())


@bp.route('/<int:vehicle_id>/conflicts/resolve', methods=['POST'])
def resolve_conflicts(vehicle_id: int):
    db.get_or_404(Vehicle, vehicle_id, description=f"Vehicle {vehicle_id} not found")
    keep_id = json_body().get('keep_agreement_id')
    if not isinstance(keep_id, int):
        raise ValidationFailed("keep_agreement_id is required")
    cancelled = resolve_vehicle_booking_conflicts(vehicle_id, keep_id)
    return jsonify({'success': True, 'cancelled': [a.id for a in cancelled],
                    'message': f"Cancelled {len(cancelled)} conflicting agreement(s)"})


@bp.route('/<int:vehicle_id>/availability', methods=['GET'])
def availability(vehicle_id: int):
    vehicle = db.get_or_404(Vehicle, vehicle_id, description=f"Vehicle {vehicle_id} not found")
    start = date_arg('start') or date.today()
    end = date_arg('end') or start
    if end < start:
        raise ValidationFailed("end must not be before start")
    return jsonify(vehicle_availability(vehicle, start, end))


@bp.route('/<int:vehicle_id>/price', methods=['GET'])
def vehicle_price(vehicle_id: int):
    vehicle = db.get_or_404(Vehicle, vehicle_id, description=f"Vehicle {vehicle_id} not found")
    if not vehicle.rent_amount:
        raise ValidationFailed(f"Vehicle {vehicle.license_plate} has no base rent")
    model = None
    slug = request.args.get('model')
    if slug:
        model = PricingModel.query.filter_by(slug=slug).first()
        if model is None:
            raise ValidationFailed(f"Unknown pricing model: {slug}")
    total = Vehicle.query.filter(Vehicle.status.notin_((VehicleStatus.SOLD,
                                                        VehicleStatus.INACTIVE))).count()
    active = Agreement.query.filter_by(status=LeaseStatus.ACTIVE).count()
    on_date = date_arg('date') or date.today()
    quote = dynamic_price(vehicle.rent_amount, active, total, on_date, model)
    quote.update({'vehicle_id': vehicle.id, 'date': on_date.isoformat(),
                  'model': model.slug if model else 'standard'})
    return jsonify(quote)


@bp.route('/<int:vehicle_id>/report', methods=['GET'])
def report(vehicle_id: int):
    vehicle = db.get_or_404(Vehicle, vehicle_id, description=f"Vehicle {vehicle_id} not found")
    return jsonify(vehicle_report(vehicle))


@bp.route('/<int:vehicle_id>/maintenance', methods=['GET'])
def vehicle_maintenance(vehicle_id: int):
    db.get_or_404(Vehicle, vehicle_id, description=f"Vehicle {vehicle_id} not found")
    query = Maintenance.query.filter_by(vehicle_id=vehicle_id)
    return paginated(query.order_by(Maintenance.scheduled_date.desc(), Maintenance.id.desc()))


# ---------------------------------------------------------------------------
# Expenses

@bp.route('/<int:vehicle_id>/expenses', methods=['GET'])
def list_expenses(vehicle_id: int):
    db.get_or_404(Vehicle, vehicle_id, description=f"Vehicle {vehicle_id} not found")
    query = VehicleExpense.query.filter_by(vehicle_id=vehicle_id)
    return paginated(query.order_by(VehicleExpense.date.desc(), VehicleExpense.id.desc()))


@bp.route('/<int:vehicle_id>/expenses', methods=['POST'])
def add_expense(vehicle_id: int):
    vehicle = db.get_or_404(Vehicle, vehicle_id, description=f"Vehicle {vehicle_id} not found")
    payload = validate(ExpenseCreate, json_body())
    expense = VehicleExpense(
        vehicle_id=vehicle.id,
        date=payload.expense_date or date.today(),
        category=payload.category,
        description=payload.description,
        cost=payload.cost,
        recurring=payload.recurring,
        next_due_date=payload.next_due_date,
    )
    db.session.add(expense)
    db.session.commit()
    return jsonify(expense.to_dict()), 201


@bp.route('/expenses/<int:expense_id>', methods=['DELETE'])
def delete_expense(expense_id: int):
    expense = db.get_or_404(VehicleExpense, expense_id,
                            description=f"Expense {expense_id} not found")
    return delete_row(expense)
