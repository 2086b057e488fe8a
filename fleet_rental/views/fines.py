"""Traffic fines."""

from flask import Blueprint, jsonify, request

from ..errors import ValidationFailed
from ..models import TrafficFine, db
from ..traffic_fines import (assign_fine, cleanup_invalid_assignments, create_fine, filter_fines,
                             fine_statistics, update_fine, update_payment_status)
from .common import date_arg, delete_row, json_body, paginated

bp = Blueprint('traffic_fines', __name__, url_prefix='/api/traffic-fines')


def _fine(fine_id: int) -> TrafficFine:
    return db.get_or_404(TrafficFine, fine_id, description=f"Traffic fine {fine_id} not found")


def _filtered():
    return filter_fines(
        license_plate=request.args.get('license_plate'),
        lease_id=request.args.get('lease_id', type=int),
        customer_id=request.args.get('customer_id', type=int),
        vehicle_id=request.args.get('vehicle_id', type=int),
        payment_status=request.args.get('payment_status'),
        assignment_status=request.args.get('assignment_status'),
        date_from=date_arg('date_from'),
        date_to=date_arg('date_to'),
        search=request.args.get('search'),
    )


@bp.route('', methods=['GET'])
def list_fines():
    return paginated(_filtered())


@bp.route('/stats', methods=['GET'])
def stats():
    return jsonify(fine_statistics(_filtered().all()))


@bp.route('', methods=['POST'])
def create():
    data = json_body()
    fine, assigned, message = create_fine(data, auto_assign=data.get('auto_assign', True))
    return jsonify({'fine': fine.to_dict(), 'assigned': assigned, 'message': message}), 201


@bp.route('/<int:fine_id>', methods=['GET'])
def get_fine(fine_id: int):
    return jsonify(_fine(fine_id).to_dict())


@bp.route('/<int:fine_id>', methods=['PATCH', 'PUT'])
def update(fine_id: int):
    return jsonify(update_fine(_fine(fine_id), json_body()).to_dict())


@bp.route('/<int:fine_id>', methods=['DELETE'])
def delete(fine_id: int):
    return delete_row(_fine(fine_id))


@bp.route('/<int:fine_id>/assign', methods=['POST'])
def assign(fine_id: int):
    fine = _fine(fine_id)
    assigned, message = assign_fine(fine)
    return jsonify({'fine': fine.to_dict(), 'assigned': assigned, 'message': message})


@bp.route('/<int:fine_id>/payment-status', methods=['POST'])
def payment_status(fine_id: int):
    status = json_body().get('status')
    if not status:
        raise ValidationFailed("status is required")
    return jsonify(update_payment_status(_fine(fine_id), status).to_dict())


@bp.route('/cleanup-assignments', methods=['POST'])
def cleanup():
    return jsonify(cleanup_invalid_assignments())
