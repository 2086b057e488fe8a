"""Maintenance jobs."""

from flask import Blueprint, jsonify, request

from .. import maintenance as service
from ..models import Maintenance, db
from .common import date_arg, int_arg, json_body, paginated

bp = Blueprint('maintenance', __name__, url_prefix='/api/maintenance')


def _record(record_id: int) -> Maintenance:
    return db.get_or_404(Maintenance, record_id, description=f"Maintenance {record_id} not found")


@bp.route('', methods=['GET'])
def list_maintenance():
    query = Maintenance.query
    for arg in ('status', 'maintenance_type', 'priority'):
        value = request.args.get(arg)
        if value:
            query = query.filter(getattr(Maintenance, arg) == value)
    vehicle_id = int_arg('vehicle_id')
    if vehicle_id:
        query = query.filter(Maintenance.vehicle_id == vehicle_id)
    scheduled_from = date_arg('scheduled_from')
    if scheduled_from:
        query = query.filter(Maintenance.scheduled_date >= scheduled_from)
    scheduled_to = date_arg('scheduled_to')
    if scheduled_to:
        query = query.filter(Maintenance.scheduled_date <= scheduled_to)
    return paginated(query.order_by(Maintenance.scheduled_date.desc(), Maintenance.id.desc()))


@bp.route('/upcoming', methods=['GET'])
def upcoming():
    records = service.upcoming_maintenance(int_arg('days', 30))
    return jsonify({'data': [r.to_dict() for r in records], 'count': len(records)})


@bp.route('', methods=['POST'])
def create():
    return jsonify(service.create_maintenance(json_body()).to_dict()), 201


@bp.route('/<int:record_id>', methods=['GET'])
def get_record(record_id: int):
    return jsonify(_record(record_id).to_dict())


@bp.route('/<int:record_id>', methods=['PATCH', 'PUT'])
def update(record_id: int):
    return jsonify(service.update_maintenance(_record(record_id), json_body()).to_dict())


@bp.route('/<int:record_id>', methods=['DELETE'])
def delete(record_id: int):
    service.delete_maintenance(_record(record_id))
    return '', 204
