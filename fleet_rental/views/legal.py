"""Legal cases."""

from flask import Blueprint, jsonify, request

from ..legal import create_case, filter_cases, update_case
from ..models import LegalCase, db
from .common import delete_row, int_arg, json_body, paginated

bp = Blueprint('legal', __name__, url_prefix='/api/legal-cases')


def _case(case_id: int) -> LegalCase:
    return db.get_or_404(LegalCase, case_id, description=f"Legal case {case_id} not found")


@bp.route('', methods=['GET'])
def list_cases():
    return paginated(filter_cases(
        status=request.args.get('status'),
        case_type=request.args.get('case_type'),
        priority=request.args.get('priority'),
        customer_id=int_arg('customer_id'),
        lease_id=int_arg('lease_id'),
    ))


@bp.route('', methods=['POST'])
def create():
    return jsonify(create_case(json_body()).to_dict()), 201


@bp.route('/<int:case_id>', methods=['GET'])
def get_case(case_id: int):
    return jsonify(_case(case_id).to_dict())


@bp.route('/<int:case_id>', methods=['PATCH', 'PUT'])
def update(case_id: int):
    return jsonify(update_case(_case(case_id), json_body()).to_dict())


@bp.route('/<int:case_id>', methods=['DELETE'])
def delete(case_id: int):
    return delete_row(_case(case_id))
