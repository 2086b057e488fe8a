"""Customers (``profiles``)."""

from flask import Blueprint, jsonify, request
from sqlalchemy import or_

from ..errors import Conflict
from ..models import Agreement, Customer, LeaseStatus, db
from ..schemas import CustomerCreate, CustomerUpdate, validate
from .common import apply_changes, delete_row, json_body, paginated

bp = Blueprint('customers', __name__, url_prefix='/api/customers')


@bp.route('', methods=['GET'])
def list_customers():
    query = Customer.query.filter(Customer.role == 'customer')
    status = request.args.get('status')
    if status:
        query = query.filter(Customer.status == status)
    search = request.args.get('search')
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Customer.full_name.ilike(pattern),
                                 Customer.email.ilike(pattern),
                                 Customer.phone_number.ilike(pattern),
                                 Customer.driver_license.ilike(pattern)))
    return paginated(query.order_by(Customer.full_name))


@bp.route('', methods=['POST'])
def create_customer():
    customer = Customer(**validate(CustomerCreate, json_body()).model_dump())
    db.session.add(customer)
    db.session.commit()
    return jsonify(customer.to_dict()), 201


@bp.route('/<int:customer_id>', methods=['GET'])
def get_customer(customer_id: int):
    customer = db.get_or_404(Customer, customer_id, description=f"Customer {customer_id} not found")
    return jsonify(customer.to_dict())


@bp.route('/<int:customer_id>', methods=['PATCH', 'PUT'])
def update_customer(customer_id: int):
    customer = db.get_or_404(Customer, customer_id, description=f"Customer {customer_id} not found")
    changes = validate(CustomerUpdate, json_body()).model_dump(exclude_unset=True)
    return jsonify(apply_changes(customer, changes).to_dict())


@bp.route('/<int:customer_id>', methods=['DELETE'])
def delete_customer(customer_id: int):
    customer = db.get_or_404(Customer, customer_id, description=f"Customer {customer_id} not found")
    if any(a.status == LeaseStatus.ACTIVE for a in customer.agreements):
        raise Conflict(f"Customer {customer.full_name} has an active agreement")
    for agreement in customer.agreements:
        agreement.customer_id = None
    for fine in customer.traffic_fines:
        fine.customer_id = None
    for case in customer.legal_cases:
        case.customer_id = None
    return delete_row(customer)


@bp.route('/<int:customer_id>/agreements', methods=['GET'])
def customer_agreements(customer_id: int):
    db.get_or_404(Customer, customer_id, description=f"Customer {customer_id} not found")
    query = Agreement.query.filter_by(customer_id=customer_id)
    return paginated(query.order_by(Agreement.start_date.desc()))
