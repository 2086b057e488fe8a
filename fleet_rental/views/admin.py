"""Administrative operations: audits, scheduled checks, pricing models, templates and imports."""

import logging

from flask import Blueprint, current_app, jsonify, request

from ..conflicts import (audit_and_fix_double_booked_vehicles, check_vehicle_booking_conflicts,
                         find_double_booked_vehicle_ids)
from ..errors import Conflict, ValidationFailed
from ..imports import run_import, save_import_file
from ..models import AgreementImport, AgreementTemplate, PricingModel, db
from ..pricing import seed_pricing_models
from ..schemas import PricingModelCreate, TemplateCreate, validate
from ..tasks import check_agreements, generate_payments
from .common import date_arg, delete_row, json_body, paginated

logger = logging.getLogger(__name__)

bp = Blueprint('admin', __name__, url_prefix='/api/admin')


# ---------------------------------------------------------------------------
# Double bookings and scheduled jobs

@bp.route('/double-bookings', methods=['GET'])
def double_bookings():
    vehicles = [check_vehicle_booking_conflicts(vehicle_id).to_dict()
                for vehicle_id in find_double_booked_vehicle_ids()]
    return jsonify({'vehicles': vehicles, 'count': len(vehicles)})


@bp.route('/double-bookings/fix', methods=['POST'])
def fix_double_bookings():
    return jsonify(audit_and_fix_double_booked_vehicles().to_dict())


@bp.route('/check-agreements', methods=['POST'])
def run_agreement_check():
    return jsonify(check_agreements(date_arg('today')))


@bp.route('/generate-missing-payments', methods=['POST'])
def run_generate_payments():
    return jsonify(generate_payments(today=date_arg('today')))


# ---------------------------------------------------------------------------
# Pricing models

@bp.route('/pricing-models', methods=['GET'])
def list_pricing_models():
    models = PricingModel.query.order_by(PricingModel.id).all()
    return jsonify({'data': [m.to_dict() for m in models], 'count': len(models)})


@bp.route('/pricing-models', methods=['POST'])
def create_pricing_model():
    payload = validate(PricingModelCreate, json_body())
    if PricingModel.query.filter_by(slug=payload.slug).first():
        raise Conflict(f"Pricing model {payload.slug} already exists")
    model = PricingModel(**payload.model_dump())
    db.session.add(model)
    db.session.commit()
    return jsonify(model.to_dict()), 201


@bp.route('/pricing-models/seed', methods=['POST'])
def seed_models():
    return jsonify({'added': seed_pricing_models()})


# ---------------------------------------------------------------------------
# Agreement templates

@bp.route('/templates', methods=['GET'])
def list_templates():
    query = AgreementTemplate.query
    if request.args.get('active') == 'true':
        query = query.filter_by(is_active=True)
    return paginated(query.order_by(AgreementTemplate.name))


@bp.route('/templates', methods=['POST'])
def create_template():
    template = AgreementTemplate(**validate(TemplateCreate, json_body()).model_dump())
    db.session.add(template)
    db.session.commit()
    return jsonify(template.to_dict()), 201


@bp.route('/templates/<int:template_id>', methods=['GET'])
def get_template(template_id: int):
    template = db.get_or_404(AgreementTemplate, template_id,
                             description=f"Template {template_id} not found")
    return jsonify(template.to_dict())


@bp.route('/templates/<int:template_id>', methods=['DELETE'])
def delete_template(template_id: int):
    template = db.get_or_404(AgreementTemplate, template_id,
                             description=f"Template {template_id} not found")
    return delete_row(template)


# ---------------------------------------------------------------------------
# CSV imports

@bp.route('/imports', methods=['GET'])
def list_imports():
    query = AgreementImport.query
    import_type = request.args.get('import_type')
    if import_type:
        query = query.filter_by(import_type=import_type)
    return paginated(query.order_by(AgreementImport.created_at.desc(), AgreementImport.id.desc()))


@bp.route('/imports', methods=['POST'])
def upload_import():
    file_obj = request.files.get('file')
    if file_obj is None:
        raise ValidationFailed("No file uploaded")
    record = save_import_file(file_obj, current_app.config['UPLOAD_FOLDER'],
                              request.form.get('import_type', 'agreements'))
    if request.form.get('process', 'true') == 'true':
        result = run_import(record, current_app.config['UPLOAD_FOLDER'])
        return jsonify({'import': record.to_dict(), 'result': result}), 201
    return jsonify({'import': record.to_dict()}), 201


@bp.route('/imports/<int:import_id>', methods=['GET'])
def get_import(import_id: int):
    record = db.get_or_404(AgreementImport, import_id, description=f"Import {import_id} not found")
    return jsonify(record.to_dict())
