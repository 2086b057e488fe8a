"""
Function endpoints.

Each endpoint parses a JSON body, calls out to an LLM or runs a job, and
returns JSON. Bad input replies 400 with ``{"error": message}``; any other
failure, including the upstream service, replies 500 with the same shape.
"""

import logging

from flask import Blueprint, current_app, jsonify

from ..ai import (analyze_agreement_status, correct_arabic_text, recommend_vehicles,
                  run_agreement_analysis, transliterate)
from ..errors import FleetError, ValidationFailed
from ..imports import run_import
from ..models import AgreementImport, db
from .common import json_body

logger = logging.getLogger(__name__)

bp = Blueprint('functions', __name__, url_prefix='/functions')


@bp.errorhandler(FleetError)
def handle_function_error(exc: FleetError):
    db.session.rollback()
    status = exc.status_code if exc.status_code < 500 else 500
    if status == 500:
        logger.error("Function failed: %s", exc.message)
    return jsonify(exc.to_dict()), status


@bp.route('/ai-analysis', methods=['POST'])
def ai_analysis():
    analysis = run_agreement_analysis(json_body())
    return jsonify(analysis.to_dict())


@bp.route('/translate-text', methods=['POST'])
def translate_text():
    body = json_body()
    if body.get('mode') == 'agreement_analysis':
        return jsonify(analyze_agreement_status(body.get('agreementData')))
    return jsonify({'translatedText': transliterate(body.get('text'))})


@bp.route('/process-arabic-text', methods=['POST'])
def process_arabic_text():
    return jsonify(correct_arabic_text(json_body()))


@bp.route('/ai-vehicle-recommendation', methods=['POST'])
def ai_vehicle_recommendation():
    recommendation = recommend_vehicles(json_body())
    return jsonify(recommendation.to_dict())


@bp.route('/process-agreement-imports', methods=['POST'])
def process_agreement_imports():
    import_id = json_body().get('importId')
    if import_id is None:
        raise ValidationFailed("Import ID is required")
    record = db.session.get(AgreementImport, import_id)
    if record is None:
        raise ValidationFailed(f"Import {import_id} not found")
    return jsonify(run_import(record, current_app.config['UPLOAD_FOLDER']))
