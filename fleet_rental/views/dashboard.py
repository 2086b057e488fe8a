"""Dashboard figures and reports."""

from flask import Blueprint, current_app, jsonify

from ..reports import dashboard_stats, fleet_report, recent_activity, revenue_by_month
from .common import date_arg, int_arg

bp = Blueprint('dashboard', __name__, url_prefix='/api')


@bp.route('/dashboard', methods=['GET'])
def dashboard():
    return jsonify(dashboard_stats(date_arg('today'), current_app.config.get('CURRENCY', 'QAR')))


@bp.route('/dashboard/activity', methods=['GET'])
def activity():
    return jsonify({'data': recent_activity(int_arg('limit', 10))})


@bp.route('/dashboard/revenue', methods=['GET'])
def revenue():
    return jsonify({'data': revenue_by_month(int_arg('months', 6), date_arg('today'))})


@bp.route('/reports/fleet', methods=['GET'])
def fleet():
    rows = fleet_report(date_arg('today'))
    return jsonify({'data': rows, 'count': len(rows)})
