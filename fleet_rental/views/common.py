"""Request helpers shared by the API blueprints."""

from flask import jsonify, request

from ..errors import ValidationFailed
from ..formatting import parse_date
from ..models import db

DEFAULT_LIMIT = 100
MAX_LIMIT = 1000


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        if request.data:
            raise ValidationFailed("Request body must be valid JSON")
        return {}
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return data


def int_arg(name: str, default: int = None):
    value = request.args.get(name)
    if value in (None, ''):
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationFailed(f"{name} must be an integer") from None


def date_arg(name: str):
    try:
        return parse_date(request.args.get(name))
    except ValueError:
        raise ValidationFailed(f"{name} must be a date (YYYY-MM-DD or DD/MM/YYYY)") from None


def paginated(query):
    """``{'data': [...], 'count': n}`` for one ``limit``/``offset`` page of ``query``."""
    limit = min(max(int_arg('limit', DEFAULT_LIMIT), 1), MAX_LIMIT)
    offset = max(int_arg('offset', 0), 0)
    total = query.order_by(None).count()
    rows = query.limit(limit).offset(offset).all()
    return jsonify({'data': [row.to_dict() for row in rows], 'count': total})


def apply_changes(obj, changes: dict):
    for key, value in changes.items():
        setattr(obj, key, value)
    db.session.commit()
    return obj


def delete_row(obj):
    db.session.delete(obj)
    db.session.commit()
    return '', 204
