from functools import wraps

from flask import current_app, jsonify, request
from flask_login import current_user, login_required
from werkzeug.exceptions import HTTPException

from coinhost.errors import CoinhostError, Forbidden, ValidationError


def register_error_handlers(flask_app):
    @flask_app.errorhandler(CoinhostError)
    def handle_domain_error(exc):
        if exc.status_code >= 500:
            current_app.logger.error(f"[error] {exc.__class__.__name__}: {exc}")
        return jsonify(exc.to_dict()), exc.status_code

    @flask_app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return jsonify({'error': exc.description or exc.name}), exc.code

    @flask_app.errorhandler(Exception)
    def handle_unexpected(exc):
        current_app.logger.exception(f"[error] unhandled {exc.__class__.__name__}")
        return jsonify({'error': 'Internal server error'}), 500


def admin_required(view):
    """Require an authenticated principal with the admin role."""
    @wraps(view)
    @login_required
    def wrapper(*args, **kwargs):
        if not current_user.is_admin:
            raise Forbidden('Admin access required')
        return view(*args, **kwargs)
    return wrapper


def json_body():
    return request.get_json(silent=True) or {}


def int_field(data, name, required=True):
    value = data.get(name)
    if value is None:
        if required:
            raise ValidationError(f"{name} is required", field=name)
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be integer", field=name)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip('-').isdigit():
        return int(value.strip())
    raise ValidationError(f"{name} must be integer", field=name)


def pagination_args(default_limit=20, max_limit=100):
    try:
        page = max(1, int(request.args.get('page', 1)))
    except ValueError:
        page = 1
    try:
        limit = min(max_limit, max(1, int(request.args.get('limit', default_limit))))
    except ValueError:
        limit = default_limit
    return page, limit


def pagination_payload(page, limit, total):
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'totalPages': (total + limit - 1) // limit,
    }
