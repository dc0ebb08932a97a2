# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


def require_user(f):
    """
    Resolve the acting user from the X-User-Id header.

    Authentication happens upstream of this service; the header only
    attributes the request (cashier on a sale, actor on a void or
    adjustment). Sets g.current_user.

    Returns 401 if the header is missing, malformed, or names an
    unknown or deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_user_id = request.headers.get("X-User-Id")
        if not raw_user_id:
            return jsonify({"error": "Authentication required"}), 401

        try:
            user_id = int(raw_user_id)
        except ValueError:
            return jsonify({"error": "Invalid X-User-Id header"}), 401

        user = db.session.get(User, user_id)
        if not user or not user.is_active:
            return jsonify({"error": "Unknown or inactive user"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function
