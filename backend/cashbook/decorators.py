# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


def require_actor(f):
    """
    Resolve the acting user and establish account context.

    Sets the following Flask g attributes:
    - g.current_user: the acting User
    - g.account_id: the owner account every query must be scoped to

    Identity comes from the X-User-Id header set by the fronting
    authentication layer. Returns 401 when it is missing or unknown.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_user_id = request.headers.get("X-User-Id", "").strip()
        if not raw_user_id.isdigit():
            return jsonify({"error": "Authentication required"}), 401

        user = db.session.get(User, int(raw_user_id))
        if user is None:
            return jsonify({"error": "Unknown user"}), 401

        g.current_user = user
        g.account_id = user.account_id
        return f(*args, **kwargs)

    return decorated_function
