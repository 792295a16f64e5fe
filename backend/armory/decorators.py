# Overview: Actor identity decorator for API routes.

from functools import wraps
from flask import request, jsonify, g


ROLE_ADMIN = "admin"
ROLE_ARMOURER = "armourer"


def require_actor(*roles):
    """
    Require an identified actor, optionally limited to the given roles.

    Identity is supplied by the upstream authorization layer in the
    X-Actor-Id / X-Actor-Role headers. Sets:
    - g.actor_id: Actor identifier (string)
    - g.actor_role: Actor role

    Returns 401 when no actor id is present, 403 when the role is not allowed.

    Usage:
        @distributions_bp.post("/<int:distribution_id>/cancel")
        @require_actor("admin")
        def cancel_route(distribution_id): ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor_id = (request.headers.get("X-Actor-Id") or "").strip()
            actor_role = (request.headers.get("X-Actor-Role") or "").strip().lower()

            if not actor_id:
                return jsonify({"error": "Actor identity required"}), 401

            if roles and actor_role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": sorted(roles),
                    "role": actor_role or None,
                }), 403

            g.actor_id = actor_id
            g.actor_role = actor_role
            return f(*args, **kwargs)

        return decorated_function
    return decorator
